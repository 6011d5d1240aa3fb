"""
Middleware for ScoutReel routes.

Provides decorators that authenticate requests with the bearer identity token.

Usage:
    from scoutreel.middleware import require_auth, require_admin

    @bp.route("/credits")
    @require_auth
    def get_credits():
        # g.account_id and g.email are available
        return jsonify({"account_id": g.account_id})

    @bp.route("/admin/reset", methods=["POST"])
    @require_admin
    def reset():
        ...

Note: service imports are lazy (inside functions) to avoid circular import issues.
"""

from functools import wraps
from typing import Optional

from flask import g, jsonify, make_response, request


def _get_identity_service():
    """Lazy import of the identity verifier to avoid circular imports."""
    from scoutreel.services.identity_service import get_identity_service
    return get_identity_service()


def _get_database_error():
    """Lazy import of DatabaseError to avoid circular imports."""
    from scoutreel.db import DatabaseError
    return DatabaseError


def get_bearer_token() -> Optional[str]:
    """Token from 'Authorization: Bearer <token>', or None."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def no_cache(f):
    """
    Decorator that adds Cache-Control headers to prevent caching.
    Use for per-account endpoints (credits, jobs, profiles).
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        result = f(*args, **kwargs)

        if hasattr(result, "headers"):
            response = result
        elif isinstance(result, tuple):
            response = make_response(result[0], result[1] if len(result) > 1 else 200)
        else:
            response = make_response(result)

        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        return response

    return decorated


def _authenticate():
    """
    Verify the bearer token and make sure the account row exists.
    Returns an error response tuple, or None on success.

    Sets on g:
        - g.account_id: The token subject
        - g.email: The token email (may be None)
    """
    from scoutreel.exceptions import InvalidTokenError
    from scoutreel.services.ledger_store import get_ledger_store

    DatabaseError = _get_database_error()

    try:
        identity = _get_identity_service().verify(get_bearer_token())
    except InvalidTokenError as e:
        return jsonify({
            "ok": False,
            "error": {
                "code": e.code,
                "message": e.message,
            }
        }), 401

    g.account_id = identity["account_id"]
    g.email = identity["email"]

    try:
        get_ledger_store().ensure_account(g.account_id, g.email)
    except DatabaseError as e:
        print(f"[MIDDLEWARE] Database error ensuring account {g.account_id}: {e}")
        return jsonify({
            "ok": False,
            "error": {
                "code": "DATABASE_ERROR",
                "message": "Database error occurred"
            }
        }), 500
    return None


def require_auth(f):
    """
    Decorator that requires a valid identity token.
    Returns 401 if the token is missing or invalid.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        error = _authenticate()
        if error is not None:
            return error
        return f(*args, **kwargs)

    return decorated


def require_admin(f):
    """
    Decorator that requires a valid identity token whose email is in ADMIN_EMAILS.
    Returns 401 if not authenticated, 403 if not an admin.

    Sets on g:
        - g.admin_email: The admin email
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        from scoutreel.config import config

        error = _authenticate()
        if error is not None:
            return error

        if not config.is_admin_email(g.email):
            print(f"[MIDDLEWARE] require_admin 403: account={g.account_id}")
            return jsonify({
                "ok": False,
                "error": {
                    "code": "FORBIDDEN",
                    "message": "You do not have admin privileges"
                }
            }), 403

        g.admin_email = g.email
        return f(*args, **kwargs)

    return decorated
