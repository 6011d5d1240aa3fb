"""
HTTP Error Handlers
-------------------
Every error leaves the API as

    {"ok": false, "error": {"code": ..., "message": ..., <details>}}

- LedgerError subclasses carry their own code and HTTP status
- DatabaseError -> 500 DATABASE_ERROR
- ValueError (request validation) -> 400 VALIDATION_ERROR
- werkzeug HTTPExceptions keep their status

Usage:
    from scoutreel.utils.error_handlers import register_error_handlers
    register_error_handlers(app)
"""

from typing import Any, Dict, Optional

from flask import jsonify
from werkzeug.exceptions import HTTPException

from scoutreel.db import DatabaseError
from scoutreel.exceptions import LedgerError
from scoutreel.utils.helpers import json_safe


def make_error_response(code: str, message: str, status: int, details: Optional[Dict[str, Any]] = None):
    error = {"code": code, "message": message}
    if details:
        error.update(json_safe(details))
    return jsonify({"ok": False, "error": error}), status


def handle_ledger_error(e: LedgerError):
    if e.http_status >= 500:
        print(f"[API] {e.code}: {e.message}")
    body = e.to_dict()
    code = body.pop("code")
    message = body.pop("message")
    return make_error_response(code, message, e.http_status, body)


def handle_database_error(e: DatabaseError):
    print(f"[API] Database error: {e}")
    return make_error_response("DATABASE_ERROR", "Database error occurred", 500)


def handle_validation_error(e: ValueError):
    return make_error_response("VALIDATION_ERROR", str(e), 400)


def handle_http_exception(e: HTTPException):
    code = (e.name or "HTTP_ERROR").upper().replace(" ", "_")
    return make_error_response(code, e.description or e.name, e.code or 500)


def handle_internal_error(e: Exception):
    print(f"[API] Unhandled error: {type(e).__name__}: {e}")
    return make_error_response("INTERNAL_ERROR", "An unexpected error occurred", 500)


def register_error_handlers(app) -> None:
    app.register_error_handler(LedgerError, handle_ledger_error)
    app.register_error_handler(DatabaseError, handle_database_error)
    app.register_error_handler(ValueError, handle_validation_error)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_internal_error)
