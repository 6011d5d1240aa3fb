"""
/api/admin routes - Admin-only endpoints.

Admins are signed-in users whose token email is listed in ADMIN_EMAILS.

Endpoints:
- GET   /api/admin/users                 - Accounts with credits and last 20 usage records
- GET   /api/admin/users/<uid>/credits   - One account's balances
- PATCH /api/admin/users/<uid>/credits   - Override balances ({"scraping": n, "video-seconds": n})
- POST  /api/admin/users/<uid>/grant     - Top up one kind ({"kind", "amount"})
- POST  /api/admin/reset                 - Monthly reset: zero every account's balances

Environment variables:
  ADMIN_EMAILS=admin@example.com     # Comma-separated list
"""

from flask import Blueprint, g, jsonify, request

from scoutreel.middleware import require_admin
from scoutreel.services.credit_service import CreditService
from scoutreel.services.ledger_store import CreditKind
from scoutreel.utils import clamp_int, json_safe

bp = Blueprint("admin", __name__)

RECENT_USAGE_LIMIT = 20


@bp.route("/users", methods=["GET"])
@require_admin
def list_users():
    service = CreditService()
    usage_limit = clamp_int(request.args.get("usage"), 0, 100, RECENT_USAGE_LIMIT)

    users = []
    for account in service.store.list_accounts():
        users.append({
            "id": account["id"],
            "email": account.get("email"),
            "created_at": account.get("created_at"),
            "credits": service.store.get_credits(account["id"]),
            "usage": service.get_recent_usage(account["id"], limit=usage_limit),
        })
    return jsonify({"ok": True, "users": json_safe(users)})


@bp.route("/users/<uid>/credits", methods=["GET"])
@require_admin
def get_user_credits(uid):
    credits = CreditService().get_credit_summary(uid)
    return jsonify({"ok": True, "user_id": uid, **json_safe(credits)})


@bp.route("/users/<uid>/credits", methods=["PATCH"])
@require_admin
def set_user_credits(uid):
    data = request.get_json(silent=True) or {}
    values = {kind: data[kind] for kind in CreditKind.ALL if kind in data}
    if not values:
        raise ValueError(f"Provide at least one of: {', '.join(CreditKind.ALL)}")

    credits = CreditService().set_balances(uid, values)
    print(f"[ADMIN] {g.admin_email} set credits for {uid}: {values}")
    return jsonify({"ok": True, "user_id": uid, "credits": json_safe(credits)})


@bp.route("/users/<uid>/grant", methods=["POST"])
@require_admin
def grant_user_credits(uid):
    data = request.get_json(silent=True) or {}
    result = CreditService().grant(uid, data.get("kind"), data.get("amount"))
    print(f"[ADMIN] {g.admin_email} granted {result['amount']} {result['kind']} to {uid}")
    return jsonify({"ok": True, "user_id": uid, **result})


@bp.route("/reset", methods=["POST"])
@require_admin
def reset_credits():
    result = CreditService().reset_all()
    print(f"[ADMIN] {g.admin_email} reset credits for {result['accounts_reset']} accounts")
    return jsonify(json_safe(result))
