"""
/api/credits routes - monthly credit quota for the signed-in account.

GET /api/credits
    {
        "ok": true,
        "credits": {
            "scraping":      {"available", "used_this_month", "limit"},
            "video-seconds": {"available", "used_this_month", "limit"}
        },
        "reset_at": ISO | null,
        "next_reset_at": ISO,
        "recent_usage": [...]  (?usage=N, default 0)
    }
"""

from flask import Blueprint, g, jsonify, request

from scoutreel.middleware import no_cache, require_auth
from scoutreel.services.credit_service import CreditService
from scoutreel.utils import clamp_int, json_safe

bp = Blueprint("credits", __name__)


@bp.route("", methods=["GET"])
@require_auth
@no_cache
def get_credits():
    service = CreditService()
    summary = service.get_credit_summary(g.account_id)

    usage_limit = clamp_int(request.args.get("usage"), 0, 100, 0)
    if usage_limit:
        summary["recent_usage"] = service.get_recent_usage(g.account_id, limit=usage_limit)

    return jsonify({"ok": True, **json_safe(summary)})
