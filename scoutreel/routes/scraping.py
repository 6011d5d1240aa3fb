"""
/api/scrape - start a profile scraping job.

POST /api/scrape  {"urls": ["https://www.linkedin.com/in/..."]}
    202 {"ok": true, "job_id": "..."}
    402 INSUFFICIENT_CREDITS (one scraping credit per URL)
"""

from flask import Blueprint, g, jsonify, request

from scoutreel.middleware import require_auth
from scoutreel.services.dispatch_service import get_dispatcher

bp = Blueprint("scraping", __name__)


@bp.route("/scrape", methods=["POST"])
@require_auth
def start_scrape():
    data = request.get_json(silent=True) or {}
    urls = data.get("urls")
    if isinstance(urls, str):
        urls = [urls]

    job_id = get_dispatcher().start_scraping(g.account_id, urls)
    return jsonify({"ok": True, "job_id": job_id}), 202
