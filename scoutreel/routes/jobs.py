"""
/api/jobs routes - job status for the signed-in account.

- GET  /api/jobs               - newest first (?limit=, default 50, max 100)
- GET  /api/jobs/<job_id>      - one job, metadata folded
- POST /api/jobs/<job_id>/cancel - stop an in-process poll loop
"""

from flask import Blueprint, g, jsonify, request

from scoutreel.middleware import no_cache, require_auth
from scoutreel.services.dispatch_service import get_dispatcher
from scoutreel.services.job_service import JobService
from scoutreel.utils import clamp_int

bp = Blueprint("jobs", __name__)


@bp.route("", methods=["GET"])
@require_auth
@no_cache
def list_jobs():
    limit = clamp_int(request.args.get("limit"), 1, 100, JobService.DEFAULT_LIST_LIMIT)
    jobs = get_dispatcher().list_jobs(g.account_id, limit=limit)
    return jsonify({"ok": True, "jobs": [JobService.format_job(j) for j in jobs]})


@bp.route("/<job_id>", methods=["GET"])
@require_auth
@no_cache
def get_job(job_id):
    job = get_dispatcher().get_job(g.account_id, job_id)
    return jsonify({"ok": True, "job": JobService.format_job(job)})


@bp.route("/<job_id>/cancel", methods=["POST"])
@require_auth
def cancel_job(job_id):
    dispatcher = get_dispatcher()
    dispatcher.get_job(g.account_id, job_id)
    cancelled = dispatcher.cancel(g.account_id, job_id)
    return jsonify({"ok": True, "job_id": job_id, "cancelled": cancelled})
