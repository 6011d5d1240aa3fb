"""
/api/video routes - personalized intro videos.

- POST /api/video/generate        {"profile_id", "script"}   -> 202 {"job_id"}
- POST /api/video/resume          {"job_id", "profile_id"?}  -> 202 {"job_id", "status"}
- POST /api/video/script          {"profile_id"}             -> 200 {"script"}
- POST /api/video/script/improve  {"script"}                 -> 200 {"script"}

Video-seconds are debited up front from the script estimate. A resume never
resubmits the render, so it costs nothing, and it always polls HeyGen with the
recorded video id. Finishing from a direct URL is left to scripts/resume_video_job.py.
Script drafting and polishing are free.
"""

from flask import Blueprint, g, jsonify, request

from scoutreel.middleware import require_auth
from scoutreel.services.dispatch_service import get_dispatcher
from scoutreel.services.profile_service import ProfileService
from scoutreel.services.script_service import get_script_writer

bp = Blueprint("video", __name__)


@bp.route("/generate", methods=["POST"])
@require_auth
def generate_video():
    data = request.get_json(silent=True) or {}
    profile_id = (data.get("profile_id") or "").strip()
    if not profile_id:
        raise ValueError("profile_id is required")

    job_id = get_dispatcher().start_video_generation(g.account_id, profile_id, data.get("script"))
    return jsonify({"ok": True, "job_id": job_id}), 202


@bp.route("/resume", methods=["POST"])
@require_auth
def resume_video():
    data = request.get_json(silent=True) or {}
    job_id = (data.get("job_id") or "").strip()
    if not job_id:
        raise ValueError("job_id is required")

    result = get_dispatcher().resume_video_generation(
        g.account_id,
        job_id,
        profile_id=(data.get("profile_id") or "").strip() or None,
        background=True,
    )
    return jsonify({"ok": True, **result}), 202


@bp.route("/script", methods=["POST"])
@require_auth
def draft_script():
    data = request.get_json(silent=True) or {}
    profile_id = (data.get("profile_id") or "").strip()
    if not profile_id:
        raise ValueError("profile_id is required")

    profile = ProfileService().get_profile(g.account_id, profile_id)
    script = get_script_writer().generate_intro_script(profile)
    return jsonify({"ok": True, "script": script})


@bp.route("/script/improve", methods=["POST"])
@require_auth
def improve_script():
    data = request.get_json(silent=True) or {}
    script = get_script_writer().improve_intro_script(data.get("script"))
    return jsonify({"ok": True, "script": script})
