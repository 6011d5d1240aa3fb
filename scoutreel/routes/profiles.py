"""
/api/profiles routes - scraped profiles and their videos.
"""

from flask import Blueprint, g, jsonify

from scoutreel.middleware import no_cache, require_auth
from scoutreel.services.profile_service import ProfileService

bp = Blueprint("profiles", __name__)


@bp.route("", methods=["GET"])
@require_auth
@no_cache
def list_profiles():
    profiles = ProfileService().list_profiles(g.account_id)
    return jsonify({"ok": True, "profiles": [ProfileService.format_profile(p) for p in profiles]})


@bp.route("/<profile_id>", methods=["GET"])
@require_auth
@no_cache
def get_profile(profile_id):
    profile = ProfileService().get_profile(g.account_id, profile_id)
    return jsonify({"ok": True, "profile": ProfileService.format_profile(profile)})
