"""
Health check routes.
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from scoutreel.config import config
from scoutreel.db import USE_DB, verify_connection

bp = Blueprint("health", __name__)


@bp.route("/health", methods=["GET"])
def health():
    return jsonify({"ok": True, "config": config.to_dict()})


@bp.route("/db-check", methods=["GET"])
def db_check():
    if not USE_DB:
        return jsonify({"ok": False, "error": "db_disabled"}), 503
    if not verify_connection():
        print("[DB] db_check failed")
        return jsonify({"ok": False, "error": "db_query_failed"}), 503
    return jsonify({"ok": True, "db": "connected"})
