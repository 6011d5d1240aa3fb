"""
General helper utilities shared by routes and scripts.

Kept dependency-light so they can be used without a Flask app.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


def clamp_int(value: Any, minimum: int, maximum: int, default: int) -> int:
    """Clamp a value to an integer within [minimum, maximum]."""
    try:
        return max(minimum, min(maximum, int(value)))
    except (TypeError, ValueError):
        return default


def to_iso(value: Any) -> Any:
    """datetime -> ISO string, anything else unchanged."""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def json_safe(value: Any) -> Any:
    """Recursively convert datetimes to ISO strings so jsonify keeps full precision."""
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return to_iso(value)
