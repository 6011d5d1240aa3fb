"""Utility helpers for the ScoutReel backend."""

from .helpers import clamp_int, json_safe, to_iso

__all__ = [
    "clamp_int",
    "json_safe",
    "to_iso",
]
