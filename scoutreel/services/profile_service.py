"""
Profile Service - scraped LinkedIn profiles per account.

A profile is keyed by the scraper's publicIdentifier. Re-scraping merges the
new fields over the old ones and never touches the profile's video.
"""

from typing import Any, Dict, List, Optional

from scoutreel.db import now_utc_iso
from scoutreel.exceptions import ProfileNotFoundError
from scoutreel.services.ledger_store import LedgerStore, get_ledger_store


def _skill_names(skills: Any) -> List[str]:
    names = []
    for skill in skills or []:
        if isinstance(skill, dict):
            skill = skill.get("name") or skill.get("title")
        if skill:
            names.append(str(skill))
    return names


def normalize_profile(record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Map one scraped dataset item onto profile fields.
    Returns None for records without a publicIdentifier.
    """
    profile_id = record.get("publicIdentifier")
    if not profile_id:
        return None

    experience = record.get("experience") or []
    current_company = None
    if experience and isinstance(experience[0], dict):
        current_company = experience[0].get("company") or experience[0].get("companyName")

    full_name = record.get("fullName")
    if not full_name:
        full_name = " ".join(p for p in (record.get("firstName"), record.get("lastName")) if p) or None

    fields = {
        "linkedin_url": record.get("url") or record.get("linkedinUrl"),
        "first_name": record.get("firstName"),
        "last_name": record.get("lastName"),
        "full_name": full_name,
        "headline": record.get("headline"),
        "location": record.get("location"),
        "profile_pic": record.get("imgUrl") or record.get("profilePic"),
        "skills": _skill_names(record.get("skills")),
        "current_company": current_company,
        "about": record.get("about"),
        "experience": experience,
        "scraped_at": now_utc_iso(),
    }
    # Missing values must not blank out what an earlier scrape stored
    fields = {k: v for k, v in fields.items() if v is not None}
    return {"id": str(profile_id), "fields": fields}


class ProfileService:
    """Read and upsert profiles against a LedgerStore."""

    def __init__(self, store: Optional[LedgerStore] = None):
        self._store = store

    @property
    def store(self) -> LedgerStore:
        return self._store or get_ledger_store()

    def save_scraped(self, account_id: str, records: List[Dict[str, Any]]) -> List[str]:
        """Normalize and upsert scraped records. Returns the saved profile ids in input order."""
        saved = []
        skipped = 0
        for record in records or []:
            normalized = normalize_profile(record) if isinstance(record, dict) else None
            if normalized is None:
                skipped += 1
                continue
            self.store.upsert_profile(account_id, normalized["id"], normalized["fields"])
            saved.append(normalized["id"])
        print(f"[PROFILES] Saved {len(saved)} profiles for {account_id} (skipped {skipped})")
        return saved

    def get_profile(self, account_id: str, profile_id: str) -> Dict[str, Any]:
        profile = self.store.get_profile(account_id, profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    def list_profiles(self, account_id: str) -> List[Dict[str, Any]]:
        return self.store.list_profiles(account_id)

    def set_video(self, account_id: str, profile_id: str, video: Dict[str, Any]) -> Dict[str, Any]:
        return self.store.set_profile_video(account_id, profile_id, video)

    @staticmethod
    def format_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
        """JSON-safe copy for API responses."""
        out = {}
        for key, value in profile.items():
            out[key] = value.isoformat() if hasattr(value, "isoformat") else value
        return out
