"""
Job Service - the job ledger.

A job is one attempt at an asynchronous external unit of work. Its status
only moves forward:

    pending -> running -> succeeded
          \\        \\-> failed
           \\-> failed

running -> running is allowed (progress updates). A terminal job never
changes status again, except that a running or failed video job can be
resumed back to running while the provider still holds its output.

Metadata is an append-only list of fragments. Readers fold it left to right
(fold_metadata) so the latest non-null value of each key wins; nothing is
ever overwritten in place.
"""

import uuid
from typing import Any, Dict, Iterable, List, Optional

from scoutreel.db import now_utc, now_utc_iso
from scoutreel.exceptions import JobNotFoundError
from scoutreel.services.ledger_store import LedgerStore, get_ledger_store


class JobStatus:
    """Valid job statuses."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    TERMINAL = (SUCCEEDED, FAILED)


class JobType:
    """Valid job types."""
    PROFILE_SCRAPING = "profile_scraping"
    VIDEO_GENERATION = "video_generation"

    ALL = (PROFILE_SCRAPING, VIDEO_GENERATION)


# Target status -> statuses it may be entered from
_ALLOWED_FROM = {
    JobStatus.RUNNING: (JobStatus.PENDING, JobStatus.RUNNING),
    JobStatus.SUCCEEDED: (JobStatus.RUNNING,),
    JobStatus.FAILED: (JobStatus.PENDING, JobStatus.RUNNING),
}

_RESUMABLE_FROM = (JobStatus.RUNNING, JobStatus.FAILED)


def fold_metadata(fragments: Iterable[Optional[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Merge metadata fragments left to right; the last non-null value per key wins.

    >>> fold_metadata([{"a": 1, "b": 2}, {"b": None, "c": 3}, {"a": 4}])
    {'a': 4, 'b': 2, 'c': 3}
    """
    folded: Dict[str, Any] = {}
    for fragment in fragments:
        for key, value in (fragment or {}).items():
            if value is not None:
                folded[key] = value
    return folded


def latest_value(fragments: Iterable[Optional[Dict[str, Any]]], key: str, default: Any = None) -> Any:
    """Last non-null value of `key` across the fragments."""
    value = default
    for fragment in fragments:
        candidate = (fragment or {}).get(key)
        if candidate is not None:
            value = candidate
    return value


class JobService:
    """Job creation and status transitions against a LedgerStore."""

    DEFAULT_LIST_LIMIT = 50

    def __init__(self, store: Optional[LedgerStore] = None):
        self._store = store

    @property
    def store(self) -> LedgerStore:
        return self._store or get_ledger_store()

    def create(self, account_id: str, job_type: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Create a pending job whose first metadata fragment is `metadata`. Returns the job id."""
        if job_type not in JobType.ALL:
            raise ValueError(f"Unknown job type: {job_type!r}")

        now = now_utc()
        job_id = uuid.uuid4().hex
        self.store.insert_job({
            "account_id": account_id,
            "id": job_id,
            "type": job_type,
            "status": JobStatus.PENDING,
            "created_at": now,
            "updated_at": now,
            "metadata": [dict(metadata or {})],
        })
        print(f"[JOBS] Created {job_type} job {job_id} for {account_id}")
        return job_id

    def _transition(self, account_id, job_id, status, fragment=None) -> Dict[str, Any]:
        return self.store.transition_job(
            account_id, job_id, status, _ALLOWED_FROM[status], fragment=fragment,
        )

    def mark_running(self, account_id: str, job_id: str, fragment: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._transition(account_id, job_id, JobStatus.RUNNING, fragment)

    def mark_succeeded(self, account_id: str, job_id: str, fragment: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        job = self._transition(account_id, job_id, JobStatus.SUCCEEDED, fragment)
        print(f"[JOBS] Job {job_id} succeeded")
        return job

    def mark_failed(
        self,
        account_id: str,
        job_id: str,
        error_message: str,
        fragment: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Fail a pending or running job; the error text is always recorded."""
        merged = dict(fragment or {})
        merged["error"] = str(error_message)
        job = self._transition(account_id, job_id, JobStatus.FAILED, merged)
        print(f"[JOBS] Job {job_id} failed: {error_message}")
        return job

    def mark_resumed(self, account_id: str, job_id: str) -> Dict[str, Any]:
        """
        Put a running or failed job back to running and record the resume.
        A succeeded job is returned unchanged.
        """
        job = self.get_job(account_id, job_id)
        if job["status"] == JobStatus.SUCCEEDED:
            print(f"[JOBS] Job {job_id} already succeeded - nothing to resume")
            return job
        job = self.store.transition_job(
            account_id, job_id, JobStatus.RUNNING, _RESUMABLE_FROM,
            fragment={"resume": True, "at": now_utc_iso()},
        )
        print(f"[JOBS] Job {job_id} resumed")
        return job

    def append_metadata(self, account_id: str, job_id: str, fragment: Dict[str, Any]) -> Dict[str, Any]:
        return self.store.append_job_metadata(account_id, job_id, fragment)

    def get_job(self, account_id: str, job_id: str) -> Dict[str, Any]:
        """Raises JobNotFoundError when the account has no such job."""
        job = self.store.get_job(account_id, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, account_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.store.list_jobs(account_id, limit=limit or self.DEFAULT_LIST_LIMIT)

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def format_job(job: Dict[str, Any]) -> Dict[str, Any]:
        """Format job for API response (metadata folded, raw log kept)."""
        created_at = job.get("created_at")
        updated_at = job.get("updated_at")
        return {
            "id": job["id"],
            "type": job["type"],
            "status": job["status"],
            "metadata": fold_metadata(job.get("metadata") or []),
            "metadata_log": list(job.get("metadata") or []),
            "created_at": created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
            "updated_at": updated_at.isoformat() if hasattr(updated_at, "isoformat") else updated_at,
        }
