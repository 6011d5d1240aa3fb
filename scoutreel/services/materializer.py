"""
Result Materializer - turns a finished external job into durable results.

Video:
  1. Download the rendered video from the provider URL (failure -> ArtifactFetchFailedError)
  2. Upload to S3 at videos/{account}/{profile}/{job}.mp4 and presign a read URL
     If S3 is missing or fails, log a warning and keep the provider URL instead.
  3. Attach {storage_path, download_url, created_at, seconds_used} to the profile
  4. Mark the job succeeded

Profiles:
  1. Normalize + upsert the scraped records
  2. Mark the job succeeded with the saved ids
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import RequestException

from scoutreel.db import now_utc_iso
from scoutreel.exceptions import ArtifactFetchFailedError
from scoutreel.services.job_service import JobService
from scoutreel.services.profile_service import ProfileService
from scoutreel.services.storage_service import build_video_key, get_blob_store

_logger = logging.getLogger("scoutreel.materializer")

CONNECT_TIMEOUT = 10
DOWNLOAD_TIMEOUT = 300


def download_artifact(url: str) -> bytes:
    """Fetch the artifact bytes. Not retried."""
    print(f"[MATERIALIZE] Downloading artifact from: {url[:100]}...")
    try:
        r = requests.get(url, timeout=(CONNECT_TIMEOUT, DOWNLOAD_TIMEOUT), allow_redirects=True)
    except RequestException as e:
        raise ArtifactFetchFailedError(url, f"Artifact download failed: {e}") from e
    if not r.ok:
        raise ArtifactFetchFailedError(url, f"Artifact download failed: HTTP {r.status_code}")
    return r.content


class Materializer:
    def __init__(
        self,
        jobs: Optional[JobService] = None,
        profiles: Optional[ProfileService] = None,
        blob_store: Any = None,
    ):
        self.jobs = jobs or JobService()
        self.profiles = profiles or ProfileService()
        self._blob_store = blob_store

    def _store_video(self, key: str, data: bytes) -> str:
        blob_store = self._blob_store or get_blob_store()
        blob_store.save(key, data, content_type="video/mp4")
        return blob_store.signed_url(key)

    def materialize_video(
        self,
        account_id: str,
        profile_id: str,
        job_id: str,
        artifact_url: str,
        seconds_used: int,
    ) -> Dict[str, Any]:
        """Persist a rendered video and finalize its job. Returns the profile's video record."""
        data = download_artifact(artifact_url)

        storage_path = build_video_key(account_id, profile_id, job_id)
        stored = True
        try:
            download_url = self._store_video(storage_path, data)
        except Exception as e:
            _logger.warning(
                "Video storage failed for job %s, falling back to provider URL: %s", job_id, e,
            )
            download_url = artifact_url
            storage_path = None
            stored = False

        video = {
            "storage_path": storage_path,
            "download_url": download_url,
            "created_at": now_utc_iso(),
            "seconds_used": seconds_used,
        }
        self.profiles.set_video(account_id, profile_id, video)
        self.jobs.mark_succeeded(account_id, job_id, {
            "storage_path": storage_path,
            "download_url": download_url,
            "seconds_used": seconds_used,
            "stored": stored,
        })
        return video

    def materialize_profiles(self, account_id: str, job_id: str, records: List[Dict[str, Any]]) -> List[str]:
        profile_ids = self.profiles.save_scraped(account_id, records)
        self.jobs.mark_succeeded(account_id, job_id, {
            "profiles_saved": len(profile_ids),
            "profile_ids": profile_ids,
        })
        return profile_ids
