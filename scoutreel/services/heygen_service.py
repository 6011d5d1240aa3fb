"""
HeyGen HTTP Client - avatar video generation.

Base URL: https://api.heygen.com
Auth:     X-Api-Key: <HEYGEN_API_KEY>

Endpoints used:
  POST /v2/video/generate                    → create video, returns data.video_id
  GET  /v1/video_status.get?video_id=...     → status

Statuses:
  pending, waiting, processing               → still rendering
  completed                                  → data.video_url (+ data.duration)
  failed                                     → data.error {code, message, detail}

The video_url returned on completion is a short-lived signed URL.
Download and persist it to S3 as soon as the job completes.
"""

from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError, Timeout

from scoutreel.config import config
from scoutreel.exceptions import (
    NotConfiguredError,
    ProviderRejectedError,
    ProviderUnavailableError,
    UnparseableResponseError,
)
from scoutreel.services.job_poller import PollFailed, PollInProgress, PollSucceeded

PROVIDER = "heygen"

# ── Timeouts ─────────────────────────────────────────────────
CONNECT_TIMEOUT = 10        # seconds
READ_TIMEOUT = 60           # seconds for generation / status

IN_PROGRESS_STATUSES = {"pending", "waiting", "processing"}


def _error_fields(body: Any):
    """(code, message) from the shapes HeyGen uses for errors."""
    if not isinstance(body, dict):
        return None, None
    err = body.get("error")
    if isinstance(err, dict):
        return err.get("code"), err.get("message") or err.get("detail")
    if isinstance(err, str):
        return None, err
    return body.get("code"), body.get("message")


def _parse_error(r: requests.Response) -> Exception:
    """Convert a non-2xx response into a typed provider error."""
    try:
        code, msg = _error_fields(r.json())
    except ValueError:
        code, msg = None, None
    msg = msg or (r.text[:500] if r.text else "")
    code = str(code) if code else str(r.status_code)

    if 400 <= r.status_code < 500:
        return ProviderRejectedError(PROVIDER, code, f"HeyGen rejected the request ({r.status_code}): {msg}")
    return ProviderUnavailableError(PROVIDER, f"HeyGen error {r.status_code}: {msg}")


def parse_heygen_status(body: Dict[str, Any]):
    """Map a video_status body onto a poll variant; the success artifact is the video URL."""
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict) or not data.get("status"):
        raise UnparseableResponseError("HeyGen status body has no data.status")

    status = str(data["status"]).lower()
    if status == "completed":
        video_url = data.get("video_url")
        if not video_url:
            raise UnparseableResponseError("HeyGen video completed without video_url")
        duration = data.get("duration")
        try:
            duration = float(duration) if duration is not None else None
        except (TypeError, ValueError):
            duration = None
        return PollSucceeded(artifact=video_url, duration_seconds=duration)

    if status == "failed":
        err = data.get("error")
        if isinstance(err, dict):
            return PollFailed(code=err.get("code"), detail=err.get("detail") or err.get("message"))
        return PollFailed(code=None, detail=str(err) if err else None)

    if status in IN_PROGRESS_STATUSES:
        return PollInProgress(status=status)
    raise UnparseableResponseError(f"Unknown HeyGen video status: {status}")


class HeyGenClient:
    """Submit a talking-avatar video and check on it."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        avatar_id: Optional[str] = None,
        voice_id: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else config.HEYGEN_API_KEY
        self.avatar_id = avatar_id if avatar_id is not None else config.HEYGEN_AVATAR_ID
        self.voice_id = voice_id if voice_id is not None else config.HEYGEN_VOICE_ID
        self.base_url = (base_url or config.HEYGEN_BASE_URL).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise NotConfiguredError("heygen", "HEYGEN_API_KEY is not set")
        return {
            "X-Api-Key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def build_payload(self, script: str) -> Dict[str, Any]:
        if not self.avatar_id or not self.voice_id:
            raise NotConfiguredError("heygen", "HEYGEN_AVATAR_ID / HEYGEN_VOICE_ID are not set")
        return {
            "video_inputs": [
                {
                    "character": {
                        "type": "avatar",
                        "avatar_id": self.avatar_id,
                        "scale": 1.0,
                    },
                    "voice": {
                        "type": "text",
                        "voice_id": self.voice_id,
                        "input_text": script,
                    },
                }
            ],
            "test": False,
            "dimension": {
                "width": config.HEYGEN_VIDEO_WIDTH,
                "height": config.HEYGEN_VIDEO_HEIGHT,
            },
        }

    def submit(self, script: str) -> str:
        """
        Start a video render. Not retried.

        Returns:
            HeyGen video_id

        Raises:
            ProviderRejectedError (4xx), ProviderUnavailableError (5xx / transport),
            UnparseableResponseError
        """
        headers = self._headers()
        payload = self.build_payload(script)
        try:
            r = requests.post(
                f"{self.base_url}/v2/video/generate",
                json=payload,
                headers=headers,
                timeout=(CONNECT_TIMEOUT, READ_TIMEOUT),
            )
        except (Timeout, RequestsConnectionError) as e:
            raise ProviderUnavailableError(PROVIDER, f"HeyGen connection error: {e}") from e

        if not r.ok:
            raise _parse_error(r)

        try:
            body = r.json()
        except ValueError as e:
            raise UnparseableResponseError(f"HeyGen generate response is not JSON: {e}") from e

        # HeyGen sometimes reports errors with a 200 and a null data block
        code, msg = _error_fields(body)
        video_id = (body.get("data") or {}).get("video_id") if isinstance(body, dict) else None
        if not video_id:
            if code or msg:
                raise ProviderRejectedError(PROVIDER, str(code) if code else None, f"HeyGen rejected the request: {msg}")
            raise UnparseableResponseError("HeyGen generate response has no data.video_id")

        print(f"[HEYGEN] Submitted video {video_id} ({len(script)} chars)")
        return video_id

    def status(self, video_id: str) -> Dict[str, Any]:
        """Raw video_status body. Transport errors propagate as requests exceptions."""
        headers = self._headers()
        headers.pop("Content-Type", None)
        r = requests.get(
            f"{self.base_url}/v1/video_status.get",
            params={"video_id": video_id},
            headers=headers,
            timeout=(CONNECT_TIMEOUT, READ_TIMEOUT),
        )
        if not r.ok:
            raise _parse_error(r)
        return r.json()
