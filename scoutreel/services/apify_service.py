"""
Apify HTTP Client - LinkedIn profile scraping actor.

Base URL: https://api.apify.com
Auth:     ?token=<APIFY_TOKEN> query parameter

Endpoints used:
  POST /v2/acts/{actor}/runs                 → start a run  {profileUrls: [...]}
  GET  /v2/acts/{actor}/runs/{run_id}        → run status
  GET  /v2/datasets/{dataset_id}/items       → scraped records (format=json)

Run statuses:
  READY, RUNNING, TIMING-OUT, ABORTING       → still going
  SUCCEEDED                                  → dataset is ready
  FAILED, TIMED-OUT, ABORTED                 → terminal failure
"""

from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError, Timeout

from scoutreel.config import config
from scoutreel.exceptions import (
    ArtifactFetchFailedError,
    NotConfiguredError,
    ProviderRejectedError,
    ProviderUnavailableError,
    UnparseableResponseError,
)
from scoutreel.services.job_poller import PollFailed, PollInProgress, PollSucceeded

PROVIDER = "apify"

# ── Timeouts ─────────────────────────────────────────────────
CONNECT_TIMEOUT = 10        # seconds
READ_TIMEOUT = 30           # seconds for run start / status
DATASET_TIMEOUT = 120       # seconds for dataset download

IN_PROGRESS_STATUSES = {"READY", "RUNNING", "TIMING-OUT", "ABORTING"}
FAILED_STATUSES = {"FAILED", "TIMED-OUT", "ABORTED"}


def _parse_error(r: requests.Response) -> Exception:
    """Convert a non-2xx response into a typed provider error."""
    code = str(r.status_code)
    msg = r.text[:500] if r.text else ""
    try:
        body = r.json()
        err = body.get("error") or {}
        if isinstance(err, dict):
            code = err.get("type") or code
            msg = err.get("message") or msg
    except ValueError:
        pass

    if 400 <= r.status_code < 500:
        return ProviderRejectedError(PROVIDER, code, f"Apify rejected the request ({r.status_code}): {msg}")
    return ProviderUnavailableError(PROVIDER, f"Apify error {r.status_code}: {msg}")


def parse_apify_status(body: Dict[str, Any]):
    """Map a run-status body onto a poll variant; the success artifact is the dataset id."""
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict) or not data.get("status"):
        raise UnparseableResponseError("Apify run status body has no data.status")

    status = str(data["status"]).upper()
    if status == "SUCCEEDED":
        dataset_id = data.get("defaultDatasetId")
        if not dataset_id:
            raise UnparseableResponseError("Apify run SUCCEEDED without defaultDatasetId")
        return PollSucceeded(artifact=dataset_id)
    if status in FAILED_STATUSES:
        return PollFailed(code=status, detail=data.get("statusMessage"))
    if status in IN_PROGRESS_STATUSES:
        return PollInProgress(status=status)
    raise UnparseableResponseError(f"Unknown Apify run status: {status}")


class ApifyClient:
    """Thin client around the three Apify endpoints the scraper needs."""

    def __init__(
        self,
        token: Optional[str] = None,
        actor_id: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.token = token if token is not None else config.APIFY_TOKEN
        self.actor_id = actor_id if actor_id is not None else config.APIFY_ACTOR_ID
        self.base_url = (base_url or config.APIFY_BASE_URL).rstrip("/")

    def _require_configured(self) -> None:
        if not self.token or not self.actor_id:
            raise NotConfiguredError("apify", "APIFY_TOKEN / APIFY_ACTOR_ID are not set")

    @property
    def _actor_path(self) -> str:
        # "username/actor-name" is addressed as "username~actor-name"
        return f"/v2/acts/{self.actor_id.replace('/', '~')}"

    def submit(self, urls: List[str]) -> Dict[str, str]:
        """
        Start an actor run for the given profile URLs. Not retried.

        Returns:
            {"run_id": str, "dataset_id": str}

        Raises:
            ProviderRejectedError (4xx), ProviderUnavailableError (5xx / transport),
            UnparseableResponseError
        """
        self._require_configured()
        url = f"{self.base_url}{self._actor_path}/runs"
        try:
            r = requests.post(
                url,
                params={"token": self.token},
                json={"profileUrls": list(urls)},
                timeout=(CONNECT_TIMEOUT, READ_TIMEOUT),
            )
        except (Timeout, RequestsConnectionError) as e:
            raise ProviderUnavailableError(PROVIDER, f"Apify connection error: {e}") from e

        if not r.ok:
            raise _parse_error(r)

        try:
            data = r.json()["data"]
            run_id, dataset_id = data["id"], data["defaultDatasetId"]
        except (ValueError, KeyError, TypeError) as e:
            raise UnparseableResponseError(f"Unexpected Apify run response: {e}") from e

        print(f"[APIFY] Started run {run_id} for {len(urls)} URLs (dataset {dataset_id})")
        return {"run_id": run_id, "dataset_id": dataset_id}

    def status(self, run_id: str) -> Dict[str, Any]:
        """Raw run-status body. Transport errors propagate as requests exceptions."""
        self._require_configured()
        r = requests.get(
            f"{self.base_url}{self._actor_path}/runs/{run_id}",
            params={"token": self.token},
            timeout=(CONNECT_TIMEOUT, READ_TIMEOUT),
        )
        if not r.ok:
            raise _parse_error(r)
        return r.json()

    def fetch_results(self, dataset_id: str) -> List[Dict[str, Any]]:
        """Download the run's dataset items."""
        self._require_configured()
        url = f"{self.base_url}/v2/datasets/{dataset_id}/items"
        try:
            r = requests.get(
                url,
                params={"token": self.token, "format": "json"},
                timeout=(CONNECT_TIMEOUT, DATASET_TIMEOUT),
            )
        except (Timeout, RequestsConnectionError) as e:
            raise ArtifactFetchFailedError(url, f"Apify dataset download failed: {e}") from e

        if not r.ok:
            raise ArtifactFetchFailedError(url, f"Failed to fetch results from Apify dataset: HTTP {r.status_code}")

        try:
            items = r.json()
        except ValueError as e:
            raise UnparseableResponseError(f"Apify dataset is not JSON: {e}") from e
        if not isinstance(items, list):
            raise UnparseableResponseError("Apify dataset items is not a list")

        print(f"[APIFY] Fetched {len(items)} items from dataset {dataset_id}")
        return items
