"""
Shared fixtures: an in-memory ledger store, scripted provider clients and an
executor that runs background work inline so tests stay deterministic.
"""

from __future__ import annotations

import time
from concurrent.futures import Future
from unittest.mock import MagicMock, patch

import jwt
import pytest

from scoutreel.services.dispatch_service import JobDispatcher
from scoutreel.services.ledger_store import CreditKind, MemoryLedgerStore
from scoutreel.services.storage_service import BlobStoreError


ACCOUNT = "user-1"
PROFILE_ID = "jane-doe-123"
VIDEO_URL = "https://files.heygen.ai/video/abc.mp4"
JWT_SECRET = "test-secret-that-is-at-least-32-bytes-long"


def make_token(claims=None, secret=JWT_SECRET, expires_in=3600):
    """HS256 identity token for user-1; a None claim value drops the claim."""
    payload = {"sub": ACCOUNT, "email": "Jane@Example.com", "exp": int(time.time()) + expires_in}
    payload.update(claims or {})
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, secret, algorithm="HS256")


class InlineExecutor:
    """Runs submitted work immediately; the returned future holds the outcome."""

    def __init__(self):
        self.futures = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        self.futures.append(future)
        return future


class FakeScraper:
    """Apify stand-in; `statuses` are returned one per status() call (last one repeats)."""

    def __init__(self, statuses=None, items=None, submit_error=None):
        self.statuses = list(statuses or [{"data": {"status": "SUCCEEDED", "defaultDatasetId": "ds-1"}}])
        self.items = items if items is not None else []
        self.submit_error = submit_error
        self.submitted = []
        self.status_calls = 0

    def submit(self, urls):
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(list(urls))
        return {"run_id": "run-1", "dataset_id": "ds-1"}

    def status(self, run_id):
        self.status_calls += 1
        index = min(self.status_calls, len(self.statuses)) - 1
        status = self.statuses[index]
        if isinstance(status, Exception):
            raise status
        return status

    def fetch_results(self, dataset_id):
        return self.items


class FakeVideoProvider:
    """HeyGen stand-in with scripted status bodies."""

    def __init__(self, statuses=None, submit_error=None):
        self.statuses = list(statuses or [heygen_completed()])
        self.submit_error = submit_error
        self.submitted = []
        self.status_calls = 0

    def submit(self, script):
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(script)
        return f"vid-{len(self.submitted)}"

    def status(self, video_id):
        self.status_calls += 1
        index = min(self.status_calls, len(self.statuses)) - 1
        status = self.statuses[index]
        if isinstance(status, Exception):
            raise status
        return status


class FakeBlobStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects = {}

    def save(self, key, data, content_type="video/mp4"):
        if self.fail:
            raise BlobStoreError("S3 is down")
        self.objects[key] = data
        return key

    def signed_url(self, key, expires_in=None):
        return f"https://bucket.s3.amazonaws.com/{key}?X-Amz-Signature=sig"


def heygen_processing():
    return {"data": {"status": "processing"}}


def heygen_completed(url: str = VIDEO_URL, duration=None):
    data = {"status": "completed", "video_url": url}
    if duration is not None:
        data["duration"] = duration
    return {"data": data}


def heygen_failed(code: str, detail: str):
    return {"data": {"status": "failed", "error": {"code": code, "detail": detail}}}


def apify_item(public_id: str, **extra):
    item = {
        "publicIdentifier": public_id,
        "url": f"https://www.linkedin.com/in/{public_id}",
        "firstName": "Jane",
        "lastName": "Doe",
        "headline": "Staff Engineer",
        "location": "London",
        "imgUrl": "https://media.licdn.com/jane.jpg",
        "skills": ["Python", {"name": "Postgres"}],
        "experience": [{"company": "Acme", "title": "Engineer"}],
    }
    item.update(extra)
    return item


@pytest.fixture
def store():
    return MemoryLedgerStore()


@pytest.fixture
def funded_store(store):
    store.set_credits(ACCOUNT, {CreditKind.SCRAPING: 10, CreditKind.VIDEO_SECONDS: 600})
    return store


@pytest.fixture
def executor():
    return InlineExecutor()


@pytest.fixture
def scraper():
    return FakeScraper(items=[apify_item(PROFILE_ID)])


@pytest.fixture
def video_provider():
    return FakeVideoProvider()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def dispatcher(funded_store, scraper, video_provider, blob_store, executor):
    return JobDispatcher(
        store=funded_store,
        scraper=scraper,
        video_provider=video_provider,
        blob_store=blob_store,
        executor=executor,
        poll_interval_seconds=0,
        scrape_max_polls=5,
        video_max_polls=5,
        words_per_minute=150,
    )


@pytest.fixture
def with_profile(funded_store):
    funded_store.upsert_profile(ACCOUNT, PROFILE_ID, {"full_name": "Jane Doe"})
    return funded_store


@pytest.fixture
def artifact_download():
    """Patch the materializer's HTTP download to return fake video bytes."""
    response = MagicMock(ok=True, status_code=200, content=b"\x00\x00\x00\x18ftypmp42")
    with patch("scoutreel.services.materializer.requests.get", return_value=response) as mock_get:
        yield mock_get
