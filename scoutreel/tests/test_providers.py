"""
Tests for the Apify and HeyGen HTTP clients: request shapes, status parsing
and the mapping of provider errors onto typed exceptions.

HTTP is mocked at the requests level; nothing leaves the process.

Run locally:
    python -m pytest scoutreel/tests/test_providers.py -v
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from scoutreel.exceptions import (
    ArtifactFetchFailedError,
    NotConfiguredError,
    ProviderRejectedError,
    ProviderUnavailableError,
    UnparseableResponseError,
)
from scoutreel.services.apify_service import ApifyClient, parse_apify_status
from scoutreel.services.heygen_service import HeyGenClient, parse_heygen_status
from scoutreel.services.job_poller import PollFailed, PollInProgress, PollSucceeded


def mock_response(status_code=200, body=None, text=""):
    r = MagicMock()
    r.status_code = status_code
    r.ok = 200 <= status_code < 300
    r.text = text
    if isinstance(body, Exception):
        r.json.side_effect = body
    else:
        r.json.return_value = body
    return r


@pytest.fixture
def apify():
    return ApifyClient(token="apify-token", actor_id="dev/linkedin-scraper", base_url="https://api.apify.test")


@pytest.fixture
def heygen():
    return HeyGenClient(
        api_key="hg-key", avatar_id="avatar-1", voice_id="voice-1", base_url="https://api.heygen.test",
    )


# ─────────────────────────────────────────────────────────────
# Apify
# ─────────────────────────────────────────────────────────────
class TestApifyStatus:
    def test_succeeded_yields_dataset(self):
        result = parse_apify_status({"data": {"status": "SUCCEEDED", "defaultDatasetId": "ds-9"}})
        assert result == PollSucceeded(artifact="ds-9")

    @pytest.mark.parametrize("status", ["READY", "RUNNING", "TIMING-OUT", "ABORTING"])
    def test_in_progress(self, status):
        assert isinstance(parse_apify_status({"data": {"status": status}}), PollInProgress)

    @pytest.mark.parametrize("status", ["FAILED", "TIMED-OUT", "ABORTED"])
    def test_failed(self, status):
        result = parse_apify_status({"data": {"status": status, "statusMessage": "boom"}})
        assert result == PollFailed(code=status, detail="boom")

    @pytest.mark.parametrize("body", [{}, {"data": {}}, {"data": {"status": "EXPLODED"}}, None])
    def test_unparseable(self, body):
        with pytest.raises(UnparseableResponseError):
            parse_apify_status(body)


class TestApifyClient:
    def test_submit_starts_run(self, apify):
        body = {"data": {"id": "run-7", "defaultDatasetId": "ds-7"}}
        with patch("scoutreel.services.apify_service.requests.post", return_value=mock_response(201, body)) as post:
            run = apify.submit(["https://linkedin.com/in/a"])

        assert run == {"run_id": "run-7", "dataset_id": "ds-7"}
        url = post.call_args[0][0]
        assert url == "https://api.apify.test/v2/acts/dev~linkedin-scraper/runs"
        assert post.call_args[1]["params"] == {"token": "apify-token"}
        assert post.call_args[1]["json"] == {"profileUrls": ["https://linkedin.com/in/a"]}

    def test_submit_4xx_is_rejected(self, apify):
        body = {"error": {"type": "invalid-input", "message": "profileUrls is required"}}
        with patch("scoutreel.services.apify_service.requests.post", return_value=mock_response(400, body)):
            with pytest.raises(ProviderRejectedError) as exc_info:
                apify.submit(["x"])
        assert exc_info.value.provider_code == "invalid-input"

    def test_submit_5xx_is_unavailable(self, apify):
        response = mock_response(502, ValueError("no json"), text="Bad Gateway")
        with patch("scoutreel.services.apify_service.requests.post", return_value=response):
            with pytest.raises(ProviderUnavailableError):
                apify.submit(["x"])

    def test_submit_transport_error_is_unavailable(self, apify):
        with patch(
            "scoutreel.services.apify_service.requests.post",
            side_effect=requests.ConnectionError("refused"),
        ):
            with pytest.raises(ProviderUnavailableError):
                apify.submit(["x"])

    def test_fetch_results(self, apify):
        items = [{"publicIdentifier": "a"}]
        with patch("scoutreel.services.apify_service.requests.get", return_value=mock_response(200, items)) as get:
            assert apify.fetch_results("ds-1") == items
        assert get.call_args[0][0] == "https://api.apify.test/v2/datasets/ds-1/items"

    def test_fetch_results_http_error(self, apify):
        with patch("scoutreel.services.apify_service.requests.get", return_value=mock_response(404, {})):
            with pytest.raises(ArtifactFetchFailedError):
                apify.fetch_results("ds-1")

    def test_fetch_results_not_a_list(self, apify):
        with patch("scoutreel.services.apify_service.requests.get", return_value=mock_response(200, {"x": 1})):
            with pytest.raises(UnparseableResponseError):
                apify.fetch_results("ds-1")

    def test_not_configured(self):
        with pytest.raises(NotConfiguredError):
            ApifyClient(token="", actor_id="", base_url="https://api.apify.test").submit(["x"])


# ─────────────────────────────────────────────────────────────
# HeyGen
# ─────────────────────────────────────────────────────────────
class TestHeyGenStatus:
    def test_completed_with_duration(self):
        result = parse_heygen_status({"data": {"status": "completed", "video_url": "https://v", "duration": "12.4"}})
        assert result == PollSucceeded(artifact="https://v", duration_seconds=12.4)

    def test_completed_without_url_is_unparseable(self):
        with pytest.raises(UnparseableResponseError):
            parse_heygen_status({"data": {"status": "completed"}})

    @pytest.mark.parametrize("status", ["pending", "waiting", "processing"])
    def test_in_progress(self, status):
        assert isinstance(parse_heygen_status({"data": {"status": status}}), PollInProgress)

    def test_failed_with_error_object(self):
        body = {"data": {"status": "failed", "error": {"code": "AVATAR_NOT_APPROVED", "message": "Avatar pending"}}}
        assert parse_heygen_status(body) == PollFailed(code="AVATAR_NOT_APPROVED", detail="Avatar pending")

    def test_failed_with_error_string(self):
        body = {"data": {"status": "failed", "error": "render crashed"}}
        assert parse_heygen_status(body) == PollFailed(code=None, detail="render crashed")

    def test_unknown_status(self):
        with pytest.raises(UnparseableResponseError):
            parse_heygen_status({"data": {"status": "teleporting"}})


class TestHeyGenClient:
    def test_payload_shape(self, heygen):
        payload = heygen.build_payload("Hello Jane")
        video_input = payload["video_inputs"][0]

        assert video_input["character"]["avatar_id"] == "avatar-1"
        assert video_input["voice"] == {"type": "text", "voice_id": "voice-1", "input_text": "Hello Jane"}
        assert payload["test"] is False
        assert set(payload["dimension"]) == {"width", "height"}

    def test_submit_returns_video_id(self, heygen):
        body = {"error": None, "data": {"video_id": "vid-42"}}
        with patch("scoutreel.services.heygen_service.requests.post", return_value=mock_response(200, body)) as post:
            assert heygen.submit("Hello Jane") == "vid-42"

        assert post.call_args[0][0] == "https://api.heygen.test/v2/video/generate"
        assert post.call_args[1]["headers"]["X-Api-Key"] == "hg-key"

    def test_submit_200_with_error_is_rejected(self, heygen):
        body = {"error": {"code": "avatar_not_found", "message": "Avatar not found"}, "data": None}
        with patch("scoutreel.services.heygen_service.requests.post", return_value=mock_response(200, body)):
            with pytest.raises(ProviderRejectedError) as exc_info:
                heygen.submit("Hello Jane")
        assert exc_info.value.provider_code == "avatar_not_found"

    def test_submit_4xx_is_rejected(self, heygen):
        body = {"error": {"code": "invalid_parameter", "message": "input_text too long"}}
        with patch("scoutreel.services.heygen_service.requests.post", return_value=mock_response(400, body)):
            with pytest.raises(ProviderRejectedError) as exc_info:
                heygen.submit("Hello Jane")
        assert exc_info.value.provider_code == "invalid_parameter"

    def test_submit_5xx_is_unavailable(self, heygen):
        with patch("scoutreel.services.heygen_service.requests.post", return_value=mock_response(503, {})):
            with pytest.raises(ProviderUnavailableError):
                heygen.submit("Hello Jane")

    def test_submit_timeout_is_unavailable(self, heygen):
        with patch("scoutreel.services.heygen_service.requests.post", side_effect=requests.Timeout("slow")):
            with pytest.raises(ProviderUnavailableError):
                heygen.submit("Hello Jane")

    def test_status_request(self, heygen):
        body = {"data": {"status": "processing"}}
        with patch("scoutreel.services.heygen_service.requests.get", return_value=mock_response(200, body)) as get:
            assert heygen.status("vid-42") == body

        assert get.call_args[0][0] == "https://api.heygen.test/v1/video_status.get"
        assert get.call_args[1]["params"] == {"video_id": "vid-42"}
        assert "Content-Type" not in get.call_args[1]["headers"]

    def test_missing_key_is_not_configured(self):
        client = HeyGenClient(api_key="", avatar_id="a", voice_id="v", base_url="https://api.heygen.test")
        with pytest.raises(NotConfiguredError):
            client.submit("Hello Jane")
