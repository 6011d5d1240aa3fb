"""
Tests for ExternalJobPoller: interval/budget handling, transient errors,
provider failure and cancellation.

Run locally:
    python -m pytest scoutreel/tests/test_job_poller.py -v
"""

from __future__ import annotations

import threading
import time

import pytest
import requests

from scoutreel.exceptions import (
    ExternalJobFailedError,
    ExternalJobTimedOutError,
    PollCancelledError,
    UnparseableResponseError,
)
from scoutreel.services.job_poller import ExternalJobPoller, PollFailed, PollInProgress, PollSucceeded


def scripted(*outcomes):
    """check_status that returns (or raises) the given outcomes in order."""
    calls = []

    def check_status(handle):
        calls.append(handle)
        outcome = outcomes[min(len(calls), len(outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    check_status.calls = calls
    return check_status


def passthrough(result):
    return result


class TestPollLoop:
    def test_returns_success_after_in_progress(self):
        check = scripted(PollInProgress("processing"), PollInProgress("processing"), PollSucceeded("url", 12.5))
        poller = ExternalJobPoller(check, passthrough, interval_seconds=0, max_attempts=5)

        result = poller.run("vid-1")

        assert result.artifact == "url"
        assert result.duration_seconds == 12.5
        assert poller.attempts == 3
        assert check.calls == ["vid-1"] * 3

    def test_transient_errors_use_up_attempts_but_do_not_stop(self, caplog):
        check = scripted(
            requests.ConnectionError("reset"),
            UnparseableResponseError("garbage"),
            PollSucceeded("url"),
        )
        poller = ExternalJobPoller(check, passthrough, interval_seconds=0, max_attempts=5, label="heygen")

        with caplog.at_level("WARNING", logger="scoutreel.poller"):
            result = poller.run("vid-1")

        assert result.artifact == "url"
        assert poller.attempts == 3
        assert len([r for r in caplog.records if r.name == "scoutreel.poller"]) == 2

    def test_provider_failure_raises_with_code(self):
        check = scripted(
            PollInProgress(),
            PollInProgress(),
            PollFailed("AVATAR_NOT_APPROVED", "Avatar is pending review"),
        )
        poller = ExternalJobPoller(check, passthrough, interval_seconds=0, max_attempts=10)

        with pytest.raises(ExternalJobFailedError) as exc_info:
            poller.run("vid-1")

        assert exc_info.value.provider_error_code == "AVATAR_NOT_APPROVED"
        assert exc_info.value.provider_error_detail == "Avatar is pending review"
        assert len(check.calls) == 3

    def test_budget_exhaustion_times_out(self):
        check = scripted(PollInProgress())
        poller = ExternalJobPoller(check, passthrough, interval_seconds=0, max_attempts=4)

        with pytest.raises(ExternalJobTimedOutError) as exc_info:
            poller.run("vid-1")

        assert exc_info.value.attempts == 4
        assert len(check.calls) == 4

    def test_all_transient_errors_still_time_out(self):
        check = scripted(requests.Timeout("slow"))
        poller = ExternalJobPoller(check, passthrough, interval_seconds=0, max_attempts=3)

        with pytest.raises(ExternalJobTimedOutError):
            poller.run("vid-1")
        assert len(check.calls) == 3

    def test_parser_bug_is_not_retried(self):
        def broken_parse(body):
            raise ValueError("unexpected shape")

        check = scripted({"data": {"status": "processing"}})
        poller = ExternalJobPoller(check, broken_parse, interval_seconds=0, max_attempts=5)

        with pytest.raises(ValueError):
            poller.run("vid-1")
        assert len(check.calls) == 1

    def test_invalid_json_body_is_transient(self):
        check = scripted(requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0), PollSucceeded("url"))
        poller = ExternalJobPoller(check, passthrough, interval_seconds=0, max_attempts=3)

        assert poller.run("vid-1").artifact == "url"
        assert poller.attempts == 2

    def test_progress_callback(self):
        seen = []
        check = scripted(PollInProgress("waiting"), PollSucceeded("url"))
        poller = ExternalJobPoller(
            check, passthrough, interval_seconds=0, max_attempts=3,
            on_progress=lambda attempt, result: seen.append((attempt, result.status)),
        )
        poller.run("vid-1")
        assert seen == [(1, "waiting")]


class TestWaitAndCancel:
    def test_poll_immediately_skips_first_wait(self):
        check = scripted(PollSucceeded("url"))
        poller = ExternalJobPoller(check, passthrough, interval_seconds=60, max_attempts=3)

        started = time.monotonic()
        poller.run("vid-1", poll_immediately=True)

        assert time.monotonic() - started < 5

    def test_cancel_before_run(self):
        check = scripted(PollSucceeded("url"))
        poller = ExternalJobPoller(check, passthrough, interval_seconds=0, max_attempts=3)
        poller.cancel()

        with pytest.raises(PollCancelledError):
            poller.run("vid-1")
        assert check.calls == []

    def test_cancel_interrupts_wait(self):
        check = scripted(PollInProgress())
        poller = ExternalJobPoller(check, passthrough, interval_seconds=60, max_attempts=3)
        outcome = {}

        def run():
            try:
                poller.run("vid-1")
            except PollCancelledError as e:
                outcome["error"] = e

        thread = threading.Thread(target=run)
        thread.start()
        time.sleep(0.1)
        poller.cancel()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert isinstance(outcome.get("error"), PollCancelledError)
        assert poller.cancelled is True
        assert check.calls == []
