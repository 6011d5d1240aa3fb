"""
External Job Poller - drives a provider-side job to a terminal state.

    poller = ExternalJobPoller(
        check_status=heygen.status,           # handle -> raw provider body
        parse_status=parse_heygen_status,     # raw body -> PollInProgress | PollSucceeded | PollFailed
        interval_seconds=10,
        max_attempts=60,
        label="heygen",
    )
    result = poller.run(video_id)             # PollSucceeded

Each attempt waits `interval_seconds` first (skipped for the first attempt
when poll_immediately=True). A transport error, a non-2xx status or a body
that cannot be parsed uses up the attempt and the loop carries on. Any other
error from check_status or parse_status propagates. on_progress(attempt,
result) is called after every in-progress poll.
PollFailed ends the loop with ExternalJobFailedError; running out of
attempts ends it with ExternalJobTimedOutError. cancel() interrupts the
wait and ends the loop with PollCancelledError.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

import requests

from scoutreel.config import config
from scoutreel.exceptions import (
    ExternalJobFailedError,
    ExternalJobTimedOutError,
    PollCancelledError,
    ProviderRejectedError,
    ProviderUnavailableError,
    UnparseableResponseError,
)

_logger = logging.getLogger("scoutreel.poller")


# ─────────────────────────────────────────────────────────────
# Parsed status variants
# ─────────────────────────────────────────────────────────────
@dataclass
class PollInProgress:
    status: Optional[str] = None


@dataclass
class PollSucceeded:
    artifact: Any
    duration_seconds: Optional[float] = None


@dataclass
class PollFailed:
    code: Optional[str] = None
    detail: Optional[str] = None


PollResult = Union[PollInProgress, PollSucceeded, PollFailed]

# Errors that only cost one attempt
TRANSIENT_ERRORS = (
    requests.RequestException,
    ProviderUnavailableError,
    ProviderRejectedError,
    UnparseableResponseError,
)


class ExternalJobPoller:
    """Fixed-interval, fixed-budget, cancellable poll loop."""

    def __init__(
        self,
        check_status: Callable[[Any], Any],
        parse_status: Callable[[Any], PollResult],
        interval_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        label: str = "job",
        on_progress: Optional[Callable[[int, PollInProgress], None]] = None,
    ):
        self.check_status = check_status
        self.parse_status = parse_status
        self.interval_seconds = config.POLL_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        self.max_attempts = max_attempts or config.VIDEO_MAX_POLLS
        self.label = label
        self.on_progress = on_progress
        self._cancel_event = threading.Event()
        self.attempts = 0

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(self, handle: Any, poll_immediately: bool = False) -> PollSucceeded:
        """
        Poll `handle` until it succeeds, fails, the budget runs out or the loop is cancelled.

        Raises:
            ExternalJobFailedError: provider reported failure
            ExternalJobTimedOutError: max_attempts polls without a terminal state
            PollCancelledError: cancel() was called
        """
        for attempt in range(1, self.max_attempts + 1):
            self.attempts = attempt

            if attempt > 1 or not poll_immediately:
                # Event.wait returns True as soon as cancel() is called
                if self._cancel_event.wait(self.interval_seconds):
                    raise PollCancelledError(attempt - 1)
            elif self.cancelled:
                raise PollCancelledError(0)

            try:
                result = self.parse_status(self.check_status(handle))
            except TRANSIENT_ERRORS as e:
                _logger.warning(
                    "%s poll %d/%d for %s failed transiently: %s",
                    self.label, attempt, self.max_attempts, handle, e,
                )
                continue

            if isinstance(result, PollSucceeded):
                print(f"[POLL] {self.label} {handle} succeeded after {attempt} polls")
                return result

            if isinstance(result, PollFailed):
                print(f"[POLL] {self.label} {handle} failed after {attempt} polls: {result.code} {result.detail}")
                raise ExternalJobFailedError(result.code, result.detail)

            if self.on_progress:
                self.on_progress(attempt, result)

        print(f"[POLL] {self.label} {handle} still not finished after {self.max_attempts} polls")
        raise ExternalJobTimedOutError(self.max_attempts)
