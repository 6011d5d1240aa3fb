"""
Job dispatch - the entry points that start, finish and resume billable jobs.

Flow (scraping and video alike):
1. Create the job (pending, first metadata fragment = request)
2. Debit credits (InsufficientCreditsError -> job failed, nothing submitted)
3. Mark running and submit to the provider (not retried; failure -> job failed)
4. Append the provider handle to the job's metadata
5. In the background: poll until terminal, then materialize results

A poll budget running out leaves the job running with its provider handle
recorded, so resume_video_generation() can pick the same render up again
without submitting (or paying for) a new one. Every other failure marks the
job failed before the error propagates. Debits are never refunded.
"""

import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from scoutreel.config import config
from scoutreel.db import DatabaseError
from scoutreel.exceptions import (
    ExternalJobFailedError,
    ExternalJobTimedOutError,
    InsufficientCreditsError,
    LedgerError,
    NoResumableHandleError,
    PollInProgressError,
)
from scoutreel.services.apify_service import ApifyClient, parse_apify_status
from scoutreel.services.credit_service import CreditService
from scoutreel.services.heygen_service import HeyGenClient, parse_heygen_status
from scoutreel.services.job_poller import ExternalJobPoller, PollInProgress, PollSucceeded
from scoutreel.services.job_service import JobService, JobStatus, JobType, latest_value
from scoutreel.services.ledger_store import LedgerStore
from scoutreel.services.materializer import Materializer
from scoutreel.services.pricing_service import PricingService
from scoutreel.services.profile_service import ProfileService


# Shared executor for background poll/materialize work
_background_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    global _background_executor
    with _executor_lock:
        if _background_executor is None:
            _background_executor = ThreadPoolExecutor(
                max_workers=max(1, config.JOB_WORKERS),
                thread_name_prefix="job_worker",
            )
        return _background_executor


def _validate_urls(urls: Any) -> List[str]:
    if not isinstance(urls, (list, tuple)):
        raise ValueError("urls must be a list of profile URLs")
    cleaned = [u.strip() for u in urls if isinstance(u, str) and u.strip()]
    if len(cleaned) != len(urls):
        raise ValueError("every url must be a non-empty string")
    if not 1 <= len(cleaned) <= config.MAX_SCRAPE_URLS:
        raise ValueError(f"between 1 and {config.MAX_SCRAPE_URLS} urls are required, got {len(cleaned)}")
    return cleaned


def _validate_script(script: Any) -> str:
    if not isinstance(script, str):
        raise ValueError("script must be a string")
    script = script.strip()
    if not config.SCRIPT_MIN_CHARS <= len(script) <= config.SCRIPT_MAX_CHARS:
        raise ValueError(
            f"script must be {config.SCRIPT_MIN_CHARS}-{config.SCRIPT_MAX_CHARS} characters, got {len(script)}"
        )
    return script


def _failure_fragment(error: Exception) -> Dict[str, Any]:
    fragment = {"error_code": getattr(error, "code", None) or type(error).__name__}
    if isinstance(error, ExternalJobFailedError):
        fragment["provider_error_code"] = error.provider_error_code
        fragment["provider_error_detail"] = error.provider_error_detail
    return fragment


class JobDispatcher:
    """
    Starts scraping / video jobs and drives them to completion.

    Collaborators default to the configured ones; tests inject a
    MemoryLedgerStore, fake provider clients and an inline executor.
    """

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        scraper: Any = None,
        video_provider: Any = None,
        blob_store: Any = None,
        executor: Any = None,
        poll_interval_seconds: Optional[float] = None,
        scrape_max_polls: Optional[int] = None,
        video_max_polls: Optional[int] = None,
        words_per_minute: Optional[int] = None,
    ):
        self.credits = CreditService(store)
        self.jobs = JobService(store)
        self.profiles = ProfileService(store)
        self.materializer = Materializer(jobs=self.jobs, profiles=self.profiles, blob_store=blob_store)
        self.scraper = scraper or ApifyClient()
        self.video_provider = video_provider or HeyGenClient()
        self._executor = executor
        self.poll_interval_seconds = (
            config.POLL_INTERVAL_SECONDS if poll_interval_seconds is None else poll_interval_seconds
        )
        self.scrape_max_polls = scrape_max_polls or config.SCRAPE_MAX_POLLS
        self.video_max_polls = video_max_polls or config.VIDEO_MAX_POLLS
        self.words_per_minute = words_per_minute or config.VIDEO_WORDS_PER_MINUTE

        self._pollers: Dict[tuple, ExternalJobPoller] = {}
        self._pollers_lock = threading.Lock()

    @property
    def executor(self):
        return self._executor or get_executor()

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    def _fail_job(self, account_id: str, job_id: str, error: Exception) -> None:
        """Record the failure; the caller re-raises the original error."""
        try:
            self.jobs.mark_failed(account_id, job_id, str(error), _failure_fragment(error))
        except LedgerError as e:
            print(f"[DISPATCH] WARNING: could not mark job {job_id} failed: {e}")

    def _debit_or_fail(self, account_id: str, job_id: str, kind: str, amount: int, context: Dict[str, Any]):
        try:
            return self.credits.debit(account_id, kind, amount, context=context, job_id=job_id)
        except InsufficientCreditsError as e:
            self._fail_job(account_id, job_id, e)
            raise

    def _run_in_background(self, fn: Callable, *args, **kwargs) -> Future:
        def _task():
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                print(f"[DISPATCH] Background task {fn.__name__} ended with {type(e).__name__}: {e}")
                raise

        return self.executor.submit(_task)

    def _record_progress(self, account_id: str, job_id: str) -> Callable[[int, PollInProgress], None]:
        """on_progress callback: appends a fragment whenever the provider status changes."""
        last = {"status": None}

        def on_progress(attempt: int, result: PollInProgress) -> None:
            if not result.status or result.status == last["status"]:
                return
            last["status"] = result.status
            try:
                self.jobs.append_metadata(account_id, job_id, {
                    "provider_status": result.status,
                    "poll_attempt": attempt,
                })
            except (LedgerError, DatabaseError) as e:
                print(f"[DISPATCH] WARNING: could not record progress for job {job_id}: {e}")

        return on_progress

    def _new_poller(self, account_id, job_id, check_status, parse_status, max_attempts, label) -> ExternalJobPoller:
        """
        Build and register the poller for a job. Only one poller per job may
        be registered at a time; the slot is held until _forget_poller().

        Raises:
            PollInProgressError: another poller already holds the job
        """
        poller = ExternalJobPoller(
            check_status=check_status,
            parse_status=parse_status,
            interval_seconds=self.poll_interval_seconds,
            max_attempts=max_attempts,
            label=label,
            on_progress=self._record_progress(account_id, job_id),
        )
        with self._pollers_lock:
            if (account_id, job_id) in self._pollers:
                raise PollInProgressError(job_id)
            self._pollers[(account_id, job_id)] = poller
        return poller

    def _new_video_poller(self, account_id, job_id) -> ExternalJobPoller:
        return self._new_poller(
            account_id, job_id, self.video_provider.status, parse_heygen_status, self.video_max_polls, "heygen",
        )

    def _new_scrape_poller(self, account_id, job_id) -> ExternalJobPoller:
        return self._new_poller(
            account_id, job_id, self.scraper.status, parse_apify_status, self.scrape_max_polls, "apify",
        )

    def _forget_poller(self, account_id, job_id, poller: ExternalJobPoller) -> None:
        with self._pollers_lock:
            if self._pollers.get((account_id, job_id)) is poller:
                del self._pollers[(account_id, job_id)]

    def _launch(self, poller: ExternalJobPoller, account_id: str, job_id: str, fn: Callable, *args) -> Future:
        """Run fn in the background; the poller slot is released if the executor refuses the task."""
        try:
            return self._run_in_background(fn, *args)
        except Exception:
            self._forget_poller(account_id, job_id, poller)
            raise

    def _poll(self, account_id, job_id, poller: ExternalJobPoller, handle, poll_immediately=False) -> PollSucceeded:
        """Run the poller; a timeout is recorded but leaves the job running."""
        try:
            return poller.run(handle, poll_immediately=poll_immediately)
        except ExternalJobTimedOutError as e:
            self.jobs.append_metadata(account_id, job_id, {"poll_timed_out": True, "poll_attempts": e.attempts})
            print(f"[DISPATCH] Job {job_id} timed out after {e.attempts} polls; left running for resume")
            raise

    def cancel(self, account_id: str, job_id: str) -> bool:
        """Interrupt an in-process poll loop. Returns False when none is active."""
        with self._pollers_lock:
            poller = self._pollers.get((account_id, job_id))
        if poller is None:
            return False
        poller.cancel()
        print(f"[DISPATCH] Cancel requested for job {job_id}")
        return True

    # ─────────────────────────────────────────────────────────────
    # Profile scraping
    # ─────────────────────────────────────────────────────────────

    def start_scraping(self, account_id: str, urls: List[str]) -> str:
        """
        Debit one scraping credit per URL and start an Apify run.

        Raises:
            ValueError, InsufficientCreditsError, ProviderRejectedError, ProviderUnavailableError
        """
        urls = _validate_urls(urls)
        cost = PricingService.scraping_cost(urls)

        job_id = self.jobs.create(account_id, JobType.PROFILE_SCRAPING, {"urls": urls, "credits": cost["amount"]})
        self._debit_or_fail(account_id, job_id, cost["kind"], cost["amount"], {"urls": len(urls)})
        self.jobs.mark_running(account_id, job_id)

        try:
            run = self.scraper.submit(urls)
        except Exception as e:
            self._fail_job(account_id, job_id, e)
            raise

        self.jobs.append_metadata(account_id, job_id, {"run_id": run["run_id"], "dataset_id": run["dataset_id"]})
        print(f"[DISPATCH] Scraping job {job_id} submitted as Apify run {run['run_id']}")

        poller = self._new_scrape_poller(account_id, job_id)
        self._launch(
            poller, account_id, job_id,
            self.complete_scraping, account_id, job_id, run["run_id"], run["dataset_id"], poller,
        )
        return job_id

    def complete_scraping(
        self,
        account_id: str,
        job_id: str,
        run_id: str,
        dataset_id: Optional[str] = None,
        poller: Optional[ExternalJobPoller] = None,
    ) -> List[str]:
        poller = poller or self._new_scrape_poller(account_id, job_id)
        try:
            result = self._poll(account_id, job_id, poller, run_id)
            records = self.scraper.fetch_results(result.artifact or dataset_id)
            return self.materializer.materialize_profiles(account_id, job_id, records)
        except ExternalJobTimedOutError:
            raise
        except Exception as e:
            self._fail_job(account_id, job_id, e)
            raise
        finally:
            self._forget_poller(account_id, job_id, poller)

    # ─────────────────────────────────────────────────────────────
    # Video generation
    # ─────────────────────────────────────────────────────────────

    def start_video_generation(self, account_id: str, profile_id: str, script: str) -> str:
        """
        Debit the estimated video-seconds and submit the script to HeyGen.

        Raises:
            ValueError, ProfileNotFoundError, InsufficientCreditsError,
            ProviderRejectedError, ProviderUnavailableError
        """
        script = _validate_script(script)
        if not profile_id:
            raise ValueError("profile_id is required")
        self.profiles.get_profile(account_id, profile_id)

        cost = PricingService.video_cost(script, self.words_per_minute)
        job_id = self.jobs.create(account_id, JobType.VIDEO_GENERATION, {
            "profile_id": profile_id,
            "script": script,
            "estimated_seconds": cost["amount"],
        })
        self._debit_or_fail(account_id, job_id, cost["kind"], cost["amount"], {"profile_id": profile_id})
        self.jobs.mark_running(account_id, job_id)

        try:
            video_id = self.video_provider.submit(script)
        except Exception as e:
            self._fail_job(account_id, job_id, e)
            raise

        self.jobs.append_metadata(account_id, job_id, {"video_id": video_id})
        print(f"[DISPATCH] Video job {job_id} submitted as HeyGen video {video_id}")

        poller = self._new_video_poller(account_id, job_id)
        self._launch(
            poller, account_id, job_id,
            self.complete_video_generation, account_id, job_id, profile_id, video_id, cost["amount"], False, poller,
        )
        return job_id

    def complete_video_generation(
        self,
        account_id: str,
        job_id: str,
        profile_id: str,
        video_id: str,
        estimated_seconds: int,
        poll_immediately: bool = False,
        poller: Optional[ExternalJobPoller] = None,
    ) -> Dict[str, Any]:
        poller = poller or self._new_video_poller(account_id, job_id)
        try:
            result = self._poll(account_id, job_id, poller, video_id, poll_immediately=poll_immediately)
            seconds_used = estimated_seconds
            if result.duration_seconds:
                seconds_used = max(1, math.ceil(result.duration_seconds))
            return self.materializer.materialize_video(account_id, profile_id, job_id, result.artifact, seconds_used)
        except ExternalJobTimedOutError:
            raise
        except Exception as e:
            self._fail_job(account_id, job_id, e)
            raise
        finally:
            self._forget_poller(account_id, job_id, poller)

    def _finish_from_url(self, account_id, job_id, profile_id, video_url, estimated_seconds, poller) -> Dict[str, Any]:
        try:
            return self.materializer.materialize_video(account_id, profile_id, job_id, video_url, estimated_seconds)
        except Exception as e:
            self._fail_job(account_id, job_id, e)
            raise
        finally:
            self._forget_poller(account_id, job_id, poller)

    def resume_video_generation(
        self,
        account_id: str,
        job_id: str,
        profile_id: Optional[str] = None,
        video_url: Optional[str] = None,
        background: bool = False,
    ) -> Dict[str, Any]:
        """
        Finish a video job whose render is still held by HeyGen, without resubmitting.

        Only jobs that recorded a HeyGen video_id can be resumed. With
        `video_url` (operator tooling only) the render's URL is taken as-is
        and polling is skipped.

        Returns:
            {"job_id", "status", "video"?}; "video" is present when run in the foreground

        Raises:
            JobNotFoundError, NoResumableHandleError, PollInProgressError, ProfileNotFoundError,
            ExternalJobTimedOutError, ExternalJobFailedError, ArtifactFetchFailedError
        """
        job = self.jobs.get_job(account_id, job_id)
        if job["type"] != JobType.VIDEO_GENERATION:
            raise NoResumableHandleError(job_id)
        if job["status"] == JobStatus.SUCCEEDED:
            return {"job_id": job_id, "status": JobStatus.SUCCEEDED}

        fragments = job.get("metadata") or []
        video_id = latest_value(fragments, "video_id")
        if not video_id:
            raise NoResumableHandleError(job_id)

        profile_id = profile_id or latest_value(fragments, "profile_id")
        if not profile_id:
            raise ValueError("profile_id is required")
        self.profiles.get_profile(account_id, profile_id)

        estimated_seconds = int(latest_value(fragments, "estimated_seconds", 0) or 0)
        poller = self._new_video_poller(account_id, job_id)
        try:
            self.jobs.mark_resumed(account_id, job_id)
        except Exception:
            self._forget_poller(account_id, job_id, poller)
            raise
        print(f"[DISPATCH] Resuming video job {job_id} (video_id={video_id}, direct_url={bool(video_url)})")

        if video_url:
            fn = self._finish_from_url
            args = (account_id, job_id, profile_id, video_url, estimated_seconds, poller)
        else:
            fn = self.complete_video_generation
            args = (account_id, job_id, profile_id, video_id, estimated_seconds, True, poller)

        if background:
            self._launch(poller, account_id, job_id, fn, *args)
            return {"job_id": job_id, "status": JobStatus.RUNNING}

        video = fn(*args)
        return {"job_id": job_id, "status": JobStatus.SUCCEEDED, "video": video}


    # ─────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────

    def get_job(self, account_id: str, job_id: str) -> Dict[str, Any]:
        return self.jobs.get_job(account_id, job_id)

    def list_jobs(self, account_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.jobs.list_jobs(account_id, limit=limit)


# ─────────────────────────────────────────────────────────────
# Process-wide dispatcher
# ─────────────────────────────────────────────────────────────
_dispatcher: Optional[JobDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> JobDispatcher:
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = JobDispatcher()
        return _dispatcher


def set_dispatcher(dispatcher: Optional[JobDispatcher]) -> None:
    """Install a specific dispatcher (tests), or None to rebuild from config."""
    global _dispatcher
    with _dispatcher_lock:
        _dispatcher = dispatcher
