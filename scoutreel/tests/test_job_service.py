"""
Tests for the job ledger: forward-only status transitions, append-only
metadata and resume semantics.

Run locally:
    python -m pytest scoutreel/tests/test_job_service.py -v
"""

from __future__ import annotations

import pytest

from scoutreel.exceptions import InvalidJobTransitionError, JobNotFoundError
from scoutreel.services.job_service import JobService, JobStatus, JobType, fold_metadata, latest_value

from conftest import ACCOUNT


@pytest.fixture
def jobs(store):
    return JobService(store)


@pytest.fixture
def job_id(jobs):
    return jobs.create(ACCOUNT, JobType.VIDEO_GENERATION, {"profile_id": "p-1", "script": "hello there"})


class TestFoldMetadata:
    def test_latest_non_null_value_wins(self):
        folded = fold_metadata([{"a": 1, "b": 2}, {"b": None, "c": 3}, {"a": 4}])
        assert folded == {"a": 4, "b": 2, "c": 3}

    def test_empty_and_missing_fragments(self):
        assert fold_metadata([]) == {}
        assert fold_metadata([None, {}]) == {}

    def test_latest_value(self):
        fragments = [{"video_id": "v1"}, {"video_id": None}, {"other": 1}]
        assert latest_value(fragments, "video_id") == "v1"
        assert latest_value(fragments, "missing", default="x") == "x"


class TestCreate:
    def test_new_job_is_pending_with_request_fragment(self, jobs, job_id):
        job = jobs.get_job(ACCOUNT, job_id)
        assert job["status"] == JobStatus.PENDING
        assert job["type"] == JobType.VIDEO_GENERATION
        assert job["metadata"] == [{"profile_id": "p-1", "script": "hello there"}]

    def test_unknown_type_rejected(self, jobs):
        with pytest.raises(ValueError):
            jobs.create(ACCOUNT, "transcode", {})

    def test_jobs_are_account_scoped(self, jobs, job_id):
        with pytest.raises(JobNotFoundError):
            jobs.get_job("someone-else", job_id)

    def test_list_is_newest_first(self, jobs, job_id):
        second = jobs.create(ACCOUNT, JobType.PROFILE_SCRAPING, {"urls": ["u"]})
        listed = [j["id"] for j in jobs.list_jobs(ACCOUNT)]
        assert listed == [second, job_id]
        assert len(jobs.list_jobs(ACCOUNT, limit=1)) == 1


class TestTransitions:
    def test_happy_path(self, jobs, job_id):
        jobs.mark_running(ACCOUNT, job_id)
        jobs.mark_running(ACCOUNT, job_id, {"progress": 50})
        job = jobs.mark_succeeded(ACCOUNT, job_id, {"download_url": "https://x"})

        assert job["status"] == JobStatus.SUCCEEDED
        assert fold_metadata(job["metadata"])["download_url"] == "https://x"

    def test_pending_can_fail(self, jobs, job_id):
        job = jobs.mark_failed(ACCOUNT, job_id, "no credits", {"error_code": "INSUFFICIENT_CREDITS"})
        assert job["status"] == JobStatus.FAILED
        assert job["metadata"][-1] == {"error_code": "INSUFFICIENT_CREDITS", "error": "no credits"}

    def test_pending_cannot_succeed(self, jobs, job_id):
        with pytest.raises(InvalidJobTransitionError) as exc_info:
            jobs.mark_succeeded(ACCOUNT, job_id)
        assert exc_info.value.current == JobStatus.PENDING
        assert jobs.get_job(ACCOUNT, job_id)["status"] == JobStatus.PENDING

    @pytest.mark.parametrize("terminal", [JobStatus.SUCCEEDED, JobStatus.FAILED])
    def test_terminal_status_is_final(self, jobs, job_id, terminal):
        jobs.mark_running(ACCOUNT, job_id)
        if terminal == JobStatus.SUCCEEDED:
            jobs.mark_succeeded(ACCOUNT, job_id)
        else:
            jobs.mark_failed(ACCOUNT, job_id, "boom")

        with pytest.raises(InvalidJobTransitionError):
            jobs.mark_running(ACCOUNT, job_id)
        with pytest.raises(InvalidJobTransitionError):
            jobs.mark_failed(ACCOUNT, job_id, "again")
        assert jobs.get_job(ACCOUNT, job_id)["status"] == terminal

    def test_unknown_job(self, jobs):
        with pytest.raises(JobNotFoundError):
            jobs.mark_running(ACCOUNT, "missing")

    def test_metadata_is_append_only(self, jobs, job_id):
        jobs.append_metadata(ACCOUNT, job_id, {"video_id": "v1"})
        jobs.append_metadata(ACCOUNT, job_id, {"video_id": "v2"})
        metadata = jobs.get_job(ACCOUNT, job_id)["metadata"]

        assert metadata[0] == {"profile_id": "p-1", "script": "hello there"}
        assert [f.get("video_id") for f in metadata[1:]] == ["v1", "v2"]

    def test_returned_job_is_a_copy(self, jobs, job_id):
        job = jobs.get_job(ACCOUNT, job_id)
        job["metadata"].append({"tampered": True})
        assert len(jobs.get_job(ACCOUNT, job_id)["metadata"]) == 1


class TestResume:
    def test_failed_job_resumes_to_running(self, jobs, job_id):
        jobs.mark_running(ACCOUNT, job_id)
        jobs.mark_failed(ACCOUNT, job_id, "worker died")

        job = jobs.mark_resumed(ACCOUNT, job_id)

        assert job["status"] == JobStatus.RUNNING
        assert job["metadata"][-1]["resume"] is True

    def test_succeeded_job_is_left_alone(self, jobs, job_id):
        jobs.mark_running(ACCOUNT, job_id)
        jobs.mark_succeeded(ACCOUNT, job_id)
        before = jobs.get_job(ACCOUNT, job_id)

        job = jobs.mark_resumed(ACCOUNT, job_id)

        assert job["status"] == JobStatus.SUCCEEDED
        assert job["metadata"] == before["metadata"]

    def test_pending_job_cannot_resume(self, jobs, job_id):
        with pytest.raises(InvalidJobTransitionError):
            jobs.mark_resumed(ACCOUNT, job_id)


class TestFormatJob:
    def test_format_folds_metadata_and_keeps_log(self, jobs, job_id):
        jobs.append_metadata(ACCOUNT, job_id, {"video_id": "v1"})
        formatted = JobService.format_job(jobs.get_job(ACCOUNT, job_id))

        assert formatted["metadata"]["video_id"] == "v1"
        assert formatted["metadata"]["profile_id"] == "p-1"
        assert len(formatted["metadata_log"]) == 2
        assert isinstance(formatted["created_at"], str)
