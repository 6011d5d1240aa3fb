"""
Tests for result materialization: S3 persistence of rendered videos, the
provider-URL fallback and scraped profile upserts.

Run locally:
    python -m pytest scoutreel/tests/test_materializer.py -v
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests
from botocore.exceptions import ClientError

from scoutreel.exceptions import ArtifactFetchFailedError
from scoutreel.services.job_service import JobService, JobStatus, JobType, fold_metadata
from scoutreel.services.materializer import Materializer, download_artifact
from scoutreel.services.profile_service import ProfileService, normalize_profile
from scoutreel.services.storage_service import BlobStoreError, S3BlobStore, build_video_key, safe_path_segment

from conftest import ACCOUNT, PROFILE_ID, VIDEO_URL, FakeBlobStore, apify_item


@pytest.fixture
def running_video_job(with_profile):
    jobs = JobService(with_profile)
    job_id = jobs.create(ACCOUNT, JobType.VIDEO_GENERATION, {"profile_id": PROFILE_ID})
    jobs.mark_running(ACCOUNT, job_id)
    return job_id


def make_materializer(store, blob_store):
    return Materializer(jobs=JobService(store), profiles=ProfileService(store), blob_store=blob_store)


class TestStoragePaths:
    def test_unsafe_characters_replaced(self):
        assert safe_path_segment("jane.doe/x 1") == "jane_doe_x_1"
        assert safe_path_segment("ok_id-2") == "ok_id-2"

    def test_video_key_layout(self):
        assert build_video_key("user-1", "jane.doe", "job1") == "videos/user-1/jane_doe/job1.mp4"


class TestMaterializeVideo:
    def test_video_stored_in_blob_store(self, with_profile, running_video_job, artifact_download):
        blob_store = FakeBlobStore()
        video = make_materializer(with_profile, blob_store).materialize_video(
            ACCOUNT, PROFILE_ID, running_video_job, VIDEO_URL, 42,
        )

        key = f"videos/{ACCOUNT}/{PROFILE_ID}/{running_video_job}.mp4"
        assert key in blob_store.objects
        assert video["storage_path"] == key
        assert video["download_url"].startswith("https://bucket.s3.amazonaws.com/")
        assert video["seconds_used"] == 42

        profile = with_profile.get_profile(ACCOUNT, PROFILE_ID)
        assert profile["video"]["storage_path"] == key
        assert profile["full_name"] == "Jane Doe"

        job = with_profile.get_job(ACCOUNT, running_video_job)
        assert job["status"] == JobStatus.SUCCEEDED
        assert fold_metadata(job["metadata"])["stored"] is True

    def test_blob_failure_falls_back_to_provider_url(
        self, with_profile, running_video_job, artifact_download, caplog,
    ):
        with caplog.at_level("WARNING", logger="scoutreel.materializer"):
            video = make_materializer(with_profile, FakeBlobStore(fail=True)).materialize_video(
                ACCOUNT, PROFILE_ID, running_video_job, VIDEO_URL, 30,
            )

        assert video["download_url"] == VIDEO_URL
        assert video["storage_path"] is None
        assert any(r.name == "scoutreel.materializer" and r.levelname == "WARNING" for r in caplog.records)

        job = with_profile.get_job(ACCOUNT, running_video_job)
        assert job["status"] == JobStatus.SUCCEEDED
        assert job["metadata"][-1]["stored"] is False
        assert with_profile.get_profile(ACCOUNT, PROFILE_ID)["video"]["download_url"] == VIDEO_URL

    def test_download_failure_leaves_job_untouched(self, with_profile, running_video_job):
        response = MagicMock(ok=False, status_code=403)
        with patch("scoutreel.services.materializer.requests.get", return_value=response):
            with pytest.raises(ArtifactFetchFailedError):
                make_materializer(with_profile, FakeBlobStore()).materialize_video(
                    ACCOUNT, PROFILE_ID, running_video_job, VIDEO_URL, 30,
                )

        assert with_profile.get_job(ACCOUNT, running_video_job)["status"] == JobStatus.RUNNING
        assert with_profile.get_profile(ACCOUNT, PROFILE_ID)["video"] is None


class TestDownloadArtifact:
    def test_transport_error_is_typed(self):
        with patch(
            "scoutreel.services.materializer.requests.get",
            side_effect=requests.ConnectionError("refused"),
        ):
            with pytest.raises(ArtifactFetchFailedError) as exc_info:
                download_artifact(VIDEO_URL)
        assert exc_info.value.url == VIDEO_URL

    def test_returns_bytes(self, artifact_download):
        assert download_artifact(VIDEO_URL).startswith(b"\x00\x00\x00\x18ftyp")


class TestMaterializeProfiles:
    def test_profiles_saved_and_job_succeeds(self, store):
        jobs = JobService(store)
        job_id = jobs.create(ACCOUNT, JobType.PROFILE_SCRAPING, {"urls": ["u1", "u2"]})
        jobs.mark_running(ACCOUNT, job_id)

        ids = make_materializer(store, FakeBlobStore()).materialize_profiles(
            ACCOUNT, job_id, [apify_item("jane-doe"), {"no": "identifier"}, apify_item("john-roe")],
        )

        assert ids == ["jane-doe", "john-roe"]
        job = store.get_job(ACCOUNT, job_id)
        assert job["status"] == JobStatus.SUCCEEDED
        assert fold_metadata(job["metadata"])["profiles_saved"] == 2

    def test_rescrape_keeps_video(self, with_profile):
        with_profile.set_profile_video(ACCOUNT, PROFILE_ID, {"download_url": "https://v"})
        ProfileService(with_profile).save_scraped(ACCOUNT, [apify_item(PROFILE_ID, headline="CTO")])

        profile = with_profile.get_profile(ACCOUNT, PROFILE_ID)
        assert profile["headline"] == "CTO"
        assert profile["video"] == {"download_url": "https://v"}


class TestNormalizeProfile:
    def test_fields_mapped(self):
        normalized = normalize_profile(apify_item("jane-doe"))
        fields = normalized["fields"]

        assert normalized["id"] == "jane-doe"
        assert fields["full_name"] == "Jane Doe"
        assert fields["linkedin_url"] == "https://www.linkedin.com/in/jane-doe"
        assert fields["skills"] == ["Python", "Postgres"]
        assert fields["current_company"] == "Acme"
        assert "about" not in fields

    def test_record_without_identifier_is_skipped(self):
        assert normalize_profile({"firstName": "Anon"}) is None


class TestS3BlobStore:
    def test_save_and_sign(self):
        client = MagicMock()
        client.generate_presigned_url.return_value = "https://signed"
        blob_store = S3BlobStore("videos-bucket", client=client)

        assert blob_store.save("videos/a/b/c.mp4", b"data") == "videos/a/b/c.mp4"
        assert blob_store.signed_url("videos/a/b/c.mp4") == "https://signed"

        client.put_object.assert_called_once_with(
            Bucket="videos-bucket", Key="videos/a/b/c.mp4", Body=b"data", ContentType="video/mp4",
        )
        assert client.generate_presigned_url.call_args[1]["ExpiresIn"] == 604800

    def test_client_error_is_wrapped(self):
        client = MagicMock()
        client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject",
        )
        with pytest.raises(BlobStoreError) as exc_info:
            S3BlobStore("videos-bucket", client=client).save("k", b"data")
        assert isinstance(exc_info.value.original_error, ClientError)
