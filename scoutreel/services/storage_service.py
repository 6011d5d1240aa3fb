"""
S3 video storage.

Videos are written to AWS_BUCKET_VIDEOS under

    videos/{account_id}/{safe_profile_id}/{job_id}.mp4

and handed out as presigned GET URLs (SIGNED_URL_EXPIRES_SECONDS, 7 days
by default, which is the longest SigV4 allows).
"""

import re
import threading
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from scoutreel.config import config
from scoutreel.exceptions import NotConfiguredError

_UNSAFE_PATH_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def safe_path_segment(value: str) -> str:
    """Replace everything except letters, digits, '_' and '-' with '_'."""
    return _UNSAFE_PATH_CHARS.sub("_", str(value))


def build_video_key(account_id: str, profile_id: str, job_id: str) -> str:
    return f"videos/{account_id}/{safe_path_segment(profile_id)}/{job_id}.mp4"


class BlobStoreError(Exception):
    """Raised when an S3 write or presign fails."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class S3BlobStore:
    """put_object + presigned GET for one bucket."""

    def __init__(self, bucket: str, client: Any = None, region: Optional[str] = None):
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3",
            region_name=region or config.AWS_REGION,
            aws_access_key_id=config.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY,
        )

    def save(self, key: str, data: bytes, content_type: str = "video/mp4") -> str:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise BlobStoreError(f"Failed to upload s3://{self.bucket}/{key}: {e}", original_error=e) from e
        print(f"[S3] Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return key

    def signed_url(self, key: str, expires_in: Optional[int] = None) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in or config.SIGNED_URL_EXPIRES_SECONDS,
            )
        except (ClientError, BotoCoreError) as e:
            raise BlobStoreError(f"Failed to presign s3://{self.bucket}/{key}: {e}", original_error=e) from e


# ─────────────────────────────────────────────────────────────
# Process-wide blob store
# ─────────────────────────────────────────────────────────────
_blob_store: Optional[S3BlobStore] = None
_blob_store_lock = threading.Lock()


def init_blob_store(store: Optional[S3BlobStore] = None) -> Optional[S3BlobStore]:
    """Install the blob store; with no argument build it from config (None if unconfigured)."""
    global _blob_store
    with _blob_store_lock:
        if store is not None:
            _blob_store = store
        elif config.AWS_CONFIGURED:
            _blob_store = S3BlobStore(config.AWS_BUCKET_VIDEOS)
        else:
            _blob_store = None
        return _blob_store


def get_blob_store() -> S3BlobStore:
    """Return the blob store, or raise NotConfiguredError("blob_store")."""
    if _blob_store is None:
        init_blob_store()
    if _blob_store is None:
        raise NotConfiguredError("blob_store", "AWS_BUCKET_VIDEOS / AWS credentials are not set")
    return _blob_store
