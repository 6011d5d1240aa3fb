"""
Typed errors for the job & credit ledger.

Every error carries a stable `code` and the HTTP status the API renders it
with (see scoutreel.utils.error_handlers). Extra attributes are exposed via
`to_dict()` so callers and the HTTP layer can report them.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for ledger, provider and auth errors."""

    code = "LEDGER_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"code": self.code, "message": self.message}
        body.update(self.details())
        return body


# ─────────────────────────────────────────────────────────────
# Credits / Auth
# ─────────────────────────────────────────────────────────────
class InsufficientCreditsError(LedgerError):
    """Raised when the balance for a credit kind cannot cover a debit."""

    code = "INSUFFICIENT_CREDITS"
    http_status = 402

    def __init__(self, required: int, available: int, kind: str):
        self.required = required
        self.available = available
        self.kind = kind
        super().__init__(
            f"Insufficient {kind} credits: required {required}, available {available}"
        )

    def details(self) -> Dict[str, Any]:
        return {"required": self.required, "available": self.available, "kind": self.kind}


class InvalidTokenError(LedgerError):
    """Raised when an identity token is missing, malformed, expired or badly signed."""

    code = "UNAUTHORIZED"
    http_status = 401

    def __init__(self, message: str = "Invalid or missing identity token"):
        super().__init__(message)


class NotConfiguredError(LedgerError):
    """Raised when a required component (store, provider, blob store) has no configuration."""

    code = "NOT_CONFIGURED"
    http_status = 503

    def __init__(self, component: str, message: Optional[str] = None):
        self.component = component
        super().__init__(message or f"{component} is not configured")

    def details(self) -> Dict[str, Any]:
        return {"component": self.component}


# ─────────────────────────────────────────────────────────────
# Providers
# ─────────────────────────────────────────────────────────────
class ProviderUnavailableError(LedgerError):
    """Submission failed on transport or a provider-side 5xx."""

    code = "PROVIDER_UNAVAILABLE"
    http_status = 503

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(message or f"{provider} is unavailable")

    def details(self) -> Dict[str, Any]:
        return {"provider": self.provider}


class ProviderRejectedError(LedgerError):
    """The provider refused the submission (4xx)."""

    code = "PROVIDER_REJECTED"
    http_status = 422

    def __init__(self, provider: str, provider_code: Optional[str] = None, message: Optional[str] = None):
        self.provider = provider
        self.provider_code = provider_code
        super().__init__(message or f"{provider} rejected the request ({provider_code})")

    def details(self) -> Dict[str, Any]:
        return {"provider": self.provider, "provider_code": self.provider_code}


class UnparseableResponseError(LedgerError):
    """A provider response could not be parsed into a known shape."""

    code = "UNPARSEABLE_RESPONSE"
    http_status = 502

    def __init__(self, message: str = "Unparseable provider response"):
        super().__init__(message)


class ExternalJobFailedError(LedgerError):
    """The provider reported the external job as failed."""

    code = "EXTERNAL_JOB_FAILED"
    http_status = 502

    def __init__(self, provider_error_code: Optional[str], provider_error_detail: Optional[str]):
        self.provider_error_code = provider_error_code
        self.provider_error_detail = provider_error_detail
        super().__init__(
            f"External job failed: {provider_error_code or 'UNKNOWN'}"
            + (f" - {provider_error_detail}" if provider_error_detail else "")
        )

    def details(self) -> Dict[str, Any]:
        return {
            "provider_error_code": self.provider_error_code,
            "provider_error_detail": self.provider_error_detail,
        }


class ExternalJobTimedOutError(LedgerError):
    """The poll budget ran out before the external job reached a terminal state."""

    code = "EXTERNAL_JOB_TIMED_OUT"
    http_status = 504

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"External job did not finish after {attempts} polls")

    def details(self) -> Dict[str, Any]:
        return {"attempts": self.attempts}


class PollCancelledError(LedgerError):
    """The poll loop was cancelled from outside."""

    code = "POLL_CANCELLED"
    http_status = 409

    def __init__(self, attempts: int = 0):
        self.attempts = attempts
        super().__init__(f"Polling cancelled after {attempts} attempts")


class ArtifactFetchFailedError(LedgerError):
    """Downloading the finished artifact from the provider failed."""

    code = "ARTIFACT_FETCH_FAILED"
    http_status = 502

    def __init__(self, url: str, message: Optional[str] = None):
        self.url = url
        super().__init__(message or f"Failed to fetch artifact from {url[:100]}")


# ─────────────────────────────────────────────────────────────
# Jobs / Profiles
# ─────────────────────────────────────────────────────────────
class JobNotFoundError(LedgerError):
    code = "JOB_NOT_FOUND"
    http_status = 404

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")

    def details(self) -> Dict[str, Any]:
        return {"job_id": self.job_id}


class InvalidJobTransitionError(LedgerError):
    code = "INVALID_JOB_TRANSITION"
    http_status = 409

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")

    def details(self) -> Dict[str, Any]:
        return {"job_id": self.job_id, "current": self.current, "target": self.target}


class NoResumableHandleError(LedgerError):
    """The job carries no provider id to resume polling with."""

    code = "NO_RESUMABLE_HANDLE"
    http_status = 409

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} has no provider video id to resume")

    def details(self) -> Dict[str, Any]:
        return {"job_id": self.job_id}


class ProfileNotFoundError(LedgerError):
    code = "PROFILE_NOT_FOUND"
    http_status = 404

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Profile not found: {profile_id}")

    def details(self) -> Dict[str, Any]:
        return {"profile_id": self.profile_id}


class PollInProgressError(LedgerError):
    """A poll loop for this job is already running in this process."""

    code = "POLL_IN_PROGRESS"
    http_status = 409

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already being polled")

    def details(self) -> Dict[str, Any]:
        return {"job_id": self.job_id}
