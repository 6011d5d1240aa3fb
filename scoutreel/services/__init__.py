"""Services package for the ScoutReel backend."""

from scoutreel.services.ledger_store import (
    CreditKind,
    LedgerStore,
    MemoryLedgerStore,
    PostgresLedgerStore,
    get_ledger_store,
    init_ledger_store,
)
from scoutreel.services.credit_service import CreditService
from scoutreel.services.pricing_service import PricingService
from scoutreel.services.job_service import JobService, JobStatus, JobType, fold_metadata, latest_value
from scoutreel.services.job_poller import ExternalJobPoller, PollFailed, PollInProgress, PollSucceeded
from scoutreel.services.identity_service import IdentityService
from scoutreel.services.dispatch_service import JobDispatcher, get_dispatcher

__all__ = [
    "CreditKind",
    "LedgerStore",
    "MemoryLedgerStore",
    "PostgresLedgerStore",
    "get_ledger_store",
    "init_ledger_store",
    "CreditService",
    "PricingService",
    "JobService",
    "JobStatus",
    "JobType",
    "fold_metadata",
    "latest_value",
    "ExternalJobPoller",
    "PollInProgress",
    "PollSucceeded",
    "PollFailed",
    "IdentityService",
    "JobDispatcher",
    "get_dispatcher",
]
