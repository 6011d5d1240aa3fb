"""
Ledger Store - account-scoped transactional persistence.

Two implementations share one interface:
- PostgresLedgerStore: psycopg3 via scoutreel.db. The account's balance row is
  locked FOR UPDATE for the duration of account_transaction(), which
  serializes every read-modify-write on that account's credits.
- MemoryLedgerStore: process-local dev/test store. A per-account lock plays
  the role of the row lock; writes made inside account_transaction() are
  buffered and applied only when the block exits cleanly.

Shapes returned by both stores:
    credits  {"scraping": int, "video-seconds": int, "reset_at": datetime|None}
    usage    {"id", "account_id", "kind", "amount", "job_id", "context", "created_at"}
    job      {"id", "account_id", "type", "status", "created_at", "updated_at", "metadata": [fragment, ...]}
    profile  {"id", <profile fields>, "video": {...}|None, "created_at", "updated_at"}

Use get_ledger_store() to obtain the process-wide instance.
"""

import copy
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from psycopg.types.json import Jsonb

from scoutreel.config import config
from scoutreel.db import Tables, fetch_all, fetch_one, now_utc, transaction
from scoutreel.exceptions import (
    InvalidJobTransitionError,
    JobNotFoundError,
    NotConfiguredError,
    ProfileNotFoundError,
)


class CreditKind:
    """Credit kinds metered per account."""
    SCRAPING = "scraping"
    VIDEO_SECONDS = "video-seconds"

    ALL = (SCRAPING, VIDEO_SECONDS)


# Credit kind -> credit_balances column
_KIND_COLUMNS = {
    CreditKind.SCRAPING: "scraping",
    CreditKind.VIDEO_SECONDS: "video_seconds",
}


def _column_for(kind: str) -> str:
    try:
        return _KIND_COLUMNS[kind]
    except KeyError:
        raise ValueError(f"Unknown credit kind: {kind!r}")


def _check_balance_value(kind: str, value: Any) -> int:
    _column_for(kind)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Balance for {kind} must be a non-negative integer, got {value!r}")
    return value


def _new_usage_record(account_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": uuid.uuid4().hex,
        "account_id": account_id,
        "kind": record["kind"],
        "amount": record["amount"],
        "job_id": record.get("job_id"),
        "context": dict(record.get("context") or {}),
        "created_at": record.get("created_at") or now_utc(),
    }


class LedgerStore:
    """Interface shared by the Postgres and in-memory stores."""

    # Accounts & credits
    def ensure_account(self, account_id: str, email: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    def list_accounts(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def account_transaction(self, account_id: str):
        raise NotImplementedError

    def get_credits(self, account_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def set_credits(self, account_id: str, values: Dict[str, int], merge: bool = True) -> Dict[str, Any]:
        raise NotImplementedError

    def reset_all_credits(self, reset_at: datetime) -> int:
        raise NotImplementedError

    def query_usage(
        self,
        account_id: str,
        since: Optional[datetime] = None,
        kind: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    # Jobs
    def insert_job(self, job: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def transition_job(
        self,
        account_id: str,
        job_id: str,
        status: str,
        allowed_from: Iterable[str],
        fragment: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def append_job_metadata(self, account_id: str, job_id: str, fragment: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def get_job(self, account_id: str, job_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list_jobs(self, account_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        raise NotImplementedError

    # Profiles
    def upsert_profile(self, account_id: str, profile_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def get_profile(self, account_id: str, profile_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list_profiles(self, account_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def set_profile_video(self, account_id: str, profile_id: str, video: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


# ─────────────────────────────────────────────────────────────
# PostgreSQL
# ─────────────────────────────────────────────────────────────
class _PostgresAccountTransaction:
    """Balance/usage operations bound to one locked credit_balances row."""

    def __init__(self, cur, account_id: str, row: Dict[str, Any]):
        self._cur = cur
        self.account_id = account_id
        self._row = row

    def get_balance(self, kind: str) -> int:
        return int(self._row.get(_column_for(kind)) or 0)

    def set_balance(self, kind: str, value: int) -> None:
        value = _check_balance_value(kind, value)
        column = _column_for(kind)
        self._cur.execute(
            f"""
            UPDATE {Tables.CREDIT_BALANCES}
            SET {column} = %s, updated_at = NOW()
            WHERE account_id = %s
            """,
            (value, self.account_id),
        )
        self._row[column] = value

    def append_usage(self, record: Dict[str, Any]) -> Dict[str, Any]:
        usage = _new_usage_record(self.account_id, record)
        self._cur.execute(
            f"""
            INSERT INTO {Tables.USAGE_RECORDS}
                (id, account_id, kind, amount, job_id, context, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                usage["id"], usage["account_id"], usage["kind"], usage["amount"],
                usage["job_id"], Jsonb(usage["context"]), usage["created_at"],
            ),
        )
        return usage


class PostgresLedgerStore(LedgerStore):
    """Ledger store backed by the scoutreel schema in PostgreSQL."""

    @staticmethod
    def _ensure_account_rows(cur, account_id: str, email: Optional[str] = None) -> None:
        cur.execute(
            f"""
            INSERT INTO {Tables.ACCOUNTS} (id, email, created_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (id) DO UPDATE
            SET email = COALESCE(EXCLUDED.email, {Tables.ACCOUNTS}.email)
            """,
            (account_id, email),
        )
        cur.execute(
            f"""
            INSERT INTO {Tables.CREDIT_BALANCES} (account_id)
            VALUES (%s)
            ON CONFLICT (account_id) DO NOTHING
            """,
            (account_id,),
        )

    @staticmethod
    def _format_credits(row: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        row = row or {}
        return {
            CreditKind.SCRAPING: int(row.get("scraping") or 0),
            CreditKind.VIDEO_SECONDS: int(row.get("video_seconds") or 0),
            "reset_at": row.get("reset_at"),
        }

    @staticmethod
    def _load_job(cur, account_id: str, job_id: str) -> Optional[Dict[str, Any]]:
        cur.execute(
            f"SELECT * FROM {Tables.JOBS} WHERE account_id = %s AND id = %s",
            (account_id, job_id),
        )
        job = fetch_one(cur)
        if not job:
            return None
        cur.execute(
            f"""
            SELECT fragment FROM {Tables.JOB_METADATA}
            WHERE account_id = %s AND job_id = %s
            ORDER BY seq ASC
            """,
            (account_id, job_id),
        )
        job = dict(job)
        job["metadata"] = [r["fragment"] for r in fetch_all(cur)]
        return job

    @staticmethod
    def _insert_fragment(cur, account_id: str, job_id: str, fragment: Dict[str, Any]) -> None:
        cur.execute(
            f"""
            INSERT INTO {Tables.JOB_METADATA} (account_id, job_id, fragment, created_at)
            VALUES (%s, %s, %s, NOW())
            """,
            (account_id, job_id, Jsonb(fragment)),
        )

    @staticmethod
    def _format_profile(row: Dict[str, Any]) -> Dict[str, Any]:
        profile = {"id": row["id"]}
        profile.update(row.get("fields") or {})
        profile["video"] = row.get("video")
        profile["created_at"] = row.get("created_at")
        profile["updated_at"] = row.get("updated_at")
        return profile

    # Accounts & credits ──────────────────────────────────────

    def ensure_account(self, account_id: str, email: Optional[str] = None) -> Dict[str, Any]:
        with transaction() as cur:
            self._ensure_account_rows(cur, account_id, email)
            cur.execute(f"SELECT * FROM {Tables.ACCOUNTS} WHERE id = %s", (account_id,))
            return fetch_one(cur)

    def list_accounts(self) -> List[Dict[str, Any]]:
        with transaction() as cur:
            cur.execute(f"SELECT * FROM {Tables.ACCOUNTS} ORDER BY created_at ASC")
            return fetch_all(cur)

    @contextmanager
    def account_transaction(self, account_id: str):
        with transaction() as cur:
            self._ensure_account_rows(cur, account_id)
            cur.execute(
                f"""
                SELECT account_id, scraping, video_seconds, reset_at
                FROM {Tables.CREDIT_BALANCES}
                WHERE account_id = %s
                FOR UPDATE
                """,
                (account_id,),
            )
            row = fetch_one(cur)
            yield _PostgresAccountTransaction(cur, account_id, dict(row))

    def get_credits(self, account_id: str) -> Dict[str, Any]:
        with transaction() as cur:
            cur.execute(
                f"SELECT scraping, video_seconds, reset_at FROM {Tables.CREDIT_BALANCES} WHERE account_id = %s",
                (account_id,),
            )
            return self._format_credits(fetch_one(cur))

    def set_credits(self, account_id: str, values: Dict[str, int], merge: bool = True) -> Dict[str, Any]:
        updates = {kind: _check_balance_value(kind, value) for kind, value in values.items()}
        if not merge:
            for kind in CreditKind.ALL:
                updates.setdefault(kind, 0)
        with self.account_transaction(account_id) as txn:
            for kind, value in updates.items():
                txn.set_balance(kind, value)
        return self.get_credits(account_id)

    def reset_all_credits(self, reset_at: datetime) -> int:
        with transaction() as cur:
            cur.execute(
                f"""
                UPDATE {Tables.CREDIT_BALANCES}
                SET scraping = 0, video_seconds = 0, reset_at = %s, updated_at = NOW()
                """,
                (reset_at,),
            )
            return cur.rowcount

    def query_usage(self, account_id, since=None, kind=None, limit=None):
        clauses = ["account_id = %s"]
        params: List[Any] = [account_id]
        if since is not None:
            clauses.append("created_at >= %s")
            params.append(since)
        if kind is not None:
            clauses.append("kind = %s")
            params.append(kind)
        sql = (
            f"SELECT * FROM {Tables.USAGE_RECORDS} WHERE {' AND '.join(clauses)} "
            f"ORDER BY created_at DESC"
        )
        if limit is not None:
            sql += " LIMIT %s"
            params.append(int(limit))
        with transaction() as cur:
            cur.execute(sql, tuple(params))
            return fetch_all(cur)

    # Jobs ────────────────────────────────────────────────────

    def insert_job(self, job: Dict[str, Any]) -> Dict[str, Any]:
        with transaction() as cur:
            cur.execute(
                f"""
                INSERT INTO {Tables.JOBS} (account_id, id, type, status, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (job["account_id"], job["id"], job["type"], job["status"], job["created_at"], job["updated_at"]),
            )
            for fragment in job.get("metadata") or []:
                self._insert_fragment(cur, job["account_id"], job["id"], fragment)
            return self._load_job(cur, job["account_id"], job["id"])

    def transition_job(self, account_id, job_id, status, allowed_from, fragment=None):
        with transaction() as cur:
            cur.execute(
                f"""
                UPDATE {Tables.JOBS}
                SET status = %s, updated_at = NOW()
                WHERE account_id = %s AND id = %s AND status = ANY(%s)
                RETURNING id
                """,
                (status, account_id, job_id, list(allowed_from)),
            )
            if fetch_one(cur) is None:
                cur.execute(
                    f"SELECT status FROM {Tables.JOBS} WHERE account_id = %s AND id = %s",
                    (account_id, job_id),
                )
                current = fetch_one(cur)
                if current is None:
                    raise JobNotFoundError(job_id)
                raise InvalidJobTransitionError(job_id, current["status"], status)
            if fragment:
                self._insert_fragment(cur, account_id, job_id, fragment)
            return self._load_job(cur, account_id, job_id)

    def append_job_metadata(self, account_id, job_id, fragment):
        with transaction() as cur:
            cur.execute(
                f"""
                UPDATE {Tables.JOBS} SET updated_at = NOW()
                WHERE account_id = %s AND id = %s
                RETURNING id
                """,
                (account_id, job_id),
            )
            if fetch_one(cur) is None:
                raise JobNotFoundError(job_id)
            self._insert_fragment(cur, account_id, job_id, fragment)
            return self._load_job(cur, account_id, job_id)

    def get_job(self, account_id, job_id):
        with transaction() as cur:
            return self._load_job(cur, account_id, job_id)

    def list_jobs(self, account_id, limit=50):
        with transaction() as cur:
            cur.execute(
                f"""
                SELECT id FROM {Tables.JOBS}
                WHERE account_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (account_id, int(limit)),
            )
            ids = [r["id"] for r in fetch_all(cur)]
            return [self._load_job(cur, account_id, job_id) for job_id in ids]

    # Profiles ────────────────────────────────────────────────

    def upsert_profile(self, account_id, profile_id, fields):
        with transaction() as cur:
            self._ensure_account_rows(cur, account_id)
            cur.execute(
                f"""
                INSERT INTO {Tables.PROFILES} AS p (account_id, id, fields, created_at, updated_at)
                VALUES (%s, %s, %s, NOW(), NOW())
                ON CONFLICT (account_id, id) DO UPDATE
                SET fields = p.fields || EXCLUDED.fields, updated_at = NOW()
                RETURNING *
                """,
                (account_id, profile_id, Jsonb(fields)),
            )
            return self._format_profile(fetch_one(cur))

    def get_profile(self, account_id, profile_id):
        with transaction() as cur:
            cur.execute(
                f"SELECT * FROM {Tables.PROFILES} WHERE account_id = %s AND id = %s",
                (account_id, profile_id),
            )
            row = fetch_one(cur)
            return self._format_profile(row) if row else None

    def list_profiles(self, account_id):
        with transaction() as cur:
            cur.execute(
                f"SELECT * FROM {Tables.PROFILES} WHERE account_id = %s ORDER BY updated_at DESC",
                (account_id,),
            )
            return [self._format_profile(r) for r in fetch_all(cur)]

    def set_profile_video(self, account_id, profile_id, video):
        with transaction() as cur:
            cur.execute(
                f"""
                UPDATE {Tables.PROFILES}
                SET video = %s, updated_at = NOW()
                WHERE account_id = %s AND id = %s
                RETURNING *
                """,
                (Jsonb(video), account_id, profile_id),
            )
            row = fetch_one(cur)
            if row is None:
                raise ProfileNotFoundError(profile_id)
            return self._format_profile(row)


# ─────────────────────────────────────────────────────────────
# In-memory (dev / tests)
# ─────────────────────────────────────────────────────────────
class _MemoryAccountTransaction:
    """Buffers balance writes and usage appends until the owning block commits."""

    def __init__(self, account_id: str, balances: Dict[str, int]):
        self.account_id = account_id
        self.balances = dict(balances)
        self.usage: List[Dict[str, Any]] = []

    def get_balance(self, kind: str) -> int:
        _column_for(kind)
        return self.balances.get(kind, 0)

    def set_balance(self, kind: str, value: int) -> None:
        self.balances[kind] = _check_balance_value(kind, value)

    def append_usage(self, record: Dict[str, Any]) -> Dict[str, Any]:
        usage = _new_usage_record(self.account_id, record)
        self.usage.append(usage)
        return copy.deepcopy(usage)


class MemoryLedgerStore(LedgerStore):
    """Thread-safe process-local store. Nothing survives a restart."""

    def __init__(self):
        self._lock = threading.RLock()
        self._account_locks: Dict[str, threading.Lock] = {}
        self._accounts: Dict[str, Dict[str, Any]] = {}
        self._credits: Dict[str, Dict[str, Any]] = {}
        self._usage: List[Dict[str, Any]] = []
        self._jobs: Dict[tuple, Dict[str, Any]] = {}
        self._profiles: Dict[tuple, Dict[str, Any]] = {}

    def _account_lock(self, account_id: str) -> threading.Lock:
        with self._lock:
            lock = self._account_locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._account_locks[account_id] = lock
            return lock

    def _ensure_rows(self, account_id: str, email: Optional[str] = None) -> None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                self._accounts[account_id] = {"id": account_id, "email": email, "created_at": now_utc()}
            elif email:
                account["email"] = email
            self._credits.setdefault(
                account_id,
                {CreditKind.SCRAPING: 0, CreditKind.VIDEO_SECONDS: 0, "reset_at": None},
            )

    # Accounts & credits ──────────────────────────────────────

    def ensure_account(self, account_id, email=None):
        self._ensure_rows(account_id, email)
        with self._lock:
            return dict(self._accounts[account_id])

    def list_accounts(self):
        with self._lock:
            accounts = [dict(a) for a in self._accounts.values()]
        return sorted(accounts, key=lambda a: a["created_at"])

    @contextmanager
    def account_transaction(self, account_id):
        self._ensure_rows(account_id)
        with self._account_lock(account_id):
            with self._lock:
                balances = {kind: self._credits[account_id][kind] for kind in CreditKind.ALL}
            txn = _MemoryAccountTransaction(account_id, balances)
            yield txn
            # Only reached when the block exits without raising
            with self._lock:
                self._credits[account_id].update(txn.balances)
                self._usage.extend(txn.usage)

    def get_credits(self, account_id):
        with self._lock:
            credits = self._credits.get(account_id)
            if credits is None:
                return {CreditKind.SCRAPING: 0, CreditKind.VIDEO_SECONDS: 0, "reset_at": None}
            return dict(credits)

    def set_credits(self, account_id, values, merge=True):
        updates = {kind: _check_balance_value(kind, value) for kind, value in values.items()}
        if not merge:
            for kind in CreditKind.ALL:
                updates.setdefault(kind, 0)
        with self.account_transaction(account_id) as txn:
            for kind, value in updates.items():
                txn.set_balance(kind, value)
        return self.get_credits(account_id)

    def reset_all_credits(self, reset_at):
        with self._lock:
            account_ids = list(self._credits.keys())
        for account_id in account_ids:
            with self._account_lock(account_id):
                with self._lock:
                    self._credits[account_id].update(
                        {CreditKind.SCRAPING: 0, CreditKind.VIDEO_SECONDS: 0, "reset_at": reset_at}
                    )
        return len(account_ids)

    def query_usage(self, account_id, since=None, kind=None, limit=None):
        with self._lock:
            records = [
                copy.deepcopy(r) for r in self._usage
                if r["account_id"] == account_id
                and (since is None or r["created_at"] >= since)
                and (kind is None or r["kind"] == kind)
            ]
        # Stable sort keeps insertion order among equal timestamps, newest first
        records.reverse()
        records.sort(key=lambda r: r["created_at"], reverse=True)
        if limit is not None:
            records = records[:int(limit)]
        return records

    # Jobs ────────────────────────────────────────────────────

    def insert_job(self, job):
        key = (job["account_id"], job["id"])
        with self._lock:
            if key in self._jobs:
                raise ValueError(f"Job already exists: {job['id']}")
            stored = copy.deepcopy(job)
            stored["metadata"] = list(stored.get("metadata") or [])
            self._jobs[key] = stored
            return copy.deepcopy(stored)

    def transition_job(self, account_id, job_id, status, allowed_from, fragment=None):
        with self._lock:
            job = self._jobs.get((account_id, job_id))
            if job is None:
                raise JobNotFoundError(job_id)
            if job["status"] not in allowed_from:
                raise InvalidJobTransitionError(job_id, job["status"], status)
            job["status"] = status
            job["updated_at"] = now_utc()
            if fragment:
                job["metadata"].append(copy.deepcopy(fragment))
            return copy.deepcopy(job)

    def append_job_metadata(self, account_id, job_id, fragment):
        with self._lock:
            job = self._jobs.get((account_id, job_id))
            if job is None:
                raise JobNotFoundError(job_id)
            job["metadata"].append(copy.deepcopy(fragment))
            job["updated_at"] = now_utc()
            return copy.deepcopy(job)

    def get_job(self, account_id, job_id):
        with self._lock:
            job = self._jobs.get((account_id, job_id))
            return copy.deepcopy(job) if job else None

    def list_jobs(self, account_id, limit=50):
        with self._lock:
            jobs = [copy.deepcopy(j) for (owner, _), j in self._jobs.items() if owner == account_id]
        jobs.reverse()
        jobs.sort(key=lambda j: j["created_at"], reverse=True)
        return jobs[:int(limit)]

    # Profiles ────────────────────────────────────────────────

    def upsert_profile(self, account_id, profile_id, fields):
        self._ensure_rows(account_id)
        now = now_utc()
        with self._lock:
            profile = self._profiles.get((account_id, profile_id))
            if profile is None:
                profile = {"id": profile_id, "video": None, "created_at": now}
                self._profiles[(account_id, profile_id)] = profile
            profile.update(copy.deepcopy(fields))
            profile["id"] = profile_id
            profile["updated_at"] = now
            return copy.deepcopy(profile)

    def get_profile(self, account_id, profile_id):
        with self._lock:
            profile = self._profiles.get((account_id, profile_id))
            return copy.deepcopy(profile) if profile else None

    def list_profiles(self, account_id):
        with self._lock:
            profiles = [copy.deepcopy(p) for (owner, _), p in self._profiles.items() if owner == account_id]
        return sorted(profiles, key=lambda p: p["updated_at"], reverse=True)

    def set_profile_video(self, account_id, profile_id, video):
        with self._lock:
            profile = self._profiles.get((account_id, profile_id))
            if profile is None:
                raise ProfileNotFoundError(profile_id)
            profile["video"] = copy.deepcopy(video)
            profile["updated_at"] = now_utc()
            return copy.deepcopy(profile)


# ─────────────────────────────────────────────────────────────
# Process-wide store
# ─────────────────────────────────────────────────────────────
_store: Optional[LedgerStore] = None
_store_lock = threading.Lock()


def _build_default_store() -> Optional[LedgerStore]:
    mode = config.LEDGER_STORE
    if mode == "memory":
        print("[LEDGER] Using in-memory ledger store")
        return MemoryLedgerStore()
    if mode == "postgres" or config.HAS_DATABASE:
        if not config.HAS_DATABASE:
            raise NotConfiguredError("ledger_store", "LEDGER_STORE=postgres but DATABASE_URL is not set")
        print("[LEDGER] Using PostgreSQL ledger store")
        return PostgresLedgerStore()
    if config.IS_DEV:
        print("[LEDGER] No DATABASE_URL in dev mode - using in-memory ledger store")
        return MemoryLedgerStore()
    return None


def init_ledger_store(store: Optional[LedgerStore] = None) -> Optional[LedgerStore]:
    """
    Install the process-wide store. With no argument the store is built from
    config; returns None when nothing is configured.
    """
    global _store
    with _store_lock:
        _store = store if store is not None else _build_default_store()
        return _store


def get_ledger_store() -> LedgerStore:
    """Return the process-wide store, building it from config on first use."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = _build_default_store()
    if _store is None:
        raise NotConfiguredError("ledger_store", "No ledger store configured (set DATABASE_URL or LEDGER_STORE=memory)")
    return _store


def reset_ledger_store() -> None:
    """Forget the process-wide store (tests)."""
    global _store
    with _store_lock:
        _store = None
