"""
Database utilities for the ScoutReel backend.
Provides connection management, common query helpers and the schema bootstrap.

All functions raise meaningful exceptions on failure - no silent failures.

Usage:
    from scoutreel.db import transaction, fetch_one, Tables

    # Transaction with automatic commit/rollback
    with transaction() as cur:
        cur.execute(f"SELECT * FROM {Tables.CREDIT_BALANCES} WHERE account_id = %s FOR UPDATE", (uid,))
        row = fetch_one(cur)
"""

import os
from contextlib import contextmanager
from typing import Optional, Any, Dict, List
from datetime import datetime, timezone

import psycopg
from psycopg.rows import dict_row


# Module-level constants using os.getenv() directly to avoid circular imports
_DATABASE_URL = os.getenv("DATABASE_URL", "").replace("postgres://", "postgresql://", 1)
_HAS_DATABASE = bool(_DATABASE_URL)
_DB_CONNECT_TIMEOUT = int(os.getenv("DB_CONNECT_TIMEOUT", "10"))
_APP_SCHEMA = os.getenv("APP_SCHEMA", "scoutreel")


# ─────────────────────────────────────────────────────────────
# Custom Exceptions
# ─────────────────────────────────────────────────────────────
class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseNotConfiguredError(DatabaseError):
    """Raised when database is not configured but an operation requires it."""
    def __init__(self, message: str = "Database is not configured"):
        super().__init__(message)


class DatabaseConnectionError(DatabaseError):
    """Raised when unable to connect to the database."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class DatabaseQueryError(DatabaseError):
    """Raised when a query fails."""
    def __init__(self, message: str, query: str = None, original_error: Exception = None):
        super().__init__(message)
        self.query = query
        self.original_error = original_error


class DatabaseIntegrityError(DatabaseError):
    """Raised on constraint violations (unique, foreign key, check)."""
    def __init__(self, message: str, constraint: str = None, original_error: Exception = None):
        super().__init__(message)
        self.constraint = constraint
        self.original_error = original_error


# ─────────────────────────────────────────────────────────────
# Connection State
# ─────────────────────────────────────────────────────────────
USE_DB = _HAS_DATABASE

print(f"[DB] DATABASE_URL configured: {_HAS_DATABASE}, schema: {_APP_SCHEMA}")


# ─────────────────────────────────────────────────────────────
# Time Helpers
# ─────────────────────────────────────────────────────────────
def now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def now_utc_iso() -> str:
    """Get current UTC datetime as ISO string."""
    return now_utc().isoformat()


def start_of_month(now: datetime = None) -> datetime:
    """First instant of the calendar month containing `now` (UTC)."""
    now = now or now_utc()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def start_of_next_month(now: datetime = None) -> datetime:
    """First instant of the following calendar month (UTC)."""
    first = start_of_month(now)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


# ─────────────────────────────────────────────────────────────
# Connection Management
# ─────────────────────────────────────────────────────────────
def _create_connection():
    """
    Create a new database connection.
    Internal function - raises exceptions on failure.
    """
    if not _DATABASE_URL:
        raise DatabaseNotConfiguredError("DATABASE_URL is not set")

    try:
        conn = psycopg.connect(
            _DATABASE_URL,
            connect_timeout=_DB_CONNECT_TIMEOUT,
            row_factory=dict_row,
        )
        with conn.cursor() as cur:
            cur.execute(f"SET search_path TO {_APP_SCHEMA}, public;")
        return conn
    except psycopg.OperationalError as e:
        raise DatabaseConnectionError(f"Failed to connect to database: {e}", original_error=e)
    except Exception as e:
        raise DatabaseConnectionError(f"Unexpected error connecting to database: {e}", original_error=e)


@contextmanager
def transaction():
    """
    Context manager for database transactions.
    Automatically commits on success, rolls back on exception.
    Yields a cursor with dict_row factory.

    Raises:
        DatabaseNotConfiguredError: If database is not configured
        DatabaseConnectionError: If connection fails
        DatabaseQueryError: If a query fails
        DatabaseIntegrityError: On constraint violations

    Non-database exceptions raised inside the block roll back and propagate unchanged.
    """
    conn = _create_connection()
    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except psycopg.errors.UniqueViolation as e:
        conn.rollback()
        constraint = getattr(e.diag, "constraint_name", None)
        raise DatabaseIntegrityError(
            f"Unique constraint violation: {e}",
            constraint=constraint,
            original_error=e,
        )
    except psycopg.errors.ForeignKeyViolation as e:
        conn.rollback()
        constraint = getattr(e.diag, "constraint_name", None)
        raise DatabaseIntegrityError(
            f"Foreign key violation: {e}",
            constraint=constraint,
            original_error=e,
        )
    except psycopg.errors.CheckViolation as e:
        conn.rollback()
        constraint = getattr(e.diag, "constraint_name", None)
        raise DatabaseIntegrityError(
            f"Check constraint violation: {e}",
            constraint=constraint,
            original_error=e,
        )
    except psycopg.Error as e:
        conn.rollback()
        raise DatabaseQueryError(f"Database error: {e}", original_error=e)
    except Exception:
        conn.rollback()
        raise
    finally:
        try:
            conn.close()
        except Exception:
            pass


# ─────────────────────────────────────────────────────────────
# Cursor Helpers (for use within transaction blocks)
# ─────────────────────────────────────────────────────────────
def fetch_one(cur) -> Optional[Dict[str, Any]]:
    """Fetch one row from cursor as dict, or None."""
    row = cur.fetchone()
    if row is None:
        return None
    if isinstance(row, dict):
        return row
    if cur.description:
        columns = [desc[0] for desc in cur.description]
        return dict(zip(columns, row))
    return None


def fetch_all(cur) -> List[Dict[str, Any]]:
    """Fetch all rows from cursor as list of dicts."""
    rows = cur.fetchall()
    if not rows:
        return []
    if isinstance(rows[0], dict):
        return list(rows)
    if cur.description:
        columns = [desc[0] for desc in cur.description]
        return [dict(zip(columns, row)) for row in rows]
    return []


# ─────────────────────────────────────────────────────────────
# Standalone Query Helper (opens its own transaction)
# ─────────────────────────────────────────────────────────────
def query_one(sql: str, params: tuple = None) -> Optional[Dict[str, Any]]:
    """Execute a query and return one row as dict. Opens its own transaction."""
    with transaction() as cur:
        cur.execute(sql, params or ())
        return fetch_one(cur)


# ─────────────────────────────────────────────────────────────
# Schema-aware Table References
# ─────────────────────────────────────────────────────────────
class Tables:
    """Table name constants with schema prefixes."""
    ACCOUNTS = f"{_APP_SCHEMA}.accounts"
    CREDIT_BALANCES = f"{_APP_SCHEMA}.credit_balances"
    USAGE_RECORDS = f"{_APP_SCHEMA}.usage_records"
    JOBS = f"{_APP_SCHEMA}.jobs"
    JOB_METADATA = f"{_APP_SCHEMA}.job_metadata"
    PROFILES = f"{_APP_SCHEMA}.profiles"


# ─────────────────────────────────────────────────────────────
# Utility Functions
# ─────────────────────────────────────────────────────────────
def verify_connection() -> bool:
    """
    Test database connectivity.
    Returns True if connected, False otherwise.
    Does not raise exceptions.
    """
    if not USE_DB:
        return False
    try:
        result = query_one("SELECT 1 AS ok")
        return result is not None and result.get("ok") == 1
    except DatabaseError:
        return False


def init_db() -> bool:
    """
    Initialize database connection and verify connectivity.
    Called at app startup.
    Returns True if database is ready.

    Raises:
        DatabaseConnectionError: If database is configured but connection fails
    """
    if not _HAS_DATABASE:
        print("[DB] DATABASE_URL not set - running without database")
        return False

    try:
        if verify_connection():
            print("[DB] Database connection verified successfully")
            ensure_schema()
            return True
        raise DatabaseConnectionError("Connection test query failed")
    except DatabaseError as e:
        print(f"[DB] ERROR: {e}")
        raise


def ensure_schema() -> None:
    """
    Create the ledger tables if they don't exist.
    Balances carry CHECK constraints so a negative balance can never be committed.
    """
    with transaction() as cur:
        cur.execute(f"CREATE SCHEMA IF NOT EXISTS {_APP_SCHEMA}")
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS {Tables.ACCOUNTS} (
                id          TEXT PRIMARY KEY,
                email       TEXT,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """)
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS {Tables.CREDIT_BALANCES} (
                account_id     TEXT PRIMARY KEY REFERENCES {Tables.ACCOUNTS}(id),
                scraping       INTEGER NOT NULL DEFAULT 0 CHECK (scraping >= 0),
                video_seconds  INTEGER NOT NULL DEFAULT 0 CHECK (video_seconds >= 0),
                reset_at       TIMESTAMPTZ,
                updated_at     TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """)
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS {Tables.USAGE_RECORDS} (
                id          TEXT PRIMARY KEY,
                account_id  TEXT NOT NULL REFERENCES {Tables.ACCOUNTS}(id),
                kind        TEXT NOT NULL,
                amount      INTEGER NOT NULL CHECK (amount > 0),
                job_id      TEXT,
                context     JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """)
        cur.execute(f"""
            CREATE INDEX IF NOT EXISTS ix_usage_records_account_created
            ON {Tables.USAGE_RECORDS} (account_id, created_at DESC)
        """)
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS {Tables.JOBS} (
                account_id  TEXT NOT NULL REFERENCES {Tables.ACCOUNTS}(id),
                id          TEXT NOT NULL,
                type        TEXT NOT NULL,
                status      TEXT NOT NULL,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
                PRIMARY KEY (account_id, id)
            )
        """)
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS {Tables.JOB_METADATA} (
                seq         BIGSERIAL PRIMARY KEY,
                account_id  TEXT NOT NULL,
                job_id      TEXT NOT NULL,
                fragment    JSONB NOT NULL,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
                FOREIGN KEY (account_id, job_id) REFERENCES {Tables.JOBS}(account_id, id)
            )
        """)
        cur.execute(f"""
            CREATE INDEX IF NOT EXISTS ix_job_metadata_job
            ON {Tables.JOB_METADATA} (account_id, job_id, seq)
        """)
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS {Tables.PROFILES} (
                account_id  TEXT NOT NULL REFERENCES {Tables.ACCOUNTS}(id),
                id          TEXT NOT NULL,
                fields      JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                video       JSONB,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
                PRIMARY KEY (account_id, id)
            )
        """)
    print("[DB] Schema ensured")


# ─────────────────────────────────────────────────────────────
# Module exports
# ─────────────────────────────────────────────────────────────
__all__ = [
    "dict_row",
    "USE_DB",
    # Exceptions
    "DatabaseError",
    "DatabaseNotConfiguredError",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "DatabaseIntegrityError",
    # Connection management
    "transaction",
    # Time helpers
    "now_utc",
    "now_utc_iso",
    "start_of_month",
    "start_of_next_month",
    # Cursor helpers
    "fetch_one",
    "fetch_all",
    # Standalone query helper
    "query_one",
    # Schema-aware tables
    "Tables",
    # Utilities
    "verify_connection",
    "init_db",
    "ensure_schema",
]
