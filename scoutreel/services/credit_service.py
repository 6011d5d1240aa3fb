"""
Credit Service - the only writer of account credit balances.

Flow for every billable action:
    debit(account_id, kind, amount) inside ONE account transaction:
      1. read the balance for `kind` (row is locked for the transaction)
      2. available < amount  -> InsufficientCreditsError, nothing written
      3. write balance - amount and append one UsageRecord

INVARIANTS:
- A balance never goes negative and is never debited twice for the same call.
- For every account and kind:
      starting balance - current balance == SUM(usage.amount since the start)
  The monthly reset is the only other balance write; rollups are taken from
  the start of the month.
- No refunds: a job that fails after its debit keeps the debit.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from scoutreel.db import now_utc, start_of_month, start_of_next_month
from scoutreel.exceptions import InsufficientCreditsError
from scoutreel.services.ledger_store import CreditKind, LedgerStore, get_ledger_store


def _check_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"Debit amount must be a positive integer, got {amount!r}")
    return amount


def _check_kind(kind: str) -> str:
    if kind not in CreditKind.ALL:
        raise ValueError(f"Unknown credit kind: {kind!r}")
    return kind


class CreditService:
    """
    Meters account credits against a LedgerStore.

    The store defaults to the process-wide one; tests pass a MemoryLedgerStore.
    """

    def __init__(self, store: Optional[LedgerStore] = None):
        self._store = store

    @property
    def store(self) -> LedgerStore:
        return self._store or get_ledger_store()

    # ─────────────────────────────────────────────────────────────
    # Debit
    # ─────────────────────────────────────────────────────────────

    def debit(
        self,
        account_id: str,
        kind: str,
        amount: int,
        context: Optional[Dict[str, Any]] = None,
        job_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Atomically check and debit `amount` credits of `kind`.

        Returns:
            {"ok": True, "kind", "amount", "balance", "usage_id"}

        Raises:
            InsufficientCreditsError: balance cannot cover the amount (no write happens)
            ValueError: non-positive amount or unknown kind
        """
        _check_kind(kind)
        _check_amount(amount)

        with self.store.account_transaction(account_id) as txn:
            available = txn.get_balance(kind)
            if available < amount:
                print(f"[CREDITS] REJECTED: {account_id} needs {amount} {kind}, has {available}")
                raise InsufficientCreditsError(required=amount, available=available, kind=kind)

            balance = available - amount
            txn.set_balance(kind, balance)
            usage = txn.append_usage({
                "kind": kind,
                "amount": amount,
                "job_id": job_id,
                "context": context or {},
            })

        print(f"[CREDITS] Debited {amount} {kind} from {account_id} (balance {balance}, job={job_id})")
        return {
            "ok": True,
            "kind": kind,
            "amount": amount,
            "balance": balance,
            "usage_id": usage["id"],
        }

    def check(self, account_id: str, kind: str, amount: int) -> bool:
        """Advisory pre-check (no lock held); debit() is the authoritative check."""
        _check_kind(kind)
        return self.store.get_credits(account_id).get(kind, 0) >= _check_amount(amount)

    # ─────────────────────────────────────────────────────────────
    # Rollups
    # ─────────────────────────────────────────────────────────────

    def get_usage_summary(self, account_id: str, since: Optional[datetime] = None) -> Dict[str, int]:
        """Sum of usage per kind since `since` (default: start of the current month)."""
        since = since or start_of_month()
        totals = {kind: 0 for kind in CreditKind.ALL}
        for record in self.store.query_usage(account_id, since=since):
            totals[record["kind"]] = totals.get(record["kind"], 0) + int(record["amount"])
        return totals

    def get_credit_summary(self, account_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Balances with month-to-date usage.

        Returns:
            {
                "credits": {kind: {"available", "used_this_month", "limit"}},
                "reset_at": last reset or None,
                "next_reset_at": first instant of next month,
            }
        """
        now = now or now_utc()
        balances = self.store.get_credits(account_id)
        used = self.get_usage_summary(account_id, since=start_of_month(now))

        credits = {}
        for kind in CreditKind.ALL:
            available = int(balances.get(kind, 0))
            credits[kind] = {
                "available": available,
                "used_this_month": used.get(kind, 0),
                "limit": available + used.get(kind, 0),
            }

        return {
            "credits": credits,
            "reset_at": balances.get("reset_at"),
            "next_reset_at": start_of_next_month(now),
        }

    def get_recent_usage(self, account_id: str, limit: int = 20):
        return self.store.query_usage(account_id, limit=limit)

    # ─────────────────────────────────────────────────────────────
    # Admin
    # ─────────────────────────────────────────────────────────────

    def set_balances(self, account_id: str, values: Dict[str, int]) -> Dict[str, Any]:
        """Admin override: set the given kinds, leave the others untouched."""
        for kind in values:
            _check_kind(kind)
        credits = self.store.set_credits(account_id, values, merge=True)
        print(f"[CREDITS] Admin set balances for {account_id}: {values}")
        return credits

    def grant(self, account_id: str, kind: str, amount: int) -> Dict[str, Any]:
        """Top up `amount` credits of `kind` (no usage record; grants are not usage)."""
        _check_kind(kind)
        _check_amount(amount)
        with self.store.account_transaction(account_id) as txn:
            balance = txn.get_balance(kind) + amount
            txn.set_balance(kind, balance)
        print(f"[CREDITS] Granted {amount} {kind} to {account_id} (balance {balance})")
        return {"ok": True, "kind": kind, "amount": amount, "balance": balance}

    def reset_all(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Monthly reset: zero every account's balances and stamp reset_at."""
        now = now or now_utc()
        count = self.store.reset_all_credits(now)
        print(f"[CREDITS] Reset credits for {count} accounts at {now.isoformat()}")
        return {"ok": True, "accounts_reset": count, "reset_at": now}
