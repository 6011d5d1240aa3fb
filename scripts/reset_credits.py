#!/usr/bin/env python3
"""
Monthly Credit Reset
--------------------
Zeroes every account's scraping and video-seconds balances and stamps
reset_at. Run once at the start of each calendar month (cron / scheduler).

Usage:
    # Dry-run (shows the accounts that would be reset):
    python scripts/reset_credits.py

    # Apply:
    python scripts/reset_credits.py --apply
"""
import argparse
import sys

from scoutreel.db import DatabaseError, init_db, now_utc
from scoutreel.exceptions import NotConfiguredError
from scoutreel.services.credit_service import CreditService
from scoutreel.services.ledger_store import get_ledger_store


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset all account credit balances to zero.")
    parser.add_argument("--apply", action="store_true", help="Actually reset (default is a dry-run)")
    args = parser.parse_args()

    try:
        init_db()
        store = get_ledger_store()
    except (DatabaseError, NotConfiguredError) as exc:
        print(f"[reset_credits] ERROR: {exc}")
        return 1

    accounts = store.list_accounts()
    print(f"[reset_credits] {len(accounts)} accounts")

    if not args.apply:
        for account in accounts:
            credits = store.get_credits(account["id"])
            print(f"  {account['id']}  {account.get('email') or '-'}  "
                  f"scraping={credits['scraping']} video-seconds={credits['video-seconds']}")
        print("[reset_credits] Dry-run only; pass --apply to reset")
        return 0

    result = CreditService(store).reset_all(now_utc())
    print(f"[reset_credits] Reset {result['accounts_reset']} accounts at {result['reset_at'].isoformat()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
