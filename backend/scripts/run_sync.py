#!/usr/bin/env python3
"""Run an Instagram sync job by hand, outside the scheduler."""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.data_scheduler import DataScheduler

USAGE = """Usage:
  python3 run_sync.py daily              Snapshot all active accounts, then refresh tokens
  python3 run_sync.py user <user_id>     Snapshot one user's accounts
  python3 run_sync.py tokens             Refresh expiring tokens
  python3 run_sync.py stale [hours]      Sync accounts not synced within hours (default 25)
  python3 run_sync.py status             Show per-account sync status
  python3 run_sync.py cleanup            Delete old sync logs and snapshots"""


async def run(command: str, args: list[str]) -> int:
    scheduler = DataScheduler()

    if command == "daily":
        results = await scheduler.run_daily_collection()
        print(f"Daily sync: {results.successful} succeeded, {results.failed} failed")
        for error in results.errors:
            print(f"  {error}")
        summary = await scheduler.check_and_refresh_tokens()
        print(f"Tokens: {summary.refreshed} refreshed, {summary.deactivated} deactivated")
        return 1 if results.failed else 0

    if command == "user" and len(args) == 1:
        results = await scheduler.run_user_data_collection(args[0])
        print(f"User sync: {results.successful} succeeded, {results.failed} failed")
        for error in results.errors:
            print(f"  {error}")
        return 1 if results.failed else 0

    if command == "tokens":
        summary = await scheduler.check_and_refresh_tokens()
        print(
            f"Checked {summary.checked}: {summary.refreshed} refreshed, "
            f"{summary.deactivated} deactivated, {summary.skipped} skipped"
        )
        return 0

    if command == "stale":
        hours = int(args[0]) if args else 25
        results = await scheduler.force_sync_stale_accounts(hours)
        print(
            f"Stale sync: {results.processed} found, {results.successful} succeeded, "
            f"{results.failed} failed"
        )
        return 1 if results.failed else 0

    if command == "status":
        for account in await scheduler.get_sync_status():
            latest = account.latest_sync.status.value if account.latest_sync else "never"
            active = "active" if account.is_active else "inactive"
            print(f"@{account.instagram_handle:<30} {active:<9} last sync {account.last_sync_at}  ({latest})")
        return 0

    if command == "cleanup":
        logs = await scheduler.cleanup_old_sync_logs()
        snapshots = await scheduler.prune_old_snapshots()
        print(f"Deleted {logs} sync logs and {snapshots} snapshots")
        return 0

    print(USAGE)
    return 2


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(2)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(run(sys.argv[1], sys.argv[2:])))
