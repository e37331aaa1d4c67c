"""Scheduled maintenance: sweep dead texts and report totals.

Meant for cron (hourly is plenty)::

    0 * * * * pastelink-cleanup >> /var/log/pastelink-cleanup.log 2>&1

Usage
-----
pastelink-cleanup              # sweep, then print totals
python -m pastelink.cleanup --no-stats

Exits 0 on success and 1 when the database could not be reached or the
sweep failed.
"""

import argparse
import asyncio
import sys
from collections.abc import Callable
from typing import TextIO

from sqlalchemy.ext.asyncio import AsyncSession

from pastelink.config import Settings, get_settings
from pastelink.database import async_session, close_db
from pastelink.dependencies import ServiceManager
from pastelink.errors import StoreError
from pastelink.store import RecordStore
from pastelink.text_service import TextService

__all__ = ["run_cleanup", "main"]


async def run_cleanup(
    services: ServiceManager,
    session_factory: Callable[[], AsyncSession],
    *,
    with_stats: bool = True,
    out: TextIO = sys.stdout,
) -> int:
    """Run one sweep and print a timestamped summary.

    Returns:
        int: number of texts deleted.
    """
    settings = services.settings
    async with session_factory() as session:
        store = RecordStore(session, services.code_generator, settings, services.clock)
        service = TextService(store, services.cache, settings, clock=services.clock, logger=services.logger)

        deleted = await service.sweep_expired()
        print(f"[{_timestamp(services)}] Deleted {deleted} expired or exhausted texts", file=out)

        if with_stats:
            stats = await service.get_stats()
            print(
                f"[{_timestamp(services)}] Remaining: {stats.total_records} texts, "
                f"{stats.total_views} views, {stats.expiring_count} with expiry, "
                f"{stats.limited_count} with view limit",
                file=out,
            )
    return deleted


async def _main(args: argparse.Namespace, settings: Settings) -> int:
    services = ServiceManager(settings)
    await services.startup()
    try:
        await run_cleanup(services, async_session, with_stats=not args.no_stats)
    except StoreError as exc:
        services.logger.error(f"Cleanup failed: {exc.message}")
        print(f"[{_timestamp(services)}] Cleanup failed: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await services.shutdown()
        await close_db()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Delete expired and view-exhausted texts")
    parser.add_argument("--no-stats", action="store_true", help="skip the totals line after the sweep")
    args = parser.parse_args(argv)
    return asyncio.run(_main(args, get_settings()))


def _timestamp(services: ServiceManager) -> str:
    return services.clock.now().strftime("%Y-%m-%d %H:%M:%S")


if __name__ == "__main__":
    sys.exit(main())
