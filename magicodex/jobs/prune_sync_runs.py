"""
Scheduled job to prune the sync ledger.

Deletes SUCCESS and FAILED sync runs older than a number of days. RUNNING
records are left for the staleness sweep.
"""

import argparse
import asyncio
import logging
import sys

from magicodex.db.database import async_session_factory
from magicodex.db.operations import cleanup_sync_runs

logger = logging.getLogger(__name__)

DEFAULT_DAYS_TO_KEEP = 30


async def prune(days_to_keep: int = DEFAULT_DAYS_TO_KEEP) -> int:
    """
    Delete finished sync runs older than days_to_keep days.

    Returns:
        Number of records deleted
    """
    async with async_session_factory() as session:
        deleted = await cleanup_sync_runs(session, days_to_keep)
        await session.commit()

    logger.info("Deleted %d sync runs older than %d days", deleted, days_to_keep)
    return deleted


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for pruning sync runs."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    parser = argparse.ArgumentParser(description="Delete old finished sync runs.")
    parser.add_argument(
        "--days",
        type=int,
        default=DEFAULT_DAYS_TO_KEEP,
        help=f"Keep runs newer than this many days (default: {DEFAULT_DAYS_TO_KEEP})",
    )
    args = parser.parse_args(argv)
    if args.days < 0:
        parser.error("--days must be >= 0")

    asyncio.run(prune(args.days))
    return 0


if __name__ == "__main__":
    sys.exit(main())
