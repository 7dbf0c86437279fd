"""
Scheduled job to sync the card catalog from Scryfall.

Runs one sync through the orchestrator, so the run is recorded in the sync
ledger exactly like an API-triggered one. Can be run as a standalone script
or called from a scheduler:

    python -m magicodex.jobs.sync_catalog --type full
    python -m magicodex.jobs.sync_catalog --type cards --set DMU --force
"""

import argparse
import asyncio
import logging
import sys

from magicodex.db.database import init_db
from magicodex.models.failure import KnownError
from magicodex.services.sync_orchestrator import (
    SyncOrchestrator,
    SyncRequest,
    SyncResult,
    SyncType,
    get_orchestrator,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync the card catalog from Scryfall.")
    parser.add_argument(
        "--type",
        dest="sync_type",
        choices=[sync_type.value for sync_type in SyncType],
        default=SyncType.FULL.value,
        help="Which sync to run (default: full)",
    )
    parser.add_argument("--set", dest="set_code", help="Restrict to one set code")
    parser.add_argument("--lang", dest="language", help="Scryfall language code")
    parser.add_argument(
        "--force", action="store_true", help="Rewrite records that already exist"
    )
    return parser


async def run_sync(
    request: SyncRequest, orchestrator: SyncOrchestrator | None = None
) -> SyncResult | None:
    """
    Run one sync.

    Args:
        request: Sync to run
        orchestrator: Orchestrator to use; the process-wide one if omitted

    Returns:
        The sync result, or None if the sync failed or was already running
    """
    await init_db()
    orchestrator = orchestrator or get_orchestrator()

    try:
        result = await orchestrator.trigger(request)
    except KnownError as e:
        logger.error("Sync %s failed: %s", request.sync_type.value, e.message)
        if e.suggestion:
            logger.info("%s", e.suggestion)
        return None
    except ValueError as e:
        logger.error("Sync %s rejected: %s", request.sync_type.value, e)
        return None

    logger.info(
        "Sync %s complete: %d records in %.1fs",
        request.sync_type.value,
        result.records_processed,
        result.duration_seconds,
    )
    return result


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for running a catalog sync."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    request = SyncRequest(
        sync_type=SyncType(args.sync_type),
        force=args.force,
        set_code=args.set_code,
        language=args.language,
    )
    result = asyncio.run(run_sync(request))
    return 0 if result is not None else 1


if __name__ == "__main__":
    sys.exit(main())
