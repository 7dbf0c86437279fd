"""
Catalog sync orchestration.

Every sync variant runs through the same state machine:

    IDLE -> RUNNING -> SUCCESS | FAILED

The sync_runs ledger is the source of truth for "a sync is running". The
in-process set of active types is only a fast path that rejects back-to-back
triggers in this process before the database is touched. RUNNING rows left
behind by a crashed process are swept to FAILED once they are older than the
staleness timeout.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from magicodex.config import EXCLUDED_SET_TYPES, settings
from magicodex.db.database import async_session_factory
from magicodex.db.operations import (
    FAILED,
    SUCCESS,
    complete_sync_run,
    create_sync_run,
    find_cards_missing_translation,
    get_existing_scryfall_ids,
    get_running_sync_run,
    list_sets,
    sweep_stale_sync_runs,
    update_card_translation,
    utcnow,
)
from magicodex.models.catalog import CardRecord, SetRecord, UpsertStats
from magicodex.models.failure import SyncInProgressError
from magicodex.parsers.scryfall import normalize_card, normalize_set
from magicodex.services.catalog_writer import CatalogWriter
from magicodex.services.extras import compute_is_extra
from magicodex.services.scryfall_client import CatalogClient

logger = logging.getLogger(__name__)

# Every paper printing; used when a cards sync names neither a set nor a language
ALL_PAPER_CARDS_QUERY = "game:paper"


class SyncType(str, Enum):
    SETS = "sets"
    CARDS = "cards"
    FULL = "full"
    TRANSLATIONS = "translations"
    EXTRAS = "extras"


@dataclass(frozen=True)
class SyncRequest:
    """
    A request to run one sync.

    Attributes:
        sync_type: Which variant to run
        force: Rewrite records that already exist
        set_code: Restrict card, translation and extras syncs to one set
        language: Scryfall language code for card and translation syncs
    """

    sync_type: SyncType
    force: bool = False
    set_code: str | None = None
    language: str | None = None


@dataclass
class SyncResult:
    """Outcome of a finished sync run."""

    run_id: int
    sync_type: SyncType
    status: str
    message: str
    records_processed: int
    duration_seconds: float
    phases: dict[str, UpsertStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "sync_type": self.sync_type.value,
            "status": self.status,
            "message": self.message,
            "records_processed": self.records_processed,
            "duration_seconds": round(self.duration_seconds, 3),
            "phases": {
                name: {
                    "created": stats.created,
                    "updated": stats.updated,
                    "skipped": stats.skipped,
                    "errors": stats.errors,
                }
                for name, stats in self.phases.items()
            },
        }


def build_cards_query(set_code: str | None = None, language: str | None = None) -> str:
    """Scryfall search syntax for a cards sync."""
    terms = []
    if set_code:
        terms.append(f"set:{set_code.lower()}")
    if language:
        terms.append(f"lang:{language.lower()}")
    return " ".join(terms) or ALL_PAPER_CARDS_QUERY


def build_translation_query(name: str, language: str) -> str:
    """Exact-name search for one card's printings in a language."""
    escaped = name.replace('"', '\\"')
    return f'!"{escaped}" lang:{language.lower()}'


class SyncOrchestrator:
    """
    Runs catalog syncs and keeps the sync_runs ledger.

    Args:
        session_factory: Factory for ledger and write sessions
        client_factory: Callable returning a CatalogClient (async context manager)
        writer: CatalogWriter to use; built from session_factory if omitted
        stale_after: Age after which a RUNNING row counts as abandoned
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client_factory: Callable[[], CatalogClient] = CatalogClient,
        writer: CatalogWriter | None = None,
        *,
        stale_after: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
        excluded_set_types: frozenset[str] = EXCLUDED_SET_TYPES,
    ):
        self._session_factory = session_factory
        self._client_factory = client_factory
        self._writer = writer or CatalogWriter(session_factory)
        self._stale_after = stale_after or timedelta(minutes=settings.sync_stale_after_minutes)
        self._clock = clock
        self._excluded_set_types = excluded_set_types
        self._active: set[SyncType] = set()

    def is_running(self, sync_type: SyncType) -> bool:
        """Whether this process is currently running a sync of the type."""
        return sync_type in self._active

    async def trigger(self, request: SyncRequest) -> SyncResult:
        """
        Run one sync to completion.

        Raises:
            SyncInProgressError: A sync of the same type is already running
            CatalogClientError: The catalog failed; the run is recorded FAILED
        """
        sync_type = SyncType(request.sync_type)

        # Check-and-set with no await in between
        if sync_type in self._active:
            raise SyncInProgressError(sync_type.value)
        self._active.add(sync_type)

        try:
            run_id, started_at = await self._begin(sync_type)
            logger.info("Sync %d started: %s", run_id, request)

            try:
                phases = await self._execute(request)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.error("Sync %d (%s) failed: %s", run_id, sync_type.value, message)
                try:
                    await self._finish(run_id, FAILED, message, 0)
                except Exception:
                    # The sync error is the one the caller needs
                    logger.exception("Could not record failure of sync %d", run_id)
                raise

            processed = sum(stats.processed for stats in phases.values())
            duration = (self._clock() - started_at).total_seconds()
            message = "; ".join(f"{name}: {stats.summary()}" for name, stats in phases.items())
            message = f"{message} in {duration:.1f}s" if message else f"done in {duration:.1f}s"
            await self._finish(run_id, SUCCESS, message, processed)
            logger.info("Sync %d (%s) succeeded: %s", run_id, sync_type.value, message)

            return SyncResult(
                run_id=run_id,
                sync_type=sync_type,
                status=SUCCESS,
                message=message,
                records_processed=processed,
                duration_seconds=duration,
                phases=phases,
            )
        finally:
            self._active.discard(sync_type)

    # --- Ledger ---

    async def _begin(self, sync_type: SyncType) -> tuple[int, datetime]:
        now = self._clock()
        async with self._session_factory() as session:
            await sweep_stale_sync_runs(session, sync_type.value, now - self._stale_after)
            running = await get_running_sync_run(session, sync_type.value)
            if running is not None:
                await session.commit()
                raise SyncInProgressError(sync_type.value)

            run = await create_sync_run(session, sync_type.value, started_at=now)
            await session.commit()
            return run.id, now

    async def _finish(self, run_id: int, status: str, message: str, processed: int) -> None:
        async with self._session_factory() as session:
            await complete_sync_run(
                session,
                run_id,
                status,
                message,
                records_processed=processed,
                finished_at=self._clock(),
            )
            await session.commit()

    # --- Variants ---

    async def _execute(self, request: SyncRequest) -> dict[str, UpsertStats]:
        async with self._client_factory() as client:
            sync_type = SyncType(request.sync_type)
            if sync_type is SyncType.SETS:
                return {"sets": await self._sync_sets(client, request.force)}
            if sync_type is SyncType.CARDS:
                return {"cards": await self._sync_cards(client, request)}
            if sync_type is SyncType.FULL:
                sets = await self._sync_sets(client, request.force)
                cards = await self._sync_cards(client, request)
                return {"sets": sets, "cards": cards}
            if sync_type is SyncType.TRANSLATIONS:
                return {"translations": await self._sync_translations(client, request)}
            return {"extras": await self._sync_extras(client, request)}

    async def _sync_sets(self, client: CatalogClient, force: bool) -> UpsertStats:
        raw_sets = await client.fetch_sets()
        logger.info("Fetched %d sets", len(raw_sets))

        excluded = UpsertStats()
        records: list[SetRecord] = []
        for raw in raw_sets:
            if raw.get("set_type") in self._excluded_set_types:
                excluded.skipped += 1
                continue
            try:
                records.append(normalize_set(raw))
            except (KeyError, TypeError, ValueError):
                logger.exception("Malformed set record %r", raw.get("id"))
                excluded.errors += 1

        if excluded.skipped:
            logger.info("Skipping %d sets of excluded types", excluded.skipped)
        return excluded.merge(await self._writer.upsert_sets(records, force))

    async def _fetch_card_records(
        self, client: CatalogClient, url: str
    ) -> tuple[list[CardRecord], UpsertStats]:
        # Whole result set is fetched before any write
        raw_cards = await client.fetch_all(url)
        malformed = UpsertStats()
        records: list[CardRecord] = []
        for raw in raw_cards:
            try:
                records.append(normalize_card(raw))
            except (KeyError, TypeError, ValueError):
                logger.exception("Malformed card record %r", raw.get("id"))
                malformed.errors += 1
        return records, malformed

    async def _sync_cards(self, client: CatalogClient, request: SyncRequest) -> UpsertStats:
        query = build_cards_query(request.set_code, request.language)
        records, malformed = await self._fetch_card_records(client, client.search_url(query))
        logger.info("Fetched %d cards for %r", len(records), query)
        return malformed.merge(await self._writer.upsert_cards(records, request.force))

    async def _sync_translations(self, client: CatalogClient, request: SyncRequest) -> UpsertStats:
        """
        Fill localized fields of English cards from their localized printings.

        Only fields the localized printing carries are written. Cards with no
        printing in the language, or whose printing adds nothing new, count as
        skipped.
        """
        language = request.language or settings.translation_language
        async with self._session_factory() as session:
            cards = await find_cards_missing_translation(session, request.set_code)
            pending = [
                (
                    card.id,
                    card.name,
                    (card.name_localized, card.type_line_localized, card.oracle_text_localized),
                )
                for card in cards
            ]
        logger.info("Found %d cards missing '%s' translations", len(pending), language)

        stats = UpsertStats()
        for card_id, name, current in pending:
            url = client.search_url(build_translation_query(name, language), unique="prints")
            page = await client.fetch_page(url)
            if not isinstance(page, dict) or not page.get("data"):
                stats.skipped += 1
                continue

            localized = page["data"][0]
            fetched = [
                localized.get(key) or None
                for key in ("printed_name", "printed_type_line", "printed_text")
            ]
            # Keep stored values the printing does not change
            new_name, new_type_line, new_text = (
                value if value != stored else None for value, stored in zip(fetched, current)
            )
            async with self._session_factory() as session:
                written = await update_card_translation(
                    session, card_id, name=new_name, type_line=new_type_line, oracle_text=new_text
                )
                await session.commit()
            if written:
                stats.updated += 1
            else:
                stats.skipped += 1

            if stats.processed % 100 == 0:
                logger.info(
                    "Translations: %d/%d (%s)", stats.processed, len(pending), stats.summary()
                )

        return stats

    async def _sync_extras(self, client: CatalogClient, request: SyncRequest) -> UpsertStats:
        """
        Insert extra printings (promos, showcase frames, variations) not yet stored.

        Extras already stored count as skipped; they are refreshed by cards syncs.
        """
        async with self._session_factory() as session:
            sets = await list_sets(session, self._excluded_set_types, request.set_code)
            codes = [db_set.code for db_set in sets]
        if request.set_code and not codes:
            raise ValueError(f"Set {request.set_code} not found")

        stats = UpsertStats()
        for code in codes:
            url = client.search_url(
                f"set:{code.lower()}",
                unique="prints",
                include_extras=True,
                include_variations=True,
            )
            records, malformed = await self._fetch_card_records(client, url)
            extras = [record for record in records if compute_is_extra(record.provenance())]

            async with self._session_factory() as session:
                existing = await get_existing_scryfall_ids(
                    session, [record.scryfall_id for record in extras]
                )
            new_extras = [record for record in extras if record.scryfall_id not in existing]

            set_stats = malformed.merge(await self._writer.upsert_cards(new_extras))
            set_stats.skipped += len(extras) - len(new_extras)
            logger.info("Extras for %s: %d scanned, %s", code, len(records), set_stats.summary())
            stats = stats.merge(set_stats)

        return stats


@lru_cache
def get_orchestrator() -> SyncOrchestrator:
    """Process-wide orchestrator; its in-process flags only work if shared."""
    return SyncOrchestrator(async_session_factory)
