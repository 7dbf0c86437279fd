"""
Catalog upsert writer.

Writes normalized sets and cards idempotently, keyed by their Scryfall ids.
Each record is written in its own session, so one bad record is logged and
counted without aborting the rest of its batch.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from magicodex.config import (
    CARD_BATCH_SIZE,
    CARD_CHUNK_PAUSE,
    SET_BATCH_SIZE,
    WRITE_CONCURRENCY,
)
from magicodex.db.operations import (
    apply_card_record,
    apply_set_record,
    get_card_by_scryfall_id,
    get_set_by_code,
    get_set_by_scryfall_id,
)
from magicodex.models.catalog import CardRecord, SetRecord, UpsertAction, UpsertStats
from magicodex.models.db import CardDB, SetDB
from magicodex.models.failure import MissingSetReference

logger = logging.getLogger(__name__)

R = TypeVar("R", SetRecord, CardRecord)


def _chunks(items: Sequence[R], size: int) -> list[Sequence[R]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _dedupe(records: Sequence[R]) -> list[R]:
    """Keep the last record seen for each scryfall_id, in first-seen order."""
    by_id: dict[str, R] = {}
    for record in records:
        by_id[record.scryfall_id] = record
    return list(by_id.values())


class CatalogWriter:
    """
    Idempotent writer for catalog records.

    Args:
        session_factory: Factory producing one AsyncSession per record write
        concurrency: Writes in flight at once; bounded by the connection pool
        chunk_pause: Pause between card write chunks
        sleep: Injectable sleep, replaced by a no-op in tests
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        set_batch_size: int = SET_BATCH_SIZE,
        card_batch_size: int = CARD_BATCH_SIZE,
        concurrency: int = WRITE_CONCURRENCY,
        chunk_pause: float = CARD_CHUNK_PAUSE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._session_factory = session_factory
        self.set_batch_size = set_batch_size
        self.card_batch_size = card_batch_size
        self.concurrency = concurrency
        self.chunk_pause = chunk_pause
        self._sleep = sleep

    # --- Sets ---

    async def upsert_sets(self, records: Sequence[SetRecord], force: bool = False) -> UpsertStats:
        """
        Create or update sets keyed by scryfall_id.

        Args:
            records: Normalized sets
            force: Rewrite sets that already exist instead of skipping them

        Returns:
            Counts of created, updated, skipped and errored records
        """
        stats = UpsertStats()
        batches = _chunks(_dedupe(records), self.set_batch_size)

        for number, batch in enumerate(batches, start=1):
            for chunk in _chunks(batch, self.concurrency):
                actions = await asyncio.gather(*(self._upsert_set(r, force) for r in chunk))
                for action in actions:
                    stats.record(action)
            logger.info("Sets batch %d/%d: %s", number, len(batches), stats.summary())

        return stats

    async def _upsert_set(self, record: SetRecord, force: bool) -> UpsertAction:
        try:
            async with self._session_factory() as session:
                db_set = await get_set_by_scryfall_id(session, record.scryfall_id)
                if db_set is not None and not force:
                    return UpsertAction.SKIPPED

                action = UpsertAction.UPDATED
                if db_set is None:
                    db_set = SetDB()
                    session.add(db_set)
                    action = UpsertAction.CREATED

                apply_set_record(db_set, record)
                await session.commit()
                return action
        except Exception:
            logger.exception("Failed to upsert set %s (%s)", record.code, record.scryfall_id)
            return UpsertAction.ERROR

    # --- Cards ---

    async def upsert_cards(self, records: Sequence[CardRecord], force: bool = False) -> UpsertStats:
        """
        Create or update cards keyed by scryfall_id.

        The owning set must already be stored. Cards whose set is missing are
        logged and counted as skipped. is_extra is recomputed on every write.

        Args:
            records: Normalized cards
            force: Rewrite cards that already exist instead of skipping them

        Returns:
            Counts of created, updated, skipped and errored records
        """
        stats = UpsertStats()
        batches = _chunks(_dedupe(records), self.card_batch_size)

        for number, batch in enumerate(batches, start=1):
            chunks = _chunks(batch, self.concurrency)
            for index, chunk in enumerate(chunks):
                actions = await asyncio.gather(*(self._upsert_card(r, force) for r in chunk))
                for action in actions:
                    stats.record(action)

                is_last = number == len(batches) and index == len(chunks) - 1
                if not is_last and self.chunk_pause > 0:
                    await self._sleep(self.chunk_pause)

            logger.info("Cards batch %d/%d: %s", number, len(batches), stats.summary())

        return stats

    async def _resolve_set_id(self, session: AsyncSession, record: CardRecord) -> int:
        """
        Raises:
            MissingSetReference: If neither the set's Scryfall id nor its code is stored
        """
        db_set = None
        if record.set_scryfall_id:
            db_set = await get_set_by_scryfall_id(session, record.set_scryfall_id)
        if db_set is None:
            db_set = await get_set_by_code(session, record.set_code)
        if db_set is None:
            raise MissingSetReference(record.name, record.set_code)
        return db_set.id

    async def _upsert_card(self, record: CardRecord, force: bool) -> UpsertAction:
        try:
            async with self._session_factory() as session:
                card = await get_card_by_scryfall_id(session, record.scryfall_id)
                if card is not None and not force:
                    return UpsertAction.SKIPPED

                set_id = await self._resolve_set_id(session, record)

                action = UpsertAction.UPDATED
                if card is None:
                    card = CardDB()
                    session.add(card)
                    action = UpsertAction.CREATED

                apply_card_record(card, record, set_id)
                await session.commit()
                return action
        except MissingSetReference as e:
            logger.warning("%s", e.message)
            return UpsertAction.SKIPPED
        except Exception:
            logger.exception("Failed to upsert card %s (%s)", record.name, record.scryfall_id)
            return UpsertAction.ERROR
