"""Tests for the catalog upsert writer."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from magicodex.models.db import CardDB, SetDB
from magicodex.services.catalog_writer import CatalogWriter
from magicodex.services.extras import compute_is_extra


@pytest.fixture
def writer(session_factory, fake_sleep) -> CatalogWriter:
    return CatalogWriter(session_factory, sleep=fake_sleep)


async def count(session: AsyncSession, model) -> int:
    return int(await session.scalar(select(func.count()).select_from(model)) or 0)


class TestUpsertSets:
    async def test_creates_sets(self, writer: CatalogWriter, session, set_record) -> None:
        stats = await writer.upsert_sets([set_record("DMU"), set_record("bro")])

        assert stats.created == 2
        codes = (await session.execute(select(SetDB.code).order_by(SetDB.code))).scalars().all()
        assert codes == ["BRO", "DMU"]

    async def test_existing_set_skipped_without_force(
        self, writer: CatalogWriter, session, set_record
    ) -> None:
        await writer.upsert_sets([set_record("DMU")])

        stats = await writer.upsert_sets([set_record("DMU", name="Renamed")])

        assert stats.skipped == 1
        db_set = await session.scalar(select(SetDB))
        assert db_set.name == "Set DMU"

    async def test_force_updates_existing_set(
        self, writer: CatalogWriter, session, set_record
    ) -> None:
        await writer.upsert_sets([set_record("DMU")])

        stats = await writer.upsert_sets([set_record("DMU", name="Renamed")], force=True)

        assert stats.updated == 1
        db_set = await session.scalar(select(SetDB))
        assert db_set.name == "Renamed"

    async def test_force_update_keeps_localized_name(
        self, writer: CatalogWriter, session, set_record, add_set
    ) -> None:
        """The /sets listing has no localized names; a stored one survives."""
        await add_set("DMU", name_localized="Dominaria Unie")

        await writer.upsert_sets([set_record("DMU", name="Dominaria United")], force=True)

        db_set = await session.scalar(select(SetDB))
        assert (db_set.name, db_set.name_localized) == ("Dominaria United", "Dominaria Unie")

    async def test_keyed_by_scryfall_id_not_code(
        self, writer: CatalogWriter, session, set_record
    ) -> None:
        """A code reassigned upstream updates the same row."""
        await writer.upsert_sets([set_record("OLD", scryfall_id="set-stable")])

        await writer.upsert_sets([set_record("NEW", scryfall_id="set-stable")], force=True)

        assert await count(session, SetDB) == 1
        db_set = await session.scalar(select(SetDB))
        assert db_set.code == "NEW"

    async def test_batches_larger_than_batch_size(
        self, session_factory, session, set_record, fake_sleep
    ) -> None:
        writer = CatalogWriter(session_factory, set_batch_size=3, concurrency=2, sleep=fake_sleep)

        stats = await writer.upsert_sets([set_record(f"S{i:02d}") for i in range(7)])

        assert stats.created == 7
        assert await count(session, SetDB) == 7


class TestUpsertCards:
    async def test_creates_cards_and_classifies_extras(
        self, writer: CatalogWriter, session, set_record, card_record
    ) -> None:
        await writer.upsert_sets([set_record("DMU")])
        records = [
            card_record("c1", "Llanowar Elves"),
            card_record("c2", "Shivan Dragon", promo=True),
            card_record("c3", "Forest", full_art=True),
        ]

        stats = await writer.upsert_cards(records)

        assert stats.created == 3
        cards = (await session.execute(select(CardDB).order_by(CardDB.scryfall_id))).scalars()
        flags = {card.scryfall_id: card.is_extra for card in cards}
        assert flags == {"c1": False, "c2": True, "c3": False}

    async def test_missing_set_skips_card(
        self, writer: CatalogWriter, session, set_record, card_record
    ) -> None:
        """A card whose set is not stored is skipped, the rest are written."""
        await writer.upsert_sets([set_record("DMU")])
        records = [
            card_record("c1", "Llanowar Elves"),
            card_record("c2", "Orphan", set_code="XXX"),
        ]

        stats = await writer.upsert_cards(records)

        assert stats.created == 1
        assert stats.skipped == 1
        assert stats.errors == 0
        assert await count(session, CardDB) == 1

    async def test_set_resolved_by_code_when_id_unknown(
        self, writer: CatalogWriter, session, set_record, card_record
    ) -> None:
        await writer.upsert_sets([set_record("DMU")])

        stats = await writer.upsert_cards([card_record("c1", set_scryfall_id=None)])

        assert stats.created == 1

    async def test_idempotent(
        self, writer: CatalogWriter, session, set_record, card_record
    ) -> None:
        """Writing the same batch twice leaves identical rows."""
        await writer.upsert_sets([set_record("DMU")])
        records = [card_record(f"c{i}", f"Card {i}", price_eur=float(i)) for i in range(12)]

        await writer.upsert_cards(records, force=True)
        first = {
            c.scryfall_id: (c.name, c.price_eur, c.is_extra)
            for c in (await session.execute(select(CardDB))).scalars()
        }
        stats = await writer.upsert_cards(records, force=True)
        session.expire_all()
        second = {
            c.scryfall_id: (c.name, c.price_eur, c.is_extra)
            for c in (await session.execute(select(CardDB))).scalars()
        }

        assert stats.updated == 12
        assert first == second
        assert await count(session, CardDB) == 12

    async def test_force_recomputes_is_extra(
        self, writer: CatalogWriter, session, set_record, card_record
    ) -> None:
        """Provenance changes upstream flip the stored flag."""
        await writer.upsert_sets([set_record("DMU")])
        await writer.upsert_cards([card_record("c1")])

        await writer.upsert_cards([card_record("c1", frame_effects=["showcase"])], force=True)

        card = await session.scalar(select(CardDB))
        assert card.is_extra is True
        assert card.is_extra == compute_is_extra(card.provenance())

    async def test_existing_card_skipped_without_force(
        self, writer: CatalogWriter, set_record, card_record
    ) -> None:
        await writer.upsert_sets([set_record("DMU")])
        await writer.upsert_cards([card_record("c1")])

        stats = await writer.upsert_cards([card_record("c1")])

        assert stats.skipped == 1

    async def test_duplicate_records_in_one_batch(
        self, writer: CatalogWriter, session, set_record, card_record
    ) -> None:
        """The same printing twice in a batch is written once."""
        await writer.upsert_sets([set_record("DMU")])

        stats = await writer.upsert_cards([card_record("c1"), card_record("c1", rarity="rare")])

        assert stats.processed == 1
        card = await session.scalar(select(CardDB))
        assert card.rarity == "rare"

    async def test_pauses_between_chunks(
        self, session_factory, set_record, card_record, fake_sleep
    ) -> None:
        writer = CatalogWriter(
            session_factory, card_batch_size=4, concurrency=2, chunk_pause=0.05, sleep=fake_sleep
        )
        await writer.upsert_sets([set_record("DMU")])

        await writer.upsert_cards([card_record(f"c{i}", f"Card {i}") for i in range(8)])

        # 4 chunks, no pause after the last one
        assert fake_sleep.calls == [0.05, 0.05, 0.05]

    async def test_record_failure_counted_as_error(
        self, writer: CatalogWriter, session, set_record, card_record
    ) -> None:
        """A write that fails is counted and does not abort the batch."""
        await writer.upsert_sets([set_record("DMU")])
        records = [
            card_record("c1", "Good Card"),
            card_record("c2", "Bad Card", collector_number=None),
        ]

        stats = await writer.upsert_cards(records)

        assert stats.created == 1
        assert stats.errors == 1
