"""
Database CRUD operations.

Provides async functions for reading and writing catalog sets and cards, the
sync-run ledger, and user collections.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, delete, func, or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from magicodex.db.database import SQLITE_SEARCH_INDEX_REBUILD
from magicodex.models.catalog import CardRecord, SetRecord
from magicodex.models.db import (
    CardDB,
    CardOwnershipDB,
    SetDB,
    SyncRunDB,
    UserCollectionDB,
)
from magicodex.parsers.scryfall import extract_eur_prices
from magicodex.services.extras import compute_is_extra

logger = logging.getLogger(__name__)

RUNNING = "RUNNING"
SUCCESS = "SUCCESS"
FAILED = "FAILED"
TERMINAL_STATUSES = (SUCCESS, FAILED)

STALE_SYNC_MESSAGE = "Sync interrupted - timeout"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Set Operations ---


async def get_set_by_scryfall_id(session: AsyncSession, scryfall_id: str) -> SetDB | None:
    result = await session.execute(select(SetDB).where(SetDB.scryfall_id == scryfall_id))
    return result.scalar_one_or_none()


async def get_set_by_code(session: AsyncSession, code: str) -> SetDB | None:
    """Get a set by its short code (case-insensitive)."""
    result = await session.execute(select(SetDB).where(SetDB.code == code.upper()))
    return result.scalar_one_or_none()


async def list_sets(
    session: AsyncSession,
    exclude_types: frozenset[str] = frozenset(),
    code: str | None = None,
) -> list[SetDB]:
    """List local sets, newest first, optionally restricted to one code."""
    stmt = select(SetDB).order_by(SetDB.released_at.desc().nulls_last(), SetDB.code)
    if exclude_types:
        stmt = stmt.where(SetDB.set_type.not_in(exclude_types))
    if code:
        stmt = stmt.where(SetDB.code == code.upper())
    result = await session.execute(stmt)
    return list(result.scalars().all())


def apply_set_record(db_set: SetDB, record: SetRecord) -> SetDB:
    """Copy every synced field of a SetRecord onto an ORM row."""
    db_set.scryfall_id = record.scryfall_id
    db_set.code = record.code.upper()
    db_set.name = record.name
    db_set.released_at = record.released_at
    db_set.card_count = record.card_count
    db_set.set_type = record.set_type
    db_set.icon_svg_uri = record.icon_svg_uri
    return db_set


# --- Card Operations ---


async def get_card(session: AsyncSession, card_id: int) -> CardDB | None:
    """Get a card with its set loaded."""
    result = await session.execute(
        select(CardDB).where(CardDB.id == card_id).options(selectinload(CardDB.set))
    )
    return result.scalar_one_or_none()


async def get_card_by_scryfall_id(session: AsyncSession, scryfall_id: str) -> CardDB | None:
    result = await session.execute(select(CardDB).where(CardDB.scryfall_id == scryfall_id))
    return result.scalar_one_or_none()


async def get_existing_scryfall_ids(session: AsyncSession, scryfall_ids: Sequence[str]) -> set[str]:
    """Return the subset of scryfall_ids already stored."""
    if not scryfall_ids:
        return set()
    result = await session.execute(
        select(CardDB.scryfall_id).where(CardDB.scryfall_id.in_(list(scryfall_ids)))
    )
    return set(result.scalars().all())


async def get_cards_by_ids(session: AsyncSession, card_ids: Sequence[int]) -> list[CardDB]:
    """
    Fetch cards by id, returned in the order of card_ids.

    Search returns ordered ids; the batch fetch itself is unordered, so the
    order is re-applied here. Unknown ids are dropped.
    """
    if not card_ids:
        return []
    result = await session.execute(
        select(CardDB).where(CardDB.id.in_(list(card_ids))).options(selectinload(CardDB.set))
    )
    by_id = {card.id: card for card in result.scalars().all()}
    return [by_id[card_id] for card_id in card_ids if card_id in by_id]


def apply_card_record(card: CardDB, record: CardRecord, set_id: int) -> CardDB:
    """
    Copy every synced field of a CardRecord onto an ORM row.

    is_extra is always recomputed from the record's provenance flags.
    Localized fields are only overwritten when the record carries them, so an
    English re-sync keeps translations filled by the backfill.
    """
    card.scryfall_id = record.scryfall_id
    card.oracle_id = record.oracle_id
    card.name = record.name
    card.mana_cost = record.mana_cost
    card.cmc = record.cmc
    card.type_line = record.type_line
    card.oracle_text = record.oracle_text
    card.power = record.power
    card.toughness = record.toughness
    card.loyalty = record.loyalty
    card.colors = list(record.colors)
    card.color_identity = list(record.color_identity)
    card.rarity = record.rarity
    card.collector_number = record.collector_number
    card.lang = record.lang
    card.image_uris = dict(record.image_uris)
    card.prices = dict(record.prices)
    card.price_eur = record.price_eur
    card.price_eur_foil = record.price_eur_foil
    card.legalities = dict(record.legalities)
    card.booster = record.booster
    card.promo = record.promo
    card.variation = record.variation
    card.full_art = record.full_art
    card.frame_effects = list(record.frame_effects)
    card.promo_types = list(record.promo_types)
    card.border_color = record.border_color
    card.is_extra = compute_is_extra(record.provenance())
    card.set_id = set_id

    if record.name_localized is not None:
        card.name_localized = record.name_localized
    if record.type_line_localized is not None:
        card.type_line_localized = record.type_line_localized
    if record.oracle_text_localized is not None:
        card.oracle_text_localized = record.oracle_text_localized
    return card


async def find_cards_missing_translation(
    session: AsyncSession, set_code: str | None = None
) -> list[CardDB]:
    """
    English cards with a missing localized name, or missing localized rules
    text when the card has rules text at all.

    Raises:
        ValueError: If set_code is given but the set is not stored
    """
    stmt = (
        select(CardDB)
        .where(CardDB.lang == "en")
        .where(
            or_(
                CardDB.name_localized.is_(None),
                CardDB.name_localized == "",
                and_(
                    func.coalesce(CardDB.oracle_text, "") != "",
                    func.coalesce(CardDB.oracle_text_localized, "") == "",
                ),
            )
        )
        .order_by(CardDB.id)
    )
    if set_code:
        db_set = await get_set_by_code(session, set_code)
        if db_set is None:
            raise ValueError(f"Set {set_code} not found")
        stmt = stmt.where(CardDB.set_id == db_set.id)

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_card_translation(
    session: AsyncSession,
    card_id: int,
    name: str | None = None,
    type_line: str | None = None,
    oracle_text: str | None = None,
) -> bool:
    """
    Write the localized fields that are given; None leaves a field untouched.

    Returns whether anything was written.
    """
    values = {
        column: value
        for column, value in (
            ("name_localized", name),
            ("type_line_localized", type_line),
            ("oracle_text_localized", oracle_text),
        )
        if value is not None
    }
    if not values:
        return False

    await session.execute(update(CardDB).where(CardDB.id == card_id).values(**values))
    return True


# --- Catalog Maintenance ---


async def recalculate_is_extra(session: AsyncSession, batch_size: int = 1000) -> int:
    """
    Re-derive is_extra for every stored card from its provenance flags.

    Returns the number of cards whose flag changed.
    """
    changed = 0
    last_id = 0
    while True:
        result = await session.execute(
            select(CardDB).where(CardDB.id > last_id).order_by(CardDB.id).limit(batch_size)
        )
        cards = list(result.scalars().all())
        if not cards:
            break

        for card in cards:
            is_extra = compute_is_extra(card.provenance())
            if card.is_extra != is_extra:
                card.is_extra = is_extra
                changed += 1
        await session.flush()
        last_id = cards[-1].id

    logger.info("Recalculated is_extra: %d cards changed", changed)
    return changed


async def backfill_prices(session: AsyncSession, batch_size: int = 1000) -> int:
    """
    Re-extract price_eur and price_eur_foil from each card's stored prices.

    Returns the number of cards updated.
    """
    updated = 0
    last_id = 0
    while True:
        result = await session.execute(
            select(CardDB).where(CardDB.id > last_id).order_by(CardDB.id).limit(batch_size)
        )
        cards = list(result.scalars().all())
        if not cards:
            break

        for card in cards:
            eur, eur_foil = extract_eur_prices(card.prices)
            if (card.price_eur, card.price_eur_foil) != (eur, eur_foil):
                card.price_eur = eur
                card.price_eur_foil = eur_foil
                updated += 1
        await session.flush()
        last_id = cards[-1].id

    logger.info("Backfilled EUR prices on %d cards", updated)
    return updated


async def rebuild_search_index(session: AsyncSession) -> bool:
    """
    Repopulate the SQLite full-text index from the cards table.

    Returns False on engines without a separate index table.
    """
    if session.get_bind().dialect.name != "sqlite":
        return False
    for statement in SQLITE_SEARCH_INDEX_REBUILD:
        await session.execute(text(statement))
    return True


async def get_catalog_counts(session: AsyncSession) -> dict[str, int]:
    sets = await session.scalar(select(func.count()).select_from(SetDB))
    cards = await session.scalar(select(func.count()).select_from(CardDB))
    extras = await session.scalar(
        select(func.count()).select_from(CardDB).where(CardDB.is_extra.is_(True))
    )
    return {"sets": int(sets or 0), "cards": int(cards or 0), "extras": int(extras or 0)}


async def reset_catalog(session: AsyncSession) -> dict[str, int]:
    """
    Delete every ownership record, card and set.

    WARNING: Destroys all catalog data. The sync ledger is kept.

    Returns counts of deleted rows.
    """
    ownership = await session.execute(delete(CardOwnershipDB))
    cards = await session.execute(delete(CardDB))
    sets = await session.execute(delete(SetDB))
    # rowcount is available on DELETE results; type stubs incomplete for async
    deleted = {
        "ownership": int(ownership.rowcount),  # type: ignore[attr-defined]
        "cards": int(cards.rowcount),  # type: ignore[attr-defined]
        "sets": int(sets.rowcount),  # type: ignore[attr-defined]
    }
    logger.warning("Catalog reset: %s", deleted)
    return deleted


# --- Sync Run Ledger ---


async def create_sync_run(
    session: AsyncSession, sync_type: str, started_at: datetime | None = None
) -> SyncRunDB:
    """Create a RUNNING ledger record."""
    run = SyncRunDB(
        sync_type=sync_type,
        status=RUNNING,
        started_at=started_at or utcnow(),
        records_processed=0,
    )
    session.add(run)
    await session.flush()
    return run


async def complete_sync_run(
    session: AsyncSession,
    run_id: int,
    status: str,
    message: str,
    records_processed: int = 0,
    finished_at: datetime | None = None,
) -> SyncRunDB | None:
    """
    Move a ledger record to a terminal status.

    Returns None if the record no longer exists.
    """
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"Invalid terminal status: {status}")

    run = await session.get(SyncRunDB, run_id)
    if run is None:
        return None
    run.status = status
    run.message = message
    run.records_processed = records_processed
    run.finished_at = finished_at or utcnow()
    await session.flush()
    return run


async def sweep_stale_sync_runs(session: AsyncSession, sync_type: str, cutoff: datetime) -> int:
    """
    Mark RUNNING records of a type started before cutoff as FAILED.

    Returns the number of records swept.
    """
    result = await session.execute(
        update(SyncRunDB)
        .where(
            SyncRunDB.sync_type == sync_type,
            SyncRunDB.status == RUNNING,
            SyncRunDB.started_at < cutoff,
        )
        .values(status=FAILED, message=STALE_SYNC_MESSAGE, finished_at=utcnow())
    )
    swept = int(result.rowcount)  # type: ignore[attr-defined]
    if swept:
        logger.warning("Swept %d stale '%s' sync runs", swept, sync_type)
    return swept


async def get_running_sync_run(session: AsyncSession, sync_type: str) -> SyncRunDB | None:
    """The most recent RUNNING record of a type, if any."""
    result = await session.execute(
        select(SyncRunDB)
        .where(SyncRunDB.sync_type == sync_type, SyncRunDB.status == RUNNING)
        .order_by(SyncRunDB.started_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_sync_runs(
    session: AsyncSession, limit: int = 20, offset: int = 0
) -> tuple[list[SyncRunDB], int]:
    """Ledger records newest first, with the total count."""
    result = await session.execute(
        select(SyncRunDB)
        .order_by(SyncRunDB.started_at.desc(), SyncRunDB.id.desc())
        .offset(offset)
        .limit(limit)
    )
    total = await session.scalar(select(func.count()).select_from(SyncRunDB))
    return list(result.scalars().all()), int(total or 0)


async def get_last_successful_sync(session: AsyncSession) -> SyncRunDB | None:
    result = await session.execute(
        select(SyncRunDB)
        .where(SyncRunDB.status == SUCCESS)
        .order_by(SyncRunDB.started_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def cleanup_sync_runs(
    session: AsyncSession, days_to_keep: int, now: datetime | None = None
) -> int:
    """
    Delete terminal ledger records started more than days_to_keep days ago.

    RUNNING records are never deleted. Returns the number of deleted records.
    """
    if days_to_keep < 0:
        raise ValueError("days_to_keep must be >= 0")
    cutoff = (now or utcnow()) - timedelta(days=days_to_keep)
    result = await session.execute(
        delete(SyncRunDB).where(
            SyncRunDB.started_at < cutoff,
            SyncRunDB.status.in_(TERMINAL_STATUSES),
        )
    )
    return int(result.rowcount)  # type: ignore[attr-defined]


# --- Collection Operations ---


async def get_collection(session: AsyncSession, user_id: str) -> UserCollectionDB | None:
    """
    Get a user's collection by user_id.

    Returns None if no collection exists for this user.
    """
    result = await session.execute(
        select(UserCollectionDB)
        .where(UserCollectionDB.user_id == user_id)
        .options(selectinload(UserCollectionDB.cards))
    )
    return result.scalar_one_or_none()


async def get_or_create_collection(
    session: AsyncSession, user_id: str
) -> tuple[UserCollectionDB, bool]:
    """
    Get existing collection or create new one.

    Returns:
        Tuple of (collection, created) where created is True if new.
    """
    collection = await get_collection(session, user_id)
    if collection:
        return collection, False

    collection = UserCollectionDB(user_id=user_id)
    session.add(collection)
    await session.flush()
    return collection, True


async def update_collection_cards(
    session: AsyncSession,
    user_id: str,
    cards: dict[int, int],
) -> UserCollectionDB:
    """
    Replace a user's collection with new ownership data.

    Args:
        cards: Map of card id to quantity; non-positive quantities are dropped

    Raises:
        ValueError: If a card id does not exist
    """
    wanted = {card_id: qty for card_id, qty in cards.items() if qty > 0}
    if wanted:
        result = await session.execute(select(CardDB.id).where(CardDB.id.in_(list(wanted))))
        known = set(result.scalars().all())
        unknown = sorted(set(wanted) - known)
        if unknown:
            raise ValueError(f"Unknown card ids: {unknown[:10]}")

    await get_or_create_collection(session, user_id)

    # Always re-fetch with eager loading to avoid async lazy load issues
    loaded = await get_collection(session, user_id)
    if not loaded:
        msg = f"Collection for user {user_id} not found after creation"
        raise RuntimeError(msg)
    collection = loaded

    await session.execute(
        delete(CardOwnershipDB).where(CardOwnershipDB.collection_id == collection.id)
    )
    collection.cards.clear()

    for card_id, quantity in wanted.items():
        collection.cards.append(CardOwnershipDB(card_id=card_id, quantity=quantity))

    await session.flush()
    return collection


async def get_owned_cards(session: AsyncSession, user_id: str) -> list[tuple[CardDB, int]]:
    """
    Owned printings with quantities, newest set first then collector number.

    Returns an empty list for users without a collection.
    """
    result = await session.execute(
        select(CardDB, CardOwnershipDB.quantity)
        .join(CardOwnershipDB, CardOwnershipDB.card_id == CardDB.id)
        .join(UserCollectionDB, UserCollectionDB.id == CardOwnershipDB.collection_id)
        .join(SetDB, SetDB.id == CardDB.set_id)
        .where(UserCollectionDB.user_id == user_id, CardOwnershipDB.quantity > 0)
        .options(selectinload(CardDB.set))
        .order_by(SetDB.released_at.desc().nulls_last(), CardDB.collector_number, CardDB.id)
    )
    return [(card, int(quantity)) for card, quantity in result.all()]


async def get_owned_quantities(session: AsyncSession, user_id: str) -> dict[int, int]:
    """Map of card id to owned quantity for a user."""
    result = await session.execute(
        select(CardOwnershipDB.card_id, CardOwnershipDB.quantity)
        .join(UserCollectionDB, UserCollectionDB.id == CardOwnershipDB.collection_id)
        .where(UserCollectionDB.user_id == user_id, CardOwnershipDB.quantity > 0)
    )
    return {int(card_id): int(quantity) for card_id, quantity in result.all()}
