"""
Collection search service.

Filters a user's owned printings with the same query and filters as the
catalog search. With a text query the catalog search result is intersected
with the owned cards, keeping the search order; without one the owned cards
are listed newest set first.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from magicodex.db.operations import get_cards_by_ids, get_owned_cards, get_owned_quantities
from magicodex.models.catalog import CandidateRow
from magicodex.models.db import CardDB
from magicodex.services.card_search import (
    CardSearchEngine,
    SearchRequest,
    get_search_engine,
    passes_filters,
)

logger = logging.getLogger(__name__)

# Owned cards are a small slice of the catalog, so search deeper before intersecting
MIN_CANDIDATE_POOL = 500
CANDIDATE_POOL_FACTOR = 5


@dataclass
class OwnedCard:
    """An owned printing and how many copies the user has."""

    card: CardDB
    quantity: int


def candidate_from_card(card: CardDB) -> CandidateRow:
    return CandidateRow(
        id=card.id,
        rarity=card.rarity,
        type_line=card.type_line,
        type_line_localized=card.type_line_localized,
        price_eur=card.price_eur,
        is_extra=card.is_extra,
        color_identity=list(card.color_identity or []),
    )


async def search_collection(
    session: AsyncSession,
    user_id: str,
    request: SearchRequest,
    engine: CardSearchEngine | None = None,
) -> list[OwnedCard]:
    """
    Search a user's collection.

    Args:
        session: Database session
        user_id: Owner of the collection
        request: Parsed query, limit and filters
        engine: Search engine; the process-wide one if omitted

    Returns:
        At most request.limit owned cards. Empty for unknown users and for
        queries shorter than two characters.
    """
    if not request.query:
        owned = await get_owned_cards(session, user_id)
        matches = [
            OwnedCard(card=card, quantity=quantity)
            for card, quantity in owned
            if passes_filters(candidate_from_card(card), request.filters)
        ]
        return matches[: request.limit]

    # Only plain ids are held across the search; its fallback may roll back the session
    quantities = await get_owned_quantities(session, user_id)
    if not quantities:
        return []

    engine = engine or get_search_engine()
    pool = max(request.limit * CANDIDATE_POOL_FACTOR, MIN_CANDIDATE_POOL)
    card_ids = await engine.search_card_ids(
        session,
        request.query,
        limit=pool,
        filters=request.filters,
        candidate_limit=pool,
    )

    owned_ids = [card_id for card_id in card_ids if card_id in quantities][: request.limit]
    logger.debug(
        "Collection search for %s: %d candidates, %d owned", user_id, len(card_ids), len(owned_ids)
    )
    cards = await get_cards_by_ids(session, owned_ids)
    return [OwnedCard(card=card, quantity=quantities[card.id]) for card in cards]
