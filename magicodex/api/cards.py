"""
Card catalog endpoints.

Search returns full card rows, hydrated from the ordered ids the search
engine produces.
"""

from datetime import date
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from magicodex.db import get_card, get_cards_by_ids, get_session
from magicodex.services.card_search import (
    CardSearchEngine,
    get_search_engine,
    parse_search_params,
)

router = APIRouter(prefix="/cards", tags=["cards"])

# Candidates fetched per returned card, leaving room for post-filter drops
SEARCH_CANDIDATE_FACTOR = 2


class SetSummary(BaseModel):
    """The set a card belongs to."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    name_localized: str | None = None
    released_at: date | None = None
    set_type: str = ""


class CardResponse(BaseModel):
    """A single card printing."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    scryfall_id: str
    oracle_id: str | None = None
    name: str
    name_localized: str | None = None
    mana_cost: str | None = None
    cmc: float = 0.0
    type_line: str = ""
    type_line_localized: str | None = None
    oracle_text: str | None = None
    oracle_text_localized: str | None = None
    power: str | None = None
    toughness: str | None = None
    loyalty: str | None = None
    colors: list[str] = Field(default_factory=list)
    color_identity: list[str] = Field(default_factory=list)
    rarity: str
    collector_number: str
    lang: str = "en"
    image_uris: dict[str, Any] = Field(default_factory=dict)
    prices: dict[str, Any] = Field(default_factory=dict)
    price_eur: float | None = None
    price_eur_foil: float | None = None
    legalities: dict[str, Any] = Field(default_factory=dict)
    is_extra: bool = False
    set: SetSummary | None = None


class CardSearchResponse(BaseModel):
    """Search results in relevance order."""

    query: str
    total: int
    cards: list[CardResponse] = Field(default_factory=list)


@router.get("/search", response_model=CardSearchResponse)
async def search_cards(
    session: Annotated[AsyncSession, Depends(get_session)],
    engine: Annotated[CardSearchEngine, Depends(get_search_engine)],
    q: Annotated[str, Query(description="Free text; at least two characters")] = "",
    limit: str | None = None,
    colors: Annotated[str | None, Query(description="Comma-separated, e.g. W,U")] = None,
    rarity: str | None = None,
    type_contains: Annotated[str | None, Query(alias="typeContains")] = None,
    price_min: Annotated[str | None, Query(alias="priceMin")] = None,
    price_max: Annotated[str | None, Query(alias="priceMax")] = None,
    extras: str | None = None,
) -> CardSearchResponse:
    """
    Search the card catalog.

    Queries shorter than two characters return no cards. Malformed numeric or
    boolean parameters are ignored.
    """
    request = parse_search_params(
        q,
        limit=limit,
        colors=colors,
        rarity=rarity,
        type_contains=type_contains,
        price_min=price_min,
        price_max=price_max,
        extras=extras,
    )

    card_ids = await engine.search_card_ids(
        session,
        request.query,
        limit=request.limit,
        filters=request.filters,
        candidate_limit=request.limit * SEARCH_CANDIDATE_FACTOR,
    )
    cards = await get_cards_by_ids(session, card_ids)

    return CardSearchResponse(
        query=request.query,
        total=len(cards),
        cards=[CardResponse.model_validate(card) for card in cards],
    )


@router.get("/{card_id}", response_model=CardResponse)
async def get_card_by_id(
    card_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardResponse:
    """Get one card printing with its set."""
    card = await get_card(session, card_id)
    if card is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Card {card_id} not found",
        )
    return CardResponse.model_validate(card)
