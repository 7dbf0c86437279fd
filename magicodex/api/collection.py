"""
Collection API endpoints.

Stores which printings a user owns and searches within them.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from magicodex.api.cards import CardResponse
from magicodex.db import get_session, update_collection_cards
from magicodex.services.card_search import (
    CardSearchEngine,
    get_search_engine,
    parse_search_params,
)
from magicodex.services.collection_search import search_collection

router = APIRouter(prefix="/collection", tags=["collection"])


class CollectionUpdateRequest(BaseModel):
    """Request model for replacing a collection."""

    cards: dict[int, int] = Field(
        ...,
        description="Map of card ids to quantities",
        examples=[{"1": 4, "2": 1}],
    )


class CollectionResponse(BaseModel):
    """Response model for collection data."""

    user_id: str
    cards: dict[int, int] = Field(default_factory=dict)
    total_cards: int = 0
    unique_cards: int = 0


class OwnedCardResponse(BaseModel):
    quantity: int
    card: CardResponse


class CollectionSearchResponse(BaseModel):
    """Owned cards matching a search, in search order."""

    user_id: str
    query: str
    total: int
    cards: list[OwnedCardResponse] = Field(default_factory=list)


@router.put("/{user_id}", response_model=CollectionResponse)
async def update_user_collection(
    user_id: str,
    request: CollectionUpdateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """
    Update a user's card collection.

    Replaces the entire collection with the provided cards.
    Creates a new collection if one doesn't exist.
    """
    for card_id, qty in request.cards.items():
        if qty <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Quantity for card {card_id} must be positive",
            )

    try:
        db_collection = await update_collection_cards(session, user_id, request.cards)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    cards = {ownership.card_id: ownership.quantity for ownership in db_collection.cards}
    return CollectionResponse(
        user_id=user_id,
        cards=cards,
        total_cards=sum(cards.values()),
        unique_cards=len(cards),
    )


@router.get("/{user_id}/cards", response_model=CollectionSearchResponse)
async def search_user_collection(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    engine: Annotated[CardSearchEngine, Depends(get_search_engine)],
    q: str = "",
    limit: str | None = None,
    colors: str | None = None,
    rarity: str | None = None,
    type_contains: Annotated[str | None, Query(alias="typeContains")] = None,
    price_min: Annotated[str | None, Query(alias="priceMin")] = None,
    price_max: Annotated[str | None, Query(alias="priceMax")] = None,
    extras: str | None = None,
) -> CollectionSearchResponse:
    """
    Search a user's owned cards.

    Without q, lists every owned card (newest set first) that passes the
    filters. Users without a collection get an empty result.
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
    owned = await search_collection(session, user_id, request, engine=engine)

    return CollectionSearchResponse(
        user_id=user_id,
        query=request.query,
        total=len(owned),
        cards=[
            OwnedCardResponse(quantity=item.quantity, card=CardResponse.model_validate(item.card))
            for item in owned
        ],
    )
