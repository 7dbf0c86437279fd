"""
Health check endpoints.

Provides liveness and readiness probes with database connectivity checks,
and a catalog freshness report.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from magicodex.db import get_catalog_counts, get_last_successful_sync, get_session

router = APIRouter(tags=["health"])

# A catalog not synced successfully for this long is reported stale
CATALOG_STALE_AFTER = timedelta(days=7)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str | None = None


class CatalogHealthResponse(BaseModel):
    """Catalog freshness report."""

    status: str
    sets: int
    cards: int
    extras: int
    last_sync_at: datetime | None = None
    last_sync_type: str | None = None
    stale: bool


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness probe.

    Returns healthy if the service is running.
    Does not check dependencies.
    """
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HealthResponse:
    """
    Readiness probe.

    Returns ready if the service can handle requests.
    Checks database connectivity. Returns 503 if database is unavailable.
    """
    try:
        await session.execute(text("SELECT 1"))
        return HealthResponse(status="ready", database="connected")
    except SQLAlchemyError:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="disconnected")


@router.get("/health/catalog", response_model=CatalogHealthResponse)
async def catalog_health(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CatalogHealthResponse:
    """
    Catalog freshness.

    Reports row counts and the last successful sync. The catalog is stale when
    it is empty or was last synced more than seven days ago.
    """
    counts = await get_catalog_counts(session)
    last_sync = await get_last_successful_sync(session)

    last_sync_at = None
    if last_sync is not None:
        last_sync_at = last_sync.started_at
        # SQLite returns naive datetimes; stored values are UTC
        if last_sync_at.tzinfo is None:
            last_sync_at = last_sync_at.replace(tzinfo=timezone.utc)

    stale = (
        counts["cards"] == 0
        or last_sync_at is None
        or datetime.now(timezone.utc) - last_sync_at > CATALOG_STALE_AFTER
    )

    return CatalogHealthResponse(
        status="stale" if stale else "fresh",
        sets=counts["sets"],
        cards=counts["cards"],
        extras=counts["extras"],
        last_sync_at=last_sync_at,
        last_sync_type=last_sync.sync_type if last_sync else None,
        stale=stale,
    )
