"""
Admin endpoints.

Triggers catalog syncs, inspects and prunes the sync ledger, and runs catalog
maintenance. No authentication; deploy behind a trusted network boundary.
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from magicodex.db import (
    backfill_prices,
    cleanup_sync_runs,
    get_session,
    list_sync_runs,
    recalculate_is_extra,
    rebuild_search_index,
    reset_catalog,
)
from magicodex.models.failure import KnownError
from magicodex.services.sync_orchestrator import (
    SyncOrchestrator,
    SyncRequest,
    SyncType,
    get_orchestrator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class SyncTriggerRequest(BaseModel):
    """Request model for starting a sync."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["sets", "cards", "full", "translations", "extras"] = Field(
        ...,
        description="Which sync to run",
    )
    force: bool = Field(default=False, description="Rewrite records that already exist")
    set_code: str | None = Field(
        default=None,
        alias="setCode",
        description="Restrict the sync to one set",
        examples=["DMU"],
    )
    language: str | None = Field(
        default=None,
        description="Scryfall language code",
        examples=["fr"],
    )


class PhaseStats(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class SyncTriggerResponse(BaseModel):
    """Outcome of a finished sync."""

    run_id: int
    sync_type: str
    status: str
    message: str
    records_processed: int
    duration_seconds: float
    phases: dict[str, PhaseStats] = Field(default_factory=dict)


class SyncRunResponse(BaseModel):
    """One sync ledger record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sync_type: str
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    message: str | None = None
    records_processed: int = 0


class SyncRunListResponse(BaseModel):
    total: int
    runs: list[SyncRunResponse] = Field(default_factory=list)


class MaintenanceResponse(BaseModel):
    """Result of a maintenance operation."""

    operation: str
    affected: int = 0
    details: dict[str, Any] = Field(default_factory=dict)


@router.post("/sync", response_model=SyncTriggerResponse)
async def trigger_sync(
    request: SyncTriggerRequest,
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> SyncTriggerResponse:
    """
    Run a catalog sync and wait for it to finish.

    Returns 409 if a sync of the same type is already running, and 502 if
    Scryfall fails; the failure is recorded on the sync run either way.
    """
    sync_request = SyncRequest(
        sync_type=SyncType(request.type),
        force=request.force,
        set_code=request.set_code,
        language=request.language,
    )
    try:
        result = await orchestrator.trigger(sync_request)
    except KnownError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return SyncTriggerResponse.model_validate(result.to_dict())


@router.get("/sync/runs", response_model=SyncRunListResponse)
async def get_sync_runs(
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> SyncRunListResponse:
    """List sync ledger records, newest first."""
    runs, total = await list_sync_runs(session, limit=limit, offset=offset)
    return SyncRunListResponse(
        total=total,
        runs=[SyncRunResponse.model_validate(run) for run in runs],
    )


@router.delete("/sync/runs", response_model=MaintenanceResponse)
async def prune_sync_runs(
    session: Annotated[AsyncSession, Depends(get_session)],
    days: Annotated[int, Query(ge=0, description="Keep records newer than this")] = 30,
) -> MaintenanceResponse:
    """Delete finished sync records older than the given number of days."""
    deleted = await cleanup_sync_runs(session, days)
    logger.info("Pruned %d sync runs older than %d days", deleted, days)
    return MaintenanceResponse(
        operation="prune-sync-runs", affected=deleted, details={"days": days}
    )


@router.post("/catalog/reset", response_model=MaintenanceResponse)
async def reset(
    session: Annotated[AsyncSession, Depends(get_session)],
    confirm: bool = False,
) -> MaintenanceResponse:
    """
    Delete every set, card and ownership record.

    Requires confirm=true.
    """
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Catalog reset deletes all cards and sets; pass confirm=true",
        )
    deleted = await reset_catalog(session)
    return MaintenanceResponse(
        operation="reset-catalog",
        affected=sum(deleted.values()),
        details=deleted,
    )


@router.post("/catalog/recalculate-extras", response_model=MaintenanceResponse)
async def recalculate_extras(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> MaintenanceResponse:
    """Re-derive is_extra for every stored card."""
    changed = await recalculate_is_extra(session)
    return MaintenanceResponse(operation="recalculate-extras", affected=changed)


@router.post("/catalog/backfill-prices", response_model=MaintenanceResponse)
async def backfill_eur_prices(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> MaintenanceResponse:
    """Re-extract EUR prices from each card's stored price bundle."""
    updated = await backfill_prices(session)
    return MaintenanceResponse(operation="backfill-prices", affected=updated)


@router.post("/search-index/rebuild", response_model=MaintenanceResponse)
async def rebuild_index(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> MaintenanceResponse:
    """Repopulate the SQLite full-text index. A no-op on Postgres."""
    rebuilt = await rebuild_search_index(session)
    return MaintenanceResponse(operation="rebuild-search-index", details={"rebuilt": rebuilt})
