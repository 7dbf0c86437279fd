"""
Magicodex API application.

Mounts the catalog, collection, admin and health routers. Known failures
that escape a router are answered with their own status code.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from magicodex.api import (
    admin_router,
    cards_router,
    collection_router,
    health_router,
)
from magicodex.config import settings
from magicodex.db.database import engine, init_db
from magicodex.models.failure import KnownError


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables and the search index on startup; release the pool on shutdown."""
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("magicodex"),
    lifespan=lifespan,
)

app.include_router(cards_router)
app.include_router(collection_router)
app.include_router(admin_router)
app.include_router(health_router)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "kind": exc.kind.value,
            "suggestion": exc.suggestion,
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["GET", "PUT", "POST", "DELETE"],
    allow_headers=["*"],
)
