from collections.abc import Callable
from datetime import date
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from magicodex.db.database import create_search_index, get_session
from magicodex.main import app
from magicodex.models.catalog import CardRecord, SetRecord
from magicodex.models.db import Base, CardDB, SetDB
from magicodex.services.card_search import CardSearchEngine, SqliteFtsSearch, get_search_engine
from magicodex.services.catalog_writer import CatalogWriter
from magicodex.services.scryfall_client import CatalogClient
from magicodex.services.sync_orchestrator import SyncOrchestrator, get_orchestrator

SCRYFALL_URL = "https://api.scryfall.com"


class FakeSleep:
    """Records requested sleeps instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
async def async_engine(tmp_path):
    """
    SQLite engine on a temporary file, with the full-text index.

    A file rather than :memory: so concurrent sessions see the same database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'magicodex.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await create_search_index(conn)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def raw_set() -> Callable[..., dict[str, Any]]:
    """Build a Scryfall set object."""

    def _make(code: str = "dmu", **overrides: Any) -> dict[str, Any]:
        data = {
            "object": "set",
            "id": f"set-{code.lower()}",
            "code": code.lower(),
            "name": f"Set {code.upper()}",
            "set_type": "expansion",
            "released_at": "2022-09-09",
            "card_count": 3,
            "icon_svg_uri": f"https://svgs.scryfall.io/sets/{code.lower()}.svg",
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def raw_card() -> Callable[..., dict[str, Any]]:
    """Build a Scryfall card object."""

    def _make(
        scryfall_id: str = "card-1",
        name: str = "Llanowar Elves",
        set_code: str = "dmu",
        **overrides: Any,
    ) -> dict[str, Any]:
        data = {
            "object": "card",
            "id": scryfall_id,
            "oracle_id": f"oracle-{name.lower().replace(' ', '-')}",
            "name": name,
            "lang": "en",
            "set": set_code,
            "set_id": f"set-{set_code.lower()}",
            "collector_number": "1",
            "rarity": "common",
            "mana_cost": "{G}",
            "cmc": 1.0,
            "type_line": "Creature — Elf Druid",
            "oracle_text": "{T}: Add {G}.",
            "power": "1",
            "toughness": "1",
            "colors": ["G"],
            "color_identity": ["G"],
            "image_uris": {"normal": f"https://cards.scryfall.io/normal/{scryfall_id}.jpg"},
            "prices": {"eur": "0.25", "eur_foil": "1.10", "usd": "0.30"},
            "legalities": {"standard": "legal"},
            "booster": True,
            "promo": False,
            "variation": False,
            "full_art": False,
            "frame_effects": [],
            "promo_types": [],
            "border_color": "black",
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def set_record() -> Callable[..., SetRecord]:
    def _make(code: str = "DMU", **overrides: Any) -> SetRecord:
        fields: dict[str, Any] = {
            "scryfall_id": f"set-{code.lower()}",
            "code": code.upper(),
            "name": f"Set {code.upper()}",
            "set_type": "expansion",
            "released_at": date(2022, 9, 9),
            "card_count": 3,
        }
        fields.update(overrides)
        return SetRecord(**fields)

    return _make


@pytest.fixture
def card_record() -> Callable[..., CardRecord]:
    def _make(
        scryfall_id: str = "card-1",
        name: str = "Llanowar Elves",
        set_code: str = "DMU",
        **overrides: Any,
    ) -> CardRecord:
        fields: dict[str, Any] = {
            "scryfall_id": scryfall_id,
            "oracle_id": f"oracle-{scryfall_id}",
            "name": name,
            "set_code": set_code.upper(),
            "set_scryfall_id": f"set-{set_code.lower()}",
            "collector_number": "1",
            "rarity": "common",
            "type_line": "Creature — Elf Druid",
            "oracle_text": "{T}: Add {G}.",
            "color_identity": ["G"],
            "colors": ["G"],
            "booster": True,
            "promo": False,
            "variation": False,
        }
        fields.update(overrides)
        return CardRecord(**fields)

    return _make


@pytest.fixture
def add_set(session_factory) -> Callable[..., Any]:
    """Insert a set directly and return its id."""

    async def _add(code: str = "DMU", released_at: date | None = date(2022, 9, 9), **fields: Any):
        async with session_factory() as session:
            db_set = SetDB(
                scryfall_id=fields.pop("scryfall_id", f"set-{code.lower()}"),
                code=code.upper(),
                name=fields.pop("name", f"Set {code.upper()}"),
                released_at=released_at,
                set_type=fields.pop("set_type", "expansion"),
                **fields,
            )
            session.add(db_set)
            await session.commit()
            return db_set.id

    return _add


@pytest.fixture
def add_card(session_factory) -> Callable[..., Any]:
    """Insert a card directly and return its id."""

    async def _add(set_id: int, name: str, scryfall_id: str | None = None, **fields: Any):
        defaults: dict[str, Any] = {
            "scryfall_id": scryfall_id or f"sf-{name.lower().replace(' ', '-')}",
            "name": name,
            "rarity": "common",
            "collector_number": "1",
            "type_line": "Creature — Elf Druid",
            "oracle_text": None,
            "color_identity": [],
            "colors": [],
            "price_eur": None,
            "is_extra": False,
        }
        defaults.update(fields)
        async with session_factory() as session:
            card = CardDB(set_id=set_id, **defaults)
            session.add(card)
            await session.commit()
            return card.id

    return _add


@pytest.fixture
def orchestrator(session_factory, fake_sleep) -> SyncOrchestrator:
    """Orchestrator on the test database whose client never really sleeps."""

    def client_factory() -> CatalogClient:
        return CatalogClient(
            base_url=SCRYFALL_URL,
            request_delay=0,
            max_retries=1,
            sleep=fake_sleep,
        )

    return SyncOrchestrator(
        session_factory,
        client_factory=client_factory,
        writer=CatalogWriter(session_factory, sleep=fake_sleep),
    )


@pytest.fixture
async def client(session_factory, orchestrator):
    """Provide an async test client with overridden dependencies."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_search_engine] = lambda: CardSearchEngine(SqliteFtsSearch())
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
