"""
Card search.

Turns a free-text query plus structured filters into an ordered list of card
ids. The text match runs in the database through a strategy chosen once from
the database URL:

- PostgresFullTextSearch: websearch_to_tsquery over the card texts, ranked by
  exact name, exact localized name, name prefix, localized name prefix, then
  most recently updated.
- SqliteFtsSearch: MATCH against the cards_fts index, ranked by match only.

If the full-text structure is missing the engine falls back to a substring scan.
Remaining filters are applied in-process on the candidate rows; the filter
never reorders them.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from sqlalchemy import JSON, Boolean, Float, Integer, String, or_, select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from magicodex.config import (
    SEARCH_DEFAULT_LIMIT,
    SEARCH_MAX_LIMIT,
    SEARCH_MIN_QUERY_LENGTH,
    settings,
)
from magicodex.db.database import SEARCH_INDEX_TABLE, is_sqlite_url
from magicodex.models.catalog import CandidateRow, SearchFilters
from magicodex.models.db import CardDB, SetDB
from magicodex.models.failure import SearchIndexUnavailable

logger = logging.getLogger(__name__)

VALID_COLORS = frozenset({"W", "U", "B", "R", "G", "C"})

# Driver messages meaning the full-text structure does not exist
_MISSING_INDEX_MARKERS = (
    f"no such table: {SEARCH_INDEX_TABLE}",
    "no such module: fts5",
    "function websearch_to_tsquery",
)

_CANDIDATE_COLUMNS = {
    "id": Integer,
    "color_identity": JSON,
    "rarity": String,
    "type_line": String,
    "type_line_localized": String,
    "price_eur": Float,
    "is_extra": Boolean,
}


@dataclass(frozen=True)
class SearchRequest:
    """A parsed search: the text query, result limit and filters."""

    query: str
    limit: int = SEARCH_DEFAULT_LIMIT
    filters: SearchFilters = field(default_factory=SearchFilters)


def _parse_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def _parse_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if number == number else None


def _parse_limit(value: str | int | None) -> int:
    if value is None or value == "":
        return SEARCH_DEFAULT_LIMIT
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return SEARCH_DEFAULT_LIMIT
    return max(1, min(limit, SEARCH_MAX_LIMIT))


def parse_colors(value: str | None) -> frozenset[str]:
    """Comma-separated color letters, upper-cased and restricted to WUBRGC."""
    if not value:
        return frozenset()
    letters = (part.strip().upper() for part in value.split(","))
    return frozenset(letter for letter in letters if letter in VALID_COLORS)


def parse_search_params(
    q: str | None,
    limit: str | int | None = None,
    colors: str | None = None,
    rarity: str | None = None,
    type_contains: str | None = None,
    price_min: str | None = None,
    price_max: str | None = None,
    extras: str | None = None,
) -> SearchRequest:
    """
    Coerce raw query-string values into a SearchRequest.

    Unparseable numbers and booleans are left unset rather than rejected.
    """
    filters = SearchFilters(
        colors=parse_colors(colors),
        rarity=rarity.strip().lower() if rarity and rarity.strip() else None,
        type_contains=type_contains.strip() if type_contains and type_contains.strip() else None,
        price_min=_parse_float(price_min),
        price_max=_parse_float(price_max),
        extras=_parse_bool(extras),
    )
    return SearchRequest(query=(q or "").strip(), limit=_parse_limit(limit), filters=filters)


def passes_filters(row: CandidateRow, filters: SearchFilters) -> bool:
    """
    Whether a candidate row satisfies every supplied filter.

    A missing price fails any price bound that is set. Requested colors must
    all be present in the color identity; "C" matches an empty identity or an
    explicit "C".
    """
    if filters.extras is not None and row.is_extra != filters.extras:
        return False
    if filters.rarity and row.rarity != filters.rarity:
        return False
    if filters.price_min is not None:
        if row.price_eur is None or row.price_eur < filters.price_min:
            return False
    if filters.price_max is not None:
        if row.price_eur is None or row.price_eur > filters.price_max:
            return False
    if filters.type_contains:
        haystack = (row.type_line_localized or row.type_line or "").lower()
        if filters.type_contains.lower() not in haystack:
            return False
    if filters.colors:
        identity = set(row.color_identity or [])
        for color in filters.colors:
            if color == "C":
                if identity and "C" not in identity:
                    return False
            elif color not in identity:
                return False
    return True


def tokenize(query: str) -> list[str]:
    """Lower-cased word tokens of a query."""
    return re.findall(r"\w+", query.lower())


def build_fts5_query(query: str) -> str:
    """Prefix-match every token: 'llanowar elv' -> '"llanowar"* "elv"*'."""
    return " ".join(f'"{token}"*' for token in tokenize(query))


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _is_missing_index(error: DBAPIError) -> bool:
    message = str(error.orig if error.orig is not None else error).lower()
    return any(marker in message for marker in _MISSING_INDEX_MARKERS)


def _to_row(mapping: Any) -> CandidateRow:
    return CandidateRow(
        id=int(mapping["id"]),
        rarity=mapping["rarity"] or "",
        type_line=mapping["type_line"] or "",
        type_line_localized=mapping["type_line_localized"],
        price_eur=mapping["price_eur"],
        is_extra=bool(mapping["is_extra"]),
        color_identity=list(mapping["color_identity"] or []),
    )


# --- Strategies ---


class SearchStrategy:
    """
    Database-specific text match.

    Attributes:
        name: Strategy name used in logs and errors
        ranked: Whether candidates come back in relevance tiers
    """

    name = "base"
    ranked = False

    async def search_candidates(
        self, session: AsyncSession, query: str, limit: int
    ) -> list[CandidateRow]:
        """
        Raises:
            SearchIndexUnavailable: If the full-text structure does not exist
        """
        raise NotImplementedError

    async def _execute(self, session: AsyncSession, statement: Any, params: dict[str, Any]) -> Any:
        try:
            return await session.execute(statement, params)
        except DBAPIError as e:
            if _is_missing_index(e):
                raise SearchIndexUnavailable(self.name, str(e.orig)) from e
            raise


class PostgresFullTextSearch(SearchStrategy):
    name = "postgres"
    ranked = True

    _SQL = text(
        """
        SELECT c.id, c.color_identity, c.rarity, c.type_line, c.type_line_localized,
               c.price_eur, c.is_extra,
               (lower(coalesce(c.name, '')) = lower(:query)) AS exact_name,
               (lower(coalesce(c.name_localized, '')) = lower(:query)) AS exact_localized,
               (lower(coalesce(c.name, '')) LIKE :prefix ESCAPE '\\') AS prefix_name,
               (lower(coalesce(c.name_localized, '')) LIKE :prefix ESCAPE '\\') AS prefix_localized
        FROM cards c
        WHERE to_tsvector('simple',
                  coalesce(c.name, '') || ' ' ||
                  coalesce(c.name_localized, '') || ' ' ||
                  coalesce(c.type_line, '') || ' ' ||
                  coalesce(c.type_line_localized, '') || ' ' ||
                  coalesce(c.oracle_text, '') || ' ' ||
                  coalesce(c.oracle_text_localized, '')
              ) @@ websearch_to_tsquery('simple', :query)
           OR lower(coalesce(c.name, '')) LIKE :prefix ESCAPE '\\'
           OR lower(coalesce(c.name_localized, '')) LIKE :prefix ESCAPE '\\'
        ORDER BY exact_name DESC, exact_localized DESC, prefix_name DESC,
                 prefix_localized DESC, c.updated_at DESC, c.id
        LIMIT :limit
        """
    ).columns(**_CANDIDATE_COLUMNS)

    async def search_candidates(
        self, session: AsyncSession, query: str, limit: int
    ) -> list[CandidateRow]:
        params = {"query": query, "prefix": _escape_like(query.lower()) + "%", "limit": limit}
        result = await self._execute(session, self._SQL, params)
        return [_to_row(mapping) for mapping in result.mappings()]


class SqliteFtsSearch(SearchStrategy):
    name = "sqlite"
    ranked = False

    _SQL = text(
        f"""
        SELECT c.id, c.color_identity, c.rarity, c.type_line, c.type_line_localized,
               c.price_eur, c.is_extra
        FROM {SEARCH_INDEX_TABLE}
        JOIN cards c ON c.id = {SEARCH_INDEX_TABLE}.card_id
        WHERE {SEARCH_INDEX_TABLE} MATCH :match
        ORDER BY {SEARCH_INDEX_TABLE}.rank, c.id
        LIMIT :limit
        """
    ).columns(**_CANDIDATE_COLUMNS)

    async def search_candidates(
        self, session: AsyncSession, query: str, limit: int
    ) -> list[CandidateRow]:
        match = build_fts5_query(query)
        if not match:
            return []
        result = await self._execute(session, self._SQL, {"match": match, "limit": limit})
        return [_to_row(mapping) for mapping in result.mappings()]


async def substring_candidates(
    session: AsyncSession, query: str, limit: int
) -> list[CandidateRow]:
    """
    Case-insensitive substring scan over the card texts.

    Ordered by set release date (newest first), then collector number.
    """
    text_columns = (
        CardDB.name,
        CardDB.name_localized,
        CardDB.type_line,
        CardDB.type_line_localized,
        CardDB.oracle_text,
        CardDB.oracle_text_localized,
    )
    stmt = (
        select(
            CardDB.id,
            CardDB.color_identity,
            CardDB.rarity,
            CardDB.type_line,
            CardDB.type_line_localized,
            CardDB.price_eur,
            CardDB.is_extra,
        )
        .join(SetDB, SetDB.id == CardDB.set_id)
        .where(or_(*(column.icontains(query, autoescape=True) for column in text_columns)))
        .order_by(SetDB.released_at.desc().nulls_last(), CardDB.collector_number, CardDB.id)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return [_to_row(mapping) for mapping in result.mappings()]


def select_strategy(database_url: str) -> SearchStrategy:
    """Pick the text-search strategy for a database URL."""
    if is_sqlite_url(database_url):
        return SqliteFtsSearch()
    return PostgresFullTextSearch()


# --- Engine ---


class CardSearchEngine:
    """Runs a strategy, falls back to substring search, and post-filters."""

    def __init__(self, strategy: SearchStrategy):
        self.strategy = strategy

    async def search_card_ids(
        self,
        session: AsyncSession,
        query: str,
        limit: int = SEARCH_DEFAULT_LIMIT,
        filters: SearchFilters | None = None,
        candidate_limit: int | None = None,
    ) -> list[int]:
        """
        Ordered, de-duplicated ids of cards matching a query and filters.

        Args:
            session: Database session
            query: Free text; queries shorter than two characters match nothing
            limit: Maximum ids returned
            filters: Post-filters applied to candidates
            candidate_limit: How many candidates to fetch before filtering
                             (defaults to limit)

        Returns:
            Card ids in candidate order, at most limit of them
        """
        query = (query or "").strip()
        if len(query) < SEARCH_MIN_QUERY_LENGTH or limit <= 0:
            return []
        filters = filters or SearchFilters()
        pool = max(candidate_limit or limit, limit)

        try:
            candidates = await self.strategy.search_candidates(session, query, pool)
        except SearchIndexUnavailable as e:
            logger.warning("%s; falling back to substring search (%s)", e.message, e.detail)
            await session.rollback()
            candidates = await substring_candidates(session, query, pool)

        ids: list[int] = []
        seen: set[int] = set()
        for row in candidates:
            if row.id in seen or not passes_filters(row, filters):
                continue
            seen.add(row.id)
            ids.append(row.id)
            if len(ids) >= limit:
                break
        return ids


@lru_cache(maxsize=1)
def get_search_engine() -> CardSearchEngine:
    """Process-wide search engine for the configured database."""
    return CardSearchEngine(select_strategy(settings.database_url))
