"""
Scryfall HTTP client.

Fetches JSON pages from the Scryfall API politely:
- identifies itself with a User-Agent, as Scryfall requires
- waits a fixed delay after every request
- honours Retry-After on 429, backing off exponentially otherwise
- retries 5xx and connection failures with exponential backoff
- treats 404 on search endpoints as "no results", not as an error

Docs: https://scryfall.com/docs/api
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Final
from urllib.parse import urlencode

import httpx

from magicodex.config import settings
from magicodex.models.failure import RateLimitExceeded, UpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class _NoResults:
    """Sentinel returned for a 404 page."""

    _instance: "_NoResults | None" = None

    def __new__(cls) -> "_NoResults":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_RESULTS"


NO_RESULTS: Final = _NoResults()

Page = dict[str, Any]


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds. HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class CatalogClient:
    """
    Async client for the Scryfall card catalog.

    Usage:
        async with CatalogClient() as client:
            async for card in client.paginate(client.search_url("set:dmu")):
                ...
    """

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        user_agent: str | None = None,
        request_delay: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        backoff_ceiling: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.scryfall_base_url).rstrip("/")
        self.user_agent = user_agent or settings.scryfall_user_agent
        self.request_delay = (
            settings.scryfall_request_delay if request_delay is None else request_delay
        )
        self.max_retries = settings.scryfall_max_retries if max_retries is None else max_retries
        self.backoff_base = settings.scryfall_backoff_base if backoff_base is None else backoff_base
        self.backoff_ceiling = (
            settings.scryfall_backoff_ceiling if backoff_ceiling is None else backoff_ceiling
        )
        self._sleep = sleep
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=settings.scryfall_timeout,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # --- URL helpers ---

    def url(self, path: str, **params: Any) -> str:
        """Absolute URL for an API path, dropping None-valued parameters."""
        query = {key: value for key, value in params.items() if value is not None}
        base = f"{self.base_url}/{path.lstrip('/')}"
        return f"{base}?{urlencode(query)}" if query else base

    def search_url(
        self,
        query: str,
        *,
        unique: str = "cards",
        order: str = "set",
        include_extras: bool = False,
        include_variations: bool = False,
    ) -> str:
        """URL of the first page of a /cards/search query."""
        return self.url(
            "cards/search",
            q=query,
            unique=unique,
            order=order,
            include_extras="true" if include_extras else None,
            include_variations="true" if include_variations else None,
        )

    # --- Requests ---

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff for a zero-based attempt number, capped at the ceiling."""
        return float(min(self.backoff_base * (2**attempt), self.backoff_ceiling))

    async def fetch_page(self, url: str) -> Page | _NoResults:
        """
        GET one JSON page.

        Args:
            url: Absolute URL to fetch

        Returns:
            Decoded JSON object, or NO_RESULTS on 404

        Raises:
            RateLimitExceeded: 429 persisted through every retry
            UpstreamUnavailable: 5xx or connection failures persisted through every retry
            UpstreamError: Any other non-2xx response
        """
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        attempts = self.max_retries + 1
        last_status: int | None = None

        for attempt in range(attempts):
            try:
                response = await self._http.get(url, headers=headers)
            except httpx.TransportError as e:
                await self._sleep(self.request_delay)
                last_status = None
                if attempt + 1 >= attempts:
                    break
                wait = self.backoff_delay(attempt)
                logger.warning("Request to %s failed (%s); retrying in %.2fs", url, e, wait)
                await self._sleep(wait)
                continue

            # Pace every request, whatever the outcome
            await self._sleep(self.request_delay)

            if response.status_code == 429:
                if attempt + 1 >= attempts:
                    raise RateLimitExceeded(url, attempts)
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                wait = retry_after if retry_after is not None else self.backoff_delay(attempt)
                logger.warning("Rate limited by Scryfall; waiting %.2fs", wait)
                await self._sleep(wait)
                continue

            if response.status_code >= 500:
                last_status = response.status_code
                if attempt + 1 >= attempts:
                    break
                wait = self.backoff_delay(attempt)
                logger.warning(
                    "Scryfall returned %d for %s; retrying in %.2fs",
                    response.status_code,
                    url,
                    wait,
                )
                await self._sleep(wait)
                continue

            if response.status_code == 404:
                return NO_RESULTS

            if not response.is_success:
                raise UpstreamError(response.status_code, response.text, url)

            page: Page = response.json()
            return page

        raise UpstreamUnavailable(url, attempts, last_status)

    async def paginate(self, first_url: str) -> AsyncIterator[dict[str, Any]]:
        """
        Yield every record of a paginated search, following next_page.

        The sequence is forward-only: an error on any page propagates and the
        caller has to restart from first_url.
        """
        next_url: str | None = first_url
        page_count = 0

        while next_url:
            page = await self.fetch_page(next_url)
            if isinstance(page, _NoResults):
                logger.info("No results for %s", next_url)
                return

            page_count += 1
            records = page.get("data") or []
            logger.debug("Page %d: %d records", page_count, len(records))
            for record in records:
                yield record

            next_url = page.get("next_page") if page.get("has_more") else None

    async def fetch_sets(self) -> list[dict[str, Any]]:
        """Fetch the flat list of every set."""
        page = await self.fetch_page(self.url("sets"))
        if isinstance(page, _NoResults):
            return []
        return list(page.get("data") or [])

    async def fetch_all(self, first_url: str) -> list[dict[str, Any]]:
        """Collect a whole paginated search into a list."""
        return [record async for record in self.paginate(first_url)]
