"""
Failure classification for catalog sync and search.

Every error the core raises on purpose is a KnownError: it carries a
FailureKind and the HTTP status the API layer should answer with.

Propagation:
- Per-run failures (RateLimitExceeded, UpstreamUnavailable, UpstreamError,
  SyncInProgressError) abort the sync and are recorded on the SyncRun.
- Per-record failures (MissingSetReference, MalformedPriceData) are logged and
  counted; they never abort a batch.
- SearchIndexUnavailable never reaches a caller; search falls back to a
  substring scan.
"""

from enum import Enum


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"

    # Resource failures
    NOT_FOUND = "not_found"
    MISSING_REFERENCE = "missing_reference"
    MALFORMED_DATA = "malformed_data"

    # Concurrency
    SYNC_IN_PROGRESS = "sync_in_progress"

    # Upstream catalog failures
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    EXTERNAL_API_ERROR = "external_api_error"

    # Storage capability
    SEARCH_INDEX_UNAVAILABLE = "search_index_unavailable"


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)


class CatalogClientError(KnownError):
    """Base class for failures talking to the external card catalog."""


class RateLimitExceeded(CatalogClientError):
    """Scryfall kept answering 429 after every retry."""

    def __init__(self, url: str, attempts: int):
        self.url = url
        self.attempts = attempts
        super().__init__(
            kind=FailureKind.RATE_LIMITED,
            message=f"429 Too Many Requests after {attempts} attempts",
            detail=url,
            suggestion="Wait a few minutes before syncing again.",
            status_code=502,
        )


class UpstreamUnavailable(CatalogClientError):
    """Scryfall answered 5xx (or could not be reached) after every retry."""

    def __init__(self, url: str, attempts: int, status: int | None = None):
        self.url = url
        self.attempts = attempts
        self.status = status
        reason = f"HTTP {status}" if status is not None else "connection failure"
        super().__init__(
            kind=FailureKind.SERVICE_UNAVAILABLE,
            message=f"Catalog unavailable ({reason}) after {attempts} attempts",
            detail=url,
            suggestion="Scryfall may be down; retry the sync later.",
            status_code=502,
        )


class UpstreamError(CatalogClientError):
    """Any other non-2xx answer from Scryfall. Never retried."""

    def __init__(self, status: int, body: str, url: str = ""):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(
            kind=FailureKind.EXTERNAL_API_ERROR,
            message=f"HTTP {status}: {body[:200]}",
            detail=url or None,
            status_code=502,
        )


class SyncInProgressError(KnownError):
    """A sync of the same type is already running."""

    def __init__(self, sync_type: str):
        self.sync_type = sync_type
        super().__init__(
            kind=FailureKind.SYNC_IN_PROGRESS,
            message=f"A '{sync_type}' synchronization is already in progress",
            suggestion="Wait for the running sync to finish.",
            status_code=409,
        )


class MissingSetReference(KnownError):
    """A card references a set that is not stored locally yet."""

    def __init__(self, card_name: str, set_code: str):
        self.card_name = card_name
        self.set_code = set_code
        super().__init__(
            kind=FailureKind.MISSING_REFERENCE,
            message=f"Set {set_code} not found, skipping card {card_name}",
            suggestion="Run a sets sync first.",
        )


class MalformedPriceData(KnownError):
    """A price field could not be parsed as a number."""

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(
            kind=FailureKind.MALFORMED_DATA,
            message=f"Unparseable price {field_name}={value!r}",
        )


class SearchIndexUnavailable(KnownError):
    """The full-text structure used by a search strategy does not exist."""

    def __init__(self, strategy: str, detail: str | None = None):
        self.strategy = strategy
        super().__init__(
            kind=FailureKind.SEARCH_INDEX_UNAVAILABLE,
            message=f"Full-text index unavailable for {strategy} search",
            detail=detail,
            status_code=503,
        )
