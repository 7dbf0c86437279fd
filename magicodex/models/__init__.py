from magicodex.models.catalog import (
    CandidateRow,
    CardRecord,
    SearchFilters,
    SetRecord,
    UpsertAction,
    UpsertStats,
)
from magicodex.models.failure import (
    CatalogClientError,
    FailureKind,
    KnownError,
    MalformedPriceData,
    MissingSetReference,
    RateLimitExceeded,
    SearchIndexUnavailable,
    SyncInProgressError,
    UpstreamError,
    UpstreamUnavailable,
)

__all__ = [
    "CandidateRow",
    "CardRecord",
    "CatalogClientError",
    "FailureKind",
    "KnownError",
    "MalformedPriceData",
    "MissingSetReference",
    "RateLimitExceeded",
    "SearchFilters",
    "SearchIndexUnavailable",
    "SetRecord",
    "SyncInProgressError",
    "UpsertAction",
    "UpsertStats",
    "UpstreamError",
    "UpstreamUnavailable",
]
