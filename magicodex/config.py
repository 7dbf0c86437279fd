from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "Magicodex"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/magicodex"

    scryfall_base_url: str = "https://api.scryfall.com"
    scryfall_user_agent: str = "Magicodex/1.0 (contact: admin@magicodex.com)"

    # Scryfall asks for 50-100ms between requests
    scryfall_request_delay: float = 0.1
    scryfall_max_retries: int = 4
    scryfall_backoff_base: float = 0.5
    scryfall_backoff_ceiling: float = 10.0
    scryfall_timeout: float = 30.0

    # RUNNING sync records older than this are considered abandoned
    sync_stale_after_minutes: int = 30

    # Language used when backfilling localized card fields
    translation_language: str = "fr"


settings = Settings()


# =============================================================================
# SYNC TUNING
# =============================================================================

SET_BATCH_SIZE = 50
CARD_BATCH_SIZE = 100

# Concurrent writes per chunk; bounded by the database connection pool
WRITE_CONCURRENCY = 10

# Pause between card write chunks (seconds)
CARD_CHUNK_PAUSE = 0.05

# Digital-only or novelty sets that never get synced
EXCLUDED_SET_TYPES = frozenset({"alchemy", "funny", "memorabilia"})


# =============================================================================
# SEARCH LIMITS
# =============================================================================

SEARCH_MIN_QUERY_LENGTH = 2
SEARCH_DEFAULT_LIMIT = 50
SEARCH_MAX_LIMIT = 100
