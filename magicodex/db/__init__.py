from magicodex.db.database import get_session, init_db
from magicodex.db.operations import (
    backfill_prices,
    cleanup_sync_runs,
    complete_sync_run,
    create_sync_run,
    find_cards_missing_translation,
    get_card,
    get_card_by_scryfall_id,
    get_cards_by_ids,
    get_catalog_counts,
    get_collection,
    get_last_successful_sync,
    get_or_create_collection,
    get_owned_cards,
    get_owned_quantities,
    get_running_sync_run,
    get_set_by_code,
    get_set_by_scryfall_id,
    list_sync_runs,
    recalculate_is_extra,
    rebuild_search_index,
    reset_catalog,
    sweep_stale_sync_runs,
    update_card_translation,
    update_collection_cards,
)

__all__ = [
    "backfill_prices",
    "cleanup_sync_runs",
    "complete_sync_run",
    "create_sync_run",
    "find_cards_missing_translation",
    "get_card",
    "get_card_by_scryfall_id",
    "get_cards_by_ids",
    "get_catalog_counts",
    "get_collection",
    "get_last_successful_sync",
    "get_or_create_collection",
    "get_owned_cards",
    "get_owned_quantities",
    "get_running_sync_run",
    "get_session",
    "get_set_by_code",
    "get_set_by_scryfall_id",
    "init_db",
    "list_sync_runs",
    "recalculate_is_extra",
    "rebuild_search_index",
    "reset_catalog",
    "sweep_stale_sync_runs",
    "update_card_translation",
    "update_collection_cards",
]
