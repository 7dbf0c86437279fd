from magicodex.api.admin import router as admin_router
from magicodex.api.cards import router as cards_router
from magicodex.api.collection import router as collection_router
from magicodex.api.health import router as health_router

__all__ = [
    "admin_router",
    "cards_router",
    "collection_router",
    "health_router",
]
