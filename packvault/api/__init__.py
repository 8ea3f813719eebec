from packvault.api.cards import router as cards_router
from packvault.api.health import router as health_router
from packvault.api.packs import router as packs_router

__all__ = [
    "cards_router",
    "health_router",
    "packs_router",
]
