from .health import router as health_router
from .quests import router as quests_router
from .wear import router as wear_router

__all__ = ["health_router", "quests_router", "wear_router"]
