from typing import Annotated

from fastapi import Depends, Request

from packvault.models.failure import StorageUnavailableError
from packvault.services.engine import CardEngine


def get_engine(request: Request) -> CardEngine:
    """
    Dependency that provides the running card engine.

    Usage in FastAPI:
        @router.get("/items")
        async def get_items(engine: EngineDep):
            ...
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None or not engine.started:
        raise StorageUnavailableError(detail="card engine not started")
    return engine


EngineDep = Annotated[CardEngine, Depends(get_engine)]
