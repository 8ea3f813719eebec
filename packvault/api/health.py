"""
Health check endpoints.

Provides liveness and readiness probes with durable store connectivity checks.
"""

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str | None = None
    storage_tier: str | None = None
    storage_persistent: bool | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness probe.

    Returns healthy if the service is running.
    Does not check dependencies.
    """
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness probe.

    Returns ready once the engine has started and the durable store answers.
    A memory-only mirror still counts as ready; it is reported, not fatal.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None or not engine.started or not await engine.store.ping():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="disconnected")

    return HealthResponse(
        status="ready",
        database="connected",
        storage_tier=engine.adapter.active_tier_name,
        storage_persistent=engine.adapter.is_persistent,
    )
