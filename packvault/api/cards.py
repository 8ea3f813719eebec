"""
Card cache API endpoints.

Stats, shown/dismiss bookkeeping, manual refills and clearing the cache.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from packvault.api.deps import EngineDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cards", tags=["cards"])


class CardIdsRequest(BaseModel):
    """Request model carrying card ids."""

    ids: list[str] = Field(
        ...,
        min_length=1,
        description="Card ids in {set_id}-{card_number} form",
        examples=[["sv3-125", "sv3-126"]],
    )


class RefillRequest(BaseModel):
    """Request model for a manual refill."""

    count: int | None = Field(
        default=None,
        ge=1,
        description="Cards to request; defaults to the working-set ceiling",
    )


class StatsResponse(BaseModel):
    """Cache counts and mirror tier details."""

    total_cards: int
    unshown_cards: int
    shown_cards: int
    mirror_cards: int
    active_tier: str
    storage_used: int | None = None
    storage_quota: int | None = None
    storage_critically_low: bool = False
    is_loading: bool = False
    refill_in_flight: bool = False


class ShownStateResponse(BaseModel):
    """Result of a shown/dismiss update."""

    updated: bool
    unshown_available: int
    refill_in_flight: bool


class RefillResponse(BaseModel):
    started: bool
    message: str


class CapacityResponse(BaseModel):
    """Capacity checks for a player's kept cards."""

    is_at_capacity: bool
    capacity_message: str
    can_open_pack: bool
    remaining_slots: int
    pack_message: str
    should_download: bool
    download_reason: str


class ClearResponse(BaseModel):
    cleared: bool


@router.get("/stats", response_model=StatsResponse)
async def get_stats(engine: EngineDep) -> StatsResponse:
    """Counts from the durable store plus advisory mirror usage."""
    stats = await engine.bridge.get_storage_stats()
    estimate = stats.estimate
    return StatsResponse(
        total_cards=stats.total_cards,
        unshown_cards=stats.unshown_cards,
        shown_cards=stats.shown_cards,
        mirror_cards=stats.mirror_cards,
        active_tier=stats.active_tier,
        storage_used=estimate.used if estimate else None,
        storage_quota=estimate.quota if estimate else None,
        storage_critically_low=engine.adapter.is_storage_critically_low(),
        is_loading=engine.bridge.view.get_state().is_loading,
        refill_in_flight=engine.tracker.refill_in_flight,
    )


@router.get("/capacity", response_model=CapacityResponse)
async def get_capacity(
    engine: EngineDep,
    saved_count: Annotated[int, Query(ge=0)] = 0,
) -> CapacityResponse:
    """Whether the player has room for another pack and whether more cards should be cached."""
    capacity = engine.tracker.check_capacity_limit()
    pack_check = engine.tracker.can_open_pack(saved_count)
    download = engine.tracker.should_download_more(saved_count)
    return CapacityResponse(
        is_at_capacity=capacity.is_at_capacity,
        capacity_message=capacity.message,
        can_open_pack=pack_check.can_open,
        remaining_slots=pack_check.remaining_slots,
        pack_message=pack_check.message,
        should_download=download.should_download,
        download_reason=download.reason,
    )


@router.post("/shown", response_model=ShownStateResponse)
async def mark_shown(request: CardIdsRequest, engine: EngineDep) -> ShownStateResponse:
    """
    Mark cards as shown.

    Idempotent. Unknown ids are ignored. May start a background refill.
    """
    updated = await engine.tracker.mark_shown(request.ids)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not record shown cards",
        )
    return ShownStateResponse(
        updated=updated,
        unshown_available=engine.tracker.unshown_available(),
        refill_in_flight=engine.tracker.refill_in_flight,
    )


@router.post("/dismiss", response_model=ShownStateResponse)
async def dismiss_cards(request: CardIdsRequest, engine: EngineDep) -> ShownStateResponse:
    """Remove dismissed cards from the cache. May start a background refill."""
    updated = await engine.tracker.remove_cards(request.ids)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not remove cards",
        )
    logger.info("Dismissed %d cards", len(request.ids))
    return ShownStateResponse(
        updated=updated,
        unshown_available=engine.tracker.unshown_available(),
        refill_in_flight=engine.tracker.refill_in_flight,
    )


@router.post("/refill", response_model=RefillResponse, status_code=status.HTTP_202_ACCEPTED)
async def refill(engine: EngineDep, request: RefillRequest | None = None) -> RefillResponse:
    """
    Start a background refill.

    Returns ``started=False`` when one is already running; the request is
    not queued.
    """
    count = request.count if request is not None else None
    started = engine.tracker.request_refill(count, reason="manual")
    if started:
        return RefillResponse(started=True, message="Refill started")
    return RefillResponse(started=False, message="A refill is already in progress")


@router.delete("", response_model=ClearResponse)
async def clear_cards(engine: EngineDep) -> ClearResponse:
    """
    Delete every cached card from both tiers.

    WARNING: Destroys all cached cards.
    """
    cleared = await engine.bridge.clear_all()
    if not cleared:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not clear cards",
        )
    return ClearResponse(cleared=True)
