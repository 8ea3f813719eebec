"""
Pack API endpoints.

Lists pack presets and deals packs from the unshown pool.
"""

import base64

from fastapi import APIRouter
from pydantic import BaseModel, Field

from packvault.api.deps import EngineDep
from packvault.models.card import CardRecord
from packvault.models.failure import (
    ApiResponse,
    EmptyPoolError,
    FailureKind,
    PackTypeNotFoundError,
)
from packvault.models.pack import PACK_TYPES, get_pack_type
from packvault.services.pack_generator import analyze_pack_contents, compute_pack_tier

router = APIRouter(prefix="/packs", tags=["packs"])


class PackTypeResponse(BaseModel):
    """One pack preset."""

    id: str
    name: str
    description: str
    card_count: int
    guaranteed_rare: bool
    rarity_weights: dict[str, float]


class CardResponse(BaseModel):
    """A dealt card with its compressed image inlined."""

    id: str
    set_id: str
    set_name: str
    card_number: str
    filename: str = ""
    rarity: str
    image_ref: str
    image_base64: str


class OpenPackRequest(BaseModel):
    """Request model for opening a pack."""

    saved_count: int | None = Field(
        default=None,
        ge=0,
        description="Cards the player has kept; checked against remaining slots when given",
    )


class PackResponse(BaseModel):
    """Response model for an opened pack."""

    pack_type: str
    tier: str
    requested: int
    dealt: int
    is_short: bool
    needs_refill: bool
    shown_recorded: bool
    rare_count: int = 0
    ultra_rare_count: int = 0
    cards: list[CardResponse] = Field(default_factory=list)


def card_to_response(card: CardRecord) -> CardResponse:
    return CardResponse(
        id=card.id,
        set_id=card.set_id,
        set_name=card.set_name,
        card_number=card.card_number,
        filename=card.filename,
        rarity=card.effective_rarity.value,
        image_ref=card.remote_image_ref,
        image_base64=base64.b64encode(card.compressed_payload).decode("ascii"),
    )


@router.get("/types", response_model=list[PackTypeResponse])
async def list_pack_types() -> list[PackTypeResponse]:
    """List the pack presets players can open."""
    return [
        PackTypeResponse(
            id=pack_type.id,
            name=pack_type.name,
            description=pack_type.description,
            card_count=pack_type.spec.card_count,
            guaranteed_rare=pack_type.spec.guaranteed_rare,
            rarity_weights={r.value: w for r, w in pack_type.spec.rarity_weights.items()},
        )
        for pack_type in PACK_TYPES
    ]


@router.post("/{pack_type_id}/open", response_model=ApiResponse[PackResponse])
async def open_pack(
    pack_type_id: str,
    engine: EngineDep,
    body: OpenPackRequest | None = None,
) -> ApiResponse[PackResponse]:
    """
    Open a pack of the given type.

    Cards dealt are marked shown. A short pack is a success with
    ``is_short`` set. An empty pool fails with EMPTY_POOL while a refill
    runs in the background.
    """
    pack_type = get_pack_type(pack_type_id)
    if pack_type is None:
        raise PackTypeNotFoundError(pack_type_id)

    if body is not None and body.saved_count is not None:
        check = engine.tracker.can_open_pack(body.saved_count)
        if not check.can_open:
            return ApiResponse.known_failure(
                kind=FailureKind.INVALID_INPUT,
                message=check.message,
                suggestion="Remove some kept cards first.",
            )

    pack = await engine.open_pack(pack_type.spec)
    if not pack.cards:
        raise EmptyPoolError()

    analysis = analyze_pack_contents(pack.cards)
    return ApiResponse.success(
        PackResponse(
            pack_type=pack_type.id,
            tier=compute_pack_tier(pack.cards),
            requested=pack.requested,
            dealt=len(pack.cards),
            is_short=pack.is_short,
            needs_refill=pack.needs_refill,
            shown_recorded=pack.shown_recorded,
            rare_count=analysis.rare_count,
            ultra_rare_count=analysis.ultra_rare_count,
            cards=[card_to_response(card) for card in pack.cards],
        )
    )
