from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum


class Rarity(str, Enum):
    """Normalized rarity tiers, lowest first."""

    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    ULTRA_RARE = "ultra-rare"


def make_card_id(set_id: str, card_number: str) -> str:
    """Stable record key: ``{setId}-{cardNumber}``."""
    return f"{set_id}-{card_number}"


@dataclass(frozen=True, slots=True)
class CardDescriptor:
    """
    A candidate card offered by the catalog.

    Attributes:
        set_id: Set identifier (e.g., "sv3")
        set_name: Display name of the set
        card_number: Number within the set
        remote_image_ref: URL of the full-size image
        filename: Display/debug label
        card_name: Card name when the manifest carries it
        rarity: Raw rarity string when the manifest carries it
    """

    set_id: str
    set_name: str
    card_number: str
    remote_image_ref: str
    filename: str = ""
    card_name: str | None = None
    rarity: str | None = None

    @property
    def id(self) -> str:
        return make_card_id(self.set_id, self.card_number)


@dataclass(frozen=True, slots=True)
class CardRecord:
    """
    One cached card asset.

    Provenance fields and the payload never change after creation.
    ``shown`` flips from False to True at most once; use ``with_shown()``.

    Attributes:
        id: ``{set_id}-{card_number}``, unique across the store
        set_id: Set identifier
        set_name: Display name of the set
        card_number: Number within the set
        remote_image_ref: Source URL of the original image
        compressed_payload: Recompressed image bytes
        filename: Display/debug label
        acquired_at: When the record was stored (set once)
        shown: Whether the card has been dealt
        rarity: Classifier tag, None when untagged
    """

    id: str
    set_id: str
    set_name: str
    card_number: str
    remote_image_ref: str
    compressed_payload: bytes
    filename: str = ""
    acquired_at: datetime | None = None
    shown: bool = False
    rarity: Rarity | None = None

    def with_shown(self) -> "CardRecord":
        """Copy of this record marked as shown."""
        if self.shown:
            return self
        return replace(self, shown=True)

    @property
    def effective_rarity(self) -> Rarity:
        """Rarity used for pack generation; untagged cards count as common."""
        return self.rarity or Rarity.COMMON
