import math
from dataclasses import dataclass, field

from packvault.models.card import CardRecord, Rarity

# Weight walk order used by the generator: rarest first
RARITY_WALK_ORDER: tuple[Rarity, ...] = (
    Rarity.ULTRA_RARE,
    Rarity.RARE,
    Rarity.UNCOMMON,
    Rarity.COMMON,
)

_WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class PackSpec:
    """
    Per-request pack parameters.

    Attributes:
        card_count: Slots in the pack
        rarity_weights: Probability per rarity, summing to 1.0
        guaranteed_rare: Reserve the first slot for a rare or ultra-rare
    """

    card_count: int
    rarity_weights: dict[Rarity, float]
    guaranteed_rare: bool = False

    def __post_init__(self) -> None:
        if self.card_count < 1:
            raise ValueError(f"card_count must be positive, got {self.card_count}")

        missing = set(Rarity) - set(self.rarity_weights)
        if missing:
            names = sorted(r.value for r in missing)
            raise ValueError(f"rarity_weights missing: {names}")

        if any(w < 0 for w in self.rarity_weights.values()):
            raise ValueError("rarity_weights must be non-negative")

        total = sum(self.rarity_weights.values())
        if not math.isclose(total, 1.0, abs_tol=_WEIGHT_TOLERANCE):
            raise ValueError(f"rarity_weights must sum to 1.0, got {total}")


@dataclass(frozen=True)
class PackType:
    """A named pack preset offered to players."""

    id: str
    name: str
    description: str
    spec: PackSpec


@dataclass
class Pack:
    """Result of a pack request."""

    cards: list[CardRecord] = field(default_factory=list)
    requested: int = 0
    needs_refill: bool = False
    # False when the shown flags were not saved; these cards can be dealt again
    shown_recorded: bool = True

    @property
    def is_short(self) -> bool:
        return len(self.cards) < self.requested


PACK_TYPES: tuple[PackType, ...] = (
    PackType(
        id="standard-booster",
        name="Standard Booster",
        description="Classic 8-card pack with balanced rarity odds",
        spec=PackSpec(
            card_count=8,
            rarity_weights={
                Rarity.COMMON: 0.60,
                Rarity.UNCOMMON: 0.30,
                Rarity.RARE: 0.08,
                Rarity.ULTRA_RARE: 0.02,
            },
        ),
    ),
    PackType(
        id="premium-pack",
        name="Premium Pack",
        description="Guaranteed rare card with better odds for ultra-rares",
        spec=PackSpec(
            card_count=10,
            rarity_weights={
                Rarity.COMMON: 0.45,
                Rarity.UNCOMMON: 0.35,
                Rarity.RARE: 0.15,
                Rarity.ULTRA_RARE: 0.05,
            },
            guaranteed_rare=True,
        ),
    ),
    PackType(
        id="ultra-premium",
        name="Ultra Premium",
        description="Maximum rarity! Multiple rares guaranteed",
        spec=PackSpec(
            card_count=12,
            rarity_weights={
                Rarity.COMMON: 0.30,
                Rarity.UNCOMMON: 0.35,
                Rarity.RARE: 0.25,
                Rarity.ULTRA_RARE: 0.10,
            },
            guaranteed_rare=True,
        ),
    ),
    PackType(
        id="mystery-pack",
        name="Mystery Pack",
        description="Unpredictable! Could be amazing or disappointing...",
        spec=PackSpec(
            card_count=8,
            rarity_weights={
                Rarity.COMMON: 0.50,
                Rarity.UNCOMMON: 0.25,
                Rarity.RARE: 0.15,
                Rarity.ULTRA_RARE: 0.10,
            },
        ),
    ),
)


def get_pack_type(pack_type_id: str) -> PackType | None:
    """Look up a preset by id."""
    for pack_type in PACK_TYPES:
        if pack_type.id == pack_type_id:
            return pack_type
    return None


def get_default_pack_type() -> PackType:
    return PACK_TYPES[0]
