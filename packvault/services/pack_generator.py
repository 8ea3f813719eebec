"""
Rarity-Weighted Pack Generator.

Draws a pack from the unshown pool:
1. Partition the pool into rarity buckets.
2. Guaranteed-rare packs first take one card: ultra-rare with probability
   0.10 (if any), else rare, else ultra-rare, else the slot is skipped.
3. Every remaining slot draws r in [0, 1) and walks cumulative weights from
   ultra-rare down to common. An empty bucket falls through to the next
   lower rarity with cards left, then to higher ones. A slot with no card
   anywhere is dropped.

Never raises on a scarce pool; the pack just comes out short.
"""

import logging
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from packvault.models.card import CardRecord, Rarity
from packvault.models.pack import RARITY_WALK_ORDER, PackSpec

logger = logging.getLogger(__name__)

GUARANTEED_ULTRA_CHANCE = 0.10

PACK_TIER_STANDARD = "standard"
PACK_TIER_RARE = "rare"
PACK_TIER_ULTRA = "ultra"

Buckets = dict[Rarity, list[CardRecord]]


def partition_by_rarity(pool: Iterable[CardRecord]) -> Buckets:
    """Split the pool into one bucket per rarity, dropping repeated ids."""
    buckets: Buckets = {rarity: [] for rarity in Rarity}
    seen: set[str] = set()
    for card in pool:
        if card.id in seen:
            continue
        seen.add(card.id)
        buckets[card.effective_rarity].append(card)
    return buckets


def _take_random(bucket: list[CardRecord], rng: random.Random) -> CardRecord:
    # Swap-remove: the drawn card leaves the bucket
    index = rng.randrange(len(bucket))
    bucket[index], bucket[-1] = bucket[-1], bucket[index]
    return bucket.pop()


def draw_guaranteed_rare(buckets: Buckets, rng: random.Random) -> CardRecord | None:
    ultra = buckets[Rarity.ULTRA_RARE]
    rare = buckets[Rarity.RARE]

    if rng.random() < GUARANTEED_ULTRA_CHANCE and ultra:
        return _take_random(ultra, rng)
    if rare:
        return _take_random(rare, rng)
    if ultra:
        return _take_random(ultra, rng)
    return None


def pick_bucket(weights: dict[Rarity, float], r: float) -> int:
    """Index into RARITY_WALK_ORDER of the bucket whose cumulative weight first exceeds r."""
    cumulative = 0.0
    for index, rarity in enumerate(RARITY_WALK_ORDER):
        cumulative += weights[rarity]
        if r < cumulative:
            return index
    # Weights summing to slightly under 1.0
    return len(RARITY_WALK_ORDER) - 1


def draw_weighted(
    buckets: Buckets, weights: dict[Rarity, float], rng: random.Random
) -> CardRecord | None:
    start = pick_bucket(weights, rng.random())
    order = RARITY_WALK_ORDER[start:] + RARITY_WALK_ORDER[:start]
    for rarity in order:
        if buckets[rarity]:
            return _take_random(buckets[rarity], rng)
    return None


def generate_pack(
    pool: Sequence[CardRecord],
    spec: PackSpec,
    rng: random.Random | None = None,
) -> list[CardRecord]:
    """
    Draw up to ``spec.card_count`` distinct cards from ``pool``.

    Args:
        pool: Unshown records to draw from
        spec: Pack size, rarity weights and guaranteed-rare flag
        rng: Random source (seed it for reproducible packs)

    Returns:
        Selected cards in selection order. Shorter than requested when the
        pool runs out.
    """
    rng = rng or random.Random()
    buckets = partition_by_rarity(pool)
    selected: list[CardRecord] = []

    logger.debug(
        "Available cards by rarity: %s",
        {rarity.value: len(cards) for rarity, cards in buckets.items()},
    )

    if spec.guaranteed_rare:
        card = draw_guaranteed_rare(buckets, rng)
        if card is not None:
            selected.append(card)
        else:
            logger.debug("No rare or ultra-rare available for guaranteed slot")

    for _ in range(spec.card_count - len(selected)):
        card = draw_weighted(buckets, spec.rarity_weights, rng)
        if card is None:
            break
        selected.append(card)

    if len(selected) < spec.card_count:
        logger.info("Short pack: %d of %d cards", len(selected), spec.card_count)

    return selected


@dataclass
class PackAnalysis:
    has_rare: bool
    has_ultra_rare: bool
    rare_count: int
    ultra_rare_count: int
    rare_cards: list[CardRecord] = field(default_factory=list)


def analyze_pack_contents(pack: Sequence[CardRecord]) -> PackAnalysis:
    """Summarize rare pulls for display. ``rare_cards`` lists rares then ultra-rares."""
    rares = [card for card in pack if card.effective_rarity is Rarity.RARE]
    ultras = [card for card in pack if card.effective_rarity is Rarity.ULTRA_RARE]
    return PackAnalysis(
        has_rare=bool(rares),
        has_ultra_rare=bool(ultras),
        rare_count=len(rares),
        ultra_rare_count=len(ultras),
        rare_cards=rares + ultras,
    )


def compute_pack_tier(pack: Sequence[CardRecord]) -> str:
    """Presentation tier: ultra if any ultra-rare, rare if any rare, else standard."""
    rarities = {card.effective_rarity for card in pack}
    if Rarity.ULTRA_RARE in rarities:
        return PACK_TIER_ULTRA
    if Rarity.RARE in rarities:
        return PACK_TIER_RARE
    return PACK_TIER_STANDARD
