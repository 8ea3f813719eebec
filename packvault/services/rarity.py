"""
Rarity classification for freshly acquired cards.

The engine stores the returned tag with each record but never computes it
itself. Two classifiers:
- ManifestRarityClassifier: manifest rarity string, else name patterns.
- RemoteRarityClassifier: card API lookup with an in-process cache, falling
  back to the manifest classifier on any HTTP failure.
"""

import logging
from typing import Protocol

import httpx

from packvault.models.card import CardDescriptor, Rarity

logger = logging.getLogger(__name__)

_ULTRA_RARITY_MARKERS = ("ultra", "secret", "rainbow", "hyper", "special illustration")

# Name fragments, checked against the lowercased name
_ULTRA_NAME_MARKERS = (
    " ex",
    " gx",
    " v-max",
    " vmax",
    " v-star",
    " vstar",
    "rainbow",
    " gold ",
    "secret",
    " v ",
    "ultra",
)
_RARE_NAME_MARKERS = (
    "holo",
    " break",
    " prime",
    " legend",
    " ☆",
    "radiant",
    "amazing",
)


def normalize_rarity(raw: str) -> Rarity:
    """
    Map a free-form rarity string onto the four tiers.

    Examples: "Common" -> common, "Rare Holo" -> rare,
    "Rare Secret" -> ultra-rare. Unknown strings map to common.
    """
    value = raw.strip().lower()

    if "uncommon" in value:
        return Rarity.UNCOMMON
    if "common" in value:
        return Rarity.COMMON
    if any(marker in value for marker in _ULTRA_RARITY_MARKERS):
        return Rarity.ULTRA_RARE
    if "rare" in value:
        return Rarity.RARE
    return Rarity.COMMON


def detect_rarity_from_pattern(card_name: str, set_name: str = "") -> Rarity:
    """Guess a rarity from the card name when no rarity string is known."""
    name = card_name.lower()

    if any(marker in name for marker in _ULTRA_NAME_MARKERS) or card_name.endswith(" V"):
        return Rarity.ULTRA_RARE
    if any(marker in name for marker in _RARE_NAME_MARKERS):
        return Rarity.RARE
    if "reverse" in name or "promo" in set_name.lower():
        return Rarity.UNCOMMON
    return Rarity.COMMON


class RarityClassifier(Protocol):
    async def classify(self, descriptor: CardDescriptor) -> Rarity: ...


class ManifestRarityClassifier:
    """Classifies from what the manifest row already says."""

    async def classify(self, descriptor: CardDescriptor) -> Rarity:
        if descriptor.rarity:
            return normalize_rarity(descriptor.rarity)
        if descriptor.card_name:
            return detect_rarity_from_pattern(descriptor.card_name, descriptor.set_name)
        return Rarity.COMMON


class RemoteRarityClassifier:
    """
    Looks cards up on the public card API.

    Results are cached per card id for the life of the classifier.
    """

    def __init__(
        self,
        api_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        fallback: RarityClassifier | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._client = client
        self.timeout = timeout
        self.fallback = fallback or ManifestRarityClassifier()
        self._cache: dict[str, Rarity] = {}

    async def _fetch_rarity(self, card_id: str) -> str | None:
        url = f"{self.api_url}/cards/{card_id}"
        if self._client is not None:
            response = await self._client.get(url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
        response.raise_for_status()
        body = response.json()
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            return None
        rarity = data.get("rarity")
        return rarity if isinstance(rarity, str) else None

    async def classify(self, descriptor: CardDescriptor) -> Rarity:
        card_id = descriptor.id
        if card_id in self._cache:
            return self._cache[card_id]

        try:
            raw = await self._fetch_rarity(card_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Rarity lookup failed for %s: %s", card_id, e)
            return await self.fallback.classify(descriptor)

        if raw is None:
            return await self.fallback.classify(descriptor)

        rarity = normalize_rarity(raw)
        self._cache[card_id] = rarity
        return rarity
