"""Tests for rarity classification."""

import httpx
import pytest
import respx

from packvault.models.card import CardDescriptor, Rarity
from packvault.services.rarity import (
    ManifestRarityClassifier,
    RemoteRarityClassifier,
    detect_rarity_from_pattern,
    normalize_rarity,
)

API_URL = "https://cards.example.test/v2"


def _descriptor(*, card_name: str | None = None, rarity: str | None = None) -> CardDescriptor:
    return CardDescriptor(
        set_id="sv3",
        set_name="Obsidian Flames",
        card_number="125",
        remote_image_ref="https://img.test/sv3/125.png",
        card_name=card_name,
        rarity=rarity,
    )


class TestNormalizeRarity:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Common", Rarity.COMMON),
            ("Uncommon", Rarity.UNCOMMON),
            ("Rare", Rarity.RARE),
            ("Rare Holo", Rarity.RARE),
            ("Rare Secret", Rarity.ULTRA_RARE),
            ("Ultra Rare", Rarity.ULTRA_RARE),
            ("Special Illustration Rare", Rarity.ULTRA_RARE),
            ("Promo", Rarity.COMMON),
        ],
    )
    def test_mapping(self, raw: str, expected: Rarity) -> None:
        """Free-form rarity strings map onto the four tiers."""
        assert normalize_rarity(raw) is expected


class TestPatternDetection:
    def test_ex_is_ultra(self) -> None:
        """Rule-box suffixes count as ultra-rare."""
        assert detect_rarity_from_pattern("Charizard ex") is Rarity.ULTRA_RARE
        assert detect_rarity_from_pattern("Lugia V") is Rarity.ULTRA_RARE

    def test_holo_is_rare(self) -> None:
        """Holo names count as rare."""
        assert detect_rarity_from_pattern("Pikachu Holo") is Rarity.RARE

    def test_promo_set_is_uncommon(self) -> None:
        """Promo sets default to uncommon."""
        assert detect_rarity_from_pattern("Pikachu", "Black Star Promos") is Rarity.UNCOMMON

    def test_plain_name_is_common(self) -> None:
        """Plain names default to common."""
        assert detect_rarity_from_pattern("Pidgey") is Rarity.COMMON


class TestManifestClassifier:
    async def test_prefers_manifest_rarity(self) -> None:
        """A rarity column wins over the name."""
        descriptor = _descriptor(card_name="Charizard ex", rarity="Common")

        assert await ManifestRarityClassifier().classify(descriptor) is Rarity.COMMON

    async def test_falls_back_to_name(self) -> None:
        """Without a rarity column the name pattern is used."""
        descriptor = _descriptor(card_name="Charizard ex")

        assert await ManifestRarityClassifier().classify(descriptor) is Rarity.ULTRA_RARE

    async def test_nothing_known(self) -> None:
        """No rarity or name means common."""
        assert await ManifestRarityClassifier().classify(_descriptor()) is Rarity.COMMON


class TestRemoteClassifier:
    @respx.mock
    async def test_uses_api_rarity_and_caches(self) -> None:
        """The API rarity is normalized and cached per card."""
        route = respx.get(f"{API_URL}/cards/sv3-125").mock(
            return_value=httpx.Response(200, json={"data": {"rarity": "Double Rare"}})
        )
        classifier = RemoteRarityClassifier(API_URL)

        assert await classifier.classify(_descriptor()) is Rarity.RARE
        assert await classifier.classify(_descriptor()) is Rarity.RARE
        assert route.call_count == 1

    @respx.mock
    async def test_http_error_falls_back(self) -> None:
        """API failures use the manifest classifier."""
        respx.get(f"{API_URL}/cards/sv3-125").mock(return_value=httpx.Response(500))
        classifier = RemoteRarityClassifier(API_URL)

        assert await classifier.classify(_descriptor(rarity="Uncommon")) is Rarity.UNCOMMON

    @respx.mock
    async def test_missing_rarity_falls_back(self) -> None:
        """A card without a rarity field uses the fallback and is not cached."""
        route = respx.get(f"{API_URL}/cards/sv3-125").mock(
            return_value=httpx.Response(200, json={"data": {}})
        )
        classifier = RemoteRarityClassifier(API_URL)

        assert await classifier.classify(_descriptor(card_name="Pikachu Holo")) is Rarity.RARE
        await classifier.classify(_descriptor())
        assert route.call_count == 2

    @pytest.mark.parametrize(
        "payload",
        [[], ["Rare"], "Rare", {"data": ["Rare"]}, {"data": "Rare"}, {"data": {"rarity": 3}}],
    )
    async def test_unexpected_payload_shape_falls_back(self, payload) -> None:
        """JSON that is not the expected object shape uses the fallback."""
        classifier = RemoteRarityClassifier(API_URL)

        with respx.mock:
            respx.get(f"{API_URL}/cards/sv3-125").mock(
                return_value=httpx.Response(200, json=payload)
            )
            rarity = await classifier.classify(_descriptor(rarity="Uncommon"))

        assert rarity is Rarity.UNCOMMON

    @respx.mock
    async def test_uses_shared_client(self) -> None:
        """An injected client is used for lookups."""
        respx.get(f"{API_URL}/cards/sv3-125").mock(
            return_value=httpx.Response(200, json={"data": {"rarity": "Common"}})
        )

        async with httpx.AsyncClient() as client:
            classifier = RemoteRarityClassifier(f"{API_URL}/", client=client)
            assert await classifier.classify(_descriptor()) is Rarity.COMMON
