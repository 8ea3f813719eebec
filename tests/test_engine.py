"""Tests for engine wiring and lifecycle."""

import random

import httpx
import pytest
import respx

from packvault.config import Settings
from packvault.db.store import DurableRecordStore
from packvault.models.pack import get_default_pack_type
from packvault.services.engine import CardEngine
from packvault.services.rarity import ManifestRarityClassifier, RemoteRarityClassifier
from packvault.storage.tiers import MemoryTier

IMAGE_HOST = "https://images.example.test"


@pytest.fixture
def build_engine(async_engine, make_descriptors, catalog_for):
    def factory(**overrides) -> CardEngine:
        options = {"initial_load": 0, "refill_threshold": 8} | overrides
        return CardEngine.from_settings(
            Settings(**options),
            db_engine=async_engine,
            tier_factories=[MemoryTier],
            catalog=catalog_for(make_descriptors(40)),
            rng=random.Random(3),
        )

    return factory


class TestFromSettings:
    def test_components_share_guard_and_bridge(self, build_engine) -> None:
        """Tracker, pipeline and dealer are wired to the same collaborators."""
        engine = build_engine(working_set_cap=24, pack_size=6)

        assert engine.tracker.guard is engine.guard
        assert engine.tracker.pipeline is engine.pipeline
        assert engine.pipeline.bridge is engine.bridge
        assert engine.dealer.tracker is engine.tracker
        assert engine.pipeline.cap == engine.tracker.cap == 24
        assert engine.pipeline.pack_size == 6

    def test_classifier_selection(self, build_engine) -> None:
        """Remote lookups are used only when enabled."""
        assert isinstance(build_engine().pipeline.classifier, ManifestRarityClassifier)
        assert isinstance(
            build_engine(rarity_lookup_enabled=True).pipeline.classifier, RemoteRarityClassifier
        )


class TestLifecycle:
    async def test_start_on_empty_store(self, build_engine) -> None:
        """A fresh start opens storage, migrates and finds nothing to warm."""
        engine = build_engine()

        report = await engine.start()

        assert engine.started is True
        assert report.active_tier == "memory"
        assert report.warmed_cards == 0
        assert report.migration.success is True
        assert report.initial_load_started is False
        await engine.close()
        assert engine.started is False

    async def test_start_warms_existing_records(self, build_engine, async_engine, make_record) -> None:
        """Existing durable records are projected into the mirror on start."""
        store = DurableRecordStore(async_engine)
        await store.add_records([make_record() for _ in range(10)])
        engine = build_engine(initial_load=24)

        report = await engine.start()

        assert report.warmed_cards == 10
        assert report.initial_load_started is False
        assert len(engine.bridge.get_cards()) == 10
        await engine.close()

    @respx.mock
    async def test_initial_load(self, build_engine, png_bytes) -> None:
        """An empty engine fetches the initial load in the background."""
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        engine = build_engine(initial_load=16)

        report = await engine.start()
        await engine.tracker.wait_for_refill()

        assert report.initial_load_started is True
        assert await engine.store.count() == 16
        assert len(engine.bridge.get_cards()) == 16
        assert engine.bridge.view.get_state().is_loading is False
        await engine.close()

    async def test_open_pack(self, build_engine, async_engine, make_record) -> None:
        """Packs are dealt from the warmed mirror."""
        store = DurableRecordStore(async_engine)
        await store.add_records([make_record() for _ in range(20)])
        engine = build_engine()
        await engine.start()

        pack = await engine.open_pack(get_default_pack_type().spec)

        assert len(pack.cards) == 8
        assert await engine.store.unshown_count() == 12
        await engine.close()
