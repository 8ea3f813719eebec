"""
Card engine wiring.

Builds every component from Settings and owns their lifecycle:
store -> adapter -> bridge -> pipeline -> tracker -> dealer.
"""

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from packvault.config import Settings
from packvault.config import settings as default_settings
from packvault.db import database
from packvault.db.store import DurableRecordStore
from packvault.models.pack import Pack, PackSpec
from packvault.services.acquisition import AcquisitionPipeline
from packvault.services.cache_bridge import CacheBridge
from packvault.services.catalog import CardCatalog, ManifestCatalog
from packvault.services.image_compression import ImageCompressionOptions
from packvault.services.migration import MigrationResult, migrate_legacy_mirror
from packvault.services.pack_dealer import PackDealer
from packvault.services.rarity import (
    ManifestRarityClassifier,
    RarityClassifier,
    RemoteRarityClassifier,
)
from packvault.services.shown_tracker import ShownStateTracker
from packvault.services.single_flight import SingleFlightGuard
from packvault.storage.adapter import TierFactory, TierStorageAdapter, default_tier_factories

logger = logging.getLogger(__name__)


@dataclass
class StartupReport:
    active_tier: str
    warmed_cards: int
    migration: MigrationResult
    initial_load_started: bool


class CardEngine:
    """All engine components plus start/close."""

    def __init__(
        self,
        *,
        store: DurableRecordStore,
        adapter: TierStorageAdapter,
        bridge: CacheBridge,
        pipeline: AcquisitionPipeline,
        guard: SingleFlightGuard,
        tracker: ShownStateTracker,
        dealer: PackDealer,
        initial_load: int = 0,
    ) -> None:
        self.store = store
        self.adapter = adapter
        self.bridge = bridge
        self.pipeline = pipeline
        self.guard = guard
        self.tracker = tracker
        self.dealer = dealer
        self.initial_load = initial_load
        self.started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        db_engine: AsyncEngine | None = None,
        tier_factories: Sequence[TierFactory] | None = None,
        catalog: CardCatalog | None = None,
        classifier: RarityClassifier | None = None,
        client: httpx.AsyncClient | None = None,
        rng: random.Random | None = None,
    ) -> "CardEngine":
        """Build an engine. Keyword arguments replace the matching default component."""
        settings = settings or default_settings

        store = DurableRecordStore(db_engine or database.engine)
        if tier_factories is None:
            tier_factories = default_tier_factories(
                session_quota=settings.session_storage_quota,
                local_dir=settings.local_storage_dir,
                local_quota=settings.local_storage_quota,
                session_root=settings.session_storage_root,
            )
        adapter = TierStorageAdapter(tier_factories)
        bridge = CacheBridge(store, adapter)

        if classifier is None:
            if settings.rarity_lookup_enabled:
                classifier = RemoteRarityClassifier(
                    settings.rarity_api_url, timeout=settings.fetch_timeout
                )
            else:
                classifier = ManifestRarityClassifier()

        pipeline = AcquisitionPipeline(
            bridge,
            catalog or ManifestCatalog(settings.manifest_path),
            classifier=classifier,
            client=client,
            cap=settings.working_set_cap,
            pack_size=settings.pack_size,
            wave_width=settings.wave_width,
            fetch_timeout=settings.fetch_timeout,
            image_options=ImageCompressionOptions(
                max_width=settings.image_max_width,
                max_height=settings.image_max_height,
                quality=settings.image_quality,
                format=settings.image_format,
            ),
        )
        guard = SingleFlightGuard()
        tracker = ShownStateTracker(
            bridge,
            pipeline,
            guard,
            refill_threshold=settings.refill_threshold,
            cap=settings.working_set_cap,
            pack_size=settings.pack_size,
        )
        return cls(
            store=store,
            adapter=adapter,
            bridge=bridge,
            pipeline=pipeline,
            guard=guard,
            tracker=tracker,
            dealer=PackDealer(tracker, rng),
            initial_load=settings.initial_load,
        )

    async def start(self) -> StartupReport:
        """
        Open storage, migrate, warm the mirror and kick off the first load.

        Raises:
            TransactionAbortedError: If the durable store cannot be opened
        """
        await self.store.open()
        active_tier = self.adapter.init()
        migration = await migrate_legacy_mirror(self.adapter, self.store)
        warmed = await self.bridge.warmup()

        initial_load_started = False
        if warmed == 0 and not self.bridge.get_cards() and self.initial_load > 0:
            logger.info("No cached cards, starting initial load of %d", self.initial_load)
            initial_load_started = self.tracker.request_refill(
                self.initial_load, reason="initial_load"
            )

        self.started = True
        logger.info(
            "ENGINE_STARTED",
            extra={"active_tier": active_tier, "warmed_cards": warmed},
        )
        return StartupReport(
            active_tier=active_tier,
            warmed_cards=warmed,
            migration=migration,
            initial_load_started=initial_load_started,
        )

    async def open_pack(self, spec: PackSpec) -> Pack:
        return await self.dealer.open_pack(spec)

    async def close(self) -> None:
        await self.tracker.cancel_refill()
        self.adapter.close()
        await self.store.engine.dispose()
        self.started = False
        logger.info("Engine closed")
