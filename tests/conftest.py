import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from io import BytesIO

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import create_async_engine

from packvault.config import Settings
from packvault.db.store import DurableRecordStore
from packvault.main import app
from packvault.models.card import CardDescriptor, CardRecord, Rarity
from packvault.services.cache_bridge import CacheBridge
from packvault.services.catalog import ManifestCatalog
from packvault.services.engine import CardEngine
from packvault.storage.adapter import TierStorageAdapter
from packvault.storage.tiers import MemoryTier

IMAGE_HOST = "https://images.example.test"

RecordFactory = Callable[..., CardRecord]


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    yield engine
    await engine.dispose()


@pytest.fixture
async def store(async_engine) -> DurableRecordStore:
    """Opened durable store on the in-memory engine."""
    record_store = DurableRecordStore(async_engine)
    await record_store.open()
    return record_store


@pytest.fixture
def adapter() -> TierStorageAdapter:
    """Adapter with only the in-process tier available."""
    tier_adapter = TierStorageAdapter([MemoryTier])
    tier_adapter.init()
    return tier_adapter


@pytest.fixture
def bridge(store: DurableRecordStore, adapter: TierStorageAdapter) -> CacheBridge:
    return CacheBridge(store, adapter)


@pytest.fixture
def make_record() -> RecordFactory:
    """Factory for records with distinct ids and descending acquisition times."""
    counter = {"n": 0}
    base_time = datetime(2024, 1, 1, tzinfo=UTC)

    def factory(
        card_number: str | None = None,
        *,
        set_id: str = "sv3",
        rarity: Rarity | None = Rarity.COMMON,
        shown: bool = False,
        payload: bytes | None = None,
    ) -> CardRecord:
        counter["n"] += 1
        number = card_number or str(counter["n"])
        return CardRecord(
            id=f"{set_id}-{number}",
            set_id=set_id,
            set_name="Obsidian Flames",
            card_number=number,
            remote_image_ref=f"{IMAGE_HOST}/{set_id}/{number}.png",
            compressed_payload=payload if payload is not None else f"img-{number}".encode(),
            filename=f"{set_id}_{number}.png",
            acquired_at=base_time + timedelta(minutes=counter["n"]),
            shown=shown,
            rarity=rarity,
        )

    return factory


@pytest.fixture
def make_descriptors() -> Callable[..., list[CardDescriptor]]:
    """Factory for catalog descriptors pointing at IMAGE_HOST."""

    def factory(count: int, *, set_id: str = "sv4", start: int = 1) -> list[CardDescriptor]:
        return [
            CardDescriptor(
                set_id=set_id,
                set_name="Paradox Rift",
                card_number=str(n),
                remote_image_ref=f"{IMAGE_HOST}/{set_id}/{n}.png",
                filename=f"{set_id}_{n}.png",
                rarity="Common",
            )
            for n in range(start, start + count)
        ]

    return factory


@pytest.fixture
def catalog_for() -> Callable[[list[CardDescriptor]], ManifestCatalog]:
    def factory(descriptors: list[CardDescriptor]) -> ManifestCatalog:
        return ManifestCatalog(descriptors=descriptors, rng=random.Random(7))

    return factory


@pytest.fixture
def png_bytes() -> bytes:
    """A real 800x1100 PNG, larger than the default compression box."""
    image = Image.new("RGB", (800, 1100), color=(200, 40, 40))
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
async def card_engine(async_engine, catalog_for):
    """Started engine on in-memory storage with an empty catalog (refills find nothing)."""
    engine = CardEngine.from_settings(
        Settings(initial_load=0),
        db_engine=async_engine,
        tier_factories=[MemoryTier],
        catalog=catalog_for([]),
        rng=random.Random(5),
    )
    await engine.start()
    yield engine
    await engine.close()


@pytest.fixture
async def api_client(card_engine):
    """Async test client with the engine installed on app state."""
    app.state.engine = card_engine
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    del app.state.engine
