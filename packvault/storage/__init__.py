from packvault.storage.adapter import (
    MIRROR_KEY,
    TierStorageAdapter,
    default_tier_factories,
    probe_tier,
    select_tier,
)
from packvault.storage.eviction import EVICTION_LADDER, drop_shown, keep_most_recent
from packvault.storage.tiers import (
    DirectoryTier,
    KeyValueTier,
    LocalDirectoryTier,
    MemoryTier,
    SessionDirectoryTier,
    StorageEstimate,
    TierError,
)

__all__ = [
    "EVICTION_LADDER",
    "MIRROR_KEY",
    "DirectoryTier",
    "KeyValueTier",
    "LocalDirectoryTier",
    "MemoryTier",
    "SessionDirectoryTier",
    "StorageEstimate",
    "TierError",
    "TierStorageAdapter",
    "default_tier_factories",
    "drop_shown",
    "keep_most_recent",
    "probe_tier",
    "select_tier",
]
