"""
PackVault services.

Acquisition, refill policy and pack dealing on top of the storage tiers.
"""

from packvault.services.acquisition import (
    AcquisitionPipeline,
    AcquisitionResult,
    fetch_image,
    plan_acquisition,
)
from packvault.services.cache_bridge import CacheBridge, StorageStats, SyncView
from packvault.services.catalog import CardCatalog, CatalogError, ManifestCatalog, parse_manifest
from packvault.services.engine import CardEngine, StartupReport
from packvault.services.image_compression import (
    CompressedImage,
    ImageCompressionOptions,
    compress_image,
)
from packvault.services.migration import (
    MigrationResult,
    clear_legacy_storage,
    migrate_legacy_mirror,
    reset_migration,
)
from packvault.services.pack_dealer import PackDealer
from packvault.services.pack_generator import (
    PackAnalysis,
    analyze_pack_contents,
    compute_pack_tier,
    generate_pack,
)
from packvault.services.rarity import (
    ManifestRarityClassifier,
    RarityClassifier,
    RemoteRarityClassifier,
    detect_rarity_from_pattern,
    normalize_rarity,
)
from packvault.services.shown_tracker import ShownStateTracker
from packvault.services.single_flight import AcquisitionState, SingleFlightGuard

__all__ = [
    "AcquisitionPipeline",
    "AcquisitionResult",
    "AcquisitionState",
    "CacheBridge",
    "CardCatalog",
    "CardEngine",
    "CatalogError",
    "CompressedImage",
    "ImageCompressionOptions",
    "ManifestCatalog",
    "ManifestRarityClassifier",
    "MigrationResult",
    "PackAnalysis",
    "PackDealer",
    "RarityClassifier",
    "RemoteRarityClassifier",
    "ShownStateTracker",
    "SingleFlightGuard",
    "StartupReport",
    "StorageStats",
    "SyncView",
    "analyze_pack_contents",
    "clear_legacy_storage",
    "compress_image",
    "compute_pack_tier",
    "detect_rarity_from_pattern",
    "fetch_image",
    "generate_pack",
    "migrate_legacy_mirror",
    "normalize_rarity",
    "parse_manifest",
    "plan_acquisition",
    "reset_migration",
]
