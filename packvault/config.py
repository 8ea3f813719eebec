from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "PackVault"
    debug: bool = False

    database_url: str = "sqlite+aiosqlite:///./packvault.db"

    # CSV manifest of card descriptors the catalog draws candidates from
    manifest_path: Path = Path("data/downloaded_cards.csv")

    # Mirror tiers: volatile per-process directory, then durable directory
    session_storage_root: Path | None = None
    local_storage_dir: Path = Path(".cache/packvault/local")
    session_storage_quota: int = 5 * 1024 * 1024
    local_storage_quota: int = 5 * 1024 * 1024

    # Working set and refill policy
    working_set_cap: int = 32
    pack_size: int = 8
    refill_threshold: int = 16
    initial_load: int = 24

    # Acquisition
    wave_width: int = 4
    fetch_timeout: float = 10.0
    image_max_width: int = 600
    image_max_height: int = 450
    image_quality: int = 85
    image_format: str = "webp"

    # Rarity lookups against the public card API (off by default)
    rarity_api_url: str = "https://api.pokemontcg.io/v2"
    rarity_lookup_enabled: bool = False


settings = Settings()


# =============================================================================
# ENGINE DEFAULTS
# =============================================================================

# Maximum number of records held in the mirror and durable store at once
WORKING_SET_CAP = 32

# Cards dealt per pack; acquisitions are always a multiple of this
PACK_SIZE = 8

# Unshown count at or below which a background refill is started
REFILL_THRESHOLD = 16

# Concurrent fetches per acquisition wave
WAVE_WIDTH = 4

FETCH_TIMEOUT_SECONDS = 10.0
