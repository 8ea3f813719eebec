"""
Tier Storage Adapter: uniform key/value facade over the mirror tiers.

CONTRACT:
- init() activates the first tier that survives a write/delete round-trip,
  falling back to an in-process map (logged as degraded).
- get_item() never raises; failures read as absent.
- set_item() never raises; it returns False on failure.
- On quota exhaustion set_item() walks the eviction ladder, retrying after
  each step, and demotes the active tier to memory once the ladder is spent.
- estimate_usage() is advisory only and never gates writes.
"""

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from packvault.models.failure import QuotaExceededError, StorageUnavailableError
from packvault.models.session import SessionState
from packvault.storage.eviction import EVICTION_LADDER, EvictionStrategy
from packvault.storage.tiers import (
    KeyValueTier,
    LocalDirectoryTier,
    MemoryTier,
    SessionDirectoryTier,
    StorageEstimate,
    TierError,
)

logger = logging.getLogger(__name__)

# Key holding the mirror document
MIRROR_KEY = "packvault_session_cards_v2"

_PROBE_KEY = "__storage_test__"

# Usage fraction above which storage is reported as critically low
CRITICAL_USAGE_RATIO = 0.9

TierFactory = Callable[[], KeyValueTier]


def default_tier_factories(
    *,
    session_quota: int,
    local_dir: Path,
    local_quota: int,
    session_root: Path | None = None,
) -> list[TierFactory]:
    """Volatile session directory first, then the durable local directory."""
    return [
        lambda: SessionDirectoryTier(quota=session_quota, root=session_root),
        lambda: LocalDirectoryTier(local_dir, quota=local_quota),
    ]


def probe_tier(tier: KeyValueTier) -> bool:
    """True if the tier accepts a test write and delete."""
    try:
        tier.set(_PROBE_KEY, "test")
        tier.delete(_PROBE_KEY)
        return True
    except (TierError, QuotaExceededError):
        return False


def select_tier(factories: Sequence[TierFactory]) -> KeyValueTier | None:
    """Return the first tier that can be built and passes the probe."""
    for factory in factories:
        try:
            tier = factory()
        except TierError as e:
            logger.debug("Tier unavailable: %s", e)
            continue
        if probe_tier(tier):
            return tier
        tier.close()
    return None


class TierStorageAdapter:
    """Key/value facade that hides which tier is active."""

    def __init__(
        self,
        factories: Sequence[TierFactory] = (),
        *,
        mirror_key: str = MIRROR_KEY,
        eviction_ladder: Sequence[EvictionStrategy] = EVICTION_LADDER,
    ) -> None:
        self._factories = list(factories)
        self.mirror_key = mirror_key
        self._eviction_ladder = tuple(eviction_ladder)
        self._active: KeyValueTier = MemoryTier()
        self._initialized = False
        self.degraded_error: StorageUnavailableError | None = None

    # --- Lifecycle ---

    def init(self) -> str:
        """
        Probe tiers and activate the first that works.

        Idempotent. Returns the active tier name.
        """
        if self._initialized:
            return self._active.name

        tier = select_tier(self._factories)
        if tier is None:
            self._active = MemoryTier()
            self.degraded_error = StorageUnavailableError(detail="all tiers failed the probe")
            logger.warning(
                "STORAGE_DEGRADED",
                extra={"active_tier": self._active.name, "reason": "no tier available"},
            )
        else:
            self._active = tier
            logger.info("STORAGE_TIER_SELECTED", extra={"active_tier": tier.name})

        self._initialized = True
        return self._active.name

    def _ensure_init(self) -> None:
        if not self._initialized:
            self.init()

    @property
    def active_tier_name(self) -> str:
        self._ensure_init()
        return self._active.name

    @property
    def is_persistent(self) -> bool:
        self._ensure_init()
        return self._active.persistent

    def close(self) -> None:
        self._active.close()

    # --- Key/value operations ---

    def get_item(self, key: str) -> str | None:
        self._ensure_init()
        try:
            return self._active.get(key)
        except TierError as e:
            logger.error("Error reading %s from %s: %s", key, self._active.name, e)
            return None

    def set_item(self, key: str, value: str) -> bool:
        self._ensure_init()
        try:
            self._active.set(key, value)
            return True
        except QuotaExceededError:
            logger.warning(
                "QUOTA_EXCEEDED",
                extra={"tier": self._active.name, "key": key, "size": len(value)},
            )
            return self._recover_from_quota(key, value)
        except TierError as e:
            logger.error("Error writing %s to %s: %s", key, self._active.name, e)
            return False

    def remove_item(self, key: str) -> None:
        self._ensure_init()
        try:
            self._active.delete(key)
        except TierError as e:
            logger.error("Error removing %s from %s: %s", key, self._active.name, e)

    def keys(self) -> list[str]:
        self._ensure_init()
        try:
            return self._active.keys()
        except TierError as e:
            logger.error("Error listing keys in %s: %s", self._active.name, e)
            return []

    def clear(self) -> None:
        self._ensure_init()
        try:
            self._active.clear()
        except TierError as e:
            logger.error("Error clearing %s: %s", self._active.name, e)

    # --- Capacity ---

    def estimate_usage(self) -> StorageEstimate | None:
        """Advisory capacity report for the active tier."""
        self._ensure_init()
        return self._active.estimate()

    def is_storage_critically_low(self) -> bool:
        estimate = self.estimate_usage()
        if not estimate or estimate.quota <= 0:
            return False
        return estimate.used / estimate.quota > CRITICAL_USAGE_RATIO

    # --- Quota recovery ---

    def _load_reducible_state(self, key: str, value: str) -> SessionState | None:
        raw = value if key == self.mirror_key else self.get_item(self.mirror_key)
        if raw is None:
            return None
        try:
            return SessionState.from_json(raw)
        except ValueError as e:
            logger.warning("Mirror document unreadable, skipping eviction: %s", e)
            return None

    def _recover_from_quota(self, key: str, value: str) -> bool:
        state = self._load_reducible_state(key, value)

        if state is not None:
            for strategy in self._eviction_ladder:
                state = strategy(state)
                logger.info(
                    "QUOTA_EVICTION_APPLIED",
                    extra={
                        "strategy": getattr(strategy, "__name__", repr(strategy)),
                        "remaining_cards": len(state.cards),
                    },
                )
                try:
                    self._active.set(self.mirror_key, state.to_json())
                    if key != self.mirror_key:
                        self._active.set(key, value)
                    return True
                except QuotaExceededError:
                    continue
                except TierError as e:
                    logger.error("Retry after eviction failed: %s", e)
                    break

        self._demote_to_memory()
        self._active.set(key, value)
        return False

    def _demote_to_memory(self) -> None:
        """Swap the active tier for an in-process map, carrying keys over."""
        previous = self._active
        memory = MemoryTier()
        try:
            for existing_key in previous.keys():
                existing = previous.get(existing_key)
                if existing is not None:
                    memory.set(existing_key, existing)
        except TierError as e:
            logger.warning("Could not copy keys out of %s: %s", previous.name, e)

        previous.close()
        self._active = memory
        self.degraded_error = StorageUnavailableError(detail=f"{previous.name} tier exhausted")
        logger.warning(
            "STORAGE_DEGRADED",
            extra={"active_tier": memory.name, "previous_tier": previous.name},
        )
