"""
Cache Bridge: keeps the fast mirror in step with the durable store.

Two separate interfaces:
- SyncView reads the mirror synchronously and may be stale. It never
  falls back to the durable store.
- DurableRecordStore is async and authoritative.

Mutations go to the durable store first; the mirror update that follows is
best-effort and never rolls the durable write back. A crash in between
leaves the mirror stale until the next warmup().
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from packvault.db.store import DurableRecordStore
from packvault.models.card import CardRecord
from packvault.models.failure import TransactionAbortedError
from packvault.models.session import SessionState
from packvault.storage.adapter import TierStorageAdapter
from packvault.storage.tiers import StorageEstimate

logger = logging.getLogger(__name__)

LAST_REFILL_KEY = "last_refill_at"

# Durable metadata derived from the card set; cleared with it
DERIVED_METADATA_KEYS: tuple[str, ...] = (LAST_REFILL_KEY,)


@dataclass
class StorageStats:
    """Counts from the durable store plus mirror tier details."""

    total_cards: int
    unshown_cards: int
    shown_cards: int
    mirror_cards: int
    active_tier: str
    estimate: StorageEstimate | None = None


class SyncView:
    """Synchronous, possibly stale view of the mirror document."""

    def __init__(self, adapter: TierStorageAdapter) -> None:
        self.adapter = adapter

    def get_state(self) -> SessionState:
        raw = self.adapter.get_item(self.adapter.mirror_key)
        if raw is None:
            return SessionState()
        try:
            return SessionState.from_json(raw)
        except ValueError as e:
            logger.warning("Mirror read failed: %s", e)
            return SessionState()

    def write_state(self, state: SessionState) -> bool:
        return self.adapter.set_item(self.adapter.mirror_key, state.to_json())

    def get_cards(self) -> list[CardRecord]:
        return self.get_state().cards

    def get_shown_ids(self) -> set[str]:
        return self.get_state().shown_ids

    def get_unshown_cards(self) -> list[CardRecord]:
        return self.get_state().unshown_cards()

    def clear(self) -> None:
        self.adapter.remove_item(self.adapter.mirror_key)


class CacheBridge:
    """Write-through coordinator between the mirror and the durable store."""

    def __init__(self, store: DurableRecordStore, adapter: TierStorageAdapter) -> None:
        self.store = store
        self.view = SyncView(adapter)

    def _log_mirror_write_failure(self, operation: str) -> None:
        adapter = self.view.adapter
        if adapter.degraded_error is not None and not adapter.is_persistent:
            # Quota recovery demoted the adapter and kept the write in memory
            logger.warning(
                "MIRROR_DEMOTED_TO_MEMORY",
                extra={"operation": operation, "detail": adapter.degraded_error.detail},
            )
        else:
            logger.warning(
                "Mirror update failed during %s, durable store still has data", operation
            )

    async def warmup(self) -> int:
        """
        Rebuild the mirror from the durable store.

        Returns the number of records loaded. A failed mirror write is
        logged and ignored; the durable store stays authoritative.
        """
        logger.info("Warming up mirror from durable store")
        try:
            records = await self.store.get_all()
        except TransactionAbortedError as e:
            logger.error("Failed to warm up mirror: %s", e)
            return 0

        previous = self.view.get_state()
        state = SessionState(
            cards=records,
            shown_ids={record.id for record in records if record.shown},
            last_refill_at=previous.last_refill_at,
        )
        if self.view.write_state(state):
            logger.info("Cached %d cards in %s tier", len(records), self.view.adapter.active_tier_name)
        else:
            self._log_mirror_write_failure("warmup")

        return len(records)

    def get_cards(self) -> list[CardRecord]:
        """Mirror contents, newest first. Empty if the mirror is absent."""
        return self.view.get_cards()

    def get_shown_ids(self) -> set[str]:
        return self.view.get_shown_ids()

    async def add_cards(self, records: Sequence[CardRecord]) -> bool:
        """
        Persist records, then prepend them to the mirror.

        Returns False only if the durable write failed.
        """
        if not records:
            return True

        try:
            await self.store.add_records(records)
        except TransactionAbortedError as e:
            logger.error("Failed to add cards: %s", e)
            return False

        logger.info("Added %d cards to durable store", len(records))

        new_ids = {record.id for record in records}
        state = self.view.get_state()
        state.cards = list(records) + [card for card in state.cards if card.id not in new_ids]
        state.shown_ids -= new_ids
        if not self.view.write_state(state):
            self._log_mirror_write_failure("add_cards")

        return True

    async def mark_shown(self, record_ids: Iterable[str]) -> bool:
        ids = set(record_ids)
        try:
            await self.store.mark_shown(ids)
        except TransactionAbortedError as e:
            logger.error("Failed to mark cards as shown: %s", e)
            return False

        state = self.view.get_state()
        state.shown_ids |= ids
        state.cards = [card.with_shown() if card.id in ids else card for card in state.cards]
        if not self.view.write_state(state):
            self._log_mirror_write_failure("mark_shown")

        return True

    async def delete_cards(self, record_ids: Iterable[str]) -> bool:
        ids = set(record_ids)
        try:
            await self.store.delete_records(ids)
        except TransactionAbortedError as e:
            logger.error("Failed to delete cards: %s", e)
            return False

        state = self.view.get_state()
        state.cards = [card for card in state.cards if card.id not in ids]
        state.shown_ids -= ids
        if not self.view.write_state(state):
            self._log_mirror_write_failure("delete_cards")

        return True

    async def clear_all(self) -> bool:
        """Clear both tiers and derived metadata."""
        try:
            await self.store.clear()
            await self.store.delete_metadata(DERIVED_METADATA_KEYS)
        except TransactionAbortedError as e:
            logger.error("Failed to clear cards: %s", e)
            return False

        self.view.clear()
        logger.info("Cleared all cards")
        return True

    # --- Loading flag and refill bookkeeping (mirror only) ---

    def set_loading(self, loading: bool) -> bool:
        state = self.view.get_state()
        if state.is_loading == loading:
            return True
        state.is_loading = loading
        return self.view.write_state(state)

    async def record_refill(self, timestamp: float) -> None:
        state = self.view.get_state()
        state.last_refill_at = timestamp
        self.view.write_state(state)
        try:
            await self.store.set_metadata(LAST_REFILL_KEY, timestamp)
        except TransactionAbortedError as e:
            logger.warning("Could not persist refill time: %s", e)

    # --- Counts ---

    async def get_card_count(self) -> int:
        try:
            return await self.store.count()
        except TransactionAbortedError as e:
            logger.error("Failed to get card count: %s", e)
            return len(self.get_cards())

    async def get_unshown_count(self) -> int:
        try:
            return await self.store.unshown_count()
        except TransactionAbortedError as e:
            logger.error("Failed to get unshown count: %s", e)
            return len(self.view.get_unshown_cards())

    async def get_storage_stats(self) -> StorageStats:
        total = await self.get_card_count()
        unshown = await self.get_unshown_count()
        adapter = self.view.adapter
        return StorageStats(
            total_cards=total,
            unshown_cards=unshown,
            shown_cards=total - unshown,
            mirror_cards=len(self.get_cards()),
            active_tier=adapter.active_tier_name,
            estimate=adapter.estimate_usage(),
        )
