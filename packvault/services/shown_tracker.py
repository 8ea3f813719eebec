"""
Shown-State Tracker and Refill Trigger.

Records which cards have been dealt and decides when to start a background
acquisition.

Refill policy:
- threshold: unshown count <= refill_threshold
- exhausted: mirror is non-empty but every card in it has been shown
and in both cases only when the single-flight guard is free. A request that
finds the guard held is dropped; the running refill re-checks the threshold
when it finishes.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass

from packvault.config import PACK_SIZE, REFILL_THRESHOLD, WORKING_SET_CAP
from packvault.models.card import CardRecord
from packvault.services.acquisition import AcquisitionPipeline, AcquisitionResult
from packvault.services.cache_bridge import CacheBridge
from packvault.services.single_flight import SingleFlightGuard

logger = logging.getLogger(__name__)

REASON_THRESHOLD = "threshold"
REASON_EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class CapacityCheck:
    is_at_capacity: bool
    message: str


@dataclass(frozen=True)
class PackCheck:
    can_open: bool
    message: str
    remaining_slots: int


@dataclass(frozen=True)
class DownloadCheck:
    should_download: bool
    reason: str


class ShownStateTracker:
    """Marks cards shown and starts refills through the single-flight guard."""

    def __init__(
        self,
        bridge: CacheBridge,
        pipeline: AcquisitionPipeline,
        guard: SingleFlightGuard,
        *,
        refill_threshold: int = REFILL_THRESHOLD,
        cap: int = WORKING_SET_CAP,
        pack_size: int = PACK_SIZE,
    ) -> None:
        self.bridge = bridge
        self.pipeline = pipeline
        self.guard = guard
        self.refill_threshold = refill_threshold
        self.cap = cap
        self.pack_size = pack_size
        self._refill_task: asyncio.Task[AcquisitionResult] | None = None
        self.last_result: AcquisitionResult | None = None

    # --- Reads (mirror only) ---

    def unshown_pool(self) -> list[CardRecord]:
        return self.bridge.view.get_unshown_cards()

    def unshown_available(self) -> int:
        """Mirror count minus shown count."""
        state = self.bridge.view.get_state()
        return len(state.cards) - state.shown_count()

    def refill_reason(self) -> str | None:
        """Why a refill is due, or None if it is not."""
        state = self.bridge.view.get_state()
        mirror_count = len(state.cards)
        available = mirror_count - state.shown_count()

        if mirror_count > 0 and available <= 0:
            return REASON_EXHAUSTED
        if available <= self.refill_threshold:
            return REASON_THRESHOLD
        return None

    def needs_refill(self) -> bool:
        return self.refill_reason() is not None

    @property
    def refill_in_flight(self) -> bool:
        return self.guard.in_flight

    # --- Mutations ---

    async def mark_shown(self, record_ids: Iterable[str]) -> bool:
        """Mark cards shown in both tiers, then evaluate the refill policy."""
        ok = await self.bridge.mark_shown(record_ids)
        self.evaluate_refill()
        return ok

    async def remove_cards(self, record_ids: Iterable[str]) -> bool:
        """Dismiss cards from both tiers, then evaluate the refill policy."""
        ok = await self.bridge.delete_cards(record_ids)
        self.evaluate_refill()
        return ok

    def evaluate_refill(self, requested: int | None = None) -> bool:
        """
        Start a background refill if the policy says so.

        Returns True if a refill task was started.
        """
        reason = self.refill_reason()
        if reason is None:
            return False
        return self.request_refill(requested, reason=reason)

    def request_refill(self, requested: int | None = None, *, reason: str = "manual") -> bool:
        """
        Start a background refill unless one is already running.

        A refused request is dropped, not queued.
        """
        if not self.guard.try_acquire():
            logger.debug("Refill already in flight, dropping request (%s)", reason)
            return False

        count = requested if requested is not None else self.cap
        logger.info(
            "REFILL_TRIGGERED",
            extra={"reason": reason, "requested": count, "unshown": self.unshown_available()},
        )
        self._refill_task = asyncio.create_task(self._refill(count))
        return True

    async def _refill(self, requested: int) -> AcquisitionResult:
        self.bridge.set_loading(True)
        try:
            result = await self.pipeline.run(requested)
            if result.success and result.written > 0:
                await self.bridge.record_refill(time.time())
        except Exception:
            logger.exception("Refill failed")
            raise
        finally:
            self.bridge.set_loading(False)
            self.guard.release()

        self.last_result = result
        # Requests dropped while this run held the guard are picked up here
        if result.written > 0:
            self.evaluate_refill()
        return result

    async def wait_for_refill(self) -> AcquisitionResult | None:
        """Wait for the most recent refill task, including any follow-up it started."""
        result = None
        while self._refill_task is not None:
            task = self._refill_task
            try:
                result = await task
            finally:
                if self._refill_task is task:
                    self._refill_task = None
        return result

    async def cancel_refill(self) -> None:
        """Cancel a pending refill on shutdown."""
        task = self._refill_task
        self._refill_task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # --- Capacity checks ---

    def check_capacity_limit(self) -> CapacityCheck:
        count = len(self.bridge.get_cards())
        if count >= self.cap:
            return CapacityCheck(
                is_at_capacity=True,
                message=(
                    f"Storage at capacity ({count}/{self.cap} cards). "
                    "Remove some cards before opening new packs."
                ),
            )
        return CapacityCheck(
            is_at_capacity=False, message=f"Storage: {count}/{self.cap} cards available"
        )

    def can_open_pack(self, saved_count: int) -> PackCheck:
        """Whether a player holding ``saved_count`` kept cards has room for a full pack."""
        remaining = self.cap - saved_count
        if remaining < self.pack_size:
            return PackCheck(
                can_open=False,
                message=(
                    f"Cannot open pack. You have {saved_count}/{self.cap} saved cards. "
                    f"Remove {self.pack_size - remaining} more cards to open a pack."
                ),
                remaining_slots=remaining,
            )
        return PackCheck(
            can_open=True,
            message=f"Can open pack. {remaining} slots available ({saved_count}/{self.cap} saved)",
            remaining_slots=remaining,
        )

    def should_download_more(self, saved_count: int) -> DownloadCheck:
        """
        Whether the mirror holds enough cards for the packs the player can still open.

        Keeps at least two packs' worth cached.
        """
        current = len(self.bridge.get_cards())
        potential_packs = max(0, self.cap - saved_count) // self.pack_size
        minimum = max(self.pack_size * 2, self.pack_size * potential_packs)

        if current < minimum:
            return DownloadCheck(
                should_download=True,
                reason=(
                    f"Mirror low ({current} cards). Need {minimum} cards "
                    f"for {potential_packs} potential pack openings."
                ),
            )
        return DownloadCheck(
            should_download=False,
            reason=f"Mirror sufficient ({current} cards) for {potential_packs} potential pack openings.",
        )
