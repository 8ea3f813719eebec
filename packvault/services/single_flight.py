"""
Single-flight guard for background acquisition.

One guard object is created per engine and handed to every component that
may start an acquisition. Acquiring it is the only mutual-exclusion point
between refills; there is no queue.
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class AcquisitionState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"


class SingleFlightGuard:
    """Idle/Acquiring flag. Check-and-set happens without an await in between."""

    def __init__(self) -> None:
        self._state = AcquisitionState.IDLE

    @property
    def state(self) -> AcquisitionState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state is AcquisitionState.ACQUIRING

    def try_acquire(self) -> bool:
        """Move to ACQUIRING. False if another run already holds the guard."""
        if self._state is AcquisitionState.ACQUIRING:
            return False
        self._state = AcquisitionState.ACQUIRING
        return True

    def release(self) -> None:
        if self._state is AcquisitionState.IDLE:
            logger.warning("Single-flight guard released while idle")
        self._state = AcquisitionState.IDLE
