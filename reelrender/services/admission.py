"""Single-flight admission gate for the encoder.

ffmpeg is CPU-bound and the host runs one render at a time. Excess requests
are rejected immediately rather than queued.
"""

import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator

from reelrender.exceptions import BusyError

logger = logging.getLogger(__name__)


class GateState(Enum):
    IDLE = "idle"
    BUSY = "busy"


class AdmissionGate:
    """Capacity-1 gate. Safe without locks on a single event loop."""

    def __init__(self) -> None:
        self._state = GateState.IDLE

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is GateState.BUSY

    def try_acquire(self) -> bool:
        """Take the gate if idle. Never blocks."""
        if self._state is GateState.BUSY:
            return False
        self._state = GateState.BUSY
        return True

    def release(self) -> None:
        self._state = GateState.IDLE

    @asynccontextmanager
    async def admit(self) -> AsyncIterator[None]:
        """Hold the gate for the duration of the block.

        Raises:
            BusyError: If another render holds the gate
        """
        if not self.try_acquire():
            logger.info("[GATE] Rejected: renderer busy")
            raise BusyError()
        logger.info("[GATE] Acquired")
        try:
            yield
        finally:
            self.release()
            logger.info("[GATE] Released")
