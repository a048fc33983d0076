"""
Admission Gate
==============

Fixed-size pool of render slots. Requests beyond the pool size are rejected
immediately instead of waiting for a slot.
"""

import asyncio

from latex_render.config.logging import get_logger

logger = get_logger(__name__)


class AdmissionGate:
    """Non-blocking counting semaphore bounding concurrent renders."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Admission capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._slots = asyncio.BoundedSemaphore(capacity)
        self._in_use = 0
        self.logger = logger.bind(component="admission_gate")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        """Number of slots currently held."""
        return self._in_use

    async def try_acquire(self) -> bool:
        """
        Take a slot if one is free.

        Never waits: ``acquire`` on an unlocked semaphore returns without
        suspending, so the check and the acquire happen in one step on the
        event loop.

        Returns:
            True if a slot was taken, False if the pool is exhausted
        """
        if self._slots.locked():
            self.logger.warning("Admission rejected", capacity=self._capacity)
            return False
        await self._slots.acquire()
        self._in_use += 1
        return True

    def release(self) -> None:
        """
        Return a held slot to the pool.

        Raises:
            RuntimeError: If no slot is currently held
        """
        try:
            self._slots.release()
        except ValueError:
            raise RuntimeError("Admission slot released more times than acquired")
        self._in_use -= 1
