"""
Process-wide serialization of subscription mutations.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class SerializationGate:
    """
    Mutual exclusion for every subscription write.

    ## Semantics
    - Exactly one mutation critical section is in flight across the process.
      Unrelated keys are serialized against each other too.
    - Waiters block on an `asyncio.Lock`; there is no polling and no deadline.
    - The task holding the gate may enter it again. A command that resolves an
      identity and then adds it holds the gate across both calls, and the
      store's own gated `add_*` call nests inside that hold.
    - Re-entry is tied to the holding task. Tasks spawned inside a hold
      (`asyncio.gather`, `create_task`) are other tasks and wait for the hold
      to end, so a holder must not await gated calls running in child tasks.
    - Reads never take the gate and may observe state from either side of a
      critical section.

    ## Usage
    ```python
    async with gate:
        matches = await registry.find_by_identity_display("Alice")
        await store.add_watched_validator(user, chat, matches[0].stash_id, identity)
    ```
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None
        self._depth = 0

    def locked(self) -> bool:
        return self._lock.locked()

    async def acquire(self) -> None:
        """Suspend until no other mutation is in flight, then hold the gate."""
        task = asyncio.current_task()
        if task is not None and self._owner is task:
            self._depth += 1
            return

        if self._lock.locked():
            logger.debug("Gate busy, waiting for the current mutation to finish")

        await self._lock.acquire()
        self._owner = task
        self._depth = 1

    def release(self) -> None:
        """Give up one level of the hold; the gate opens at depth zero."""
        if self._depth == 0 or self._owner is not asyncio.current_task():
            raise RuntimeError("Gate released by a task that does not hold it")

        self._depth -= 1
        if self._depth == 0:
            self._owner = None
            self._lock.release()

    async def __aenter__(self) -> "SerializationGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


# Singleton instance
_gate: Optional[SerializationGate] = None


def get_gate() -> SerializationGate:
    """Get or create the process-wide gate."""
    global _gate

    if _gate is None:
        _gate = SerializationGate()

    return _gate
