"""
Per-match mutual exclusion for match-mutating operations.

The match row is the unit of locking. Inside one process every mutation of
a match runs under that match's asyncio lock; inside the transaction the
row is also read with SELECT FOR UPDATE so separate processes on a
row-locking database serialize the same way.
"""

import asyncio
from contextlib import asynccontextmanager
import logging

logger = logging.getLogger(__name__)

class MatchLockRegistry:
    """In-memory registry of one asyncio.Lock per match id.

    Note: A lock exists only while some task holds or waits for it. The
    last task to leave ``hold`` removes it, so the registry does not grow
    with match history.
    """

    def __init__(self):
        self._locks = {}
        self._users = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, match_id: int):
        """Hold the lock for one match for the duration of the block."""
        # No await between lookup and registration
        lock = self._locks.get(match_id)
        if lock is None:
            lock = self._locks[match_id] = asyncio.Lock()
        self._users[match_id] = self._users.get(match_id, 0) + 1
        try:
            async with lock:
                logger.debug(f"Acquired lock for Match {match_id}")
                yield
        finally:
            self._users[match_id] -= 1
            if not self._users[match_id]:
                del self._users[match_id]
                del self._locks[match_id]
