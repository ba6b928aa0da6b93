# aurix/core/locks.py
"""
Per-session mutual exclusion.

`SessionLocks.hold(call_sid)` serialises everything that writes to one
session. Locks are reference counted and dropped once nobody holds or waits
on them, so the registry never grows with the number of sessions seen.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

logger = logging.getLogger("aurix.core.locks")


class SessionLocks:
    def __init__(self, name: str = "session"):
        self.name = name
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, call_sid: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(call_sid, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[call_sid] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[call_sid]
            if users <= 1:
                del self._locks[call_sid]
            else:
                self._locks[call_sid] = (lock, users - 1)

    def active(self) -> int:
        return len(self._locks)


# Serialises whole workflow invocations per session.
workflow_locks = SessionLocks("workflow")
