"""Per-scene asyncio locks that are dropped once nobody uses them."""

import asyncio
import contextlib
from typing import AsyncIterator, Dict


class SceneLocks:
    """
    One ``asyncio.Lock`` per scene ID.

    A lock lives only while some task holds it or waits for it, so the
    registry stays bounded by the number of scenes in flight.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, scene_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(scene_id, asyncio.Lock())
        self._users[scene_id] = self._users.get(scene_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[scene_id] -= 1
            if not self._users[scene_id]:
                del self._users[scene_id]
                del self._locks[scene_id]

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self._locks
