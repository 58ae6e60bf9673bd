from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol

from app.models.user_stats import UserStats

UserStatsMutation = Callable[[UserStats], UserStats]


class UserStatsRepo(Protocol):
    async def get(self, user_id: str) -> UserStats | None: ...
    async def upsert(self, user_id: str, mutate: UserStatsMutation) -> UserStats: ...


class InMemoryUserStatsRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, UserStats] = {}
        self._lock = threading.Lock()

    async def get(self, user_id: str) -> UserStats | None:
        return self._by_id.get(user_id)

    async def upsert(self, user_id: str, mutate: UserStatsMutation) -> UserStats:
        """Apply ``mutate`` to the stored row, or to a zeroed row if none exists."""
        with self._lock:
            current = self._by_id.get(user_id) or UserStats(user_id=user_id)
            updated = mutate(current)
            self._by_id[user_id] = updated
            return updated
