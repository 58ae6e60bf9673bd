from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Protocol

from app.models.competition import Competition
from app.repos.errors import RecordNotFound

CompetitionMutation = Callable[[Competition], Competition]


class CompetitionRepo(Protocol):
    async def get(self, competition_id: str) -> Competition | None: ...
    async def add(self, competition: Competition) -> None: ...
    async def update(
        self, competition_id: str, mutate: CompetitionMutation
    ) -> Competition: ...
    async def list_all(self) -> list[Competition]: ...


class InMemoryCompetitionRepo:
    """Single-writer store: every leaderboard read-modify-write holds the lock."""

    def __init__(self) -> None:
        self._by_id: dict[str, Competition] = {}
        self._lock = threading.Lock()

    async def get(self, competition_id: str) -> Competition | None:
        return self._by_id.get(competition_id)

    async def add(self, competition: Competition) -> None:
        with self._lock:
            if competition.id in self._by_id:
                raise ValueError("competition already exists")
            self._by_id[competition.id] = competition

    async def update(
        self, competition_id: str, mutate: CompetitionMutation
    ) -> Competition:
        with self._lock:
            current = self._by_id.get(competition_id)
            if current is None:
                raise RecordNotFound(competition_id)
            updated = replace(mutate(current), version=current.version + 1)
            self._by_id[competition_id] = updated
            return updated

    async def list_all(self) -> list[Competition]:
        return list(self._by_id.values())
