from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol

from app.models.quiz import Quiz
from app.repos.errors import RecordNotFound

QuizMutation = Callable[[Quiz], Quiz]


class QuizRepo(Protocol):
    async def get(self, quiz_id: str) -> Quiz | None: ...
    async def add(self, quiz: Quiz) -> None: ...
    async def update(self, quiz_id: str, mutate: QuizMutation) -> Quiz: ...
    async def list_by_owner(self, owner_id: str) -> list[Quiz]: ...
    async def list_active(self) -> list[Quiz]: ...


class InMemoryQuizRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, Quiz] = {}
        self._lock = threading.Lock()

    async def get(self, quiz_id: str) -> Quiz | None:
        return self._by_id.get(quiz_id)

    async def add(self, quiz: Quiz) -> None:
        with self._lock:
            if quiz.id in self._by_id:
                raise ValueError("quiz already exists")
            self._by_id[quiz.id] = quiz

    async def update(self, quiz_id: str, mutate: QuizMutation) -> Quiz:
        with self._lock:
            current = self._by_id.get(quiz_id)
            if current is None:
                raise RecordNotFound(quiz_id)
            updated = mutate(current)
            self._by_id[quiz_id] = updated
            return updated

    async def list_by_owner(self, owner_id: str) -> list[Quiz]:
        return [q for q in self._by_id.values() if q.created_by == owner_id]

    async def list_active(self) -> list[Quiz]:
        return [q for q in self._by_id.values() if q.is_active]
