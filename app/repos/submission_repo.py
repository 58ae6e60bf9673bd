from __future__ import annotations

import threading
from collections.abc import Callable, Collection
from dataclasses import replace
from typing import Protocol

from app.models.submission import Submission, SubmissionStatus
from app.repos.errors import DuplicateActiveAttempt, RecordNotFound

SubmissionMutation = Callable[[Submission], Submission]


class SubmissionRepo(Protocol):
    async def get(self, submission_id: str) -> Submission | None: ...
    async def add_in_progress(self, submission: Submission) -> None: ...
    async def update(
        self, submission_id: str, mutate: SubmissionMutation
    ) -> Submission: ...
    async def find_in_progress(
        self, quiz_id: str, student_id: str
    ) -> Submission | None: ...
    async def find(
        self,
        *,
        student_id: str | None = None,
        quiz_ids: Collection[str] | None = None,
    ) -> list[Submission]: ...


class InMemorySubmissionRepo:
    """Dict-backed store.

    Check-then-write sequences run under one threading lock and never
    await inside it, so they are atomic for both threads and tasks.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, Submission] = {}
        self._lock = threading.Lock()

    async def get(self, submission_id: str) -> Submission | None:
        return self._by_id.get(submission_id)

    async def add_in_progress(self, submission: Submission) -> None:
        with self._lock:
            existing = self._active(submission.quiz_id, submission.student_id)
            if existing is not None:
                raise DuplicateActiveAttempt(existing)
            self._by_id[submission.id] = submission

    async def update(
        self, submission_id: str, mutate: SubmissionMutation
    ) -> Submission:
        with self._lock:
            current = self._by_id.get(submission_id)
            if current is None:
                raise RecordNotFound(submission_id)
            updated = replace(mutate(current), version=current.version + 1)
            self._by_id[submission_id] = updated
            return updated

    async def find_in_progress(
        self, quiz_id: str, student_id: str
    ) -> Submission | None:
        return self._active(quiz_id, student_id)

    async def find(
        self,
        *,
        student_id: str | None = None,
        quiz_ids: Collection[str] | None = None,
    ) -> list[Submission]:
        result = list(self._by_id.values())
        if student_id is not None:
            result = [s for s in result if s.student_id == student_id]
        if quiz_ids is not None:
            result = [s for s in result if s.quiz_id in quiz_ids]
        return result

    def _active(self, quiz_id: str, student_id: str) -> Submission | None:
        return next(
            (
                s
                for s in self._by_id.values()
                if s.quiz_id == quiz_id
                and s.student_id == student_id
                and s.status is SubmissionStatus.IN_PROGRESS
            ),
            None,
        )
