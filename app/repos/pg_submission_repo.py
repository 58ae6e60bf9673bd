"""PostgreSQL implementation of SubmissionRepo."""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.documents import dump_submission, load_submission
from app.db.tables import SubmissionRow
from app.models.submission import Submission, SubmissionStatus
from app.repos.errors import DuplicateActiveAttempt, RecordNotFound
from app.repos.submission_repo import SubmissionMutation


class PgSubmissionRepo:
    """Satisfies the SubmissionRepo Protocol.

    Each method is its own transaction.  ``update`` locks the row with
    SELECT ... FOR UPDATE so concurrent writers to one submission queue up
    instead of overwriting each other.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, submission_id: str) -> Submission | None:
        async with self._session_factory() as session:
            row = await session.get(SubmissionRow, submission_id)
            return None if row is None else load_submission(row.doc)

    async def add_in_progress(self, submission: Submission) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(_to_row(submission))
        except IntegrityError:
            existing = await self.find_in_progress(
                submission.quiz_id, submission.student_id
            )
            if existing is None:
                raise
            raise DuplicateActiveAttempt(existing) from None

    async def update(
        self, submission_id: str, mutate: SubmissionMutation
    ) -> Submission:
        async with self._session_factory() as session, session.begin():
            stmt = (
                select(SubmissionRow)
                .where(SubmissionRow.id == submission_id)
                .with_for_update()
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise RecordNotFound(submission_id)
            updated = replace(mutate(load_submission(row.doc)), version=row.version + 1)
            row.status = updated.status.value
            row.version = updated.version
            row.doc = dump_submission(updated)
        return updated

    async def find_in_progress(
        self, quiz_id: str, student_id: str
    ) -> Submission | None:
        async with self._session_factory() as session:
            stmt = select(SubmissionRow).where(
                SubmissionRow.quiz_id == quiz_id,
                SubmissionRow.student_id == student_id,
                SubmissionRow.status == SubmissionStatus.IN_PROGRESS.value,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else load_submission(row.doc)

    async def find(
        self,
        *,
        student_id: str | None = None,
        quiz_ids: Collection[str] | None = None,
    ) -> list[Submission]:
        stmt = select(SubmissionRow)
        if student_id is not None:
            stmt = stmt.where(SubmissionRow.student_id == student_id)
        if quiz_ids is not None:
            stmt = stmt.where(SubmissionRow.quiz_id.in_(list(quiz_ids)))
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [load_submission(r.doc) for r in rows]


def _to_row(submission: Submission) -> SubmissionRow:
    return SubmissionRow(
        id=submission.id,
        quiz_id=submission.quiz_id,
        student_id=submission.student_id,
        status=submission.status.value,
        version=submission.version,
        doc=dump_submission(submission),
    )
