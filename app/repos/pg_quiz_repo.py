"""PostgreSQL implementation of QuizRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.documents import dump_quiz, load_quiz
from app.db.tables import QuizRow
from app.models.quiz import Quiz
from app.repos.errors import RecordNotFound
from app.repos.quiz_repo import QuizMutation


class PgQuizRepo:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, quiz_id: str) -> Quiz | None:
        async with self._session_factory() as session:
            row = await session.get(QuizRow, quiz_id)
            return None if row is None else load_quiz(row.doc)

    async def add(self, quiz: Quiz) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(
                QuizRow(
                    id=quiz.id,
                    created_by=quiz.created_by,
                    status=quiz.status.value,
                    doc=dump_quiz(quiz),
                )
            )

    async def update(self, quiz_id: str, mutate: QuizMutation) -> Quiz:
        async with self._session_factory() as session, session.begin():
            stmt = select(QuizRow).where(QuizRow.id == quiz_id).with_for_update()
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise RecordNotFound(quiz_id)
            updated = mutate(load_quiz(row.doc))
            row.status = updated.status.value
            row.doc = dump_quiz(updated)
        return updated

    async def list_by_owner(self, owner_id: str) -> list[Quiz]:
        async with self._session_factory() as session:
            stmt = select(QuizRow).where(QuizRow.created_by == owner_id)
            rows = (await session.execute(stmt)).scalars().all()
            return [load_quiz(r.doc) for r in rows]

    async def list_active(self) -> list[Quiz]:
        async with self._session_factory() as session:
            stmt = select(QuizRow).where(QuizRow.doc["is_active"].as_boolean())
            rows = (await session.execute(stmt)).scalars().all()
            return [load_quiz(r.doc) for r in rows]
