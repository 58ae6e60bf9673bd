"""PostgreSQL implementation of CompetitionRepo."""

from __future__ import annotations

from dataclasses import replace

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.documents import dump_competition, load_competition
from app.db.tables import CompetitionRow
from app.models.competition import Competition
from app.repos.competition_repo import CompetitionMutation
from app.repos.errors import RecordNotFound


class PgCompetitionRepo:
    """Leaderboard writes hold the competition row lock for the whole
    read-modify-write, so two entries recorded at once cannot lose each
    other's update or leave ranks half-recomputed."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, competition_id: str) -> Competition | None:
        async with self._session_factory() as session:
            row = await session.get(CompetitionRow, competition_id)
            return None if row is None else load_competition(row.doc)

    async def add(self, competition: Competition) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(
                CompetitionRow(
                    id=competition.id,
                    quiz_id=competition.quiz_id,
                    status=competition.status.value,
                    version=competition.version,
                    doc=dump_competition(competition),
                )
            )

    async def update(
        self, competition_id: str, mutate: CompetitionMutation
    ) -> Competition:
        async with self._session_factory() as session, session.begin():
            stmt = (
                select(CompetitionRow)
                .where(CompetitionRow.id == competition_id)
                .with_for_update()
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise RecordNotFound(competition_id)
            updated = replace(
                mutate(load_competition(row.doc)), version=row.version + 1
            )
            row.status = updated.status.value
            row.version = updated.version
            row.doc = dump_competition(updated)
        return updated

    async def list_all(self) -> list[Competition]:
        async with self._session_factory() as session:
            rows = (await session.execute(select(CompetitionRow))).scalars().all()
            return [load_competition(r.doc) for r in rows]
