"""PostgreSQL implementation of UserStatsRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.documents import dump_user_stats, load_user_stats
from app.db.tables import UserStatsRow
from app.models.user_stats import UserStats
from app.repos.user_stats_repo import UserStatsMutation


class PgUserStatsRepo:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str) -> UserStats | None:
        async with self._session_factory() as session:
            row = await session.get(UserStatsRow, user_id)
            return None if row is None else load_user_stats(row.doc)

    async def upsert(self, user_id: str, mutate: UserStatsMutation) -> UserStats:
        async with self._session_factory() as session, session.begin():
            # Make sure a row exists so FOR UPDATE has something to lock.
            await session.execute(
                insert(UserStatsRow)
                .values(user_id=user_id, doc=dump_user_stats(UserStats(user_id=user_id)))
                .on_conflict_do_nothing(index_elements=[UserStatsRow.user_id])
            )
            stmt = (
                select(UserStatsRow)
                .where(UserStatsRow.user_id == user_id)
                .with_for_update()
            )
            row = (await session.execute(stmt)).scalar_one()
            updated = mutate(load_user_stats(row.doc))
            row.doc = dump_user_stats(updated)
        return updated
