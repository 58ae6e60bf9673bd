"""Module-level repository singletons.

Same switch as the cache: PostgreSQL when DATABASE_URL is configured,
in-memory otherwise (local dev, tests).
"""

from __future__ import annotations

from app.db.engine import async_session_factory
from app.repos.competition_repo import CompetitionRepo, InMemoryCompetitionRepo
from app.repos.quiz_repo import InMemoryQuizRepo, QuizRepo
from app.repos.submission_repo import InMemorySubmissionRepo, SubmissionRepo
from app.repos.user_stats_repo import InMemoryUserStatsRepo, UserStatsRepo

if async_session_factory is not None:
    from app.repos.pg_competition_repo import PgCompetitionRepo
    from app.repos.pg_quiz_repo import PgQuizRepo
    from app.repos.pg_submission_repo import PgSubmissionRepo
    from app.repos.pg_user_stats_repo import PgUserStatsRepo

    quiz_repo: QuizRepo = PgQuizRepo(async_session_factory)
    submission_repo: SubmissionRepo = PgSubmissionRepo(async_session_factory)
    competition_repo: CompetitionRepo = PgCompetitionRepo(async_session_factory)
    user_stats_repo: UserStatsRepo = PgUserStatsRepo(async_session_factory)
else:
    quiz_repo = InMemoryQuizRepo()
    submission_repo = InMemorySubmissionRepo()
    competition_repo = InMemoryCompetitionRepo()
    user_stats_repo = InMemoryUserStatsRepo()
