"""SQLAlchemy table definitions.

Each aggregate (quiz, submission, competition, user stats) is stored as a
JSONB document produced by app/db/documents.py.  The scalar columns next
to it exist for lookups and for the constraints the engine relies on:

- ``uq_submissions_one_in_progress``: a partial unique index that allows
  at most one in-progress submission per (quiz, student).  Concurrent
  start_attempt calls race on this index; the loser gets an
  IntegrityError which the repo turns into DuplicateActiveAttempt.
- ``version``: bumped on every update so readers can detect change.
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base


class QuizRow(Base):
    __tablename__ = "quizzes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    doc: Mapped[dict] = mapped_column(JSONB, nullable=False)


class SubmissionRow(Base):
    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    quiz_id: Mapped[str] = mapped_column(String(36), nullable=False)
    student_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    doc: Mapped[dict] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        Index("ix_submissions_quiz_student", "quiz_id", "student_id"),
        Index(
            "uq_submissions_one_in_progress",
            "quiz_id",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'in-progress'"),
        ),
    )


class CompetitionRow(Base):
    __tablename__ = "competitions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    quiz_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    doc: Mapped[dict] = mapped_column(JSONB, nullable=False)


class UserStatsRow(Base):
    __tablename__ = "user_stats"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    doc: Mapped[dict] = mapped_column(JSONB, nullable=False)
