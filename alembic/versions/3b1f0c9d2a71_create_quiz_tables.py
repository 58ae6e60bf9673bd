"""create quiz, submission, competition and user stats tables

Revision ID: 3b1f0c9d2a71
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f0c9d2a71"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "quizzes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("doc", postgresql.JSONB(), nullable=False),
    )
    op.create_index("ix_quizzes_created_by", "quizzes", ["created_by"])

    op.create_table(
        "submissions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("quiz_id", sa.String(length=36), nullable=False),
        sa.Column("student_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("doc", postgresql.JSONB(), nullable=False),
    )
    op.create_index("ix_submissions_student_id", "submissions", ["student_id"])
    op.create_index(
        "ix_submissions_quiz_student", "submissions", ["quiz_id", "student_id"]
    )
    op.create_index(
        "uq_submissions_one_in_progress",
        "submissions",
        ["quiz_id", "student_id"],
        unique=True,
        postgresql_where=sa.text("status = 'in-progress'"),
    )

    op.create_table(
        "competitions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("quiz_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("doc", postgresql.JSONB(), nullable=False),
    )
    op.create_index("ix_competitions_quiz_id", "competitions", ["quiz_id"])

    op.create_table(
        "user_stats",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("doc", postgresql.JSONB(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("user_stats")
    op.drop_index("ix_competitions_quiz_id", table_name="competitions")
    op.drop_table("competitions")
    op.drop_index("uq_submissions_one_in_progress", table_name="submissions")
    op.drop_index("ix_submissions_quiz_student", table_name="submissions")
    op.drop_index("ix_submissions_student_id", table_name="submissions")
    op.drop_table("submissions")
    op.drop_index("ix_quizzes_created_by", table_name="quizzes")
    op.drop_table("quizzes")
