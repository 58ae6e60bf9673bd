"""Dataclass <-> JSON document conversion for the JSONB columns.

pydantic's TypeAdapter understands stdlib dataclasses, enums, tuples and
the ``type``-tagged answer union, so the domain models stay free of any
persistence code.
"""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter

from app.models.competition import Competition, LeaderboardEntry, LeaderboardSnapshot
from app.models.quiz import Question, Quiz, QuizView
from app.models.submission import Submission
from app.models.user_stats import UserStats

_QUIZ = TypeAdapter(Quiz)
_SUBMISSION = TypeAdapter(Submission)
_COMPETITION = TypeAdapter(Competition)
_USER_STATS = TypeAdapter(UserStats)


def dump_quiz(quiz: Quiz) -> dict[str, Any]:
    return _QUIZ.dump_python(quiz, mode="json")


def load_quiz(doc: dict[str, Any]) -> Quiz:
    return _QUIZ.validate_python(doc)


def dump_submission(submission: Submission) -> dict[str, Any]:
    return _SUBMISSION.dump_python(submission, mode="json")


def load_submission(doc: dict[str, Any]) -> Submission:
    return _SUBMISSION.validate_python(doc)


def dump_competition(competition: Competition) -> dict[str, Any]:
    return _COMPETITION.dump_python(competition, mode="json")


def load_competition(doc: dict[str, Any]) -> Competition:
    return _COMPETITION.validate_python(doc)


def dump_user_stats(stats: UserStats) -> dict[str, Any]:
    return _USER_STATS.dump_python(stats, mode="json")


def load_user_stats(doc: dict[str, Any]) -> UserStats:
    return _USER_STATS.validate_python(doc)


_LEADERBOARD = TypeAdapter(tuple[LeaderboardEntry, ...])
_SNAPSHOT = TypeAdapter(LeaderboardSnapshot)


def dump_snapshot_json(snapshot: LeaderboardSnapshot) -> str:
    return _SNAPSHOT.dump_json(snapshot).decode()


def load_snapshot_json(raw: str) -> LeaderboardSnapshot:
    return _SNAPSHOT.validate_json(raw)


# Response-only shapes

_QUIZ_VIEW = TypeAdapter(QuizView)
_QUESTIONS = TypeAdapter(list[Question])


def dump_quiz_view(view: QuizView) -> dict[str, Any]:
    return _QUIZ_VIEW.dump_python(view, mode="json")


def dump_questions(questions: list[Question]) -> list[dict[str, Any]]:
    return _QUESTIONS.dump_python(questions, mode="json")


def dump_leaderboard(entries: tuple[LeaderboardEntry, ...]) -> list[dict[str, Any]]:
    return _LEADERBOARD.dump_python(entries, mode="json")
