from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.quiz import Question, QuestionOption, QuestionType, Quiz, QuizSettings, QuizStatus
from app.repos.store import competition_repo, quiz_repo, submission_repo, user_stats_repo
from app.services import token_service
from app.services.cache import cache_service

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the in-memory repository singletons between tests."""
    for repo in (quiz_repo, submission_repo, competition_repo, user_stats_repo):
        repo._by_id.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class FakeClock:
    """Settable clock for services that take ``clock=``."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Quiz builders
# ---------------------------------------------------------------------------


def mc_question(qid: str, correct: str = "B", points: int = 1) -> Question:
    return Question(
        id=qid,
        type=QuestionType.MULTIPLE_CHOICE,
        question=f"Which option is right for {qid}?",
        options=tuple(
            QuestionOption(text=t, is_correct=(t == correct)) for t in ("A", "B", "C", "D")
        ),
        points=points,
    )


def make_quiz(
    *,
    questions: tuple[Question, ...] | None = None,
    created_by: str = "teacher-1",
    status: QuizStatus = QuizStatus.PUBLISHED,
    **settings,
) -> Quiz:
    return Quiz.new(
        title="Cell Biology",
        subject="Biology",
        created_by=created_by,
        questions=questions or (mc_question("q1"), mc_question("q2")),
        status=status,
        settings=QuizSettings(**settings),
    )
