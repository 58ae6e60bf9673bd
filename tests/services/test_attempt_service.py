from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from app.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PolicyError,
    TimeExceededError,
    ValidationError,
)
from app.models.quiz import Question, QuestionType, QuizSchedule, QuizStatus
from app.models.submission import (
    ChoiceAnswer,
    EssayAnswer,
    SubmissionStatus,
    SubmittedAnswer,
)
from app.repos.quiz_repo import InMemoryQuizRepo
from app.repos.submission_repo import InMemorySubmissionRepo
from app.repos.user_stats_repo import InMemoryUserStatsRepo
from app.services.attempt_service import AttemptManager, AttemptPolicy
from app.services.stats_service import StatsAggregator
from tests.conftest import T0, FakeClock, make_quiz, mc_question


class Harness:
    def __init__(
        self,
        *,
        grace_seconds: int = 0,
        drop_unmatched: bool = True,
        submissions: InMemorySubmissionRepo | None = None,
    ) -> None:
        self.quizzes = InMemoryQuizRepo()
        self.submissions = submissions or InMemorySubmissionRepo()
        self.user_stats = InMemoryUserStatsRepo()
        self.clock = FakeClock()
        self.manager = AttemptManager(
            self.quizzes,
            self.submissions,
            StatsAggregator(self.quizzes, self.user_stats),
            policy=AttemptPolicy(
                drop_unmatched_answers=drop_unmatched, grace_seconds=grace_seconds
            ),
            clock=self.clock,
        )

    def add(self, quiz):
        asyncio.run(self.quizzes.add(quiz))
        return quiz


def _choices(**picked: str) -> list[SubmittedAnswer]:
    return [SubmittedAnswer(question_id=q, value=ChoiceAnswer(v)) for q, v in picked.items()]


# ---- start_attempt ----


def test_start_returns_sanitized_view_and_in_progress_submission() -> None:
    h = Harness()
    quiz = h.add(make_quiz(time_limit=30))

    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))

    assert started.submission.status is SubmissionStatus.IN_PROGRESS
    assert started.submission.timing.start_time == T0
    assert started.submission.timing.time_limit == 1800
    assert started.submission.attempt == 1
    assert started.quiz.id == quiz.id
    assert started.quiz.questions[0].options == ("A", "B", "C", "D")
    assert not hasattr(started.quiz.questions[0], "correct_answer")


def test_start_unknown_quiz_is_not_found() -> None:
    h = Harness()
    with pytest.raises(NotFoundError):
        asyncio.run(h.manager.start_attempt("missing", "s1"))


def test_start_inactive_quiz_is_not_found() -> None:
    h = Harness()
    quiz = h.add(replace(make_quiz(), is_active=False))
    with pytest.raises(NotFoundError):
        asyncio.run(h.manager.start_attempt(quiz.id, "s1"))


def test_start_draft_quiz_is_policy_error() -> None:
    h = Harness()
    quiz = h.add(make_quiz(status=QuizStatus.DRAFT))
    with pytest.raises(PolicyError):
        asyncio.run(h.manager.start_attempt(quiz.id, "s1"))


def test_start_outside_schedule_window_is_policy_error() -> None:
    h = Harness()
    quiz = h.add(
        replace(make_quiz(), schedule=QuizSchedule(start_date=T0 + timedelta(days=1)))
    )
    with pytest.raises(PolicyError):
        asyncio.run(h.manager.start_attempt(quiz.id, "s1"))


def test_start_requires_assignment_when_quiz_is_assigned() -> None:
    h = Harness()
    quiz = h.add(replace(make_quiz(), assigned_to=("s1",)))
    asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    with pytest.raises(AuthorizationError):
        asyncio.run(h.manager.start_attempt(quiz.id, "s2"))


def test_second_start_conflicts_and_carries_existing() -> None:
    h = Harness()
    quiz = h.add(make_quiz())
    first = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))

    with pytest.raises(ConflictError) as exc_info:
        asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    assert exc_info.value.existing.id == first.submission.id
    assert exc_info.value.to_dict()["existing_id"] == first.submission.id


class InterleavingSubmissionRepo(InMemorySubmissionRepo):
    """Suspends after every read so concurrent callers interleave."""

    async def get(self, submission_id: str):
        found = await super().get(submission_id)
        await asyncio.sleep(0)
        return found

    async def find(self, **filters):
        found = await super().find(**filters)
        await asyncio.sleep(0)
        return found


def test_concurrent_starts_yield_exactly_one_attempt() -> None:
    h = Harness(submissions=InterleavingSubmissionRepo())
    quiz = h.add(make_quiz())

    async def race():
        return await asyncio.gather(
            h.manager.start_attempt(quiz.id, "s1"),
            h.manager.start_attempt(quiz.id, "s1"),
            return_exceptions=True,
        )

    results = asyncio.run(race())
    started = [r for r in results if not isinstance(r, BaseException)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(started) == 1
    assert len(conflicts) == 1
    # both starts passed the pre-check; the repo rejected the loser
    assert conflicts[0].existing.id == started[0].submission.id
    in_progress = asyncio.run(h.submissions.find(student_id="s1"))
    assert len(in_progress) == 1


def test_concurrent_submits_grade_the_attempt_once() -> None:
    h = Harness(submissions=InterleavingSubmissionRepo())
    quiz = h.add(make_quiz())
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))

    async def race():
        return await asyncio.gather(
            h.manager.submit_attempt(started.submission.id, "s1", _choices(q1="B")),
            h.manager.submit_attempt(started.submission.id, "s1", _choices(q1="A")),
            return_exceptions=True,
        )

    results = asyncio.run(race())
    assert len([r for r in results if isinstance(r, ConflictError)]) == 1
    stats = asyncio.run(h.user_stats.get("s1"))
    assert stats.total_quizzes == 1


def test_retake_denied_after_finalized_attempt() -> None:
    h = Harness()
    quiz = h.add(make_quiz())
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    asyncio.run(h.manager.submit_attempt(started.submission.id, "s1", _choices(q1="B")))

    with pytest.raises(PolicyError):
        asyncio.run(h.manager.start_attempt(quiz.id, "s1"))


def test_retake_allowed_numbers_attempts() -> None:
    h = Harness()
    quiz = h.add(make_quiz(allow_retake=True))
    first = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    asyncio.run(h.manager.submit_attempt(first.submission.id, "s1", []))

    second = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    assert second.submission.attempt == 2


# ---- submit_attempt ----


def test_submit_auto_grades_and_evaluates() -> None:
    h = Harness()
    quiz = h.add(make_quiz())
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    h.clock.advance(90)

    sub = asyncio.run(
        h.manager.submit_attempt(started.submission.id, "s1", _choices(q1="B", q2="B"))
    )

    assert sub.status is SubmissionStatus.EVALUATED
    assert sub.evaluation.auto_graded is True
    assert sub.evaluation.evaluated_at == h.clock.now
    assert (sub.score.total, sub.score.percentage, sub.score.grade) == (2.0, 100, "A+")
    assert sub.timing.end_time == h.clock.now
    assert sub.timing.total_time == 90


def test_submit_without_auto_grade_stays_submitted() -> None:
    h = Harness()
    essay = Question(id="e1", type=QuestionType.ESSAY, question="Explain osmosis.", points=4)
    quiz = h.add(make_quiz(questions=(mc_question("q1"), essay), auto_grade=False))
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))

    sub = asyncio.run(
        h.manager.submit_attempt(
            started.submission.id,
            "s1",
            [
                SubmittedAnswer("q1", ChoiceAnswer("B")),
                SubmittedAnswer("e1", EssayAnswer("Water moves...")),
            ],
        )
    )

    assert sub.status is SubmissionStatus.SUBMITTED
    assert sub.evaluation.auto_graded is False
    assert sub.score.percentage == 20


def test_submit_updates_quiz_and_student_statistics() -> None:
    h = Harness()
    quiz = h.add(make_quiz(allow_retake=True))

    for picked in (_choices(q1="B", q2="B"), _choices(q1="B", q2="A")):
        started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
        asyncio.run(h.manager.submit_attempt(started.submission.id, "s1", picked))

    stored = asyncio.run(h.quizzes.get(quiz.id))
    assert stored.statistics.total_attempts == 2
    assert stored.statistics.average_score == pytest.approx(75.0)
    user = asyncio.run(h.user_stats.get("s1"))
    assert user.total_quizzes == 2
    assert user.average_score == pytest.approx(75.0)
    assert user.last_active == T0


def test_submit_after_time_limit_is_rejected() -> None:
    h = Harness()
    quiz = h.add(make_quiz(time_limit=1))
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    h.clock.advance(61)

    with pytest.raises(TimeExceededError) as exc_info:
        asyncio.run(h.manager.submit_attempt(started.submission.id, "s1", []))
    assert exc_info.value.limit_seconds == 60
    stored = asyncio.run(h.submissions.get(started.submission.id))
    assert stored.status is SubmissionStatus.IN_PROGRESS


def test_submit_at_exact_limit_is_accepted() -> None:
    h = Harness()
    quiz = h.add(make_quiz(time_limit=1))
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    h.clock.advance(60)

    sub = asyncio.run(h.manager.submit_attempt(started.submission.id, "s1", []))
    assert sub.is_finalized


def test_grace_period_extends_the_limit() -> None:
    h = Harness(grace_seconds=30)
    quiz = h.add(make_quiz(time_limit=1))
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    h.clock.advance(85)

    sub = asyncio.run(h.manager.submit_attempt(started.submission.id, "s1", []))
    assert sub.timing.total_time == 85


def test_zero_time_limit_is_unlimited() -> None:
    h = Harness()
    quiz = h.add(make_quiz(time_limit=0))
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    h.clock.advance(86_400)

    sub = asyncio.run(h.manager.submit_attempt(started.submission.id, "s1", []))
    assert sub.is_finalized


def test_submit_by_other_student_is_not_found() -> None:
    h = Harness()
    quiz = h.add(make_quiz())
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))

    with pytest.raises(NotFoundError):
        asyncio.run(h.manager.submit_attempt(started.submission.id, "s2", []))


def test_submit_for_wrong_quiz_is_not_found() -> None:
    h = Harness()
    quiz = h.add(make_quiz())
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))

    with pytest.raises(NotFoundError):
        asyncio.run(
            h.manager.submit_attempt(started.submission.id, "s1", [], quiz_id="other")
        )


def test_second_submit_is_not_found() -> None:
    h = Harness()
    quiz = h.add(make_quiz())
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))
    asyncio.run(h.manager.submit_attempt(started.submission.id, "s1", []))

    with pytest.raises(NotFoundError):
        asyncio.run(h.manager.submit_attempt(started.submission.id, "s1", []))


def test_unknown_answers_rejected_when_policy_requires() -> None:
    h = Harness(drop_unmatched=False)
    quiz = h.add(make_quiz())
    started = asyncio.run(h.manager.start_attempt(quiz.id, "s1"))

    with pytest.raises(ValidationError):
        asyncio.run(
            h.manager.submit_attempt(started.submission.id, "s1", _choices(zz="B"))
        )
