"""Attempt lifecycle: start an attempt, submit it for grading.

START
  quiz exists and is active          else NotFoundError
  quiz is published and in schedule  else PolicyError
  student assigned (or quiz open)    else AuthorizationError
  no in-progress attempt             else ConflictError (carries it)
  retake allowed or none finished    else PolicyError
  -> Submission(status=in-progress), sanitized quiz view

SUBMIT
  owned in-progress submission       else NotFoundError
  inside time limit (+ grace)        else TimeExceededError
  answers well-formed                else ValidationError
  -> graded, timed, status=submitted (or evaluated when auto-grade)
  -> quiz and student averages updated

The one-in-progress rule is enforced by the repository (a uniqueness
check inside a single atomic write), not by the read above it, so two
concurrent starts resolve to exactly one success and one ConflictError.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from app.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PolicyError,
    TimeExceededError,
)
from app.core.metrics import ATTEMPTS_STARTED, SUBMISSIONS_GRADED
from app.models.quiz import Quiz, QuizView, sanitize_quiz
from app.models.submission import (
    Evaluation,
    Submission,
    SubmissionStatus,
    SubmittedAnswer,
)
from app.repos.errors import DuplicateActiveAttempt
from app.repos.quiz_repo import QuizRepo
from app.repos.submission_repo import SubmissionRepo
from app.services import scoring
from app.services.stats_service import StatsAggregator

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class AttemptPolicy:
    drop_unmatched_answers: bool = True
    grace_seconds: int = 0


@dataclass(frozen=True, slots=True)
class StartedAttempt:
    quiz: QuizView
    submission: Submission


class AttemptManager:
    def __init__(
        self,
        quizzes: QuizRepo,
        submissions: SubmissionRepo,
        stats: StatsAggregator,
        *,
        policy: AttemptPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._quizzes = quizzes
        self._submissions = submissions
        self._stats = stats
        self._policy = policy or AttemptPolicy()
        self._clock = clock

    async def _load_quiz(self, quiz_id: str) -> Quiz:
        quiz = await self._quizzes.get(quiz_id)
        if quiz is None or not quiz.is_active:
            raise NotFoundError("Quiz not found")
        return quiz

    async def start_attempt(self, quiz_id: str, student_id: str) -> StartedAttempt:
        quiz = await self._load_quiz(quiz_id)
        now = self._clock()
        log_ctx = {"quiz_id": quiz_id, "user_id": student_id}

        if not quiz.is_available(now):
            ATTEMPTS_STARTED.labels(result="unavailable").inc()
            logger.warning("Start rejected: quiz not available", extra=log_ctx)
            raise PolicyError("Quiz is not available at this time")

        if not quiz.is_open_to(student_id):
            ATTEMPTS_STARTED.labels(result="forbidden").inc()
            logger.warning("Start rejected: student not assigned", extra=log_ctx)
            raise AuthorizationError("You are not assigned to this quiz")

        previous = await self._submissions.find(
            student_id=student_id, quiz_ids=[quiz_id]
        )
        active = next((s for s in previous if not s.is_finalized), None)
        if active is not None:
            ATTEMPTS_STARTED.labels(result="conflict").inc()
            raise ConflictError(
                "You already have an ongoing attempt for this quiz", existing=active
            )
        if not quiz.settings.allow_retake and any(s.is_finalized for s in previous):
            ATTEMPTS_STARTED.labels(result="retake_denied").inc()
            logger.warning("Start rejected: retake not allowed", extra=log_ctx)
            raise PolicyError("Retakes are not allowed for this quiz")

        submission = Submission.start(
            quiz_id=quiz_id,
            student_id=student_id,
            start_time=now,
            time_limit=quiz.settings.time_limit * 60,
            attempt=len(previous) + 1,
        )
        try:
            await self._submissions.add_in_progress(submission)
        except DuplicateActiveAttempt as exc:
            ATTEMPTS_STARTED.labels(result="conflict").inc()
            logger.warning("Start lost race to a concurrent attempt", extra=log_ctx)
            raise ConflictError(
                "You already have an ongoing attempt for this quiz",
                existing=exc.existing,
            ) from None

        ATTEMPTS_STARTED.labels(result="created").inc()
        logger.info(
            "Attempt %d started",
            submission.attempt,
            extra={**log_ctx, "submission_id": submission.id},
        )
        return StartedAttempt(quiz=sanitize_quiz(quiz), submission=submission)

    async def submit_attempt(
        self,
        submission_id: str,
        student_id: str,
        answers: Sequence[SubmittedAnswer],
        *,
        quiz_id: str | None = None,
    ) -> Submission:
        current = await self._submissions.get(submission_id)
        if (
            current is None
            or current.student_id != student_id
            or current.status is not SubmissionStatus.IN_PROGRESS
            or (quiz_id is not None and current.quiz_id != quiz_id)
        ):
            raise NotFoundError("Active submission not found")

        quiz = await self._quizzes.get(current.quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")

        now = self._clock()
        elapsed = int((now - current.timing.start_time).total_seconds())
        limit = current.timing.time_limit
        if limit and elapsed > limit + self._policy.grace_seconds:
            logger.warning(
                "Submit rejected: %ds elapsed, limit %ds",
                elapsed,
                limit,
                extra={"submission_id": submission_id, "user_id": student_id},
            )
            raise TimeExceededError(elapsed, limit)

        graded = scoring.grade_answers(
            quiz.questions,
            answers,
            drop_unmatched=self._policy.drop_unmatched_answers,
        )
        score = scoring.compute_score(graded, quiz.questions)
        auto_grade = quiz.settings.auto_grade

        def finalize(sub: Submission) -> Submission:
            if sub.status is not SubmissionStatus.IN_PROGRESS:
                raise ConflictError("Submission was already submitted", existing=sub)
            finished = replace(
                sub,
                answers=graded,
                score=score,
                status=SubmissionStatus.SUBMITTED,
                timing=replace(sub.timing, end_time=now, total_time=elapsed),
            )
            if auto_grade:
                finished = replace(
                    finished,
                    status=SubmissionStatus.EVALUATED,
                    evaluation=Evaluation(auto_graded=True, evaluated_at=now),
                )
            return finished

        submission = await self._submissions.update(submission_id, finalize)
        SUBMISSIONS_GRADED.labels(mode="auto" if auto_grade else "manual_pending").inc()
        logger.info(
            "Submission finalized status=%s score=%s%% grade=%s",
            submission.status.value,
            submission.score.percentage,
            submission.score.grade,
            extra={
                "submission_id": submission_id,
                "quiz_id": submission.quiz_id,
                "user_id": student_id,
            },
        )

        await self._stats.record_submission(submission, now)
        return submission
