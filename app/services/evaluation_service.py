"""Manual evaluation and the revaluation appeal workflow.

Submission states:   in-progress -> submitted -> evaluated
Revaluation states:  none -> pending -> approved | denied   (terminal)

evaluate_manually
  caller is quiz owner or admin       else AuthorizationError
  submitted/evaluated, no appeal open else PolicyError
  grades reference quiz questions     else ValidationError
  -> overrides applied, score recomputed, status=evaluated
  -> AI insights attached when available; an AI failure or timeout is
     logged and the evaluation completes without them

request_revaluation
  caller owns the submission          else AuthorizationError
  evaluated and not yet requested     else PolicyError
  -> revaluation pending

handle_revaluation
  decision is approved|denied         else ValidationError
  caller is quiz owner or admin       else AuthorizationError
  revaluation pending                 else PolicyError
  -> approved: optional new grades applied, score recomputed
  -> denied: score untouched

The AI call runs before the write and outside any repository lock.  The
write re-checks the state it was planned against, so a concurrent
transition turns into a typed failure rather than a lost update.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace

from app.core.errors import (
    AuthorizationError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from app.core.metrics import AI_INSIGHT_FAILURES, EVALUATIONS
from app.models.principal import TEACHER, Principal
from app.models.quiz import Quiz
from app.models.submission import (
    AIInsights,
    Revaluation,
    RevaluationStatus,
    Submission,
    SubmissionStatus,
)
from app.repos.quiz_repo import QuizRepo
from app.repos.submission_repo import SubmissionRepo
from app.services import scoring
from app.services.ai_client import AIClient
from app.services.attempt_service import Clock, utcnow
from app.services.scoring import ManualGrade
from app.services.stats_service import SubmissionSummary, summarize_submissions

logger = logging.getLogger(__name__)

_DECISIONS = {
    "approved": RevaluationStatus.APPROVED,
    "denied": RevaluationStatus.DENIED,
}


def _regrade(
    submission: Submission, quiz: Quiz, grades: Sequence[ManualGrade]
) -> Submission:
    answers = scoring.apply_manual_grades(submission.answers, grades)
    return replace(
        submission,
        answers=answers,
        score=scoring.compute_score(answers, quiz.questions),
    )


def _check_evaluable(submission: Submission) -> None:
    if submission.status is SubmissionStatus.IN_PROGRESS:
        raise PolicyError("Submission has not been submitted yet")
    if submission.revaluation.status is RevaluationStatus.PENDING:
        raise PolicyError("A revaluation request is pending for this submission")


class EvaluationWorkflow:
    def __init__(
        self,
        quizzes: QuizRepo,
        submissions: SubmissionRepo,
        ai: AIClient,
        *,
        ai_timeout: float = 10.0,
        clock: Clock = utcnow,
    ) -> None:
        self._quizzes = quizzes
        self._submissions = submissions
        self._ai = ai
        self._ai_timeout = ai_timeout
        self._clock = clock

    async def _load(self, submission_id: str) -> tuple[Submission, Quiz]:
        submission = await self._submissions.get(submission_id)
        if submission is None:
            raise NotFoundError("Submission not found")
        quiz = await self._quizzes.get(submission.quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        return submission, quiz

    @staticmethod
    def _require_grader(quiz: Quiz, grader: Principal) -> None:
        if not grader.owns_or_admin(quiz.created_by):
            logger.warning(
                "Grading rejected: caller does not own quiz",
                extra={"quiz_id": quiz.id, "user_id": grader.user_id},
            )
            raise AuthorizationError("Only the quiz owner or an admin may grade")

    async def _fetch_insights(
        self, quiz: Quiz, submission: Submission
    ) -> AIInsights | None:
        """Best-effort AI feedback.  Never raises."""
        log_ctx = {"submission_id": submission.id, "quiz_id": quiz.id}
        try:
            return await asyncio.wait_for(
                self._ai.evaluate_submission(quiz, submission, submission.answers),
                timeout=self._ai_timeout,
            )
        except TimeoutError:
            AI_INSIGHT_FAILURES.labels(reason="timeout").inc()
            logger.warning(
                "AI insight timed out after %.1fs; evaluating without it",
                self._ai_timeout,
                extra=log_ctx,
            )
        except Exception:
            AI_INSIGHT_FAILURES.labels(reason="error").inc()
            logger.warning(
                "AI insight failed; evaluating without it", exc_info=True, extra=log_ctx
            )
        return None

    # ------------------------------------------------------------------
    # Grading
    # ------------------------------------------------------------------

    async def evaluate_manually(
        self,
        submission_id: str,
        grader: Principal,
        feedback: str | None,
        manual_grades: Sequence[ManualGrade] = (),
    ) -> Submission:
        current, quiz = await self._load(submission_id)
        self._require_grader(quiz, grader)
        _check_evaluable(current)
        grades = scoring.validate_manual_grades(quiz.questions, manual_grades)

        insights = current.evaluation.ai_insights
        if insights is None:
            insights = await self._fetch_insights(quiz, _regrade(current, quiz, grades))

        now = self._clock()

        def evaluate(sub: Submission) -> Submission:
            _check_evaluable(sub)
            graded = _regrade(sub, quiz, grades)
            return replace(
                graded,
                status=SubmissionStatus.EVALUATED,
                evaluation=replace(
                    sub.evaluation,
                    auto_graded=False,
                    evaluated_by=grader.user_id,
                    evaluated_at=now,
                    feedback=feedback,
                    ai_insights=sub.evaluation.ai_insights or insights,
                ),
            )

        submission = await self._submissions.update(submission_id, evaluate)
        EVALUATIONS.labels(kind="manual").inc()
        logger.info(
            "Submission evaluated score=%s%% grade=%s ai_insights=%s",
            submission.score.percentage,
            submission.score.grade,
            submission.evaluation.ai_insights is not None,
            extra={
                "submission_id": submission_id,
                "quiz_id": quiz.id,
                "user_id": grader.user_id,
            },
        )
        return submission

    # ------------------------------------------------------------------
    # Revaluation appeals
    # ------------------------------------------------------------------

    async def request_revaluation(
        self, submission_id: str, student_id: str, reason: str
    ) -> Submission:
        current = await self._submissions.get(submission_id)
        if current is None:
            raise NotFoundError("Submission not found")
        if current.student_id != student_id:
            raise AuthorizationError("You can only appeal your own submission")

        now = self._clock()

        def request(sub: Submission) -> Submission:
            if sub.status is not SubmissionStatus.EVALUATED:
                raise PolicyError("Only evaluated submissions can be appealed")
            if sub.revaluation.requested:
                raise PolicyError("Revaluation has already been requested")
            return replace(
                sub,
                revaluation=Revaluation(
                    requested=True,
                    status=RevaluationStatus.PENDING,
                    requested_at=now,
                    reason=reason,
                ),
            )

        try:
            submission = await self._submissions.update(submission_id, request)
        except PolicyError as exc:
            logger.warning(
                "Revaluation request rejected: %s",
                exc.message,
                extra={"submission_id": submission_id, "user_id": student_id},
            )
            raise
        EVALUATIONS.labels(kind="revaluation_requested").inc()
        logger.info(
            "Revaluation requested",
            extra={"submission_id": submission_id, "user_id": student_id},
        )
        return submission

    async def handle_revaluation(
        self,
        submission_id: str,
        grader: Principal,
        decision: str,
        response: str | None = None,
        new_grades: Sequence[ManualGrade] | None = None,
    ) -> Submission:
        outcome = _DECISIONS.get(decision)
        if outcome is None:
            raise ValidationError("decision must be 'approved' or 'denied'")

        current, quiz = await self._load(submission_id)
        self._require_grader(quiz, grader)
        grades = (
            scoring.validate_manual_grades(quiz.questions, new_grades)
            if new_grades
            else []
        )
        now = self._clock()

        def decide(sub: Submission) -> Submission:
            if sub.revaluation.status is not RevaluationStatus.PENDING:
                raise PolicyError("No pending revaluation for this submission")
            if outcome is RevaluationStatus.APPROVED and grades:
                sub = _regrade(sub, quiz, grades)
            return replace(
                sub,
                revaluation=replace(
                    sub.revaluation,
                    status=outcome,
                    handled_by=grader.user_id,
                    handled_at=now,
                    response=response,
                ),
            )

        submission = await self._submissions.update(submission_id, decide)
        EVALUATIONS.labels(kind=f"revaluation_{outcome.value}").inc()
        logger.info(
            "Revaluation %s score=%s%%",
            outcome.value,
            submission.score.percentage,
            extra={"submission_id": submission_id, "user_id": grader.user_id},
        )
        return submission

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_submission(
        self, submission_id: str, principal: Principal
    ) -> Submission:
        submission, quiz = await self._load(submission_id)
        if submission.student_id != principal.user_id and not principal.owns_or_admin(
            quiz.created_by
        ):
            raise AuthorizationError("You cannot view this submission")
        return submission

    async def _visible_submissions(self, principal: Principal) -> list[Submission]:
        """Admins see all, teachers their quizzes' submissions, students their own."""
        if principal.is_admin():
            return await self._submissions.find()
        if principal.has_role(TEACHER):
            owned = await self._quizzes.list_by_owner(principal.user_id)
            return await self._submissions.find(quiz_ids={q.id for q in owned})
        return await self._submissions.find(student_id=principal.user_id)

    async def list_submissions(
        self,
        principal: Principal,
        *,
        status: SubmissionStatus | None = None,
        quiz_id: str | None = None,
    ) -> list[Submission]:
        submissions = [
            s
            for s in await self._visible_submissions(principal)
            if (status is None or s.status is status)
            and (quiz_id is None or s.quiz_id == quiz_id)
        ]
        submissions.sort(key=lambda s: s.timing.start_time, reverse=True)
        return submissions

    async def submission_stats(self, principal: Principal) -> SubmissionSummary:
        return summarize_submissions(await self._visible_submissions(principal))
