"""Rolling quiz / student statistics fed by finalized submissions."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from app.models.quiz import Quiz
from app.models.submission import Submission, SubmissionStatus
from app.models.user_stats import UserStats
from app.repos.quiz_repo import QuizRepo
from app.repos.user_stats_repo import UserStatsRepo

logger = logging.getLogger(__name__)


def update_rolling_average(
    current_avg: float, count_after_sample: int, new_value: float
) -> float:
    """Fold one sample into a running mean.

    ``count_after_sample`` already includes the new sample, so a count of 1
    returns ``new_value`` whatever the previous average was.
    """
    if count_after_sample < 1:
        raise ValueError("count_after_sample must be >= 1")
    if count_after_sample == 1:
        return float(new_value)
    return (current_avg * (count_after_sample - 1) + new_value) / count_after_sample


def _fold_quiz(percentage: int):
    def mutate(quiz: Quiz) -> Quiz:
        count = quiz.statistics.total_attempts + 1
        stats = replace(
            quiz.statistics,
            total_attempts=count,
            average_score=update_rolling_average(
                quiz.statistics.average_score, count, percentage
            ),
        )
        return replace(quiz, statistics=stats)

    return mutate


def _fold_user(percentage: int, now: datetime):
    def mutate(stats: UserStats) -> UserStats:
        count = stats.total_quizzes + 1
        return replace(
            stats,
            total_quizzes=count,
            average_score=update_rolling_average(stats.average_score, count, percentage),
            last_active=now,
        )

    return mutate


class StatsAggregator:
    def __init__(self, quizzes: QuizRepo, user_stats: UserStatsRepo) -> None:
        self._quizzes = quizzes
        self._user_stats = user_stats

    async def record_submission(self, submission: Submission, now: datetime) -> None:
        """Fold a finalized submission into its quiz's and student's averages.

        Each fold is one atomic read-modify-write in the repo, so concurrent
        submissions for the same quiz or student never lose a sample.
        """
        percentage = submission.score.percentage
        quiz = await self._quizzes.update(submission.quiz_id, _fold_quiz(percentage))
        user = await self._user_stats.upsert(
            submission.student_id, _fold_user(percentage, now)
        )
        logger.debug(
            "Stats updated quiz avg=%.2f (n=%d) user avg=%.2f (n=%d)",
            quiz.statistics.average_score,
            quiz.statistics.total_attempts,
            user.average_score,
            user.total_quizzes,
            extra={"quiz_id": submission.quiz_id, "user_id": submission.student_id},
        )


@dataclass(frozen=True, slots=True)
class SubmissionSummary:
    total_submissions: int = 0
    average_score: float = 0.0
    completed_submissions: int = 0
    in_progress_submissions: int = 0
    revaluation_requests: int = 0


def summarize_submissions(submissions: Iterable[Submission]) -> SubmissionSummary:
    """Aggregate counts over a caller's visible submissions.

    In-progress submissions count toward the average at 0%.
    """
    items = list(submissions)
    if not items:
        return SubmissionSummary()
    return SubmissionSummary(
        total_submissions=len(items),
        average_score=sum(s.score.percentage for s in items) / len(items),
        completed_submissions=sum(
            1
            for s in items
            if s.status in (SubmissionStatus.SUBMITTED, SubmissionStatus.EVALUATED)
        ),
        in_progress_submissions=sum(
            1 for s in items if s.status is SubmissionStatus.IN_PROGRESS
        ),
        revaluation_requests=sum(1 for s in items if s.revaluation.requested),
    )
