from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Union
from uuid import uuid4

# ---------------------------------------------------------------------------
# Answer values: one variant per question type, discriminated by ``type``
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChoiceAnswer:
    selected: str  # text of the chosen option
    type: Literal["multiple-choice"] = "multiple-choice"


@dataclass(frozen=True, slots=True)
class TrueFalseAnswer:
    value: str  # "true" / "false", compared case-insensitively
    type: Literal["true-false"] = "true-false"


@dataclass(frozen=True, slots=True)
class ShortAnswer:
    text: str
    type: Literal["short-answer"] = "short-answer"


@dataclass(frozen=True, slots=True)
class EssayAnswer:
    text: str
    type: Literal["essay"] = "essay"


AnswerValue = Union[ChoiceAnswer, TrueFalseAnswer, ShortAnswer, EssayAnswer]


@dataclass(frozen=True, slots=True)
class SubmittedAnswer:
    """An answer as the student sends it, before grading."""

    question_id: str
    value: AnswerValue
    time_spent: int = 0  # seconds


@dataclass(frozen=True, slots=True)
class GradedAnswer:
    question_id: str
    value: AnswerValue | None  # None when a grader scores an unanswered question
    is_correct: bool = False
    points: float = 0.0
    time_spent: int = 0


# ---------------------------------------------------------------------------
# Submission aggregate
# ---------------------------------------------------------------------------


class SubmissionStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    SUBMITTED = "submitted"
    EVALUATED = "evaluated"


class RevaluationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class Score:
    total: float = 0.0
    percentage: int = 0
    grade: str = "F"


@dataclass(frozen=True, slots=True)
class Timing:
    start_time: datetime
    time_limit: int = 0  # seconds, 0 = unlimited
    end_time: datetime | None = None
    total_time: int | None = None  # seconds, set once at finalization


@dataclass(frozen=True, slots=True)
class AIInsights:
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    detailed_analysis: str = ""


@dataclass(frozen=True, slots=True)
class Evaluation:
    auto_graded: bool = False
    evaluated_by: str | None = None
    evaluated_at: datetime | None = None
    feedback: str | None = None
    ai_insights: AIInsights | None = None


@dataclass(frozen=True, slots=True)
class Revaluation:
    requested: bool = False
    status: RevaluationStatus = RevaluationStatus.NONE
    requested_at: datetime | None = None
    reason: str | None = None
    handled_by: str | None = None
    handled_at: datetime | None = None
    response: str | None = None


@dataclass(frozen=True, slots=True)
class Submission:
    id: str
    quiz_id: str
    student_id: str
    timing: Timing
    status: SubmissionStatus = SubmissionStatus.IN_PROGRESS
    answers: tuple[GradedAnswer, ...] = ()
    score: Score = field(default_factory=Score)
    evaluation: Evaluation = field(default_factory=Evaluation)
    revaluation: Revaluation = field(default_factory=Revaluation)
    attempt: int = 1
    version: int = 1

    @staticmethod
    def start(
        *,
        quiz_id: str,
        student_id: str,
        start_time: datetime,
        time_limit: int,
        attempt: int = 1,
    ) -> Submission:
        return Submission(
            id=str(uuid4()),
            quiz_id=quiz_id,
            student_id=student_id,
            timing=Timing(start_time=start_time, time_limit=time_limit),
            attempt=attempt,
        )

    @property
    def is_finalized(self) -> bool:
        return self.status is not SubmissionStatus.IN_PROGRESS
