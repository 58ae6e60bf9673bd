from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"
    ESSAY = "essay"


class QuizStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    SCHEDULED = "scheduled"


@dataclass(frozen=True, slots=True)
class QuestionOption:
    text: str
    is_correct: bool = False


@dataclass(frozen=True, slots=True)
class Question:
    id: str
    type: QuestionType
    question: str
    options: tuple[QuestionOption, ...] = ()
    correct_answer: str | None = None  # every type except multiple-choice
    explanation: str | None = None
    points: int = 1
    difficulty: str = "medium"  # easy|medium|hard
    tags: tuple[str, ...] = ()

    @staticmethod
    def new(*, type: QuestionType, question: str, **kwargs) -> Question:
        return Question(id=str(uuid4()), type=type, question=question, **kwargs)

    def correct_option(self) -> QuestionOption | None:
        return next((o for o in self.options if o.is_correct), None)


@dataclass(frozen=True, slots=True)
class QuizSettings:
    time_limit: int = 60  # minutes, 0 = unlimited
    allow_retake: bool = False
    shuffle_questions: bool = False
    show_results: bool = True
    passing_score: int = 60  # percentage
    auto_grade: bool = True


@dataclass(frozen=True, slots=True)
class QuizSchedule:
    start_date: datetime | None = None
    end_date: datetime | None = None
    timezone: str = "UTC"


@dataclass(frozen=True, slots=True)
class QuizStatistics:
    """Rolling aggregates, written only through StatsAggregator."""

    total_attempts: int = 0
    average_score: float = 0.0
    completion_rate: float = 0.0


@dataclass(frozen=True, slots=True)
class Quiz:
    id: str
    title: str
    subject: str
    created_by: str
    questions: tuple[Question, ...] = ()
    description: str | None = None
    grade: str | None = None
    assigned_to: tuple[str, ...] = ()
    status: QuizStatus = QuizStatus.DRAFT
    settings: QuizSettings = field(default_factory=QuizSettings)
    schedule: QuizSchedule = field(default_factory=QuizSchedule)
    statistics: QuizStatistics = field(default_factory=QuizStatistics)
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def new(*, title: str, subject: str, created_by: str, **kwargs) -> Quiz:
        return Quiz(
            id=str(uuid4()),
            title=title,
            subject=subject,
            created_by=created_by,
            **kwargs,
        )

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    def question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)

    def is_available(self, now: datetime) -> bool:
        """Published and inside the optional schedule window."""
        if self.status is not QuizStatus.PUBLISHED:
            return False
        if self.schedule.start_date is not None and now < self.schedule.start_date:
            return False
        if self.schedule.end_date is not None and now > self.schedule.end_date:
            return False
        return True

    def is_open_to(self, student_id: str) -> bool:
        """Assigned students only, or everyone when nobody is assigned."""
        if self.assigned_to:
            return student_id in self.assigned_to
        return self.status is QuizStatus.PUBLISHED


# ---------------------------------------------------------------------------
# Student-facing view: correct answers stripped
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class QuestionView:
    id: str
    type: QuestionType
    question: str
    points: int
    options: tuple[str, ...] | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class QuizView:
    id: str
    title: str
    subject: str
    description: str | None
    time_limit: int
    total_points: int
    questions: tuple[QuestionView, ...]


def sanitize_quiz(quiz: Quiz) -> QuizView:
    """Return the quiz as a student may see it while attempting it."""
    return QuizView(
        id=quiz.id,
        title=quiz.title,
        subject=quiz.subject,
        description=quiz.description,
        time_limit=quiz.settings.time_limit,
        total_points=quiz.total_points,
        questions=tuple(
            QuestionView(
                id=q.id,
                type=q.type,
                question=q.question,
                points=q.points,
                options=(
                    tuple(o.text for o in q.options)
                    if q.type is QuestionType.MULTIPLE_CHOICE
                    else None
                ),
                tags=q.tags,
            )
            for q in quiz.questions
        ),
    )
