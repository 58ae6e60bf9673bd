"""Request bodies for the quiz, submission and competition routers.

Inputs are pydantic models converted into domain dataclasses with
``to_domain()``.  Responses are the domain objects dumped through the same
TypeAdapters the PostgreSQL repositories use (app/db/documents.py).
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import AwareDatetime, BaseModel, Field

from app.models.competition import (
    CompetitionSchedule,
    CompetitionSettings,
    CompetitionStatus,
)
from app.models.quiz import (
    Question,
    QuestionOption,
    QuestionType,
    QuizSchedule,
    QuizSettings,
    QuizStatus,
)
from app.models.submission import (
    AnswerValue,
    ChoiceAnswer,
    EssayAnswer,
    ShortAnswer,
    SubmittedAnswer,
    TrueFalseAnswer,
)
from app.services.ai_client import GenerationOptions
from app.services.quiz_service import QuizChanges
from app.services.scoring import ManualGrade

# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------


class OptionIn(BaseModel):
    text: str = Field(min_length=1)
    is_correct: bool = False


class QuestionIn(BaseModel):
    id: str | None = None
    type: QuestionType
    question: str = Field(min_length=10)
    options: list[OptionIn] = []
    correct_answer: str | None = None
    explanation: str | None = None
    points: int = Field(default=1, ge=0)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    tags: list[str] = []

    def to_domain(self) -> Question:
        fields = dict(
            type=self.type,
            question=self.question,
            options=tuple(QuestionOption(o.text, o.is_correct) for o in self.options),
            correct_answer=self.correct_answer,
            explanation=self.explanation,
            points=self.points,
            difficulty=self.difficulty,
            tags=tuple(self.tags),
        )
        if self.id is None:
            return Question.new(**fields)
        return Question(id=self.id, **fields)


class QuizSettingsIn(BaseModel):
    time_limit: int = Field(default=60, ge=0)
    allow_retake: bool = False
    shuffle_questions: bool = False
    show_results: bool = True
    passing_score: int = Field(default=60, ge=0, le=100)
    auto_grade: bool = True

    def to_domain(self) -> QuizSettings:
        return QuizSettings(**self.model_dump())


class QuizScheduleIn(BaseModel):
    start_date: AwareDatetime | None = None
    end_date: AwareDatetime | None = None
    timezone: str = "UTC"

    def to_domain(self) -> QuizSchedule:
        return QuizSchedule(**self.model_dump())


class QuizIn(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    subject: str = Field(min_length=2, max_length=100)
    description: str | None = None
    grade: str | None = None
    questions: list[QuestionIn] = Field(min_length=1)
    assigned_to: list[str] = []
    status: QuizStatus = QuizStatus.DRAFT
    settings: QuizSettingsIn = QuizSettingsIn()
    schedule: QuizScheduleIn = QuizScheduleIn()


class QuizUpdateIn(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    subject: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = None
    grade: str | None = None
    questions: list[QuestionIn] | None = Field(default=None, min_length=1)
    status: QuizStatus | None = None
    settings: QuizSettingsIn | None = None
    schedule: QuizScheduleIn | None = None

    def to_changes(self) -> QuizChanges:
        return QuizChanges(
            title=self.title,
            subject=self.subject,
            description=self.description,
            grade=self.grade,
            questions=(
                None if self.questions is None else [q.to_domain() for q in self.questions]
            ),
            status=self.status,
            settings=None if self.settings is None else self.settings.to_domain(),
            schedule=None if self.schedule is None else self.schedule.to_domain(),
        )


class AssignIn(BaseModel):
    student_ids: list[str] = Field(min_length=1)


class GenerateQuizIn(BaseModel):
    text: str = Field(min_length=1)
    title: str = Field(default="Generated Quiz", min_length=3, max_length=200)
    subject: str = "General"
    number_of_questions: int = Field(default=10, ge=1, le=50)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    question_types: list[QuestionType] = [
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.SHORT_ANSWER,
    ]

    def to_options(self) -> GenerationOptions:
        return GenerationOptions(
            number_of_questions=self.number_of_questions,
            difficulty=self.difficulty,
            question_types=tuple(t.value for t in self.question_types),
            subject=self.subject,
        )


class PracticeIn(BaseModel):
    subject: str = Field(min_length=2)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    count: int = Field(default=5, ge=1, le=50)


# ---------------------------------------------------------------------------
# Answers: discriminated on ``type``, one variant per question type
# ---------------------------------------------------------------------------


class ChoiceAnswerIn(BaseModel):
    type: Literal["multiple-choice"]
    selected: str

    def to_domain(self) -> AnswerValue:
        return ChoiceAnswer(selected=self.selected)


class TrueFalseAnswerIn(BaseModel):
    type: Literal["true-false"]
    value: bool | str

    def to_domain(self) -> AnswerValue:
        raw = self.value
        return TrueFalseAnswer(value=str(raw).lower() if isinstance(raw, bool) else raw)


class ShortAnswerIn(BaseModel):
    type: Literal["short-answer"]
    text: str

    def to_domain(self) -> AnswerValue:
        return ShortAnswer(text=self.text)


class EssayAnswerIn(BaseModel):
    type: Literal["essay"]
    text: str

    def to_domain(self) -> AnswerValue:
        return EssayAnswer(text=self.text)


AnswerValueIn = Annotated[
    Union[ChoiceAnswerIn, TrueFalseAnswerIn, ShortAnswerIn, EssayAnswerIn],
    Field(discriminator="type"),
]


class AnswerIn(BaseModel):
    question_id: str
    answer: AnswerValueIn
    time_spent: int = Field(default=0, ge=0)

    def to_domain(self) -> SubmittedAnswer:
        return SubmittedAnswer(
            question_id=self.question_id,
            value=self.answer.to_domain(),
            time_spent=self.time_spent,
        )


class SubmitIn(BaseModel):
    submission_id: str
    answers: list[AnswerIn] = []


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class ManualGradeIn(BaseModel):
    question_id: str
    points: float

    def to_domain(self) -> ManualGrade:
        return ManualGrade(question_id=self.question_id, points=self.points)


class EvaluateIn(BaseModel):
    feedback: str | None = None
    grades: list[ManualGradeIn] = []


class RevaluationRequestIn(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class RevaluationDecisionIn(BaseModel):
    decision: str
    response: str | None = None
    grades: list[ManualGradeIn] | None = None


# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------


class CompetitionScheduleIn(BaseModel):
    registration_start: AwareDatetime
    registration_end: AwareDatetime
    competition_start: AwareDatetime
    competition_end: AwareDatetime
    timezone: str = "UTC"

    def to_domain(self) -> CompetitionSchedule:
        return CompetitionSchedule(**self.model_dump())


class CompetitionSettingsIn(BaseModel):
    is_public: bool = False
    allow_late_submission: bool = False
    show_leaderboard: bool = True
    instant_results: bool = False

    def to_domain(self) -> CompetitionSettings:
        return CompetitionSettings(**self.model_dump())


class CompetitionIn(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str = ""
    quiz_id: str
    type: Literal["class", "inter-class", "inter-college", "public"] = "class"
    status: CompetitionStatus = CompetitionStatus.DRAFT
    max_participants: int | None = Field(default=None, ge=1)
    schedule: CompetitionScheduleIn
    settings: CompetitionSettingsIn = CompetitionSettingsIn()


class CompetitionStatusIn(BaseModel):
    status: CompetitionStatus


class EntryIn(BaseModel):
    submission_id: str
