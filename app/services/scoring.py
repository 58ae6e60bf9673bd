"""Pure grading functions: no I/O, no clock, no logging.

Answers arrive as a tagged union (one dataclass per question type); each
variant has its own grader and ``grade_answers`` dispatches on the
variant's class.  Essays are never auto-graded: they score 0 until a
grader overrides them through ``apply_manual_grades``.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace

from app.core.errors import ValidationError
from app.models.quiz import Question, QuestionType
from app.models.submission import (
    AnswerValue,
    ChoiceAnswer,
    EssayAnswer,
    GradedAnswer,
    Score,
    ShortAnswer,
    SubmittedAnswer,
    TrueFalseAnswer,
)

# (inclusive lower bound, grade), highest first
GRADE_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (95, "A+"),
    (90, "A"),
    (85, "B+"),
    (80, "B"),
    (75, "C+"),
    (70, "C"),
    (60, "D"),
)
FAILING_GRADE = "F"


@dataclass(frozen=True, slots=True)
class ManualGrade:
    question_id: str
    points: float


def _grade_choice(question: Question, answer: ChoiceAnswer) -> bool:
    correct = question.correct_option()
    return correct is not None and correct.text == answer.selected


def _grade_true_false(question: Question, answer: TrueFalseAnswer) -> bool:
    if question.correct_answer is None:
        return False
    return question.correct_answer.lower() == answer.value.lower()


def _grade_short_answer(question: Question, answer: ShortAnswer) -> bool:
    if question.correct_answer is None:
        return False
    return question.correct_answer.strip().lower() == answer.text.strip().lower()


def _grade_essay(question: Question, answer: EssayAnswer) -> bool:
    return False


_GRADERS = {
    ChoiceAnswer: (QuestionType.MULTIPLE_CHOICE, _grade_choice),
    TrueFalseAnswer: (QuestionType.TRUE_FALSE, _grade_true_false),
    ShortAnswer: (QuestionType.SHORT_ANSWER, _grade_short_answer),
    EssayAnswer: (QuestionType.ESSAY, _grade_essay),
}


def grade_answer(question: Question, answer: AnswerValue) -> bool:
    expected_type, grader = _GRADERS[type(answer)]
    if question.type is not expected_type:
        raise ValidationError(
            f"answer of type {answer.type!r} does not fit "
            f"{question.type.value!r} question {question.id}"
        )
    return grader(question, answer)  # type: ignore[operator]


def grade_answers(
    questions: Sequence[Question],
    answers: Iterable[SubmittedAnswer],
    *,
    drop_unmatched: bool = True,
) -> tuple[GradedAnswer, ...]:
    """Grade each submitted answer against its question.

    Answers whose question id matches nothing are dropped when
    ``drop_unmatched`` is set and rejected otherwise.  Two answers for the
    same question are always rejected.  Unanswered questions produce no
    entry; they simply contribute 0 points.
    """
    by_id = {q.id: q for q in questions}
    seen: set[str] = set()
    graded: list[GradedAnswer] = []

    for answer in answers:
        if answer.question_id in seen:
            raise ValidationError(f"duplicate answer for question {answer.question_id}")
        seen.add(answer.question_id)

        question = by_id.get(answer.question_id)
        if question is None:
            if drop_unmatched:
                continue
            raise ValidationError(f"unknown question id {answer.question_id}")

        is_correct = grade_answer(question, answer.value)
        graded.append(
            GradedAnswer(
                question_id=answer.question_id,
                value=answer.value,
                is_correct=is_correct,
                points=float(question.points) if is_correct else 0.0,
                time_spent=max(answer.time_spent, 0),
            )
        )
    return tuple(graded)


def grade_for(percentage: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if percentage >= threshold:
            return grade
    return FAILING_GRADE


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_score(
    graded: Iterable[GradedAnswer], questions: Sequence[Question]
) -> Score:
    """Total earned points, rounded percentage of all possible points, grade."""
    possible = sum(q.points for q in questions)
    total = float(sum(a.points for a in graded))
    if possible <= 0:
        percentage = 0
    else:
        percentage = min(max(round_half_up(100 * total / possible), 0), 100)
    return Score(total=total, percentage=percentage, grade=grade_for(percentage))


def validate_manual_grades(
    questions: Sequence[Question], grades: Iterable[ManualGrade]
) -> list[ManualGrade]:
    by_id = {q.id: q for q in questions}
    checked: list[ManualGrade] = []
    seen: set[str] = set()
    for grade in grades:
        question = by_id.get(grade.question_id)
        if question is None:
            raise ValidationError(f"unknown question id {grade.question_id}")
        if grade.question_id in seen:
            raise ValidationError(f"duplicate grade for question {grade.question_id}")
        if not math.isfinite(grade.points) or not 0 <= grade.points <= question.points:
            raise ValidationError(
                f"points for question {grade.question_id} must be between "
                f"0 and {question.points}"
            )
        seen.add(grade.question_id)
        checked.append(grade)
    return checked


def apply_manual_grades(
    graded: Sequence[GradedAnswer], grades: Iterable[ManualGrade]
) -> tuple[GradedAnswer, ...]:
    """Override points per question; ``is_correct`` follows ``points > 0``.

    A grade for a question the student left blank adds an entry with no
    answer value so the awarded points still count.
    """
    overrides: Mapping[str, ManualGrade] = {g.question_id: g for g in grades}
    result: list[GradedAnswer] = []
    for answer in graded:
        override = overrides.get(answer.question_id)
        if override is None:
            result.append(answer)
        else:
            result.append(
                replace(answer, points=float(override.points), is_correct=override.points > 0)
            )
    answered = {a.question_id for a in graded}
    for question_id, override in overrides.items():
        if question_id not in answered:
            result.append(
                GradedAnswer(
                    question_id=question_id,
                    value=None,
                    is_correct=override.points > 0,
                    points=float(override.points),
                )
            )
    return tuple(result)
