"""AI collaborator: question generation and submission feedback.

The engine only depends on the ``AIClient`` Protocol.  ``GeminiClient``
talks to a Gemini-style ``models/{model}:generateContent`` endpoint with
httpx; ``DisabledAIClient`` is wired when no API key is configured.

Model output is free text that is supposed to contain one JSON value.
We pull the outermost JSON array/object out of the text, map it onto our
records, and turn every failure (transport, non-2xx, missing or invalid
JSON) into ExternalServiceError.  Content quality is not checked here.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.core.config import SETTINGS
from app.core.errors import ExternalServiceError
from app.models.quiz import Question, QuestionOption, QuestionType, Quiz
from app.models.submission import (
    AIInsights,
    AnswerValue,
    ChoiceAnswer,
    GradedAnswer,
    Submission,
    TrueFalseAnswer,
)

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    number_of_questions: int = 10
    difficulty: str = "medium"
    question_types: tuple[str, ...] = ("multiple-choice", "short-answer")
    subject: str = "General"


@runtime_checkable
class AIClient(Protocol):
    async def generate_questions_from_text(
        self, text: str, options: GenerationOptions
    ) -> list[Question]: ...

    async def generate_practice_quiz(
        self, subject: str, difficulty: str, count: int
    ) -> list[Question]: ...

    async def evaluate_submission(
        self, quiz: Quiz, submission: Submission, answers: Sequence[GradedAnswer]
    ) -> AIInsights: ...


# ---------------------------------------------------------------------------
# Wire shapes of the model's JSON output
# ---------------------------------------------------------------------------


class _OptionOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    is_correct: bool = Field(default=False, alias="isCorrect")


class _QuestionOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: QuestionType
    question: str
    options: list[_OptionOut] = []
    correct_answer: str | None = Field(default=None, alias="correctAnswer")
    explanation: str | None = None
    difficulty: str = "medium"
    points: int = Field(default=1, ge=0)


class _InsightsOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    strengths: list[str] = []
    weaknesses: list[str] = []
    recommendations: list[str] = []
    detailed_analysis: str = Field(default="", alias="detailedAnalysis")


def _extract_json(text: str, pattern: re.Pattern[str]) -> object:
    match = pattern.search(text)
    if match is None:
        raise ExternalServiceError("No valid JSON found in AI response")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ExternalServiceError(f"AI response JSON is malformed: {exc.msg}") from exc


def parse_questions(text: str) -> list[Question]:
    raw = _extract_json(text, _JSON_ARRAY)
    try:
        items = [_QuestionOut.model_validate(item) for item in raw]  # type: ignore[union-attr]
    except (PydanticValidationError, TypeError) as exc:
        raise ExternalServiceError("AI returned questions in an unexpected shape") from exc
    return [
        Question.new(
            type=item.type,
            question=item.question,
            options=tuple(
                QuestionOption(text=o.text, is_correct=o.is_correct) for o in item.options
            ),
            correct_answer=item.correct_answer,
            explanation=item.explanation,
            difficulty=item.difficulty,
            points=item.points,
        )
        for item in items
    ]


def parse_insights(text: str) -> AIInsights:
    raw = _extract_json(text, _JSON_OBJECT)
    try:
        out = _InsightsOut.model_validate(raw)
    except PydanticValidationError as exc:
        raise ExternalServiceError("AI returned feedback in an unexpected shape") from exc
    return AIInsights(
        strengths=tuple(out.strengths),
        weaknesses=tuple(out.weaknesses),
        recommendations=tuple(out.recommendations),
        detailed_analysis=out.detailed_analysis,
    )


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_QUESTION_FORMAT = """\
Format the response as a JSON array:
[
  {"type": "multiple-choice", "question": "...",
   "options": [{"text": "...", "isCorrect": false}, {"text": "...", "isCorrect": true}],
   "explanation": "...", "difficulty": "%(difficulty)s", "points": 1},
  {"type": "short-answer", "question": "...", "correctAnswer": "...",
   "explanation": "...", "difficulty": "%(difficulty)s", "points": 2}
]
Generate exactly %(count)d questions. The JSON must be valid."""


def build_generation_prompt(text: str, options: GenerationOptions) -> str:
    return (
        f"As an expert educator, generate {options.number_of_questions} quiz "
        "questions based on the following content.\n\n"
        f'Content: "{text}"\n\n'
        f"Difficulty: {options.difficulty}\n"
        f"Question types: {', '.join(options.question_types)}\n"
        f"Subject: {options.subject}\n"
        "Test understanding, not memorization. Multiple-choice questions have "
        "4 options with exactly one correct. Include an explanation for each.\n\n"
        + _QUESTION_FORMAT
        % {"difficulty": options.difficulty, "count": options.number_of_questions}
    )


def build_practice_prompt(subject: str, difficulty: str, count: int) -> str:
    return (
        f"Generate {count} practice quiz questions for the subject: {subject}\n"
        f"Difficulty: {difficulty}\n"
        "Mix multiple-choice, true-false and short-answer questions.\n\n"
        + _QUESTION_FORMAT % {"difficulty": difficulty, "count": count}
    )


def _describe_answer(value: AnswerValue | None) -> str:
    if value is None:
        return "No answer provided"
    if isinstance(value, ChoiceAnswer):
        return value.selected
    if isinstance(value, TrueFalseAnswer):
        return value.value
    return value.text


def build_evaluation_prompt(
    quiz: Quiz, submission: Submission, answers: Sequence[GradedAnswer]
) -> str:
    by_question = {a.question_id: a for a in answers}
    blocks = []
    for index, q in enumerate(quiz.questions, start=1):
        answer = by_question.get(q.id)
        if q.type is QuestionType.MULTIPLE_CHOICE:
            correct = q.correct_option()
            expected = correct.text if correct else "-"
            options = f"Options: {', '.join(o.text for o in q.options)}\n"
        else:
            expected = q.correct_answer or "-"
            options = ""
        blocks.append(
            f"Question {index}: {q.question}\n"
            f"Type: {q.type.value}\n"
            f"{options}"
            f"Correct Answer: {expected}\n"
            f"Student Answer: {_describe_answer(answer.value if answer else None)}\n"
            f"Points: {q.points}\n"
        )
    return (
        "As an expert educator, evaluate this quiz submission and give feedback.\n\n"
        f"Quiz Title: {quiz.title}\nSubject: {quiz.subject}\n\n"
        "Questions and Student Answers:\n"
        + "\n".join(blocks)
        + f"\nCurrent Score: {submission.score.total:g}/{quiz.total_points} "
        f"({submission.score.percentage}%)\n\n"
        "Respond with JSON only:\n"
        '{"strengths": ["..."], "weaknesses": ["..."], '
        '"recommendations": ["..."], "detailedAnalysis": "..."}'
    )


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


class GeminiClient:
    """httpx-backed client for the ``generateContent`` REST call."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def _generate(self, prompt: str) -> str:
        try:
            resp = await self._http.post(
                self._url,
                params={"key": self._api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("AI request failed with HTTP %d", exc.response.status_code)
            raise ExternalServiceError(
                f"AI service returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"AI service unreachable: {exc}") from exc
        except ValueError as exc:
            raise ExternalServiceError("AI service returned a non-JSON body") from exc

        try:
            return body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ExternalServiceError("AI response has no text candidate") from exc

    async def generate_questions_from_text(
        self, text: str, options: GenerationOptions
    ) -> list[Question]:
        return parse_questions(await self._generate(build_generation_prompt(text, options)))

    async def generate_practice_quiz(
        self, subject: str, difficulty: str, count: int
    ) -> list[Question]:
        return parse_questions(
            await self._generate(build_practice_prompt(subject, difficulty, count))
        )

    async def evaluate_submission(
        self, quiz: Quiz, submission: Submission, answers: Sequence[GradedAnswer]
    ) -> AIInsights:
        return parse_insights(
            await self._generate(build_evaluation_prompt(quiz, submission, answers))
        )

    async def aclose(self) -> None:
        await self._http.aclose()


class DisabledAIClient:
    """Used when AI_API_KEY is unset; every call fails as an external error."""

    async def generate_questions_from_text(
        self, text: str, options: GenerationOptions
    ) -> list[Question]:
        raise ExternalServiceError("AI features are not configured")

    async def generate_practice_quiz(
        self, subject: str, difficulty: str, count: int
    ) -> list[Question]:
        raise ExternalServiceError("AI features are not configured")

    async def evaluate_submission(
        self, quiz: Quiz, submission: Submission, answers: Sequence[GradedAnswer]
    ) -> AIInsights:
        raise ExternalServiceError("AI features are not configured")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if SETTINGS.ai_enabled and SETTINGS.ai_api_key:
    ai_client: AIClient = GeminiClient(
        api_key=SETTINGS.ai_api_key,
        model=SETTINGS.ai_model,
        base_url=SETTINGS.ai_base_url,
        timeout_seconds=SETTINGS.ai_timeout_seconds,
    )
else:
    ai_client = DisabledAIClient()


@asynccontextmanager
async def lifespan_ai():
    """Release the AI HTTP connection pool on shutdown."""
    client = ai_client
    if not isinstance(client, GeminiClient):
        logger.info("AI features disabled; no AI_API_KEY configured")
        yield
        return

    yield

    await client.aclose()
    logger.info("AI HTTP client closed")
