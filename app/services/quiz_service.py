"""Quiz authoring: create, list, edit, assign, and AI-assisted drafts."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.principal import ADMIN, TEACHER, Principal
from app.models.quiz import (
    Question,
    QuestionType,
    Quiz,
    QuizSchedule,
    QuizSettings,
    QuizStatus,
    QuizView,
    sanitize_quiz,
)
from app.repos.quiz_repo import QuizRepo
from app.services.ai_client import AIClient, GenerationOptions

logger = logging.getLogger(__name__)

_AUTHORS = {TEACHER, ADMIN}


def validate_questions(questions: Sequence[Question]) -> None:
    if not questions:
        raise ValidationError("Quiz must have at least one question")
    seen: set[str] = set()
    for q in questions:
        if q.id in seen:
            raise ValidationError(f"duplicate question id {q.id}")
        seen.add(q.id)
        if q.points < 0:
            raise ValidationError(f"question {q.id} has negative points")
        if q.type is QuestionType.MULTIPLE_CHOICE:
            if sum(1 for o in q.options if o.is_correct) != 1:
                raise ValidationError(
                    f"multiple-choice question {q.id} needs exactly one correct option"
                )
        elif q.type is not QuestionType.ESSAY and not q.correct_answer:
            raise ValidationError(f"question {q.id} has no correct answer")


def _listed_for(quiz: Quiz, principal: Principal) -> bool:
    if principal.is_admin():
        return True
    published = quiz.status is QuizStatus.PUBLISHED
    if principal.has_role(TEACHER):
        return quiz.created_by == principal.user_id or (
            published and not quiz.assigned_to
        )
    return published and quiz.is_open_to(principal.user_id)


@dataclass(frozen=True, slots=True)
class QuizChanges:
    """Fields an author may edit; None leaves the stored value alone."""

    title: str | None = None
    subject: str | None = None
    description: str | None = None
    grade: str | None = None
    questions: Sequence[Question] | None = None
    status: QuizStatus | None = None
    settings: QuizSettings | None = None
    schedule: QuizSchedule | None = None


class QuizCatalog:
    def __init__(self, quizzes: QuizRepo, ai: AIClient) -> None:
        self._quizzes = quizzes
        self._ai = ai

    async def create_quiz(
        self,
        author: Principal,
        *,
        title: str,
        subject: str,
        questions: Sequence[Question],
        **kwargs,
    ) -> Quiz:
        if not author.has_any_role(_AUTHORS):
            raise AuthorizationError("Only teachers and admins can create quizzes")
        validate_questions(questions)
        return await self._persist(
            Quiz.new(
                title=title,
                subject=subject,
                created_by=author.user_id,
                questions=tuple(questions),
                **kwargs,
            )
        )

    async def _persist(self, quiz: Quiz) -> Quiz:
        await self._quizzes.add(quiz)
        logger.info(
            "Quiz created status=%s questions=%d",
            quiz.status.value,
            len(quiz.questions),
            extra={"quiz_id": quiz.id, "user_id": quiz.created_by},
        )
        return quiz

    async def get_quiz(self, quiz_id: str, principal: Principal) -> Quiz | QuizView:
        """Owner and admins see answers; everyone else the sanitized view."""
        quiz = await self._quizzes.get(quiz_id)
        if quiz is None or not quiz.is_active:
            raise NotFoundError("Quiz not found")
        if principal.owns_or_admin(quiz.created_by):
            return quiz
        if not quiz.is_open_to(principal.user_id):
            raise AuthorizationError("You are not assigned to this quiz")
        return sanitize_quiz(quiz)

    async def _load_owned(
        self, quiz_id: str, principal: Principal, action: str
    ) -> Quiz:
        current = await self._quizzes.get(quiz_id)
        if current is None or not current.is_active:
            raise NotFoundError("Quiz not found")
        if not principal.owns_or_admin(current.created_by):
            raise AuthorizationError(f"Not authorized to {action} this quiz")
        return current

    async def list_quizzes(
        self,
        principal: Principal,
        *,
        subject: str | None = None,
        status: QuizStatus | None = None,
    ) -> list[Quiz]:
        """Active quizzes the caller may see, newest first.

        Admins see every quiz.  Teachers see their own plus published quizzes
        open to everyone; students see published quizzes open to them.
        """
        visible = []
        for quiz in await self._quizzes.list_active():
            if not _listed_for(quiz, principal):
                continue
            if subject and subject.lower() not in quiz.subject.lower():
                continue
            if status is not None and quiz.status is not status:
                continue
            visible.append(quiz)
        visible.sort(key=lambda q: q.created_at, reverse=True)
        return visible

    async def update_quiz(
        self, quiz_id: str, principal: Principal, changes: QuizChanges
    ) -> Quiz:
        """Apply an author's edits; a draft is published by setting ``status``.

        Questions are validated whenever they change and whenever the result
        is published, so an unreviewed AI draft cannot go live as is.
        """
        await self._load_owned(quiz_id, principal, "update")
        updates = {
            name: value
            for name, value in (
                ("title", changes.title),
                ("subject", changes.subject),
                ("description", changes.description),
                ("grade", changes.grade),
                ("questions", changes.questions),
                ("status", changes.status),
                ("settings", changes.settings),
                ("schedule", changes.schedule),
            )
            if value is not None
        }
        if "questions" in updates:
            updates["questions"] = tuple(updates["questions"])

        def edit(quiz: Quiz) -> Quiz:
            if not quiz.is_active:
                raise NotFoundError("Quiz not found")
            edited = replace(quiz, **updates)
            if "questions" in updates or edited.status is QuizStatus.PUBLISHED:
                validate_questions(edited.questions)
            return edited

        quiz = await self._quizzes.update(quiz_id, edit)
        logger.info(
            "Quiz updated fields=%s status=%s",
            sorted(updates),
            quiz.status.value,
            extra={"quiz_id": quiz_id, "user_id": principal.user_id},
        )
        return quiz

    async def delete_quiz(self, quiz_id: str, principal: Principal) -> None:
        """Soft delete: the quiz stays stored with ``is_active`` cleared."""
        await self._load_owned(quiz_id, principal, "delete")
        await self._quizzes.update(
            quiz_id, lambda quiz: replace(quiz, is_active=False)
        )
        logger.info(
            "Quiz deactivated",
            extra={"quiz_id": quiz_id, "user_id": principal.user_id},
        )

    async def assign_quiz(
        self, quiz_id: str, principal: Principal, student_ids: Iterable[str]
    ) -> Quiz:
        await self._load_owned(quiz_id, principal, "assign")
        new_ids = list(student_ids)

        def assign(quiz: Quiz) -> Quiz:
            merged = dict.fromkeys((*quiz.assigned_to, *new_ids))
            return replace(quiz, assigned_to=tuple(merged))

        quiz = await self._quizzes.update(quiz_id, assign)
        logger.info(
            "Quiz assigned to %d students",
            len(quiz.assigned_to),
            extra={"quiz_id": quiz_id, "user_id": principal.user_id},
        )
        return quiz

    async def generate_quiz_from_text(
        self,
        author: Principal,
        *,
        text: str,
        title: str,
        options: GenerationOptions,
    ) -> Quiz:
        """Draft a quiz from source text.

        Generated questions are stored as returned; the draft is reviewed by
        its author before publishing.  AI failures propagate.
        """
        if not author.has_any_role(_AUTHORS):
            raise AuthorizationError("Only teachers and admins can create quizzes")
        questions = await self._ai.generate_questions_from_text(text, options)
        return await self._persist(
            Quiz.new(
                title=title,
                subject=options.subject,
                created_by=author.user_id,
                questions=tuple(questions),
                status=QuizStatus.DRAFT,
            )
        )

    async def practice_questions(
        self, subject: str, difficulty: str, count: int
    ) -> list[Question]:
        return await self._ai.generate_practice_quiz(subject, difficulty, count)
