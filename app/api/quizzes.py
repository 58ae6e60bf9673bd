"""Quiz authoring and attempt endpoints.

  GET  /v1/quizzes                    quizzes visible to the caller, paginated
  POST /v1/quizzes                    create (teacher, admin)
  POST /v1/quizzes/generate           AI-drafted quiz from text (teacher, admin)
  POST /v1/quizzes/practice           AI practice questions, not stored
  GET  /v1/quizzes/{quiz_id}          full quiz for owner/admin, sanitized otherwise
  PUT  /v1/quizzes/{quiz_id}          edit or publish (owner, admin)
  DELETE /v1/quizzes/{quiz_id}        soft delete (owner, admin)
  POST /v1/quizzes/{quiz_id}/assign   add students to the quiz (owner, admin)
  POST /v1/quizzes/{quiz_id}/start    start an attempt
  POST /v1/quizzes/{quiz_id}/submit   submit the in-progress attempt
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import (
    Page,
    get_attempt_manager,
    get_quiz_catalog,
    page_params,
    require_any_role,
    require_user,
)
from app.api.schemas import (
    AssignIn,
    GenerateQuizIn,
    PracticeIn,
    QuizIn,
    QuizUpdateIn,
    SubmitIn,
)
from app.db.documents import dump_questions, dump_quiz, dump_quiz_view, dump_submission
from app.models.principal import ADMIN, TEACHER, Principal
from app.models.quiz import Quiz, QuizStatus, sanitize_quiz
from app.services.attempt_service import AttemptManager
from app.services.quiz_service import QuizCatalog

router = APIRouter(prefix="/v1/quizzes", tags=["quizzes"])

_require_author = require_any_role({TEACHER, ADMIN})


@router.get("")
async def list_quizzes(
    principal: Annotated[Principal, Depends(require_user)],
    catalog: Annotated[QuizCatalog, Depends(get_quiz_catalog)],
    page: Annotated[Page, Depends(page_params)],
    subject: str | None = None,
    status_filter: Annotated[QuizStatus | None, Query(alias="status")] = None,
) -> dict:
    quizzes = await catalog.list_quizzes(
        principal, subject=subject, status=status_filter
    )

    def dump(quiz: Quiz) -> dict:
        if principal.owns_or_admin(quiz.created_by):
            return dump_quiz(quiz)
        return dump_quiz_view(sanitize_quiz(quiz))

    return page.render(quizzes, dump)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_quiz(
    payload: QuizIn,
    principal: Annotated[Principal, Depends(_require_author)],
    catalog: Annotated[QuizCatalog, Depends(get_quiz_catalog)],
) -> dict:
    quiz = await catalog.create_quiz(
        principal,
        title=payload.title,
        subject=payload.subject,
        questions=[q.to_domain() for q in payload.questions],
        description=payload.description,
        grade=payload.grade,
        assigned_to=tuple(payload.assigned_to),
        status=payload.status,
        settings=payload.settings.to_domain(),
        schedule=payload.schedule.to_domain(),
    )
    return dump_quiz(quiz)


@router.post("/generate", status_code=status.HTTP_201_CREATED)
async def generate_quiz(
    payload: GenerateQuizIn,
    principal: Annotated[Principal, Depends(_require_author)],
    catalog: Annotated[QuizCatalog, Depends(get_quiz_catalog)],
) -> dict:
    quiz = await catalog.generate_quiz_from_text(
        principal,
        text=payload.text,
        title=payload.title,
        options=payload.to_options(),
    )
    return dump_quiz(quiz)


@router.post("/practice")
async def practice_questions(
    payload: PracticeIn,
    _principal: Annotated[Principal, Depends(require_user)],
    catalog: Annotated[QuizCatalog, Depends(get_quiz_catalog)],
) -> list[dict]:
    questions = await catalog.practice_questions(
        payload.subject, payload.difficulty, payload.count
    )
    return dump_questions(questions)


@router.get("/{quiz_id}")
async def get_quiz(
    quiz_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    catalog: Annotated[QuizCatalog, Depends(get_quiz_catalog)],
) -> dict:
    quiz = await catalog.get_quiz(quiz_id, principal)
    if isinstance(quiz, Quiz):
        return dump_quiz(quiz)
    return dump_quiz_view(quiz)


@router.put("/{quiz_id}")
async def update_quiz(
    quiz_id: str,
    payload: QuizUpdateIn,
    principal: Annotated[Principal, Depends(_require_author)],
    catalog: Annotated[QuizCatalog, Depends(get_quiz_catalog)],
) -> dict:
    quiz = await catalog.update_quiz(quiz_id, principal, payload.to_changes())
    return dump_quiz(quiz)


@router.delete("/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quiz(
    quiz_id: str,
    principal: Annotated[Principal, Depends(_require_author)],
    catalog: Annotated[QuizCatalog, Depends(get_quiz_catalog)],
) -> None:
    await catalog.delete_quiz(quiz_id, principal)


@router.post("/{quiz_id}/assign")
async def assign_quiz(
    quiz_id: str,
    payload: AssignIn,
    principal: Annotated[Principal, Depends(_require_author)],
    catalog: Annotated[QuizCatalog, Depends(get_quiz_catalog)],
) -> dict:
    quiz = await catalog.assign_quiz(quiz_id, principal, payload.student_ids)
    return dump_quiz(quiz)


@router.post("/{quiz_id}/start", status_code=status.HTTP_201_CREATED)
async def start_attempt(
    quiz_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    attempts: Annotated[AttemptManager, Depends(get_attempt_manager)],
) -> dict:
    started = await attempts.start_attempt(quiz_id, principal.user_id)
    return {
        "quiz": dump_quiz_view(started.quiz),
        "submission": dump_submission(started.submission),
    }


@router.post("/{quiz_id}/submit")
async def submit_attempt(
    quiz_id: str,
    payload: SubmitIn,
    principal: Annotated[Principal, Depends(require_user)],
    attempts: Annotated[AttemptManager, Depends(get_attempt_manager)],
) -> dict:
    submission = await attempts.submit_attempt(
        payload.submission_id,
        principal.user_id,
        [a.to_domain() for a in payload.answers],
        quiz_id=quiz_id,
    )
    return dump_submission(submission)
