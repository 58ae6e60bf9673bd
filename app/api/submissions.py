"""Submission reads, grading and the revaluation appeal.

  GET  /v1/submissions                           caller's scope, paginated
  GET  /v1/submissions/stats                     totals over the caller's scope
  GET  /v1/submissions/{id}                      owner, quiz owner or admin
  PUT  /v1/submissions/{id}/evaluate             manual grading (teacher, admin)
  POST /v1/submissions/{id}/revaluation          student appeal
  PUT  /v1/submissions/{id}/revaluation          decide an appeal (teacher, admin)
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import (
    Page,
    get_evaluation_workflow,
    page_params,
    require_any_role,
    require_user,
)
from app.api.schemas import EvaluateIn, RevaluationDecisionIn, RevaluationRequestIn
from app.db.documents import dump_submission
from app.models.principal import ADMIN, TEACHER, Principal
from app.models.submission import SubmissionStatus
from app.services.evaluation_service import EvaluationWorkflow

router = APIRouter(prefix="/v1/submissions", tags=["submissions"])

_require_grader = require_any_role({TEACHER, ADMIN})


@router.get("")
async def list_submissions(
    principal: Annotated[Principal, Depends(require_user)],
    workflow: Annotated[EvaluationWorkflow, Depends(get_evaluation_workflow)],
    page: Annotated[Page, Depends(page_params)],
    status: SubmissionStatus | None = None,
    quiz_id: Annotated[str | None, Query(alias="quiz")] = None,
) -> dict:
    submissions = await workflow.list_submissions(
        principal, status=status, quiz_id=quiz_id
    )
    return page.render(submissions, dump_submission)


@router.get("/stats")
async def submission_stats(
    principal: Annotated[Principal, Depends(require_user)],
    workflow: Annotated[EvaluationWorkflow, Depends(get_evaluation_workflow)],
) -> dict:
    return asdict(await workflow.submission_stats(principal))


@router.get("/{submission_id}")
async def get_submission(
    submission_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    workflow: Annotated[EvaluationWorkflow, Depends(get_evaluation_workflow)],
) -> dict:
    return dump_submission(await workflow.get_submission(submission_id, principal))


@router.put("/{submission_id}/evaluate")
async def evaluate_submission(
    submission_id: str,
    payload: EvaluateIn,
    principal: Annotated[Principal, Depends(_require_grader)],
    workflow: Annotated[EvaluationWorkflow, Depends(get_evaluation_workflow)],
) -> dict:
    submission = await workflow.evaluate_manually(
        submission_id,
        principal,
        payload.feedback,
        [g.to_domain() for g in payload.grades],
    )
    return dump_submission(submission)


@router.post("/{submission_id}/revaluation")
async def request_revaluation(
    submission_id: str,
    payload: RevaluationRequestIn,
    principal: Annotated[Principal, Depends(require_user)],
    workflow: Annotated[EvaluationWorkflow, Depends(get_evaluation_workflow)],
) -> dict:
    submission = await workflow.request_revaluation(
        submission_id, principal.user_id, payload.reason
    )
    return dump_submission(submission)


@router.put("/{submission_id}/revaluation")
async def handle_revaluation(
    submission_id: str,
    payload: RevaluationDecisionIn,
    principal: Annotated[Principal, Depends(_require_grader)],
    workflow: Annotated[EvaluationWorkflow, Depends(get_evaluation_workflow)],
) -> dict:
    submission = await workflow.handle_revaluation(
        submission_id,
        principal,
        payload.decision,
        payload.response,
        [g.to_domain() for g in payload.grades] if payload.grades else None,
    )
    return dump_submission(submission)
