from __future__ import annotations

import pytest

from app.core.errors import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PolicyError,
    QuizServiceError,
    TimeExceededError,
    ValidationError,
)


@pytest.mark.parametrize(
    ("exc", "status_code", "code"),
    [
        (NotFoundError("x"), 404, "not_found"),
        (AuthorizationError("x"), 403, "forbidden"),
        (ConflictError("x"), 409, "conflict"),
        (PolicyError("x"), 400, "policy_violation"),
        (ValidationError("x"), 422, "validation_error"),
        (ExternalServiceError("x"), 502, "external_service_error"),
    ],
)
def test_error_classes_map_to_http(exc: QuizServiceError, status_code: int, code: str) -> None:
    assert isinstance(exc, QuizServiceError)
    assert exc.status_code == status_code
    assert exc.to_dict() == {"detail": "x", "code": code}


def test_conflict_reports_existing_id() -> None:
    class Existing:
        id = "sub-1"

    body = ConflictError("already running", existing=Existing()).to_dict()
    assert body["existing_id"] == "sub-1"


def test_time_exceeded_reports_seconds() -> None:
    exc = TimeExceededError(3700, 3600)
    assert exc.status_code == 400
    assert "3700s elapsed" in exc.message
    assert exc.to_dict()["limit_seconds"] == 3600
    assert exc.to_dict()["elapsed_seconds"] == 3700
