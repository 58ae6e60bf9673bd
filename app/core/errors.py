"""Typed failures raised by the quiz engine services.

Every precondition violation is raised before any write happens, so a
caller that catches one of these knows nothing was persisted.  The API
layer maps each class to an HTTP status through ``status_code`` and
reports ``code`` so clients can branch without parsing messages.
"""

from __future__ import annotations

from typing import Any


class QuizServiceError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class NotFoundError(QuizServiceError):
    code = "not_found"
    status_code = 404


class AuthorizationError(QuizServiceError):
    code = "forbidden"
    status_code = 403


class ConflictError(QuizServiceError):
    """An active record already occupies the slot the caller wanted."""

    code = "conflict"
    status_code = 409

    def __init__(self, message: str, existing: Any = None) -> None:
        super().__init__(message)
        self.existing = existing

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        existing_id = getattr(self.existing, "id", None)
        if existing_id is not None:
            body["existing_id"] = existing_id
        return body


class PolicyError(QuizServiceError):
    code = "policy_violation"
    status_code = 400


class TimeExceededError(QuizServiceError):
    code = "time_exceeded"
    status_code = 400

    def __init__(self, elapsed_seconds: int, limit_seconds: int) -> None:
        super().__init__(
            f"Time limit exceeded ({elapsed_seconds}s elapsed, limit {limit_seconds}s)"
        )
        self.elapsed_seconds = elapsed_seconds
        self.limit_seconds = limit_seconds

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["elapsed_seconds"] = self.elapsed_seconds
        body["limit_seconds"] = self.limit_seconds
        return body


class ValidationError(QuizServiceError):
    code = "validation_error"
    status_code = 422


class ExternalServiceError(QuizServiceError):
    code = "external_service_error"
    status_code = 502
