"""Request context middleware: X-Request-ID on every response, timing logged."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from tests.conftest import auth, mint_token


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    """When no X-Request-ID header is sent, one is generated."""
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    # Should be a valid UUID
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    """When the client sends X-Request-ID, the same value is echoed back."""
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    """Even error responses (401, 404) get an X-Request-ID header."""
    resp = client.get("/v1/quizzes/some-quiz")  # no token: 401
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_request_id_present_on_domain_errors(client: TestClient) -> None:
    resp = client.get(
        "/v1/submissions/missing",
        headers={**auth(mint_token("s1")), "X-Request-ID": "trace-404"},
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"
    assert resp.headers.get("x-request-id") == "trace-404"


def test_request_is_logged_with_route_and_status(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="app.middleware.request_context"):
        client.get("/health", headers={"X-Request-ID": "log-me"})
    records = [r for r in caplog.records if getattr(r, "request_id", None) == "log-me"]
    assert records
    assert "GET /health -> 200" in records[-1].getMessage()
