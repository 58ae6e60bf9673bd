from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_quiz_catalog
from app.main import app
from app.repos.store import quiz_repo
from app.services.quiz_service import QuizCatalog
from tests.conftest import auth, mc_question, mint_token

TEACHER = auth(mint_token("teacher-1", roles=["teacher"]))
STUDENT = auth(mint_token("s1"))


def quiz_payload(**overrides) -> dict:
    body = {
        "title": "Cell Biology",
        "subject": "Biology",
        "status": "published",
        "settings": {"time_limit": 30},
        "questions": [
            {
                "id": "q1",
                "type": "multiple-choice",
                "question": "Which organelle makes ATP?",
                "options": [
                    {"text": "Nucleus"},
                    {"text": "Mitochondria", "is_correct": True},
                    {"text": "Golgi body"},
                ],
                "points": 2,
            },
            {
                "id": "q2",
                "type": "true-false",
                "question": "Plant cells have a cell wall.",
                "correct_answer": "true",
            },
            {
                "id": "q3",
                "type": "short-answer",
                "question": "Name the cell's control center.",
                "correct_answer": "Nucleus",
            },
        ],
    }
    body.update(overrides)
    return body


def create_quiz(client: TestClient, **overrides) -> dict:
    resp = client.post("/v1/quizzes", json=quiz_payload(**overrides), headers=TEACHER)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---- authoring ----


def test_teacher_creates_quiz(client: TestClient) -> None:
    quiz = create_quiz(client)
    assert quiz["created_by"] == "teacher-1"
    assert quiz["status"] == "published"
    assert [q["id"] for q in quiz["questions"]] == ["q1", "q2", "q3"]


def test_student_cannot_create_quiz(client: TestClient) -> None:
    resp = client.post("/v1/quizzes", json=quiz_payload(), headers=STUDENT)
    assert resp.status_code == 403


def test_create_requires_token(client: TestClient) -> None:
    resp = client.post("/v1/quizzes", json=quiz_payload())
    assert resp.status_code == 401


def test_create_rejects_bad_question(client: TestClient) -> None:
    body = quiz_payload()
    body["questions"][0]["options"][0]["is_correct"] = True
    resp = client.post("/v1/quizzes", json=body, headers=TEACHER)
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_create_rejects_short_question_text(client: TestClient) -> None:
    body = quiz_payload()
    body["questions"][1]["question"] = "Short?"
    resp = client.post("/v1/quizzes", json=body, headers=TEACHER)
    assert resp.status_code == 422


def test_student_gets_sanitized_quiz(client: TestClient) -> None:
    quiz = create_quiz(client)
    resp = client.get(f"/v1/quizzes/{quiz['id']}", headers=STUDENT)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_points"] == 4
    assert body["questions"][0]["options"] == ["Nucleus", "Mitochondria", "Golgi body"]
    assert "correct_answer" not in body["questions"][1]

    owner_view = client.get(f"/v1/quizzes/{quiz['id']}", headers=TEACHER).json()
    assert owner_view["questions"][1]["correct_answer"] == "true"


def test_assign_limits_access(client: TestClient) -> None:
    quiz = create_quiz(client)
    resp = client.post(
        f"/v1/quizzes/{quiz['id']}/assign", json={"student_ids": ["s2"]}, headers=TEACHER
    )
    assert resp.status_code == 200
    assert resp.json()["assigned_to"] == ["s2"]
    assert client.get(f"/v1/quizzes/{quiz['id']}", headers=STUDENT).status_code == 403


# ---- attempts ----


def test_start_and_submit_attempt(client: TestClient) -> None:
    quiz = create_quiz(client)

    started = client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert started.status_code == 201
    body = started.json()
    assert body["submission"]["status"] == "in-progress"
    assert body["submission"]["timing"]["time_limit"] == 1800
    assert "is_correct" not in str(body["quiz"])

    resp = client.post(
        f"/v1/quizzes/{quiz['id']}/submit",
        json={
            "submission_id": body["submission"]["id"],
            "answers": [
                {"question_id": "q1", "answer": {"type": "multiple-choice", "selected": "Mitochondria"}},
                {"question_id": "q2", "answer": {"type": "true-false", "value": True}},
                {"question_id": "q3", "answer": {"type": "short-answer", "text": " nucleus "}},
            ],
        },
        headers=STUDENT,
    )
    assert resp.status_code == 200, resp.text
    sub = resp.json()
    assert sub["status"] == "evaluated"
    assert sub["score"] == {"total": 4.0, "percentage": 100, "grade": "A+"}
    assert sub["evaluation"]["auto_graded"] is True

    stats = client.get("/v1/users/me/stats", headers=STUDENT).json()
    assert stats["total_quizzes"] == 1
    assert stats["average_score"] == 100.0


def test_second_start_returns_conflict_with_existing_id(client: TestClient) -> None:
    quiz = create_quiz(client)
    first = client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT).json()

    resp = client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert resp.status_code == 409
    assert resp.json()["existing_id"] == first["submission"]["id"]


def test_submit_rejects_mismatched_answer_type(client: TestClient) -> None:
    quiz = create_quiz(client)
    started = client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT).json()

    resp = client.post(
        f"/v1/quizzes/{quiz['id']}/submit",
        json={
            "submission_id": started["submission"]["id"],
            "answers": [{"question_id": "q1", "answer": {"type": "essay", "text": "ATP"}}],
        },
        headers=STUDENT,
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_submit_rejects_unknown_answer_variant(client: TestClient) -> None:
    quiz = create_quiz(client)
    started = client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT).json()

    resp = client.post(
        f"/v1/quizzes/{quiz['id']}/submit",
        json={
            "submission_id": started["submission"]["id"],
            "answers": [{"question_id": "q1", "answer": {"type": "matching", "pairs": []}}],
        },
        headers=STUDENT,
    )
    assert resp.status_code == 422


def test_draft_quiz_cannot_be_started(client: TestClient) -> None:
    quiz = create_quiz(client, status="draft")
    resp = client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert resp.status_code == 400
    assert resp.json()["code"] == "policy_violation"


# ---- AI-assisted routes ----


class _StubAI:
    async def generate_questions_from_text(self, text, options):
        return [mc_question("g1"), mc_question("g2")]

    async def generate_practice_quiz(self, subject, difficulty, count):
        return [mc_question(f"p{i}") for i in range(count)]


@pytest.fixture
def stub_ai():
    app.dependency_overrides[get_quiz_catalog] = lambda: QuizCatalog(quiz_repo, _StubAI())
    yield
    app.dependency_overrides.pop(get_quiz_catalog, None)


def test_generate_quiz_from_text(client: TestClient, stub_ai) -> None:
    resp = client.post(
        "/v1/quizzes/generate",
        json={"text": "Cells divide by mitosis.", "title": "Mitosis", "subject": "Biology"},
        headers=TEACHER,
    )
    assert resp.status_code == 201
    quiz = resp.json()
    assert quiz["status"] == "draft"
    assert len(quiz["questions"]) == 2


def test_practice_questions(client: TestClient, stub_ai) -> None:
    resp = client.post(
        "/v1/quizzes/practice", json={"subject": "Biology", "count": 3}, headers=STUDENT
    )
    assert resp.status_code == 200
    assert len(resp.json()) == 3


def test_ai_routes_fail_cleanly_when_unconfigured(client: TestClient) -> None:
    resp = client.post(
        "/v1/quizzes/practice", json={"subject": "Biology"}, headers=STUDENT
    )
    assert resp.status_code == 502
    assert resp.json()["code"] == "external_service_error"


# ---- edit, delete, list ----


def test_draft_is_published_through_update(client: TestClient) -> None:
    quiz = create_quiz(client, status="draft")
    assert client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT).status_code == 400

    resp = client.put(
        f"/v1/quizzes/{quiz['id']}",
        json={"status": "published", "settings": {"time_limit": 15, "allow_retake": True}},
        headers=TEACHER,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "published"
    assert resp.json()["settings"]["time_limit"] == 15

    started = client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert started.status_code == 201
    assert started.json()["quiz"]["time_limit"] == 15


def test_update_rejects_invalid_questions(client: TestClient) -> None:
    quiz = create_quiz(client)
    bad = quiz_payload()["questions"][:1]
    bad[0]["options"] = [{"text": "Nucleus"}, {"text": "Golgi body"}]
    resp = client.put(f"/v1/quizzes/{quiz['id']}", json={"questions": bad}, headers=TEACHER)
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_update_by_other_teacher_forbidden(client: TestClient) -> None:
    quiz = create_quiz(client)
    other = auth(mint_token("teacher-2", roles=["teacher"]))
    resp = client.put(f"/v1/quizzes/{quiz['id']}", json={"title": "Mine now"}, headers=other)
    assert resp.status_code == 403


def test_delete_hides_quiz(client: TestClient) -> None:
    quiz = create_quiz(client)
    assert client.delete(f"/v1/quizzes/{quiz['id']}", headers=STUDENT).status_code == 403

    resp = client.delete(f"/v1/quizzes/{quiz['id']}", headers=TEACHER)
    assert resp.status_code == 204
    assert client.get(f"/v1/quizzes/{quiz['id']}", headers=TEACHER).status_code == 404
    assert client.post(f"/v1/quizzes/{quiz['id']}/start", headers=STUDENT).status_code == 404
    listed = client.get("/v1/quizzes", headers=TEACHER).json()
    assert listed["pagination"]["total"] == 0


def test_list_paginates_and_sanitizes(client: TestClient) -> None:
    for title in ("Cells", "Tissues", "Organs"):
        create_quiz(client, title=title)
    create_quiz(client, title="Unfinished", status="draft")

    resp = client.get("/v1/quizzes", params={"page": 1, "limit": 2}, headers=STUDENT)
    assert resp.status_code == 200
    body = resp.json()
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert len(body["items"]) == 2
    assert "correct_answer" not in body["items"][0]["questions"][1]

    second = client.get("/v1/quizzes", params={"page": 2, "limit": 2}, headers=STUDENT)
    titles = {q["title"] for q in body["items"] + second.json()["items"]}
    assert titles == {"Cells", "Tissues", "Organs"}

    drafts = client.get("/v1/quizzes", params={"status": "draft"}, headers=TEACHER).json()
    assert [q["title"] for q in drafts["items"]] == ["Unfinished"]
    assert drafts["items"][0]["questions"][0]["options"][1]["is_correct"] is True


def test_list_rejects_bad_page(client: TestClient) -> None:
    assert client.get("/v1/quizzes", params={"page": 0}, headers=STUDENT).status_code == 422
