from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import auth, mint_token

TEACHER = auth(mint_token("teacher-1", roles=["teacher"]))
OTHER_TEACHER = auth(mint_token("teacher-2", roles=["teacher"]))
STUDENT = auth(mint_token("s1"))
OTHER_STUDENT = auth(mint_token("s2"))


def _essay_quiz(client: TestClient) -> dict:
    resp = client.post(
        "/v1/quizzes",
        json={
            "title": "Ecology essays",
            "subject": "Biology",
            "status": "published",
            "settings": {"auto_grade": False},
            "questions": [
                {
                    "id": "t1",
                    "type": "true-false",
                    "question": "Producers make their own food.",
                    "correct_answer": "true",
                },
                {
                    "id": "e1",
                    "type": "essay",
                    "question": "Describe a food web you know.",
                    "points": 4,
                },
            ],
        },
        headers=TEACHER,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _submitted(client: TestClient, headers=STUDENT) -> tuple[dict, dict]:
    quiz = _essay_quiz(client)
    started = client.post(f"/v1/quizzes/{quiz['id']}/start", headers=headers).json()
    resp = client.post(
        f"/v1/quizzes/{quiz['id']}/submit",
        json={
            "submission_id": started["submission"]["id"],
            "answers": [
                {"question_id": "t1", "answer": {"type": "true-false", "value": "TRUE"}},
                {"question_id": "e1", "answer": {"type": "essay", "text": "Grass, rabbit, fox."}},
            ],
        },
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    return quiz, resp.json()


def test_manual_evaluation_flow(client: TestClient) -> None:
    _, sub = _submitted(client)
    assert sub["status"] == "submitted"
    assert sub["score"]["percentage"] == 20

    resp = client.put(
        f"/v1/submissions/{sub['id']}/evaluate",
        json={"feedback": "Clear example", "grades": [{"question_id": "e1", "points": 3}]},
        headers=TEACHER,
    )
    assert resp.status_code == 200, resp.text
    evaluated = resp.json()
    assert evaluated["status"] == "evaluated"
    assert evaluated["score"]["percentage"] == 80
    assert evaluated["evaluation"]["evaluated_by"] == "teacher-1"
    assert evaluated["evaluation"]["feedback"] == "Clear example"
    # AI is not configured in tests; evaluation still completes
    assert evaluated["evaluation"]["ai_insights"] is None


def test_only_quiz_owner_evaluates(client: TestClient) -> None:
    _, sub = _submitted(client)
    resp = client.put(
        f"/v1/submissions/{sub['id']}/evaluate", json={}, headers=OTHER_TEACHER
    )
    assert resp.status_code == 403
    resp = client.put(f"/v1/submissions/{sub['id']}/evaluate", json={}, headers=STUDENT)
    assert resp.status_code == 403


def test_grade_above_question_points_rejected(client: TestClient) -> None:
    _, sub = _submitted(client)
    resp = client.put(
        f"/v1/submissions/{sub['id']}/evaluate",
        json={"grades": [{"question_id": "e1", "points": 10}]},
        headers=TEACHER,
    )
    assert resp.status_code == 422


def test_revaluation_round_trip(client: TestClient) -> None:
    _, sub = _submitted(client)
    client.put(f"/v1/submissions/{sub['id']}/evaluate", json={}, headers=TEACHER)

    resp = client.post(
        f"/v1/submissions/{sub['id']}/revaluation",
        json={"reason": "My essay covered three levels"},
        headers=STUDENT,
    )
    assert resp.status_code == 200
    assert resp.json()["revaluation"]["status"] == "pending"

    again = client.post(
        f"/v1/submissions/{sub['id']}/revaluation", json={"reason": "again"}, headers=STUDENT
    )
    assert again.status_code == 400

    resp = client.put(
        f"/v1/submissions/{sub['id']}/revaluation",
        json={
            "decision": "approved",
            "response": "Fair point",
            "grades": [{"question_id": "e1", "points": 4}],
        },
        headers=TEACHER,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["revaluation"]["status"] == "approved"
    assert body["score"]["percentage"] == 100


def test_revaluation_bad_decision(client: TestClient) -> None:
    _, sub = _submitted(client)
    resp = client.put(
        f"/v1/submissions/{sub['id']}/revaluation",
        json={"decision": "perhaps"},
        headers=TEACHER,
    )
    assert resp.status_code == 422


def test_revaluation_by_other_student_forbidden(client: TestClient) -> None:
    _, sub = _submitted(client)
    client.put(f"/v1/submissions/{sub['id']}/evaluate", json={}, headers=TEACHER)
    resp = client.post(
        f"/v1/submissions/{sub['id']}/revaluation",
        json={"reason": "not mine"},
        headers=OTHER_STUDENT,
    )
    assert resp.status_code == 403


def test_get_submission_visibility(client: TestClient) -> None:
    _, sub = _submitted(client)
    assert client.get(f"/v1/submissions/{sub['id']}", headers=STUDENT).status_code == 200
    assert client.get(f"/v1/submissions/{sub['id']}", headers=TEACHER).status_code == 200
    assert client.get(f"/v1/submissions/{sub['id']}", headers=OTHER_STUDENT).status_code == 403


def test_submission_stats(client: TestClient) -> None:
    _submitted(client)
    _submitted(client, headers=OTHER_STUDENT)

    mine = client.get("/v1/submissions/stats", headers=STUDENT).json()
    assert mine["total_submissions"] == 1
    assert mine["completed_submissions"] == 1

    teacher_view = client.get("/v1/submissions/stats", headers=TEACHER).json()
    assert teacher_view["total_submissions"] == 2
    assert teacher_view["average_score"] == 20.0


def test_my_stats_default_to_zero(client: TestClient) -> None:
    resp = client.get("/v1/users/me/stats", headers=auth(mint_token("newcomer")))
    assert resp.status_code == 200
    assert resp.json() == {
        "user_id": "newcomer",
        "total_quizzes": 0,
        "average_score": 0.0,
        "last_active": None,
    }


def test_list_submissions_is_scoped_and_filtered(client: TestClient) -> None:
    quiz, mine = _submitted(client)
    _, theirs = _submitted(client, headers=OTHER_STUDENT)
    client.put(
        f"/v1/submissions/{mine['id']}/evaluate",
        json={"grades": [{"question_id": "e1", "points": 4}]},
        headers=TEACHER,
    )

    own = client.get("/v1/submissions", headers=STUDENT).json()
    assert [s["id"] for s in own["items"]] == [mine["id"]]

    everything = client.get("/v1/submissions", headers=TEACHER).json()
    assert {s["id"] for s in everything["items"]} == {mine["id"], theirs["id"]}
    assert everything["pagination"]["total"] == 2

    evaluated = client.get(
        "/v1/submissions", params={"status": "evaluated"}, headers=TEACHER
    ).json()
    assert [s["id"] for s in evaluated["items"]] == [mine["id"]]

    by_quiz = client.get("/v1/submissions", params={"quiz": quiz["id"]}, headers=TEACHER)
    assert [s["id"] for s in by_quiz.json()["items"]] == [mine["id"]]

    assert client.get("/v1/submissions", headers=OTHER_TEACHER).json()["items"] == []
