from dataclasses import replace

from fastapi.testclient import TestClient
import pytest

from quiz_engine.server.api_server import create_api_app


@pytest.fixture
def client(engine, store, make_quiz):
    store.save_quiz_definition(make_quiz(time_limit_seconds=60))
    store.save_quiz_definition(replace(make_quiz(quiz_id="draft"), is_published=False))
    return TestClient(create_api_app(engine))


def _start(client, user_id="user-1", quiz_id="quiz-1"):
    response = client.post(f"/quizzes/{quiz_id}/attempts", json={"user_id": user_id})
    assert response.status_code == 201
    return response.json()


class TestAttemptRoutes:
    def test_full_attempt_flow(self, client, clock):
        attempt = _start(client)
        assert attempt["status"] == "in-progress"
        attempt_id = attempt["id"]

        response = client.put(
            f"/attempts/{attempt_id}/answers",
            json={"question_id": "q2", "answer": ["C", "A"], "time_spent_seconds": 5},
        )
        assert response.status_code == 200
        assert response.json()["answers"]["q2"]["is_correct"] is True

        clock.advance(10)
        timer = client.get(f"/attempts/{attempt_id}/timer").json()
        assert timer == {
            "attempt_id": attempt_id,
            "status": "in-progress",
            "time_remaining_seconds": 50,
        }

        assert client.put(f"/attempts/{attempt_id}/pause").json()["status"] == "paused"
        assert client.put(f"/attempts/{attempt_id}/resume").json()["status"] == "in-progress"

        final = client.put(f"/attempts/{attempt_id}/submit").json()
        assert final["status"] == "completed"
        assert (final["score"], final["max_score"], final["percentage"]) == (2, 6, 33)

        again = client.put(f"/attempts/{attempt_id}/submit").json()
        assert again["completed_at"] == final["completed_at"]

        report = client.get(f"/attempts/{attempt_id}/report").json()
        assert report["status"] == "completed"
        assert [q["question_id"] for q in report["questions"]] == ["q1", "q2", "q3"]

    def test_history_results_and_statistics(self, client):
        attempt_id = _start(client)["id"]
        client.put(f"/attempts/{attempt_id}/submit")
        _start(client, user_id="user-2")

        history = client.get("/quizzes/quiz-1/attempts", params={"user_id": "user-1"}).json()
        assert [a["id"] for a in history] == [attempt_id]
        assert len(client.get("/quizzes/quiz-1/results").json()) == 2

        stats = client.get("/quizzes/quiz-1/statistics").json()
        assert stats["attempt_count"] == 2
        assert stats["completion_count"] == 1

    def test_attempt_reports_live_remaining_time(self, client, clock):
        attempt_id = _start(client)["id"]
        clock.advance(10)
        assert client.get(f"/attempts/{attempt_id}").json()["time_remaining_seconds"] == 50

        clock.advance(5)
        response = client.put(
            f"/attempts/{attempt_id}/answers", json={"question_id": "q1", "answer": "a"}
        )
        assert response.json()["time_remaining_seconds"] == 45

        clock.advance(5)
        paused = client.put(f"/attempts/{attempt_id}/pause").json()
        assert paused["time_remaining_seconds"] == 40

    def test_timed_out_attempt_reads_as_timeout(self, client, clock):
        attempt_id = _start(client)["id"]
        clock.advance(61)
        body = client.get(f"/attempts/{attempt_id}").json()
        assert body["status"] == "timeout"
        assert body["time_remaining_seconds"] == 0


class TestErrorMapping:
    def test_unknown_attempt_is_404(self, client):
        response = client.get("/attempts/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFound"

    def test_unpublished_quiz_is_403(self, client):
        response = client.post("/quizzes/draft/attempts", json={"user_id": "user-1"})
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "QuizNotPublished"

    def test_second_start_is_409(self, client):
        _start(client)
        response = client.post("/quizzes/quiz-1/attempts", json={"user_id": "user-1"})
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "AttemptInProgress"

    def test_answer_after_submit_is_409(self, client):
        attempt_id = _start(client)["id"]
        client.put(f"/attempts/{attempt_id}/submit")
        response = client.put(
            f"/attempts/{attempt_id}/answers", json={"question_id": "q1", "answer": "a"}
        )
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "AttemptFinalized"

    def test_unknown_question_is_422(self, client):
        attempt_id = _start(client)["id"]
        response = client.put(
            f"/attempts/{attempt_id}/answers", json={"question_id": "zzz", "answer": "a"}
        )
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "UnknownQuestion"

    def test_payload_validation(self, client):
        response = client.post("/quizzes/quiz-1/attempts", json={"user_id": ""})
        assert response.status_code == 422
