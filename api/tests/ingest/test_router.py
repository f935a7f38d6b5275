"""HTTP tests for the event, enrollment and attempt endpoints."""

from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.main import create_app

from ..fakes import Engine, SampleCourse, build_engine, build_sample_course


def make_client(engine: Engine, **kwargs) -> TestClient:
    app = create_app()
    app.state.progress_service = engine.progress
    app.state.attempt_manager = engine.attempts
    app.state.event_ingestor = engine.ingestor
    return TestClient(app, **kwargs)


@pytest.fixture
def api(engine) -> TestClient:
    return make_client(engine)


@pytest.fixture
def learner_id() -> str:
    return str(uuid4())


def enroll(api: TestClient, learner_id: str, course: SampleCourse):
    return api.post(
        "/v1/enrollments",
        json={"learner_id": learner_id, "course_id": str(course.course.id)},
    )


def report(api: TestClient, learner_id: str, part, **fields):
    return api.post(
        "/v1/events/progress",
        json={"learner_id": learner_id, "part_id": str(part.id), **fields},
    )


def quiz_action(api: TestClient, learner_id: str, course: SampleCourse, action: str, **fields):
    return api.post(
        "/v1/events/quiz",
        json={
            "learner_id": learner_id,
            "quiz_id": str(course.quiz.id),
            "action": action,
            **fields,
        },
    )


def unlock_quiz(api: TestClient, learner_id: str, course: SampleCourse) -> None:
    enroll(api, learner_id, course)
    report(api, learner_id, course.video, position=600)
    report(api, learner_id, course.document, acknowledged=True)


def run_attempt(api, learner_id, course, answers) -> dict:
    attempt_id = quiz_action(api, learner_id, course, "start").json()["attempt"]["id"]
    for question_id, answer in answers.items():
        response = quiz_action(
            api,
            learner_id,
            course,
            "answer",
            attempt_id=attempt_id,
            question_id=str(question_id),
            answer=answer,
        )
        assert response.status_code == 200
    return quiz_action(api, learner_id, course, "submit", attempt_id=attempt_id).json()


class TestEnrollmentEndpoints:
    """Enrollment endpoints."""

    def test_enroll(self, api, course, learner_id):
        response = enroll(api, learner_id, course)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "not_started"
        assert data["certified"] is False

    def test_enroll_is_idempotent(self, api, course, learner_id):
        first = enroll(api, learner_id, course).json()
        second = enroll(api, learner_id, course).json()

        assert first["enrolled_at"] == second["enrolled_at"]
        listing = api.get(f"/v1/enrollments/{learner_id}").json()
        assert listing["total"] == 1

    def test_enroll_unknown_course(self, api, learner_id):
        response = api.post(
            "/v1/enrollments", json={"learner_id": learner_id, "course_id": str(uuid4())}
        )

        assert response.status_code == 404
        assert response.json()["code"] == "course_not_found"

    def test_course_progress(self, api, course, learner_id):
        enroll(api, learner_id, course)
        report(api, learner_id, course.video, position=600)

        response = api.get(f"/v1/enrollments/{learner_id}/{course.course.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["enrollment"]["status"] == "in_progress"
        assert [m["status"] for m in data["modules"]] == ["in_progress", "locked"]
        parts = data["modules"][0]["parts"]
        assert [p["available"] for p in parts] == [True, True, False]
        assert [p["completed"] for p in parts] == [True, False, False]

    def test_module_not_in_course(self, api, course, learner_id):
        enroll(api, learner_id, course)

        response = api.get(
            f"/v1/enrollments/{learner_id}/{course.course.id}/modules/{uuid4()}"
        )

        assert response.status_code == 404

    def test_progress_without_enrollment(self, api, course, learner_id):
        response = api.get(f"/v1/enrollments/{learner_id}/{course.course.id}")

        assert response.status_code == 404
        assert response.json()["code"] == "not_enrolled"


class TestProgressEventEndpoint:
    """POST /v1/events/progress."""

    def test_accepts_report(self, api, course, learner_id):
        enroll(api, learner_id, course)

        response = report(api, learner_id, course.video, position=560, duration=600)

        assert response.status_code == 200
        progress = response.json()["progress"]
        assert progress["completed"] is True
        assert progress["furthest_position"] == 560

    def test_late_lower_report_keeps_completion(self, api, course, learner_id):
        enroll(api, learner_id, course)
        report(api, learner_id, course.video, position=560)

        progress = report(api, learner_id, course.video, position=60).json()["progress"]

        assert progress["completed"] is True
        assert progress["furthest_position"] == 560

    def test_not_enrolled(self, api, course, learner_id):
        response = report(api, learner_id, course.video, position=10)

        assert response.status_code == 422
        assert response.json()["code"] == "not_enrolled"

    def test_unknown_part(self, api, learner_id):
        response = api.post(
            "/v1/events/progress",
            json={"learner_id": learner_id, "part_id": str(uuid4()), "position": 1},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "unknown_part"

    def test_locked_part(self, api, course, learner_id):
        enroll(api, learner_id, course)

        response = report(api, learner_id, course.document, acknowledged=True)

        assert response.status_code == 409
        assert response.json()["code"] == "part_locked"

    def test_malformed_event(self, api, course, learner_id):
        response = report(api, learner_id, course.video, position=-5)

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_event"

    @pytest.mark.parametrize("literal", ["1e999", "Infinity", "NaN"])
    def test_non_finite_position_is_rejected(self, api, engine, course, learner_id, literal):
        enroll(api, learner_id, course)
        body = (
            f'{{"learner_id": "{learner_id}", "part_id": "{course.video.id}", '
            f'"position": {literal}}}'
        )

        response = api.post(
            "/v1/events/progress",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_event"
        assert engine.progress_repo.parts == {}


class TestQuizEventEndpoint:
    """POST /v1/events/quiz and attempt reads."""

    def test_quiz_flow(self, api, course, learner_id):
        unlock_quiz(api, learner_id, course)

        result = run_attempt(api, learner_id, course, course.correct_answers())

        attempt = result["attempt"]
        assert result["action"] == "submit"
        assert attempt["state"] == "submitted"
        assert attempt["passed"] is True
        assert Decimal(str(attempt["percent_score"])) == Decimal(100)
        assert attempt["results_visible"] is True

        listing = api.get(
            f"/v1/quizzes/{course.quiz.id}/attempts", params={"learner_id": learner_id}
        ).json()
        assert listing["attempts_used"] == 1
        assert listing["max_attempts"] == 3

    def test_delivery_hides_correct_answers(self, api, course, learner_id):
        unlock_quiz(api, learner_id, course)
        attempt_id = quiz_action(api, learner_id, course, "start").json()["attempt"]["id"]

        response = api.get(
            f"/v1/attempts/{attempt_id}/questions", params={"learner_id": learner_id}
        )

        assert response.status_code == 200
        questions = response.json()["questions"]
        assert len(questions) == 3
        for question in questions:
            for choice in question["choices"]:
                assert set(choice) == {"id", "text"}

    def test_other_learner_cannot_read_attempt(self, api, course, learner_id):
        unlock_quiz(api, learner_id, course)
        attempt_id = quiz_action(api, learner_id, course, "start").json()["attempt"]["id"]

        response = api.get(f"/v1/attempts/{attempt_id}", params={"learner_id": str(uuid4())})

        assert response.status_code == 404
        assert response.json()["code"] == "attempt_not_found"

    def test_second_start_conflicts(self, api, course, learner_id):
        unlock_quiz(api, learner_id, course)
        quiz_action(api, learner_id, course, "start")

        response = quiz_action(api, learner_id, course, "start")

        assert response.status_code == 409
        assert response.json()["code"] == "attempt_in_progress"

    def test_attempts_exhausted(self, api, course, learner_id):
        unlock_quiz(api, learner_id, course)
        for _ in range(3):
            run_attempt(api, learner_id, course, course.wrong_answers())

        response = quiz_action(api, learner_id, course, "start")

        assert response.status_code == 409
        assert response.json()["code"] == "attempts_exhausted"

    def test_quiz_before_video_is_locked(self, api, course, learner_id):
        enroll(api, learner_id, course)

        response = quiz_action(api, learner_id, course, "start")

        assert response.status_code == 409
        assert response.json()["code"] == "part_locked"

    def test_results_hidden_when_quiz_says_so(self, clock, learner_id):
        course = build_sample_course(show_results_immediately=False)
        api = make_client(build_engine(course.catalog, clock))
        unlock_quiz(api, learner_id, course)

        attempt = run_attempt(api, learner_id, course, course.correct_answers())["attempt"]

        assert attempt["state"] == "submitted"
        assert attempt["results_visible"] is False
        assert attempt["percent_score"] is None
        assert attempt["details"] == []


class TestStorageFailures:
    """Storage errors surface as retryable."""

    def test_storage_error_is_retryable(self, engine, learner_id):
        engine.progress.list_enrollments = AsyncMock(
            side_effect=ConnectionError("cassandra unavailable")
        )
        api = make_client(engine, raise_server_exceptions=False)

        response = api.get(f"/v1/enrollments/{learner_id}")

        assert response.status_code == 503
        data = response.json()
        assert data["retryable"] is True
        assert data["code"] == "storage_unavailable"
