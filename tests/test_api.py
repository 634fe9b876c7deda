"""
Tests for the onboarding HTTP API.

The service is swapped for one over in-memory fakes and auth is stubbed, so
these exercise routing, request validation and error mapping only.
"""

import pytest
from fastapi.testclient import TestClient

from fakes import HOME, FakeInference, result
from mila.web.app import app, status_for
from mila.web.auth import AuthenticatedUser, get_current_user
from onboarding.api import get_onboarding_service
from onboarding.errors import (
    InferenceFailure,
    InsufficientCandidates,
    InvalidAnswer,
    SessionConflict,
    SessionNotFound,
)


@pytest.fixture
def client(make_service):
    service = make_service(inference=FakeInference(result(0.9)))
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(
        id=HOME.user_id, email="user@example.com", access_token="token",
    )
    app.dependency_overrides[get_onboarding_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestFlow:
    def test_full_interview_over_http(self, client):
        init = client.post("/api/onboarding/initialize").json()
        assert init["success"] is True
        assert init["requires_location"] is False

        picked = client.post("/api/onboarding/select-categories", json={"categories": ["cafe"]}).json()
        assert picked["next_category"] == "cafe"

        question = client.post("/api/onboarding/get-question", json={}).json()
        assert question["question_type"] == "multi-select"
        assert len(question["candidates"]) == 4
        assert question["insufficient_candidates"] is None

        answer = client.post("/api/onboarding/submit-answer", json={
            "question_type": "multi-select",
            "selected_place_ids": [question["candidates"][0]["place_id"]],
        }).json()
        assert answer["should_continue"] is False
        assert answer["stop_reason"] == "confident"
        assert answer["onboarding_complete"] is True

        session = client.get("/api/onboarding/session").json()["session"]
        assert session["completed"] is True

        bio = client.get("/api/onboarding/bio").json()["bio"]
        assert bio["version"] == 2
        assert bio["categories"]["cafe"]["confidence_score"] == 0.9

    def test_different_results(self, client):
        client.post("/api/onboarding/initialize")
        client.post("/api/onboarding/select-categories", json={"categories": ["cafe"]})
        first = client.post("/api/onboarding/get-question", json={}).json()
        second = client.post("/api/onboarding/different-results", json={}).json()

        first_ids = {c["place_id"] for c in first["candidates"]}
        second_ids = {c["place_id"] for c in second["candidates"]}
        assert not first_ids & second_ids

    def test_different_results_forwards_exclusions(self, client):
        client.post("/api/onboarding/initialize")
        client.post("/api/onboarding/select-categories", json={"categories": ["cafe"]})
        client.post("/api/onboarding/get-question", json={})
        response = client.post("/api/onboarding/different-results", json={"exclude_place_ids": ["p5"]}).json()

        assert [c["place_id"] for c in response["candidates"]] == ["p6", "p7", "p8", "p9"]

    def test_answer_before_categories_is_409(self, client):
        client.post("/api/onboarding/initialize")
        response = client.post("/api/onboarding/submit-answer", json={
            "question_type": "multi-select", "selected_place_ids": ["p1"],
        })
        assert response.status_code == 409
        assert response.json()["kind"] == "ProfileNotInitialized"

    def test_autocomplete(self, client):
        response = client.get("/api/onboarding/places/autocomplete", params={"input": "Amst"})
        assert response.json()["suggestions"][0]["place_id"] == "home"

    def test_categories(self, client):
        ids = [c["id"] for c in client.get("/api/onboarding/categories").json()["categories"]]
        assert "cafe" in ids and "park" in ids


class TestErrors:
    def test_missing_session_is_404(self, client):
        response = client.get("/api/onboarding/session")
        assert response.status_code == 404
        assert response.json()["kind"] == "SessionNotFound"

    def test_wrong_step_is_409(self, client):
        client.post("/api/onboarding/initialize")
        response = client.post("/api/onboarding/get-question", json={})
        assert response.status_code == 409
        assert response.json()["step"] == "categories"

    def test_unknown_category_is_400(self, client):
        client.post("/api/onboarding/initialize")
        response = client.post("/api/onboarding/select-categories", json={"categories": ["spaceport"]})
        assert response.status_code == 400

    def test_slider_out_of_range_is_rejected_by_validation(self, client):
        response = client.post("/api/onboarding/submit-answer", json={
            "question_type": "ab-comparison",
            "comparison": {"place_a_id": "a", "place_b_id": "b", "slider_value": 0},
        })
        assert response.status_code == 422

    def test_no_bio_is_404(self, client):
        assert client.get("/api/onboarding/bio").status_code == 404

    def test_auth_required_without_override(self):
        app.dependency_overrides.clear()
        with TestClient(app) as test_client:
            response = test_client.post("/api/onboarding/initialize")
        assert response.status_code == 401


@pytest.mark.parametrize("error, status", [
    (SessionNotFound("x"), 404),
    (SessionConflict("x"), 409),
    (InvalidAnswer("x"), 400),
    (InferenceFailure("x"), 502),
    (InsufficientCandidates("x", required=4, found=1), 400),
])
def test_status_mapping(error, status):
    assert status_for(error) == status
