"""
API tests using FastAPI's TestClient.

Settings and the repository are overridden so every test runs against a
fresh in-memory Snowflake mock.
"""

import pytest
from fastapi.testclient import TestClient

from nutricoach.api.dependencies import get_assignment_repository
from nutricoach.config.settings import Settings, get_settings
from nutricoach.infrastructure.snowflake.client import MockSnowflakeConnection
from nutricoach.infrastructure.snowflake.repositories.assignments import AssignmentRepository
from nutricoach.main import create_app


API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture
def conn() -> MockSnowflakeConnection:
    connection = MockSnowflakeConnection()
    connection._add_client(1, "client@example.com")
    connection._add_client(2, "second@example.com")
    connection._add_coach(7, "Ana", "Lopez", specialty="Sports Nutrition", average_rating=4.5)
    connection._add_coach(9, "Luis", "Perez")
    connection._add_coach(11, "Bea", "Ruiz", active=False)
    return connection


@pytest.fixture
def client(conn) -> TestClient:
    settings = Settings(api_keys=API_KEY, snowflake_mock_mode=True, _env_file=None)
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_assignment_repository] = lambda: AssignmentRepository(conn)
    return TestClient(app)


class TestAuthentication:

    def test_missing_key_is_rejected(self, client):
        response = client.get("/api/v1/clients/1/assignment")

        assert response.status_code == 403

    def test_wrong_key_is_rejected(self, client):
        response = client.get("/api/v1/clients/1/assignment", headers={"X-API-Key": "nope"})

        assert response.status_code == 403


class TestHealth:

    def test_liveness(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_readiness_in_mock_mode(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"


class TestLookup:

    def test_known_email(self, client):
        response = client.get(
            "/api/v1/clients/lookup",
            params={"email": "CLIENT@example.com"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"client_id": 1}

    def test_unknown_email_is_404(self, client):
        response = client.get(
            "/api/v1/clients/lookup",
            params={"email": "ghost@example.com"},
            headers=HEADERS,
        )

        assert response.status_code == 404


class TestGetAssignment:
    """Tests for the status endpoint."""

    def test_unassigned(self, client):
        response = client.get("/api/v1/clients/1/assignment", headers=HEADERS)

        body = response.json()
        assert response.status_code == 200
        assert body["state"] == "unassigned"
        assert body["coach"] is None
        assert body["status_message"]["action_label"] == "Book consultation"

    def test_assigned_with_plan(self, client, conn):
        conn._add_link(1, 7)
        conn._add_plan(1)

        body = client.get("/api/v1/clients/1/assignment", headers=HEADERS).json()

        assert body["state"] == "assigned_with_plan"
        assert body["has_diet_plan"] is True
        assert body["coach"]["id"] == 7
        assert body["coach"]["display_name"] == "Ana Lopez"
        assert "Ana Lopez" in body["status_message"]["message"]

    def test_read_failure_still_returns_unassigned(self, client, conn):
        conn._add_link(1, 7)
        conn._fail_on("FROM client_coach_links")

        response = client.get("/api/v1/clients/1/assignment", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["state"] == "unassigned"


class TestAccess:

    def test_restricted_capability_denied_without_plan(self, client, conn):
        conn._add_link(1, 7)

        body = client.get(
            "/api/v1/clients/1/access/log_food_intake", headers=HEADERS
        ).json()

        assert body["allowed"] is False
        assert "hasn't assigned your plan" in body["message"]

    def test_restricted_capability_allowed_with_plan(self, client, conn):
        conn._add_link(1, 7)
        conn._add_plan(1)

        body = client.get(
            "/api/v1/clients/1/access/log_food_intake", headers=HEADERS
        ).json()

        assert body["allowed"] is True
        assert body["message"] is None

    def test_unlisted_capability_allowed(self, client):
        body = client.get("/api/v1/clients/1/access/view_points", headers=HEADERS).json()

        assert body["allowed"] is True


class TestRequestCoach:
    """Tests for the assignment request endpoint."""

    def test_switches_coach(self, client, conn):
        conn._add_link(1, 7)

        response = client.post(
            "/api/v1/clients/1/assignment",
            json={"coach_id": 9},
            headers=HEADERS,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["assignment"]["coach"]["id"] == 9
        assert body["assignment"]["state"] == "assigned_no_plan"

    def test_write_failure_reported_in_body(self, client, conn):
        conn._add_link(1, 7)
        conn._fail_on("INSERT INTO client_coach_links")

        response = client.post(
            "/api/v1/clients/1/assignment",
            json={"coach_id": 9},
            headers=HEADERS,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is False
        assert "Could not assign coach 9" in body["error"]
        assert body["assignment"] is None

    @pytest.mark.parametrize("coach_id", [999, 11], ids=["unknown", "inactive"])
    def test_unavailable_coach_is_refused(self, client, conn, coach_id):
        """
        Given a client with coach 7 and a diet plan
        When they request a coach that doesn't exist or isn't active
        Then the request fails and they keep coach 7 and their plan
        """
        conn._add_link(1, 7)
        conn._add_plan(1)

        body = client.post(
            "/api/v1/clients/1/assignment",
            json={"coach_id": coach_id},
            headers=HEADERS,
        ).json()

        assert body["success"] is False
        assert f"coach {coach_id} is not available" in body["error"]

        status = client.get("/api/v1/clients/1/assignment", headers=HEADERS).json()
        assert status["state"] == "assigned_with_plan"
        assert status["coach"]["id"] == 7

    def test_rejects_invalid_coach_id(self, client):
        response = client.post(
            "/api/v1/clients/1/assignment",
            json={"coach_id": 0},
            headers=HEADERS,
        )

        assert response.status_code == 422


class TestCoachDirectory:

    def test_lists_active_coaches(self, client):
        body = client.get("/api/v1/coaches", headers=HEADERS).json()

        assert body["total"] == 2
        assert body["coaches"][0]["name"] == "Dr. Ana Lopez"
        assert body["coaches"][1]["specialty"] == "Clinical Nutrition"
