"""
Tests for the admin API
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import FakeSource, FakeTransport, make_snapshot
from errors import ConflictError, NotFoundError
from main import create_app
from models import Subscription, User
from monitor import CaseMonitor


@pytest.fixture
def api_store():
    store = MagicMock()
    store.find_candidate_cases.return_value = []
    return store


@pytest.fixture
def monitor(api_store):
    return CaseMonitor(
        source=FakeSource({"804692": make_snapshot("804692")}),
        store=api_store,
        transport=FakeTransport(),
        batch_delay=0,
        message_delay=0,
        admin_numbers=[],
    )


@pytest.fixture
def client(monitor, api_store):
    return TestClient(create_app(monitor, api_store, auto_start=False))


class TestMonitoringRoutes:

    def test_health_and_status(self, client):
        assert client.get("/health").json() == {"status": "ok"}

        status = client.get("/status").json()
        assert status["is_running"] is False
        assert status["run_count"] == 0

    def test_process_now_runs_one_cycle(self, client, monitor):
        response = client.post("/process-now")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["reason"] == "no_cases"
        assert monitor.state.run_count == 1

    def test_start_when_already_scheduled(self, client, monitor):
        monitor.start = MagicMock(return_value=False)
        response = client.post("/start")
        assert response.status_code == 400

    def test_stop_when_not_scheduled(self, client):
        assert client.post("/stop").status_code == 400

    def test_update_config(self, client, monitor):
        response = client.put("/config", json={"batch_size": 10, "message_delay": 0.5})

        assert response.status_code == 200
        assert response.json()["batch_size"] == 10
        assert monitor.dispatcher.message_delay == 0.5

    def test_update_config_rejects_zero_batch_size(self, client):
        assert client.put("/config", json={"batch_size": 0}).status_code == 422

    def test_stats(self, client, api_store):
        api_store.get_stats.return_value = {"total_cases": 3}
        body = client.get("/stats").json()
        assert body["storage"] == {"total_cases": 3}
        assert "run_count" in body["monitor"]

    def test_test_message(self, client):
        response = client.post("/test-message", json={"mobile_number": "9876543210"})
        assert response.status_code == 200
        assert response.json()["message_id"] == "msg-1"


class TestUserRoutes:

    def test_create_user(self, client, api_store):
        api_store.create_user.return_value = User(id="u1", name="Asha", mobile_number="9876543210")

        response = client.post("/users", json={"name": "Asha", "mobile_number": "9876543210"})

        assert response.status_code == 201
        assert response.json()["user"]["id"] == "u1"
        api_store.create_user.assert_called_once_with(
            name="Asha", mobile_number="9876543210", email="", is_active=True,
        )

    def test_duplicate_user_is_conflict(self, client, api_store):
        api_store.create_user.side_effect = ConflictError("User with mobile number 9876543210 already exists")

        response = client.post("/users", json={"name": "Asha", "mobile_number": "9876543210"})

        assert response.status_code == 409
        assert response.json()["type"] == "conflict"

    def test_missing_user(self, client, api_store):
        api_store.get_user.return_value = None
        assert client.get("/users/ghost").status_code == 404

    def test_get_user_with_subscriptions(self, client, api_store):
        api_store.get_user.return_value = User(id="u1", name="Asha", mobile_number="9876543210")
        api_store.list_subscriptions.return_value = [
            Subscription.from_dict({"id": "s1", "user_id": "u1", "cino": "804692"}),
        ]

        body = client.get("/users/u1").json()

        assert body["user"]["name"] == "Asha"
        assert body["subscriptions"][0]["notification_settings"]["hearing_date"] is True


class TestCaseRoutes:

    def test_add_case(self, client, api_store):
        api_store.create_case.return_value = {"cino": "804692", "data_hash": "abc"}

        response = client.post("/cases", json={"cino": " 804692 "})

        assert response.status_code == 201
        assert response.json()["case"]["cino"] == "804692"
        snapshot, fp = api_store.create_case.call_args.args
        assert snapshot.cino == "804692"
        assert len(fp) == 32

    def test_add_unknown_case(self, client):
        response = client.post("/cases", json={"cino": "000000"})
        assert response.status_code == 404
        assert response.json()["type"] == "not_found"

    def test_remove_case(self, client, api_store):
        api_store.delete_case.return_value = 2
        assert client.delete("/cases/804692").json()["subscriptions_removed"] == 2

    def test_get_missing_case(self, client, api_store):
        api_store.get_case.side_effect = NotFoundError("Case 1 not found")
        assert client.get("/cases/1").status_code == 404


class TestSubscriptionRoutes:

    def test_create_subscription(self, client, api_store):
        api_store.create_subscription.return_value = Subscription.from_dict(
            {"id": "s1", "user_id": "u1", "cino": "804692", "alias": "Bail"}
        )

        response = client.post("/subscriptions", json={"user_id": "u1", "cino": "804692", "alias": "Bail"})

        assert response.status_code == 201
        assert response.json()["subscription"]["alias"] == "Bail"

    def test_invalid_priority(self, client):
        response = client.post("/subscriptions", json={"user_id": "u1", "cino": "1", "priority": "whenever"})
        assert response.status_code == 422

    def test_duplicate_subscription(self, client, api_store):
        api_store.create_subscription.side_effect = ConflictError("already subscribed")
        response = client.post("/subscriptions", json={"user_id": "u1", "cino": "804692"})
        assert response.status_code == 409


def test_unexpected_error_is_500(monitor, api_store):
    api_store.list_cases.side_effect = RuntimeError("boom")
    client = TestClient(create_app(monitor, api_store, auto_start=False), raise_server_exceptions=False)

    response = client.get("/cases")

    assert response.status_code == 500
