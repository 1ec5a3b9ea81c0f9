"""
HTTP Tests for the Settlement API

Tests cover:
1. Users and groups endpoints
2. Summary rendering and settle permissions
3. Settlement execution and its authorization
4. Error status codes
"""

import pytest
from fastapi.testclient import TestClient

from settlement.api import create_app


MISSING_ID = "00000000-0000-0000-0000-000000000000"


@pytest.fixture
def client():
    return TestClient(create_app())


@pytest.fixture
def trip(client):
    users = [
        client.post("/users", json={"name": name, "email": f"{name.lower()}@example.com"}).json()
        for name in ("Alice", "Bob", "Carol")
    ]
    group = client.post("/groups", json={"name": "Trip", "userIds": [u["id"] for u in users]}).json()
    alice, bob, carol = users
    client.post(f"/groups/{group['id']}/expenses",
                json={"description": "Hotel", "amount": 90, "paidById": alice["id"]})
    client.post(f"/groups/{group['id']}/expenses",
                json={"description": "Dinner", "amount": 30, "paidById": bob["id"]})
    return group, alice, bob, carol


class TestSystem:
    """Tests for service endpoints."""

    def test_health(self, client):
        """Test the health check."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_serverless_handler(self):
        """Test that the serverless entry point serves the same routes under /api."""
        from api.index import app, handler

        assert app.root_path == "/api"
        assert handler.app is app
        assert TestClient(app).get("/health").status_code == 200


class TestUsersAndGroups:
    """Tests for user and group endpoints."""

    def test_register_and_fetch_user(self, client):
        """Test registering and reading back a user."""
        created = client.post("/users", json={"name": "Alice", "email": "alice@example.com"})

        assert created.status_code == 201
        fetched = client.get(f"/users/{created.json()['id']}")
        assert fetched.json()["email"] == "alice@example.com"

    def test_duplicate_email_conflict(self, client):
        """Test that a second registration with the same email conflicts."""
        client.post("/users", json={"name": "Alice", "email": "alice@example.com"})
        response = client.post("/users", json={"name": "Alice", "email": "alice@example.com"})

        assert response.status_code == 409

    def test_missing_user(self, client):
        """Test that a missing user returns 404."""
        assert client.get(f"/users/{MISSING_ID}").status_code == 404

    def test_list_groups_by_user(self, client, trip):
        """Test filtering groups by member id."""
        group, alice, _, _ = trip

        response = client.get("/groups", params={"userId": alice["id"]})

        assert [g["id"] for g in response.json()] == [group["id"]]
        assert client.get("/groups", params={"userId": MISSING_ID}).json() == []

    def test_add_member_twice_conflicts(self, client, trip):
        """Test that re-adding a member returns 409."""
        group, alice, _, _ = trip

        response = client.post(f"/groups/{group['id']}/members", json={"userId": alice["id"]})

        assert response.status_code == 409

    def test_expense_by_non_member(self, client, trip):
        """Test that an outsider cannot log an expense."""
        group, *_ = trip
        eve = client.post("/users", json={"name": "Eve", "email": "eve@example.com"}).json()

        response = client.post(f"/groups/{group['id']}/expenses",
                               json={"description": "Taxi", "amount": 10, "paidById": eve["id"]})

        assert response.status_code == 400

    def test_non_positive_expense_rejected(self, client, trip):
        """Test request validation on expense amounts."""
        group, alice, _, _ = trip

        response = client.post(f"/groups/{group['id']}/expenses",
                               json={"description": "Refund", "amount": -5, "paidById": alice["id"]})

        assert response.status_code == 422


class TestSummary:
    """Tests for the summary endpoint."""

    def test_summary_payload(self, client, trip):
        """Test the rendered summary fields."""
        group, alice, bob, carol = trip

        response = client.get(f"/groups/{group['id']}/summary")

        assert response.status_code == 200
        body = response.json()
        assert body["group"] == "Trip"
        assert body["totalExpense"] == "120.00"
        assert body["splitPerHead"] == "40.00"
        assert [m["balance"] for m in body["members"]] == ["50.00", "-10.00", "-40.00"]
        assert [(t["from"], t["to"], t["amount"]) for t in body["transactions"]] == [
            (carol["id"], alice["id"], "40.00"),
            (bob["id"], alice["id"], "10.00"),
        ]

    def test_anonymous_caller_cannot_settle(self, client, trip):
        """Test that unauthenticated summaries never grant settle rights."""
        group, *_ = trip

        body = client.get(f"/groups/{group['id']}/summary").json()

        assert all(t["canSettle"] is False for t in body["transactions"])

    def test_debtor_can_settle_own_transfer(self, client, trip):
        """Test that only the paying member's transfer is settleable."""
        group, _, bob, carol = trip

        body = client.get(f"/groups/{group['id']}/summary", headers={"X-User-Id": carol["id"]}).json()

        flags = {t["from"]: t["canSettle"] for t in body["transactions"]}
        assert flags == {carol["id"]: True, bob["id"]: False}

    def test_missing_group_summary(self, client):
        """Test that a missing group returns 404."""
        assert client.get(f"/groups/{MISSING_ID}/summary").status_code == 404

    def test_empty_group_summary(self, client):
        """Test that a group without members returns 400."""
        group = client.post("/groups", json={"name": "Empty"}).json()

        response = client.get(f"/groups/{group['id']}/summary")

        assert response.status_code == 400


class TestSettlements:
    """Tests for executing suggested transfers."""

    def test_requires_identity(self, client, trip):
        """Test that anonymous callers cannot record settlements."""
        group, alice, _, carol = trip

        response = client.post(f"/groups/{group['id']}/settlements",
                               json={"fromId": carol["id"], "toId": alice["id"], "amount": 40})

        assert response.status_code == 401

    def test_only_payer_can_settle(self, client, trip):
        """Test that a caller cannot settle on someone else's behalf."""
        group, alice, _, carol = trip

        response = client.post(f"/groups/{group['id']}/settlements",
                               json={"fromId": carol["id"], "toId": alice["id"], "amount": 40},
                               headers={"X-User-Id": alice["id"]})

        assert response.status_code == 403

    def test_settlement_updates_summary(self, client, trip):
        """Test that an executed transfer drops out of the plan."""
        group, alice, bob, carol = trip

        response = client.post(f"/groups/{group['id']}/settlements",
                               json={"fromId": carol["id"], "toId": alice["id"], "amount": 40},
                               headers={"X-User-Id": carol["id"]})
        assert response.status_code == 201

        body = client.get(f"/groups/{group['id']}/summary").json()
        assert body["totalExpense"] == "120.00"
        assert [m["balance"] for m in body["members"]] == ["10.00", "-10.00", "0.00"]
        assert [(t["from"], t["to"], t["amount"]) for t in body["transactions"]] == [
            (bob["id"], alice["id"], "10.00"),
        ]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
