"""
HTTP surface end to end through FastAPI's TestClient.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from cmdgate.api.main import app
from cmdgate.core.rules import add_rule
from cmdgate.core.schema import Role, RuleAction


@pytest.fixture
def client():
    return TestClient(app)


def auth(api_key):
    return {"X-API-Key": api_key}


class TestAuthentication:

    def test_missing_key(self, client):
        response = client.get("/get-credit-balance")
        assert response.status_code == 401
        assert "X-API-Key" in response.json()["message"]

    def test_invalid_key(self, client):
        response = client.get("/get-credit-balance", headers=auth("sk_nope"))
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid API key"

    def test_member_cannot_reach_admin_endpoints(self, client, member):
        _, key = member
        for method, path in [("get", "/regex-rules"), ("get", "/audit-logs"), ("get", "/users")]:
            response = getattr(client, method)(path, headers=auth(key))
            assert response.status_code == 403

    def test_admin_is_not_an_approver(self, client, admin, member, no_notify):
        from cmdgate.core.approval import submit_request
        request = submit_request(member[0], "make it", schedule=no_notify)
        response = client.post(f"/approval-requests/{request.id}/approve", headers=auth(admin[1]))
        assert response.status_code == 403
        assert response.json()["message"] == "Only approvers can access this endpoint"

    def test_lead_and_junior_act_as_members(self, client, make_user):
        for role in (Role.LEAD, Role.JUNIOR):
            _, key = make_user(role)
            assert client.get("/get-credit-balance", headers=auth(key)).status_code == 200
            assert client.get("/regex-rules", headers=auth(key)).status_code == 403

    def test_login(self, client, member):
        identity, key = member
        response = client.post("/login", headers=auth(key))
        assert response.status_code == 200
        body = response.json()
        assert body["userId"] == identity.user_id
        assert body["credits"] == 100

    def test_login_without_key(self, client):
        assert client.post("/login").status_code == 400


class TestCommands:

    def test_executed(self, client, member):
        _, key = member
        add_rule(r"^(ls|cat|pwd|echo)", RuleAction.AUTO_ACCEPT)

        response = client.post("/command", json={"command_text": "ls -la"}, headers=auth(key))

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "executed"
        assert body["credits_deducted"] == 10
        assert body["new_balance"] == 90
        assert body["matched_rule"]["action"] == "AUTO_ACCEPT"

        balance = client.get("/get-credit-balance", headers=auth(key)).json()
        assert balance["credits"] == 90

        history = client.get("/command-history", headers=auth(key)).json()
        assert history["count"] == 1
        assert history["history"][0]["commandText"] == "ls -la"
        assert history["history"][0]["creditsAfter"] == 90

    def test_no_match_returns_400(self, client, member):
        _, key = member
        response = client.post("/command", json={"command_text": "reboot"}, headers=auth(key))
        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "rejected"
        assert "matched_rule" not in body
        assert body["error"] == "Command does not match any allowed pattern"

    def test_auto_reject_returns_403(self, client, member):
        _, key = member
        add_rule(r"rm\s+-rf\s+/", RuleAction.AUTO_REJECT)

        response = client.post("/command", json={"command_text": "rm -rf /"}, headers=auth(key))

        assert response.status_code == 403
        body = response.json()
        assert body["status"] == "rejected"
        assert body["matched_rule"]["pattern"] == r"rm\s+-rf\s+/"
        assert client.get("/get-credit-balance", headers=auth(key)).json()["credits"] == 100

    def test_insufficient_credits_returns_403(self, client, make_user):
        _, key = make_user(credits=5)
        add_rule(r"^ls", RuleAction.AUTO_ACCEPT)

        response = client.post("/command", json={"command_text": "ls"}, headers=auth(key))

        assert response.status_code == 403
        assert response.json()["error"] == "Insufficient credits"
        assert response.json()["current_balance"] == 5

    @pytest.mark.parametrize("payload", [{}, {"command_text": ""}, {"command_text": 5}])
    def test_bad_body_returns_400(self, client, member, payload):
        _, key = member
        response = client.post("/command", json=payload, headers=auth(key))
        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"


class TestRuleEndpoints:

    def test_crud(self, client, admin):
        _, key = admin
        created = client.post("/add-regex-rule", headers=auth(key), json={
            "pattern": r"git\s+status", "action": "AUTO_ACCEPT", "exampleMatch": "git status",
        })
        assert created.status_code == 201
        rule = created.json()["rule"]
        assert rule["exampleMatch"] == "git status"

        listed = client.get("/regex-rules", headers=auth(key)).json()
        assert listed["count"] == 1

        updated = client.put(f"/regex-rules/{rule['id']}", headers=auth(key), json={
            "pattern": r"git\s+log", "action": "AUTO_REJECT",
        })
        assert updated.status_code == 200
        assert updated.json()["rule"]["action"] == "AUTO_REJECT"

        assert client.delete(f"/regex-rules/{rule['id']}", headers=auth(key)).status_code == 200
        assert client.delete(f"/regex-rules/{rule['id']}", headers=auth(key)).status_code == 404

    def test_get_single_rule(self, client, admin, member):
        rule = add_rule(r"^make\b", RuleAction.AUTO_ACCEPT, "make build")

        response = client.get(f"/regex-rules/{rule.id}", headers=auth(admin[1]))
        assert response.status_code == 200
        assert response.json()["rule"]["pattern"] == r"^make\b"
        assert response.json()["rule"]["exampleMatch"] == "make build"

        assert client.get(f"/regex-rules/{rule.id + 1}", headers=auth(admin[1])).status_code == 404
        assert client.get(f"/regex-rules/{rule.id}", headers=auth(member[1])).status_code == 403

    def test_duplicate_pattern_409(self, client, admin):
        _, key = admin
        payload = {"pattern": "^ls$", "action": "AUTO_ACCEPT"}
        assert client.post("/add-regex-rule", headers=auth(key), json=payload).status_code == 201
        payload["action"] = "AUTO_REJECT"
        assert client.post("/add-regex-rule", headers=auth(key), json=payload).status_code == 409

    @pytest.mark.parametrize("payload", [
        {"pattern": "([", "action": "AUTO_ACCEPT"},
        {"pattern": "ls", "action": "MAYBE"},
        {"action": "AUTO_ACCEPT"},
    ])
    def test_invalid_rule_400(self, client, admin, payload):
        _, key = admin
        assert client.post("/add-regex-rule", headers=auth(key), json=payload).status_code == 400


class TestApprovalEndpoints:

    def test_full_approval_flow(self, client, member, approvers):
        _, member_key = member

        with patch("cmdgate.core.notifier.send_email", return_value=True) as send:
            created = client.post("/approval-request", headers=auth(member_key),
                                  json={"command_text": "npm run build"})
        assert created.status_code == 201
        request = created.json()["request"]
        assert request["status"] == "pending"
        assert request["approvalCount"] == 0
        assert send.call_count == len(approvers)

        first = client.post(f"/approval-requests/{request['id']}/approve",
                            headers=auth(approvers[0][1]))
        assert first.status_code == 200
        assert first.json()["approvalCount"] == 1
        assert first.json()["threshold"] == 2
        assert "rule" not in first.json()

        again = client.post(f"/approval-requests/{request['id']}/approve",
                            headers=auth(approvers[0][1]))
        assert again.status_code == 409

        second = client.post(f"/approval-requests/{request['id']}/approve",
                             headers=auth(approvers[1][1]))
        assert second.status_code == 200
        assert second.json()["approvalCount"] == 2
        assert second.json()["rule"]["action"] == "AUTO_ACCEPT"
        assert second.json()["request"]["status"] == "approved"

        third = client.post(f"/approval-requests/{request['id']}/approve",
                            headers=auth(approvers[2][1]))
        assert third.status_code == 409
        assert third.json()["message"] == "Request is already approved"

        executed = client.post("/command", headers=auth(member_key),
                               json={"command_text": "npm run build"})
        assert executed.status_code == 200
        assert executed.json()["status"] == "executed"

    def test_notification_failure_does_not_fail_request(self, client, member, approvers):
        with patch("cmdgate.core.notifier.send_email", side_effect=RuntimeError("smtp down")):
            created = client.post("/approval-request", headers=auth(member[1]),
                                  json={"command_text": "npm test"})
        assert created.status_code == 201

    def test_reject(self, client, member, approvers):
        created = client.post("/approval-request", headers=auth(member[1]),
                              json={"command_text": "terraform apply"}).json()["request"]

        response = client.post(f"/approval-requests/{created['id']}/reject",
                               headers=auth(approvers[0][1]))
        assert response.status_code == 200
        assert response.json()["request"]["status"] == "rejected"

        again = client.post(f"/approval-requests/{created['id']}/approve",
                            headers=auth(approvers[1][1]))
        assert again.status_code == 409

    def test_blank_request_400(self, client, member):
        response = client.post("/approval-request", headers=auth(member[1]),
                               json={"command_text": "   "})
        assert response.status_code == 400

    def test_unknown_request_404(self, client, approvers):
        response = client.post("/approval-requests/nope/approve", headers=auth(approvers[0][1]))
        assert response.status_code == 404

    def test_listing_visibility(self, client, make_user, approvers):
        _, alice_key = make_user(username="alice")
        _, bob_key = make_user(username="bob")
        client.post("/approval-request", headers=auth(alice_key), json={"command_text": "a"})
        client.post("/approval-request", headers=auth(bob_key), json={"command_text": "b"})

        assert client.get("/approval-requests", headers=auth(alice_key)).json()["count"] == 1
        assert client.get("/approval-requests", headers=auth(approvers[0][1])).json()["count"] == 2

    def test_get_single_request_visibility(self, client, make_user, approvers, admin):
        _, alice_key = make_user(username="alice")
        _, bob_key = make_user(username="bob")
        created = client.post("/approval-request", headers=auth(alice_key),
                              json={"command_text": "make release"}).json()["request"]
        path = f"/approval-requests/{created['id']}"

        own = client.get(path, headers=auth(alice_key))
        assert own.status_code == 200
        assert own.json()["request"]["commandText"] == "make release"
        assert own.json()["request"]["status"] == "pending"

        assert client.get(path, headers=auth(approvers[0][1])).status_code == 200
        assert client.get(path, headers=auth(admin[1])).status_code == 200
        assert client.get(path, headers=auth(bob_key)).status_code == 404
        assert client.get("/approval-requests/nope", headers=auth(alice_key)).status_code == 404


class TestAdminEndpoints:

    def test_create_user_and_use_key(self, client, admin):
        response = client.post("/users", headers=auth(admin[1]),
                               json={"username": "carol", "email": "carol@example.com",
                                     "role": "approver"})
        assert response.status_code == 201
        user = response.json()["user"]
        assert user["role"] == "approver"
        assert user["credits"] == 100

        login = client.post("/login", headers=auth(user["apiKey"]))
        assert login.json()["username"] == "carol"

        duplicate = client.post("/users", headers=auth(admin[1]),
                                json={"username": "carol", "email": "c2@example.com"})
        assert duplicate.status_code == 409

    def test_update_credits(self, client, admin, member):
        identity, _ = member
        response = client.put(f"/users/{identity.user_id}/credits", headers=auth(admin[1]),
                              json={"credits": 3})
        assert response.status_code == 200
        assert response.json()["user"]["credits"] == 3

        assert client.put("/users/missing/credits", headers=auth(admin[1]),
                          json={"credits": 3}).status_code == 404
        assert client.put(f"/users/{identity.user_id}/credits", headers=auth(admin[1]),
                          json={"credits": -1}).status_code == 400

    def test_audit_logs_include_requester(self, client, admin, member):
        add_rule(r"^ls", RuleAction.AUTO_ACCEPT)
        client.post("/command", headers=auth(member[1]), json={"command_text": "ls"})

        logs = client.get("/audit-logs", headers=auth(admin[1])).json()
        assert logs["count"] == 1
        assert logs["logs"][0]["user"]["username"] == member[0].username

    def test_delete_user(self, client, admin, member):
        identity, key = member

        response = client.delete(f"/users/{identity.user_id}", headers=auth(admin[1]))
        assert response.status_code == 200
        assert client.get("/get-credit-balance", headers=auth(key)).status_code == 401
        assert client.delete(f"/users/{identity.user_id}", headers=auth(admin[1])).status_code == 404

    def test_admin_cannot_delete_self(self, client, admin):
        response = client.delete(f"/users/{admin[0].user_id}", headers=auth(admin[1]))
        assert response.status_code == 409
        assert client.post("/login", headers=auth(admin[1])).status_code == 200

    def test_member_cannot_delete_users(self, client, make_user, member):
        other, _ = make_user()
        assert client.delete(f"/users/{other.user_id}", headers=auth(member[1])).status_code == 403


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["db_health"] is True


def test_store_failure_returns_generic_500(client, member, tmp_path, monkeypatch):
    monkeypatch.setenv("DB_PATH", str(tmp_path))

    response = client.get("/get-credit-balance", headers=auth(member[1]))

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    health = client.get("/health").json()
    assert health["status"] == "unhealthy"
    assert health["db_health"] is False
