"""
HTTP tests for the project status blueprint.

Identity comes from the X-User-Id header (API_AUTH_ENABLED=false in
TestingConfig).  Covers role checks, client ownership, lazy
initialization, and the error envelope for each failure class.
"""

import pytest

from app.models.portal import Communication
from app.models.project_status import ProjectStatusState

BASE = "/api/v1"


def _status_url(project_id):
    return f"{BASE}/projects/{project_id}/status"


# ═════════════════════════════════════════════════════════════════════════════
# Authentication / authorization
# ═════════════════════════════════════════════════════════════════════════════


class TestAccess:
    def test_missing_identity(self, client, project):
        res = client.get(_status_url(project.id))
        assert res.status_code == 401

    def test_unknown_user(self, client, project):
        res = client.get(_status_url(project.id), headers={"X-User-Id": "9999"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Unknown user"
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_non_numeric_user(self, client, project):
        res = client.get(_status_url(project.id), headers={"X-User-Id": "admin"})
        assert res.status_code == 400

    def test_owner_can_read(self, client, project, as_client):
        res = client.get(_status_url(project.id), headers=as_client)
        assert res.status_code == 200

    def test_other_client_forbidden(self, client, project, as_other):
        for url in (
            _status_url(project.id),
            f"{_status_url(project.id)}/history",
            f"{BASE}/projects/{project.id}/clarifications",
        ):
            res = client.get(url, headers=as_other)
            assert res.status_code == 403, url
            assert res.get_json()["code"] == "ERR_FORBIDDEN"

    @pytest.mark.parametrize("path,body", [
        ("status", {"statusCode": "REVIEWING"}),
        ("substatus", {"subStatus": "BLOCKED"}),
        ("clarifications", {"question": "Need logo files"}),
        ("health", {"healthStatus": "AT_RISK"}),
    ])
    def test_client_cannot_write(self, client, project, as_client, path, body):
        res = client.post(f"{BASE}/projects/{project.id}/{path}", json=body, headers=as_client)
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"
        assert ProjectStatusState.query.filter_by(project_id=project.id).one().current_status == "SCOPING"

    def test_form_post_rejected(self, client, project, as_admin):
        res = client.post(_status_url(project.id), data="statusCode=REVIEWING", headers={
            **as_admin, "Content-Type": "application/x-www-form-urlencoded",
        })
        assert res.status_code == 415

    def test_health_probe_is_public(self, client):
        assert client.get(f"{BASE}/health/ready").status_code == 200

    def test_request_id_header(self, client, project, as_admin):
        res = client.get(_status_url(project.id), headers={**as_admin, "X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers


# ═════════════════════════════════════════════════════════════════════════════
# Status
# ═════════════════════════════════════════════════════════════════════════════


class TestGetStatus:
    def test_current_status_and_next(self, client, project, as_admin):
        res = client.get(_status_url(project.id), headers=as_admin)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status_data"]["current_status"] == "SCOPING"
        assert body["current_status"]["code"] == "SCOPING"
        assert [s["code"] for s in body["valid_next_statuses"]] == ["REVIEWING"]

    def test_lazy_initialization_on_first_read(self, client, bare_project, as_client, client_user):
        assert ProjectStatusState.query.count() == 0

        res = client.get(_status_url(bare_project.id), headers=as_client)
        assert res.status_code == 200
        assert res.get_json()["status_data"]["current_status"] == "SCOPING"

        history = client.get(f"{_status_url(bare_project.id)}/history", headers=as_client).get_json()
        assert len(history) == 1
        assert history[0]["changed_by"]["id"] == client_user.id

        # Second read does not initialize again
        client.get(_status_url(bare_project.id), headers=as_client)
        assert ProjectStatusState.query.count() == 1

    def test_missing_project(self, client, as_admin):
        res = client.get(_status_url(4040), headers=as_admin)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


class TestTransition:
    def test_admin_transition(self, client, project, as_admin, client_user):
        res = client.post(_status_url(project.id), json={"statusCode": "REVIEWING", "notes": "Scope agreed"},
                          headers=as_admin)
        assert res.status_code == 200
        body = res.get_json()
        assert body["previous_status"] == "SCOPING"
        assert body["status_data"]["current_status"] == "REVIEWING"
        assert body["history_entry"]["notes"] == "Scope agreed"
        assert body["project"]["status"] == "planning"

        comm = Communication.query.one()
        assert comm.recipient_id == client_user.id
        assert "from SCOPING to REVIEWING" in comm.message

    def test_snake_case_body(self, client, project, as_admin):
        res = client.post(_status_url(project.id), json={"status_code": "REVIEWING"}, headers=as_admin)
        assert res.status_code == 200

    def test_invalid_transition(self, client, project, as_admin):
        res = client.post(_status_url(project.id), json={"statusCode": "COMPLETED"}, headers=as_admin)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_INVALID_TRANSITION"
        assert body["details"] == {"from": "SCOPING", "to": "COMPLETED", "allowed": ["REVIEWING"]}

    def test_missing_status_code(self, client, project, as_admin):
        res = client.post(_status_url(project.id), json={"notes": "?"}, headers=as_admin)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_unknown_status_code(self, client, project, as_admin):
        res = client.post(_status_url(project.id), json={"statusCode": "SHIPPED"}, headers=as_admin)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_INVALID_TRANSITION"
        assert body["details"] == {"from": "SCOPING", "to": "SHIPPED", "allowed": ["REVIEWING"]}

    def test_unknown_status_code_on_missing_project(self, client, as_admin):
        res = client.post(_status_url(424242), json={"statusCode": "SHIPPED"}, headers=as_admin)
        assert res.status_code == 404

    @pytest.mark.parametrize("notes", [["a", "b"], {"why": "x"}, 7])
    def test_non_string_notes(self, client, project, as_admin, notes):
        res = client.post(_status_url(project.id), json={"statusCode": "REVIEWING", "notes": notes},
                          headers=as_admin)
        assert res.status_code == 422
        assert res.get_json()["details"] == {"notes": "must be a string"}
        assert client.get(_status_url(project.id), headers=as_admin).get_json()[
            "status_data"]["current_status"] == "SCOPING"

    def test_uninitialized_project(self, client, bare_project, as_admin):
        res = client.post(_status_url(bare_project.id), json={"statusCode": "REVIEWING"}, headers=as_admin)
        assert res.status_code == 404

    def test_history_most_recent_first(self, client, project, as_admin, as_client):
        client.post(_status_url(project.id), json={"statusCode": "REVIEWING"}, headers=as_admin)
        client.post(_status_url(project.id), json={"statusCode": "PROPOSAL_PHASE"}, headers=as_admin)

        for headers in (as_admin, as_client):
            res = client.get(f"{_status_url(project.id)}/history", headers=headers)
            assert res.status_code == 200
            history = res.get_json()
            assert [h["status_code"] for h in history] == ["PROPOSAL_PHASE", "REVIEWING", "SCOPING"]
            assert history[0]["status"]["name"] == "Proposal Phase"
            assert history[1]["duration"] > 0


class TestSubStatus:
    def test_set_and_clear(self, client, project, as_admin):
        url = f"{BASE}/projects/{project.id}/substatus"
        res = client.post(url, json={"subStatus": "blocked", "reason": "Waiting on VPN"}, headers=as_admin)
        assert res.status_code == 200
        assert res.get_json()["current_sub_status"] == "BLOCKED"

        res = client.post(url, json={"subStatus": "NONE"}, headers=as_admin)
        assert res.get_json()["current_sub_status"] is None

    def test_required(self, client, project, as_admin):
        res = client.post(f"{BASE}/projects/{project.id}/substatus", json={"reason": "x"}, headers=as_admin)
        assert res.status_code == 400

    def test_non_string_reason(self, client, project, as_admin):
        res = client.post(f"{BASE}/projects/{project.id}/substatus",
                          json={"subStatus": "BLOCKED", "reason": {"why": "x"}}, headers=as_admin)
        assert res.status_code == 422
        assert res.get_json()["details"] == {"reason": "must be a string"}

    def test_too_long(self, client, project, as_admin):
        res = client.post(f"{BASE}/projects/{project.id}/substatus", json={"subStatus": "X" * 60},
                          headers=as_admin)
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════════
# Clarifications
# ═════════════════════════════════════════════════════════════════════════════


class TestClarifications:
    def _request(self, client, project, headers, question="Need logo files"):
        return client.post(f"{BASE}/projects/{project.id}/clarifications", json={"question": question},
                           headers=headers)

    def test_round_trip(self, client, project, as_admin, as_client):
        res = self._request(client, project, as_admin)
        assert res.status_code == 201
        clarification = res.get_json()
        assert clarification["status"] == "PENDING"

        status = client.get(_status_url(project.id), headers=as_client).get_json()
        assert status["status_data"]["current_sub_status"] == "CLARIFICATION_NEEDED"

        listing = client.get(f"{BASE}/projects/{project.id}/clarifications", headers=as_client).get_json()
        assert [c["id"] for c in listing] == [clarification["id"]]

        res = client.post(f"{BASE}/clarifications/{clarification['id']}/respond",
                          json={"response": "Attached"}, headers=as_client)
        assert res.status_code == 200
        assert res.get_json()["status"] == "RESOLVED"

        status = client.get(_status_url(project.id), headers=as_client).get_json()
        assert status["status_data"]["current_sub_status"] is None

    def test_question_required(self, client, project, as_admin):
        res = self._request(client, project, as_admin, question="")
        assert res.status_code == 400

    def test_respond_twice_conflict(self, client, project, as_admin, as_client):
        cid = self._request(client, project, as_admin).get_json()["id"]
        url = f"{BASE}/clarifications/{cid}/respond"
        assert client.post(url, json={"response": "Attached"}, headers=as_client).status_code == 200

        res = client.post(url, json={"response": "Again"}, headers=as_client)
        assert res.status_code == 409
        assert res.get_json()["error"] == "This clarification has already been resolved"

    def test_other_client_cannot_respond(self, client, project, as_admin, as_other):
        cid = self._request(client, project, as_admin).get_json()["id"]
        res = client.post(f"{BASE}/clarifications/{cid}/respond", json={"response": "Hi"}, headers=as_other)
        assert res.status_code == 403

    def test_respond_unknown(self, client, project, as_admin):
        res = client.post(f"{BASE}/clarifications/555/respond", json={"response": "Hi"}, headers=as_admin)
        assert res.status_code == 404

    def test_response_required(self, client, project, as_admin):
        cid = self._request(client, project, as_admin).get_json()["id"]
        res = client.post(f"{BASE}/clarifications/{cid}/respond", json={}, headers=as_admin)
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Health + catalog
# ═════════════════════════════════════════════════════════════════════════════


class TestHealthEndpoint:
    def test_update(self, client, project, as_admin):
        res = client.post(f"{BASE}/projects/{project.id}/health",
                          json={"healthStatus": "AT_RISK", "healthFactors": {"timeline": "AT_RISK"}},
                          headers=as_admin)
        assert res.status_code == 200
        body = res.get_json()
        assert body["health_status"] == "AT_RISK"
        assert body["health_factors"] == {"timeline": "AT_RISK"}

    def test_invalid_status(self, client, project, as_admin):
        res = client.post(f"{BASE}/projects/{project.id}/health", json={"healthStatus": "FINE"},
                          headers=as_admin)
        assert res.status_code == 422
        assert res.get_json()["details"]["allowed"] == ["EXCELLENT", "GOOD", "AT_RISK", "CRITICAL"]

    def test_required(self, client, project, as_admin):
        res = client.post(f"{BASE}/projects/{project.id}/health", json={}, headers=as_admin)
        assert res.status_code == 400


class TestCatalogEndpoint:
    def test_status_types(self, client, as_client):
        res = client.get(f"{BASE}/status-types", headers=as_client)
        assert res.status_code == 200
        rows = res.get_json()
        assert len(rows) == 15
        assert rows[0]["code"] == "SCOPING"
        assert rows[0]["next_statuses"] == ["REVIEWING"]


class TestHealthProbes:
    def test_live(self, client):
        res = client.get(f"{BASE}/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["status_catalog"]["statuses"] == 15

    def test_live_degraded_without_catalog(self, app, client, monkeypatch):
        monkeypatch.delitem(app.extensions, "status_catalog")
        res = client.get(f"{BASE}/health/live")
        assert res.status_code == 503
        assert res.get_json()["status"] == "degraded"
