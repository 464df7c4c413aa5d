"""
HTTP tests for the Leadflow API.
Covers status codes, the uniform error shape, and the end-to-end signal and
workflow flows through the endpoints.
"""

import sqlite3

import pytest
from fastapi.testclient import TestClient

from leadflow import config
from leadflow.agents.base import BaseAgent
from leadflow.api.app import create_app
from leadflow.db import connection, models


class StubChatAgent(BaseAgent):
    name = "MayaChatAgent"

    def __init__(self):
        super().__init__()
        self.calls = 0

    def run(self, payload):
        self.calls += 1
        return {"reply": "hi"}


class BrokenConnection:
    closed = False

    def execute(self, *args):
        raise sqlite3.OperationalError("disk I/O error")

    def close(self):
        self.closed = True


@pytest.fixture
def client(runtime):
    """Test client bound to the recording runtime and the per-test database."""
    with TestClient(create_app(runtime)) as c:
        yield c


@pytest.fixture
def subscriber(client):
    resp = client.post("/subscribers", json={"email": "lead@example.com", "name": "Lead"})
    assert resp.status_code == 200
    return resp.json()["subscriber"]


def _assert_error(resp, status_code):
    assert resp.status_code == status_code
    body = resp.json()
    assert body["success"] is False
    assert isinstance(body["error"], str) and body["error"]


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["tables"] >= 8
        assert "OfferPathwayAgent" in data["agents"]

    def test_unhealthy_closes_connection(self, client, monkeypatch):
        broken = BrokenConnection()
        monkeypatch.setattr(connection, "get_db", lambda: broken)
        resp = client.get("/health")
        assert resp.status_code == 500
        assert resp.json()["status"] == "unhealthy"
        assert broken.closed is True


# =============================================================================
# SIGNALS
# =============================================================================

class TestSignalEndpoints:

    def test_record_signal(self, client, subscriber):
        resp = client.post("/signal", json={"subscriberId": subscriber["id"],
                                            "signalType": "focus", "value": "pricing"})
        assert resp.status_code == 200
        assert resp.json()["intentScore"] == 3

    def test_numeric_value_accepted(self, client, subscriber):
        resp = client.post("/signal", json={"subscriberId": subscriber["id"],
                                            "signalType": "timeline", "value": 30})
        assert resp.status_code == 200

    def test_unknown_subscriber(self, client):
        _assert_error(client.post("/signal", json={"subscriberId": "sub_nope",
                                                   "signalType": "focus", "value": "x"}), 404)

    @pytest.mark.parametrize("body", [
        {"signalType": "focus", "value": "x"},
        {"subscriberId": "sub_1", "value": "x"},
        {"subscriberId": "sub_1", "signalType": "focus"},
        {},
    ])
    def test_missing_fields(self, client, body):
        _assert_error(client.post("/signal", json=body), 400)

    def test_malformed_json(self, client):
        resp = client.post("/signal", content="{not json",
                           headers={"Content-Type": "application/json"})
        _assert_error(resp, 400)

    def test_high_intent_notification(self, client, subscriber, sender):
        for _ in range(4):
            client.post("/signal", json={"subscriberId": subscriber["id"],
                                         "signalType": "click", "value": "cta"})
        assert len(sender.sent) == 1
        assert models.get_subscriber(subscriber["id"])["first_high_intent_at"]

    def test_next_step(self, client, subscriber):
        client.post("/signal", json={"subscriberId": subscriber["id"],
                                     "signalType": "stuck", "value": "copy"})
        resp = client.get("/next-step", params={"id": subscriber["id"]})
        assert resp.status_code == 200
        data = resp.json()
        assert data["stuck"] == "copy"
        assert data["focus"] is None
        assert data["readinessLabel"] == "cold"
        assert data["intentScore"] == 3

    def test_next_step_not_found(self, client):
        _assert_error(client.get("/next-step", params={"id": "sub_nope"}), 404)

    def test_next_step_requires_id(self, client):
        _assert_error(client.get("/next-step"), 400)

    def test_offer_lookup(self, client, subscriber):
        resp = client.get(f"/subscribers/{subscriber['id']}/offer")
        assert resp.status_code == 200
        assert resp.json()["recommendation"] is None
        assert resp.json()["confidence"] == 0.4

    def test_offer_unknown(self, client):
        _assert_error(client.get("/subscribers/sub_nope/offer"), 404)

    def test_subscriber_requires_valid_email(self, client):
        _assert_error(client.post("/subscribers", json={"email": "nope"}), 400)
        _assert_error(client.post("/subscribers", json={}), 400)


# =============================================================================
# WORKFLOWS
# =============================================================================

class TestWorkflowEndpoints:

    def test_route_then_approve(self, client, subscriber):
        resp = client.post("/workflow/route", json={"subscriberId": subscriber["id"],
                                                    "event": "subscribed"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "queued"
        assert data["workflow"] == "welcome"

        pending = client.get("/workflow/queue", params={"status": "pending"}).json()["items"]
        assert [i["id"] for i in pending] == [data["queueId"]]

        resp = client.post("/workflow/approve", json={"workflowId": data["queueId"]})
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"
        assert resp.json()["workflowId"] == data["queueId"]

        again = client.post("/workflow/approve", json={"workflowId": data["queueId"]})
        assert again.status_code == 200
        assert again.json()["status"] == "already_processed"
        assert len(models.list_emails()) == 1

    def test_route_unknown_event(self, client, subscriber):
        _assert_error(client.post("/workflow/route", json={"subscriberId": subscriber["id"],
                                                           "event": "bogus"}), 400)

    def test_route_unknown_subscriber(self, client):
        _assert_error(client.post("/workflow/route", json={"subscriberId": "sub_nope",
                                                           "event": "subscribed"}), 404)

    def test_approve_missing(self, client):
        _assert_error(client.post("/workflow/approve", json={"workflowId": "wf_nope"}), 404)

    def test_approve_execution_failure(self, client, runtime, subscriber):
        qid = client.post("/workflow/route", json={"subscriberId": subscriber["id"],
                                                   "event": "subscribed"}).json()["queueId"]

        def failing(item):
            raise RuntimeError("executor down")

        runtime.approvals.executor = failing
        _assert_error(client.post("/workflow/approve", json={"workflowId": qid}), 500)
        item = models.get_workflow_item(qid)
        assert item["status"] == "approved"
        assert item["processed"] == 0

    def test_reject(self, client, subscriber):
        qid = client.post("/workflow/route", json={"subscriberId": subscriber["id"],
                                                   "event": "cta_clicked"}).json()["queueId"]
        resp = client.post("/workflow/reject", json={"workflowId": qid, "reason": "spam"})
        assert resp.json()["status"] == "rejected"
        _assert_error(client.post("/workflow/approve", json={"workflowId": qid}), 409)


# =============================================================================
# AGENTS
# =============================================================================

class TestAgentEndpoints:

    def test_run_agent(self, client, subscriber):
        resp = client.post("/agents/run", json={"agent": "OfferPathwayAgent",
                                                "input": {"subscriberId": subscriber["id"]}})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["agent"]["name"] == "OfferPathwayAgent"
        assert len(data["traces"]) == 1
        assert data["metrics"]["invocations"] == 1

    def test_run_agent_failure_is_result(self, client):
        resp = client.post("/agents/run", json={"agent": "OfferPathwayAgent", "input": {}})
        assert resp.status_code == 200
        assert resp.json()["success"] is False

    @pytest.mark.parametrize("name", ["MayaAgent", "ChatAgent", "maya-chat"])
    def test_excluded_agent_forbidden(self, client, name):
        _assert_error(client.post("/agents/run", json={"agent": name, "input": {}}), 403)
        _assert_error(client.post("/batch/run", json={"agent": name, "inputs": [{}]}), 403)
        _assert_error(client.get("/agents/traces", params={"agent": name}), 403)

    def test_registered_excluded_agent_still_forbidden(self, client, runtime):
        stub = StubChatAgent()
        runtime.registry.register(stub, name="MayaChatAgent")
        _assert_error(client.post("/agents/run", json={"agent": "MayaChatAgent", "input": {}}), 403)
        _assert_error(client.post("/batch/run",
                                  json={"agent": "MayaChatAgent", "inputs": [{}]}), 403)
        _assert_error(client.get("/agents/traces", params={"agent": "MayaChatAgent"}), 403)
        assert stub.calls == 0
        assert runtime.tracer.get_agent_traces("MayaChatAgent") == []

    def test_unknown_agent(self, client):
        _assert_error(client.post("/agents/run", json={"agent": "Nobody", "input": {}}), 404)
        _assert_error(client.post("/batch/run", json={"agent": "Nobody", "inputs": [{}]}), 404)

    def test_run_agent_requires_name(self, client):
        _assert_error(client.post("/agents/run", json={"input": {}}), 400)

    def test_batch_run(self, client, subscriber):
        resp = client.post("/batch/run", json={
            "agent": "OfferPathwayAgent",
            "inputs": [{"subscriberId": subscriber["id"]}, {"subscriberId": "sub_nope"}],
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        assert data["succeeded"] == 1
        assert data["failed"] == 1
        assert [r["success"] for r in data["results"]] == [True, False]

    @pytest.mark.parametrize("inputs", [[], "nope", {"subscriberId": "x"}])
    def test_batch_bad_inputs(self, client, inputs):
        _assert_error(client.post("/batch/run", json={"agent": "OfferPathwayAgent",
                                                      "inputs": inputs}), 400)

    def test_batch_too_large(self, client):
        inputs = [{"subscriberId": "x"}] * 1001
        _assert_error(client.post("/batch/run", json={"agent": "OfferPathwayAgent",
                                                      "inputs": inputs}), 400)

    def test_traces_and_clear(self, client, subscriber):
        client.post("/agents/run", json={"agent": "OfferPathwayAgent",
                                         "input": {"subscriberId": subscriber["id"]}})
        traces = client.get("/agents/traces", params={"agent": "OfferPathwayAgent"}).json()
        assert len(traces["traces"]) == 1
        assert len(traces["traces"][0]["input_digest"]) == 16

        cleared = client.post("/agents/traces").json()
        assert cleared["cleared"] == 1
        assert client.get("/agents/traces").json()["traces"] == []

    def test_list_and_metrics(self, client):
        agents = client.get("/agents").json()["agents"]
        assert {a["name"] for a in agents} == {"EmailQueueManager", "MarketingAutomationAgent",
                                               "OfferPathwayAgent"}
        metrics = client.get("/agents/metrics").json()
        assert metrics["buffer_size"] > 0

    def test_admin_token_enforced(self, client, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_API_TOKEN", "s3cret")
        _assert_error(client.get("/agents"), 401)
        resp = client.get("/agents", headers={"X-Admin-Token": "s3cret"})
        assert resp.status_code == 200


# =============================================================================
# CRON
# =============================================================================

class TestCronEndpoints:

    def test_offer_pathway_recompute(self, client, subscriber, monkeypatch):
        monkeypatch.setattr(config, "RECOMPUTE_DELAY_MS", 0)
        resp = client.post("/cron/offer-pathway")
        assert resp.status_code == 200
        data = resp.json()
        assert data["candidates"] == 1
        assert data["succeeded"] == 1
        assert models.get_offer_recommendation(subscriber["id"]) is not None

    def test_cron_secret(self, client, monkeypatch):
        monkeypatch.setattr(config, "CRON_SECRET", "tick")
        _assert_error(client.post("/cron/offer-pathway"), 401)
        resp = client.post("/cron/offer-pathway", headers={"Authorization": "Bearer tick"})
        assert resp.status_code == 200

    def test_oversized_limit_clamped(self, client, test_db, monkeypatch):
        monkeypatch.setattr(config, "RECOMPUTE_DELAY_MS", 0)
        monkeypatch.setattr(config, "RECOMPUTE_LIMIT", 3)
        for i in range(5):
            models.create_subscriber({"email": f"u{i}@example.com"})
        resp = client.post("/cron/offer-pathway?limit=5000")
        assert resp.status_code == 200
        assert resp.json()["total"] == 3
