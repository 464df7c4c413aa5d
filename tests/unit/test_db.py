"""
Unit tests for schema setup and data-access helpers.
"""

import pytest

from leadflow.db import connection, models
from leadflow.db.init_db import init_db


class TestSchema:

    def test_tables_created(self, test_db):
        conn = connection.get_db()
        names = {r[0] for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'").fetchall()}
        conn.close()
        for table in ("subscribers", "signals", "workflow_queue", "activity_log",
                      "offer_recommendations", "email_events", "email_queue",
                      "pipeline_errors"):
            assert table in names

    def test_init_is_idempotent(self, test_db):
        sub = models.create_subscriber({"email": "keep@example.com"})
        init_db(test_db)
        init_db(test_db)
        assert models.get_subscriber(sub["id"])["email"] == "keep@example.com"


class TestSubscribers:

    def test_upsert_by_email(self, test_db):
        a = models.create_subscriber({"email": "Jane@Example.com", "name": "Jane"})
        b = models.create_subscriber({"email": "jane@example.com", "name": "Other"})
        assert a["id"] == b["id"]
        assert b["name"] == "Jane"
        assert a["email"] == "jane@example.com"
        assert a["intent_score"] == 0
        assert a["journey_position"] == "lead"
        assert a["lead_intelligence"] == {}

    @pytest.mark.parametrize("start,target,expected", [
        ("lead", "nurture", "nurture"),
        ("nurture", "hot", "hot"),
        ("hot", "warm", "hot"),
        ("customer", "nurture", "customer"),
        ("warm", "warm", "warm"),
    ])
    def test_promote_journey_forward_only(self, test_db, start, target, expected):
        sub = models.create_subscriber({"email": "p@example.com", "journey_position": start})
        conn = connection.get_db()
        models.promote_journey(conn, sub["id"], target)
        conn.commit()
        conn.close()
        assert models.get_subscriber(sub["id"])["journey_position"] == expected

    def test_list_subscribers_by_score(self, test_db):
        models.create_subscriber({"email": "low@example.com", "intent_score": 1})
        models.create_subscriber({"email": "high@example.com", "intent_score": 50})
        listed = models.list_subscribers()
        assert [s["email"] for s in listed] == ["high@example.com", "low@example.com"]


class TestWorkflowTransitions:

    def test_conditional_transition(self, sample_subscriber):
        item = models.create_workflow_item(sample_subscriber["id"], "welcome", {})
        assert models.transition_workflow_item(item["id"], "approved", ("pending",)) is True
        assert models.transition_workflow_item(item["id"], "approved", ("pending",)) is False
        assert models.transition_workflow_item(item["id"], "processed", ("approved",),
                                               processed=True) is True
        # processed items never move again
        assert models.transition_workflow_item(item["id"], "rejected",
                                               ("pending", "approved", "processed")) is False


class TestEmailQueue:

    def test_dedupe_key(self, sample_subscriber):
        data = {"subscriber_id": sample_subscriber["id"], "email": "jane@example.com",
                "subject": "s", "html": "h", "dedupe_key": "workflow:wf_1"}
        first = models.enqueue_email(data)
        second = models.enqueue_email(data)
        assert first["duplicate"] is False
        assert second["duplicate"] is True
        assert first["id"] == second["id"]

    def test_without_dedupe_key_always_inserts(self, sample_subscriber):
        data = {"subscriber_id": sample_subscriber["id"], "email": "jane@example.com",
                "subject": "s", "html": "h"}
        models.enqueue_email(data)
        models.enqueue_email(data)
        assert len(models.list_emails()) == 2

    def test_email_events_count(self, sample_subscriber):
        sid = sample_subscriber["id"]
        models.log_email_event(sid, "open")
        models.log_email_event(sid, "open")
        models.log_email_event(sid, "click")
        assert models.count_email_events(sid, "open") == 2
        assert models.count_email_events(sid, "click") == 1
