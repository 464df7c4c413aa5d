"""
Shared pytest fixtures for the Leadflow test suite.
"""

import os

import pytest

from leadflow.agents.mailer import EmailSender
from leadflow.db import connection
from leadflow.db.init_db import init_db
from leadflow.intent.dispatcher import BackgroundDispatcher
from leadflow.runtime import build_runtime


class RecordingEmailSender(EmailSender):
    """Captures outbound email; optionally fails with a queued list of outcomes."""

    def __init__(self, outcomes=None):
        self.sent = []
        self.outcomes = list(outcomes or [])

    def send(self, to, subject, body):
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is False:
                return False
        self.sent.append({"to": to, "subject": subject, "body": body})
        return True


@pytest.fixture
def test_db(tmp_path):
    """Create a fresh test database with the full schema."""
    db_path = str(tmp_path / "test.db")
    os.environ["LEADFLOW_DB_PATH"] = db_path
    os.environ["LEADFLOW_JOURNAL_MODE"] = "DELETE"

    original = connection.DB_PATH
    connection.DB_PATH = db_path

    init_db(db_path)

    yield db_path

    connection.DB_PATH = original
    os.environ.pop("LEADFLOW_DB_PATH", None)
    os.environ.pop("LEADFLOW_JOURNAL_MODE", None)


@pytest.fixture
def sender():
    return RecordingEmailSender()


@pytest.fixture
def sleeps():
    """Records requested sleep durations instead of sleeping."""
    return []


@pytest.fixture
def runtime(test_db, sender, sleeps):
    """Component container with a recording sender and an inline dispatcher."""
    rt = build_runtime(
        sender=sender,
        dispatcher=BackgroundDispatcher(inline=True),
        admin_email="ops@example.com",
        sleep=sleeps.append,
        retry_max=3,
        retry_base_delay_ms=1000,
    )
    yield rt
    rt.shutdown()


@pytest.fixture
def sample_subscriber(test_db):
    """Create a sample subscriber for testing."""
    from leadflow.db import models
    return models.create_subscriber({
        "email": "jane@example.com",
        "name": "Jane Doe",
    })
