"""
Unit tests for the email sender capability.
"""

import pytest
import requests

from leadflow.agents.mailer import LogOnlyEmailSender, ResendEmailSender, build_email_sender
from leadflow.exceptions import TransientError


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


class TestResendEmailSender:

    def _sender(self, session):
        return ResendEmailSender("key_123", from_address="from@example.com",
                                 api_url="https://mail.example.com/emails", timeout=5,
                                 session=session)

    def test_success(self):
        session = FakeSession(FakeResponse(200))
        assert self._sender(session).send("to@example.com", "Hi", "<p>x</p>") is True
        call = session.calls[0]
        assert call["json"]["to"] == ["to@example.com"]
        assert call["json"]["from"] == "from@example.com"
        assert call["headers"]["Authorization"] == "Bearer key_123"
        assert call["timeout"] == 5

    def test_client_error_returns_false(self):
        session = FakeSession(FakeResponse(422, "invalid to"))
        assert self._sender(session).send("bad", "Hi", "x") is False

    def test_server_error_is_transient(self):
        session = FakeSession(FakeResponse(503))
        with pytest.raises(TransientError):
            self._sender(session).send("to@example.com", "Hi", "x")

    @pytest.mark.parametrize("error", [
        requests.exceptions.Timeout("slow"),
        requests.exceptions.ConnectionError("refused"),
    ])
    def test_network_error_is_transient(self, error):
        with pytest.raises(TransientError):
            self._sender(FakeSession(error=error)).send("to@example.com", "Hi", "x")


class TestBuildEmailSender:

    def test_log_only_without_key(self, monkeypatch):
        from leadflow import config
        monkeypatch.setattr(config, "RESEND_API_KEY", "")
        sender = build_email_sender()
        assert isinstance(sender, LogOnlyEmailSender)
        assert sender.send("a@example.com", "s", "b") is True

    def test_resend_with_key(self, monkeypatch):
        from leadflow import config
        monkeypatch.setattr(config, "RESEND_API_KEY", "key_abc")
        assert isinstance(build_email_sender(), ResendEmailSender)
