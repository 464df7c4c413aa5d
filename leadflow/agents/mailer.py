"""
Outbound email capability: send(to, subject, body) -> bool.

ResendEmailSender talks to the HTTP provider; LogOnlyEmailSender is used when
no API key is configured so local runs never try to reach the network.
Network-class failures are raised as TransientError so callers can wrap a send
in retry_with_backoff; provider rejections return False.
"""

import logging

import requests

from leadflow import config
from leadflow.exceptions import TransientError

logger = logging.getLogger("leadflow.mailer")


class EmailSender:
    """Interface for the email capability."""

    def send(self, to: str, subject: str, body: str) -> bool:
        raise NotImplementedError


class LogOnlyEmailSender(EmailSender):
    """Logs the message instead of delivering it."""

    def send(self, to: str, subject: str, body: str) -> bool:
        logger.info("Email (log-only) to=%s subject=%s", to, subject)
        return True


class ResendEmailSender(EmailSender):
    """Delivers through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str = None, api_url: str = None,
                 timeout: int = None, session: requests.Session = None):
        self.api_key = api_key
        self.from_address = from_address or config.EMAIL_FROM
        self.api_url = api_url or config.RESEND_API_URL
        self.timeout = timeout or config.EMAIL_TIMEOUT
        self.session = session or requests.Session()

    def send(self, to: str, subject: str, body: str) -> bool:
        try:
            resp = self.session.post(
                self.api_url,
                json={"from": self.from_address, "to": [to], "subject": subject, "html": body},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise TransientError(f"Email provider unreachable: {e}") from e

        if resp.status_code >= 500:
            raise TransientError(f"Email provider unavailable: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            logger.error("Email provider rejected message to %s: HTTP %s %s",
                         to, resp.status_code, resp.text[:200])
            return False
        return True


def build_email_sender() -> EmailSender:
    """Sender for the configured provider."""
    if config.RESEND_API_KEY:
        return ResendEmailSender(config.RESEND_API_KEY)
    return LogOnlyEmailSender()
