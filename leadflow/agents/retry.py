"""
Retry policy for calls that cross the network.

Only transient failures (timeouts, connection resets, DNS lookups) are retried.
Anything else is re-raised on the first attempt so validation and programming
errors surface immediately.

Usage:
    from leadflow.agents.retry import retry_with_backoff

    result = retry_with_backoff(lambda: sender.send(to, subject, body),
                                max_retries=3, base_delay_ms=1000)
"""

import errno
import logging
import socket
import time
from typing import Callable, TypeVar

import requests

from leadflow.exceptions import LeadflowError, TransientError

logger = logging.getLogger("leadflow.agents.retry")

T = TypeVar("T")

RECOVERABLE_TYPES = (
    TransientError,
    TimeoutError,
    ConnectionError,
    socket.timeout,
    socket.gaierror,
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
)

RECOVERABLE_CODES = {
    "ETIMEDOUT", "ECONNRESET", "ECONNREFUSED", "ECONNABORTED",
    "ENOTFOUND", "EAI_AGAIN", "EPIPE", "ESOCKETTIMEDOUT",
}

RECOVERABLE_ERRNOS = {
    errno.ETIMEDOUT, errno.ECONNRESET, errno.ECONNREFUSED,
    errno.ECONNABORTED, errno.EPIPE,
}

RECOVERABLE_MARKERS = (
    "timeout", "timed out", "connection reset", "connection refused",
    "connection aborted", "econnreset", "etimedout", "enotfound", "eai_again",
    "getaddrinfo", "name or service not known", "temporary failure in name resolution",
    "dns lookup", "socket hang up", "network is unreachable",
)


def is_recoverable(error: BaseException) -> bool:
    """True when the error looks like a transient network condition."""
    if error is None:
        return False
    # Core errors echo caller input, so their messages are never classified.
    if isinstance(error, LeadflowError) and not isinstance(error, TransientError):
        return False
    if isinstance(error, RECOVERABLE_TYPES):
        return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.upper() in RECOVERABLE_CODES:
        return True
    if isinstance(error, OSError) and error.errno in RECOVERABLE_ERRNOS:
        return True

    message = str(error).lower()
    return any(marker in message for marker in RECOVERABLE_MARKERS)


def backoff_delay_ms(attempt: int, base_delay_ms: int) -> int:
    """Delay before the retry that follows failed attempt `attempt` (0-indexed)."""
    return base_delay_ms * (2 ** attempt)


def retry_with_backoff(fn: Callable[[], T], max_retries: int = 3, base_delay_ms: int = 1000,
                       sleep: Callable[[float], None] = time.sleep,
                       label: str = None) -> T:
    """Call fn, retrying recoverable failures with exponential backoff.

    Makes at most max_retries + 1 calls. A non-recoverable error is raised
    immediately; when retries run out the last error is raised.

    Args:
        fn: Zero-argument callable.
        max_retries: Retries after the first attempt.
        base_delay_ms: Delay before the first retry; doubles each time.
        sleep: Sleep function taking seconds (injectable for tests).
        label: Name used in log lines.
    """
    label = label or getattr(fn, "__name__", "call")
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if not is_recoverable(e):
                raise
            if attempt >= max_retries:
                logger.error("%s failed after %d attempt(s): %s", label, attempt + 1, e,
                             extra={"attempt": attempt + 1})
                raise
            delay = backoff_delay_ms(attempt, base_delay_ms)
            logger.warning("%s hit recoverable error (attempt %d/%d), retrying in %dms: %s",
                           label, attempt + 1, max_retries + 1, delay, e,
                           extra={"attempt": attempt + 1})
            sleep(delay / 1000.0)
            attempt += 1
