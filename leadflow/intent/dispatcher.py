"""
Background dispatcher for best-effort side effects.

Work submitted here runs off the request path on a small thread pool. Its
failures are captured through the pipeline error channel and never reach the
caller that submitted it. inline=True runs tasks synchronously, which keeps
tests deterministic while preserving the same error isolation.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable

from leadflow import config
from leadflow.agents.error_handler import safe_execute

logger = logging.getLogger("leadflow.dispatcher")


class BackgroundDispatcher:
    """Fire-and-forget task runner with a dedicated error channel."""

    def __init__(self, max_workers: int = None, inline: bool = False):
        self.inline = inline
        self._executor = None if inline else ThreadPoolExecutor(
            max_workers=max_workers or config.NOTIFY_MAX_WORKERS,
            thread_name_prefix="leadflow-bg",
        )
        self._pending = set()
        self._lock = threading.Lock()

    def submit(self, fn: Callable, *args, phase: str = "background",
               subscriber_id: str = None, queue_id: str = None, **kwargs):
        """Schedule fn(*args, **kwargs). Never raises."""

        def task():
            return safe_execute(fn, args=args, kwargs=kwargs, phase=phase,
                                subscriber_id=subscriber_id, queue_id=queue_id,
                                severity="error")

        if self.inline:
            task()
            return None

        try:
            future = self._executor.submit(task)
        except RuntimeError as e:
            # executor already shut down
            logger.error("Background task %s dropped: %s", phase, e, extra={"phase": phase})
            return None

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: Future):
        with self._lock:
            self._pending.discard(future)

    def wait(self, timeout: float = None) -> bool:
        """Block until submitted work finishes; True when nothing is left pending."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True):
        if self._executor:
            self._executor.shutdown(wait=wait_for_pending)
