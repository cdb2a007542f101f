"""Single-listener delivery of completed execution results."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from exec_gateway.engine.models import ExecRequest, ExecutionResult

logger = logging.getLogger(__name__)


class CompletionListener(Protocol):
    """Receives the final result of every submitted request."""

    def __call__(self, correlation_token: object, result: ExecutionResult) -> None:
        """Handle one completed request."""


class CompletionNotifier:
    """Deliver each completed request to the currently registered listener."""

    def __init__(self, listener: CompletionListener | None = None) -> None:
        self._lock = threading.Lock()
        self._listener = listener

    @property
    def listener(self) -> CompletionListener | None:
        with self._lock:
            return self._listener

    def set_listener(self, listener: CompletionListener | None) -> None:
        with self._lock:
            self._listener = listener

    def deliver(self, request: ExecRequest) -> None:
        """Notify the listener about ``request``; must be called without registry locks held."""

        if request.result is None:
            logger.error("Request %s delivered without a result.", request.describe())
            return
        if request.notified:
            logger.error("Duplicate completion of request %s dropped.", request.describe())
            return
        request.notified = True

        with self._lock:
            listener = self._listener
        if listener is None:
            logger.debug("No listener registered; result of %s dropped.", request.describe())
            return

        try:
            listener(request.correlation_token, request.result)
        except Exception:
            logger.exception("Completion listener failed for request %s", request.describe())
