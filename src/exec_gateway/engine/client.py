"""Queue-scoped client helpers on top of :class:`ExecEngine`."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from uuid import uuid4

from exec_gateway.engine.models import ExecutionResult
from exec_gateway.engine.notifier import CompletionListener
from exec_gateway.engine.service import ExecEngine

logger = logging.getLogger(__name__)

OutputConsumer = Callable[[ExecutionResult], None]


class CompletionRouter:
    """Engine listener routing each completion to the consumer of its token."""

    def __init__(self, fallback: CompletionListener | None = None) -> None:
        self._lock = threading.Lock()
        self._consumers: dict[object, OutputConsumer] = {}
        self.fallback = fallback

    def register(self, token: object, consumer: OutputConsumer) -> None:
        with self._lock:
            if token in self._consumers:
                raise ValueError(f"Consumer already registered for token {token!r}.")
            self._consumers[token] = consumer

    def discard(self, tokens: list[object]) -> None:
        with self._lock:
            for token in tokens:
                self._consumers.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._consumers)

    def __call__(self, correlation_token: object, result: ExecutionResult) -> None:
        with self._lock:
            consumer = self._consumers.pop(correlation_token, None)
        if consumer is not None:
            consumer(result)
            return
        if self.fallback is not None:
            self.fallback(correlation_token, result)
            return
        logger.debug("No consumer for completion token %r", correlation_token)


class ExecQueue:
    """Submit commands to one named queue and receive results per command."""

    def __init__(
        self,
        queue_id: str,
        engine: ExecEngine,
        router: CompletionRouter,
        *,
        default_timeout_ms: int | None = None,
    ) -> None:
        if not queue_id.strip():
            raise ValueError("Queue id must be a non-empty string.")
        self.queue_id = queue_id
        self.default_timeout_ms = default_timeout_ms
        self._engine = engine
        self._router = router
        self._lock = threading.Lock()
        self._tokens: set[str] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def execute(
        self,
        command: str,
        consumer: OutputConsumer | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> str:
        """Submit ``command``; ``consumer`` receives its result. Returns the token."""

        token = uuid4().hex
        with self._lock:
            if self._closed:
                raise RuntimeError("The queue is closed.")
            if consumer is not None:
                self._tokens.add(token)
                self._router.register(token, self._wrap(token, consumer))
        self._engine.submit(
            self.queue_id,
            command,
            timeout_ms=self.default_timeout_ms if timeout_ms is None else timeout_ms,
            correlation_token=token,
        )
        return token

    def close(self) -> None:
        """Stop accepting commands and drop consumers of unfinished ones."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            tokens: list[object] = list(self._tokens)
            self._tokens.clear()
        self._router.discard(tokens)

    def _wrap(self, token: str, consumer: OutputConsumer) -> OutputConsumer:
        def _deliver(result: ExecutionResult) -> None:
            with self._lock:
                self._tokens.discard(token)
            consumer(result)

        return _deliver
