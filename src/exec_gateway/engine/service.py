"""Execution engine wiring pool, runner, registry and notifier together."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from types import TracebackType

from exec_gateway.config import Settings
from exec_gateway.engine.models import ExecRequest
from exec_gateway.engine.notifier import CompletionListener, CompletionNotifier
from exec_gateway.engine.pool import WorkerPool
from exec_gateway.engine.registry import QueueRegistry
from exec_gateway.engine.runner import CommandRunner, ProcessRunner

logger = logging.getLogger(__name__)


class ExecEngine:
    """Run submitted commands serially per queue and concurrently across queues.

    The engine is an owned object: construct it when the host starts and call
    ``shutdown`` (or leave the ``with`` block) when it stops.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        working_dir: Path | str | None = None,
        listener: CompletionListener | None = None,
        runner: CommandRunner | None = None,
        pool: WorkerPool | None = None,
        default_timeout_ms: int = 0,
        interrupt_requested: Callable[[], bool] | None = None,
        worker_keep_alive_seconds: float = 60.0,
        wait_poll_seconds: float = 0.1,
        drain_grace_seconds: float = 5.0,
    ) -> None:
        self.pool = pool or WorkerPool(keep_alive_seconds=worker_keep_alive_seconds)
        self.runner = runner or ProcessRunner(
            pool=self.pool,
            working_dir=working_dir,
            interrupt_requested=interrupt_requested,
            wait_poll_seconds=wait_poll_seconds,
            drain_grace_seconds=drain_grace_seconds,
        )
        self.default_timeout_ms = default_timeout_ms
        self._notifier = CompletionNotifier(listener)
        self._registry = QueueRegistry(pool=self.pool, runner=self.runner, notifier=self._notifier)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        listener: CompletionListener | None = None,
        interrupt_requested: Callable[[], bool] | None = None,
    ) -> ExecEngine:
        engine_settings = settings.engine
        return cls(
            working_dir=engine_settings.working_dir,
            listener=listener,
            default_timeout_ms=engine_settings.default_timeout_ms,
            interrupt_requested=interrupt_requested,
            worker_keep_alive_seconds=engine_settings.worker_keep_alive_seconds,
            wait_poll_seconds=engine_settings.wait_poll_seconds,
            drain_grace_seconds=engine_settings.drain_grace_seconds,
        )

    @property
    def working_dir(self) -> Path | None:
        return getattr(self.runner, "working_dir", None)

    def set_listener(self, listener: CompletionListener | None) -> None:
        self._notifier.set_listener(listener)

    def submit(
        self,
        queue_id: str,
        command_text: str,
        timeout_ms: int | None = None,
        correlation_token: object = None,
    ) -> None:
        """Queue a command; returns immediately, the result arrives via the listener."""

        if not isinstance(queue_id, str) or not queue_id.strip():
            raise ValueError("Queue id must be a non-empty string.")
        effective_timeout = self.default_timeout_ms if timeout_ms is None else timeout_ms
        self._registry.submit(
            ExecRequest(
                queue_id=queue_id,
                command_line=command_text,
                timeout_ms=effective_timeout,
                correlation_token=correlation_token,
            ),
        )

    def shutdown(self, wait_for_completion: bool = True, timeout_ms: int | None = None) -> bool:
        """Stop dispatching new commands; optionally wait for dispatched ones."""

        finished = self._registry.shutdown(
            wait_for_completion=wait_for_completion,
            timeout_ms=timeout_ms,
        )
        if wait_for_completion and not finished:
            logger.warning("Engine shutdown timed out with commands still running.")
        return finished

    def queue_ids(self) -> list[str]:
        return self._registry.queue_ids()

    def pending_count(self, queue_id: str) -> int:
        return self._registry.pending_count(queue_id)

    def __enter__(self) -> ExecEngine:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.shutdown(wait_for_completion=True)
