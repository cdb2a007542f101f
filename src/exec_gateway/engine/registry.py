"""Per-queue serialization of command requests.

Every queue id maps to a FIFO of pending requests. The head of a non-empty
queue is the one request of that queue in flight; the next request is
dispatched only after the head has been popped and its completion delivered,
which keeps notifications in submission order. The registry lock guards only
the bookkeeping: spawning, waiting, pool hand-off and listener delivery all
happen outside of it, so a slow command or listener never stalls other queues.
"""

from __future__ import annotations

import logging
import threading
from collections import deque

from exec_gateway.engine.models import ExecRequest, ExecutionResult, FailureKind, RequestState
from exec_gateway.engine.notifier import CompletionNotifier
from exec_gateway.engine.pool import PoolRejectedError, WorkerPool
from exec_gateway.engine.runner import CommandRunner

logger = logging.getLogger(__name__)


class QueueRegistry:
    """Map of queue id to pending requests with single in-flight dispatch."""

    def __init__(
        self,
        *,
        pool: WorkerPool,
        runner: CommandRunner,
        notifier: CompletionNotifier,
    ) -> None:
        self._pool = pool
        self._runner = runner
        self._notifier = notifier
        self._lock = threading.Lock()
        self._queues: dict[str, deque[ExecRequest]] = {}

    def submit(self, request: ExecRequest) -> None:
        """Append ``request`` to its queue; dispatch it if the queue was idle."""

        with self._lock:
            queue = self._queues.get(request.queue_id)
            if queue is None:
                queue = deque()
                self._queues[request.queue_id] = queue
            queue.append(request)
            dispatch_now = len(queue) == 1

        logger.debug("Queued %s (dispatch_now=%s)", request.describe(), dispatch_now)
        if dispatch_now:
            self.dispatch(request)

    def dispatch(self, request: ExecRequest) -> None:
        """Hand the queue head to the pool; rejected requests complete as failures."""

        pending: ExecRequest | None = request
        while pending is not None:
            pending.state = RequestState.DISPATCHED
            try:
                self._pool.submit(self._execute, pending)
            except PoolRejectedError as error:
                logger.warning(
                    "Dispatch of %s rejected (%s): %s",
                    pending.describe(),
                    FailureKind.REJECTED_DISPATCH.value,
                    error,
                )
                pending.state = RequestState.REJECTED
                pending.complete(ExecutionResult.failed())
                pending = self._finish(pending)
            else:
                return

    def on_request_finished(self, request: ExecRequest, result: ExecutionResult) -> None:
        """Record ``result``, release the queue head and start the next request."""

        request.complete(result)
        next_request = self._finish(request)
        if next_request is not None:
            self.dispatch(next_request)

    def shutdown(self, *, wait_for_completion: bool = True, timeout_ms: int | None = None) -> bool:
        """Block new dispatch; running processes are left to finish on their own."""

        timeout = None if timeout_ms is None or timeout_ms <= 0 else timeout_ms / 1000
        return self._pool.shutdown(wait=wait_for_completion, timeout=timeout)

    def queue_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._queues)

    def pending_count(self, queue_id: str) -> int:
        with self._lock:
            queue = self._queues.get(queue_id)
            return len(queue) if queue is not None else 0

    def _execute(self, request: ExecRequest) -> None:
        request.state = RequestState.RUNNING
        try:
            result = self._runner.run(request.command_line, request.timeout_ms)
        except Exception:
            logger.exception(
                "Command runner failed for %s (%s)",
                request.describe(),
                FailureKind.IO_ERROR.value,
            )
            result = ExecutionResult.failed()
        self.on_request_finished(request, result)

    def _finish(self, request: ExecRequest) -> ExecRequest | None:
        with self._lock:
            next_request = self._pop_head(request)
        self._notifier.deliver(request)
        return next_request

    def _pop_head(self, request: ExecRequest) -> ExecRequest | None:
        queue = self._queues.get(request.queue_id)
        if not queue:
            logger.critical(
                "Internal invariant violated (%s): queue %r holds no entry for %s",
                FailureKind.INTERNAL_INVARIANT_VIOLATION.value,
                request.queue_id,
                request.describe(),
            )
            return None

        if queue[0] is not request:
            # The real head is still in flight and will dispatch its successor.
            logger.critical(
                "Internal invariant violated (%s): %s finished but %s is the head of queue %r",
                FailureKind.INTERNAL_INVARIANT_VIOLATION.value,
                request.describe(),
                queue[0].describe(),
                request.queue_id,
            )
            if request in queue:
                queue.remove(request)
            return None

        queue.popleft()
        if not queue:
            del self._queues[request.queue_id]
            return None
        return queue[0]
