"""Elastic worker-thread pool shared by all execution queues."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)

_DEFAULT_KEEP_ALIVE_SECONDS = 60.0


class PoolRejectedError(RuntimeError):
    """Raised when the pool no longer accepts new tasks."""


class WorkerPool:
    """Run tasks on daemon threads created on demand.

    A task goes to an idle worker when there is one, otherwise a new thread is
    started, so tasks never wait behind each other. Idle workers exit after
    ``keep_alive_seconds``. After ``shutdown`` new tasks are rejected, except
    child tasks started by an already accepted task (stream drains of a running
    command), which must be able to finish their work.
    """

    def __init__(
        self,
        *,
        keep_alive_seconds: float = _DEFAULT_KEEP_ALIVE_SECONDS,
        name_prefix: str = "exec-worker",
    ) -> None:
        if keep_alive_seconds <= 0:
            raise ValueError("keep_alive_seconds must be > 0.")
        self._keep_alive_seconds = keep_alive_seconds
        self._name_prefix = name_prefix
        self._lock = threading.Lock()
        self._work_available = threading.Condition(self._lock)
        self._all_done = threading.Condition(self._lock)
        self._tasks: deque[tuple[Callable[..., object], tuple[object, ...]]] = deque()
        self._idle_workers = 0
        self._thread_count = 0
        self._unfinished = 0
        self._shutdown = False
        self._thread_ids = itertools.count(1)

    @property
    def is_shutdown(self) -> bool:
        with self._lock:
            return self._shutdown

    @property
    def thread_count(self) -> int:
        with self._lock:
            return self._thread_count

    @property
    def unfinished_tasks(self) -> int:
        with self._lock:
            return self._unfinished

    def submit(self, fn: Callable[..., object], *args: object, child: bool = False) -> None:
        """Schedule ``fn(*args)``; raise ``PoolRejectedError`` after shutdown."""

        with self._lock:
            if self._shutdown and not child:
                raise PoolRejectedError("Worker pool is shut down.")
            self._tasks.append((fn, args))
            self._unfinished += 1
            if self._idle_workers >= len(self._tasks):
                self._work_available.notify()
                return
            self._thread_count += 1
            name = f"{self._name_prefix}-{next(self._thread_ids)}"

        thread = threading.Thread(target=self._worker_loop, name=name, daemon=True)
        try:
            thread.start()
        except RuntimeError:
            with self._lock:
                self._thread_count -= 1
                self._tasks.remove((fn, args))
                self._unfinished -= 1
                self._all_done.notify_all()
            raise PoolRejectedError("Cannot start a worker thread.") from None

    def shutdown(self, *, wait: bool = True, timeout: float | None = None) -> bool:
        """Stop accepting tasks; optionally wait for accepted ones to finish.

        Returns ``True`` when no accepted task is left unfinished.
        """

        with self._lock:
            self._shutdown = True
            self._work_available.notify_all()
            if not wait:
                return self._unfinished == 0
            return self._all_done.wait_for(lambda: self._unfinished == 0, timeout=timeout)

    def _worker_loop(self) -> None:
        while True:
            task = self._next_task()
            if task is None:
                return
            fn, args = task
            try:
                fn(*args)
            except Exception:
                logger.exception("Worker task %r failed", fn)
            finally:
                with self._lock:
                    self._unfinished -= 1
                    if self._unfinished == 0:
                        self._all_done.notify_all()

    def _next_task(self) -> tuple[Callable[..., object], tuple[object, ...]] | None:
        with self._lock:
            self._idle_workers += 1
            deadline = time.monotonic() + self._keep_alive_seconds
            try:
                while not self._tasks:
                    if self._shutdown:
                        break
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._work_available.wait(remaining)
            finally:
                self._idle_workers -= 1
            if not self._tasks:
                self._thread_count -= 1
                return None
            return self._tasks.popleft()
