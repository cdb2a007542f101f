"""Helpers shared by engine tests."""

from __future__ import annotations

import sys
import threading
import time
from collections import defaultdict

from exec_gateway.engine import ExecutionResult

_PROBE_COMMAND = f"{sys.executable} -m exec_gateway.engine.probe_command"


class ResultCollector:
    """Completion listener recording ``(token, result)`` pairs in arrival order."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self.items: list[tuple[object, ExecutionResult]] = []

    def __call__(self, correlation_token: object, result: ExecutionResult) -> None:
        with self._cond:
            self.items.append((correlation_token, result))
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float = 20.0) -> list[tuple[object, ExecutionResult]]:
        with self._cond:
            if not self._cond.wait_for(lambda: len(self.items) >= count, timeout=timeout):
                raise AssertionError(f"Expected {count} completions, got {len(self.items)}.")
            return list(self.items)

    def tokens(self) -> list[object]:
        with self._cond:
            return [token for token, _ in self.items]


class FakeRunner:
    """In-process runner: commands look like ``<queue>:<label>``.

    Tracks how many commands of each queue run at the same time. A label of
    ``boom`` raises; a label registered in ``gates`` blocks until that event is set.
    """

    def __init__(self, delay: float = 0.01) -> None:
        self.delay = delay
        self.gates: dict[str, threading.Event] = {}
        self.calls: list[str] = []
        self.max_running: dict[str, int] = defaultdict(int)
        self._running: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def run(self, command: str, timeout_ms: int) -> ExecutionResult:
        queue_id, _, label = command.partition(":")
        with self._lock:
            self.calls.append(command)
            self._running[queue_id] += 1
            self.max_running[queue_id] = max(self.max_running[queue_id], self._running[queue_id])
        try:
            gate = self.gates.get(label)
            if gate is not None:
                gate.wait(timeout=10)
            time.sleep(self.delay)
            if label == "boom":
                raise RuntimeError("runner exploded")
            return ExecutionResult(success=True, stdout=label.encode(), exit_code=0)
        finally:
            with self._lock:
                self._running[queue_id] -= 1


def probe(*args: str) -> str:
    """Build a probe command line; arguments must not contain spaces."""

    return " ".join([_PROBE_COMMAND, *args])
