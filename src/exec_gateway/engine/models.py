"""Domain models for queued command execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4


class RequestState(str, Enum):
    """Lifecycle states of one submitted request."""

    QUEUED = "queued"
    DISPATCHED = "dispatched"
    RUNNING = "running"
    REJECTED = "rejected"
    COMPLETED = "completed"


class FailureKind(str, Enum):
    """Diagnostic failure causes.

    These only ever reach the logs. Callers see ``success=False`` for all of them.
    """

    SPAWN_FAILURE = "spawn_failure"
    TIMEOUT = "timeout"
    INTERRUPTED_WAIT = "interrupted_wait"
    IO_ERROR = "io_error"
    REJECTED_DISPATCH = "rejected_dispatch"
    INTERNAL_INVARIANT_VIOLATION = "internal_invariant_violation"


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Final outcome of one command execution."""

    success: bool
    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: int | None = None

    @classmethod
    def failed(cls, *, stdout: bytes = b"", stderr: bytes = b"") -> ExecutionResult:
        """Build an unsuccessful result carrying whatever output was captured."""

        return cls(success=False, stdout=stdout, stderr=stderr, exit_code=None)

    def stdout_text(self, encoding: str = "utf-8") -> str:
        return self.stdout.decode(encoding, errors="replace")

    def stderr_text(self, encoding: str = "utf-8") -> str:
        return self.stderr.decode(encoding, errors="replace")


@dataclass(slots=True, eq=False)
class ExecRequest:
    """One submitted command bound to an execution queue.

    Compared by identity: two submissions of the same command are distinct requests.
    ``state`` and ``result`` are written only by the worker executing the request.
    """

    queue_id: str
    command_line: str
    timeout_ms: int = 0
    correlation_token: object = None
    request_id: str = field(default_factory=lambda: uuid4().hex)
    state: RequestState = RequestState.QUEUED
    result: ExecutionResult | None = None
    notified: bool = False

    def __post_init__(self) -> None:
        self.command_line = (self.command_line or "").strip()
        if self.timeout_ms is None:
            self.timeout_ms = 0

    @property
    def is_completed(self) -> bool:
        return self.result is not None

    def complete(self, result: ExecutionResult) -> None:
        """Attach the final result. A request completes exactly once."""

        if self.result is not None:
            raise RuntimeError(f"Request {self.request_id} is already completed.")
        self.result = result
        self.state = RequestState.COMPLETED

    def describe(self) -> str:
        return f"{self.queue_id}#{self.request_id[:8]} [{self.command_line}]"
