"""Subprocess-based runner executing one command per OS process."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from exec_gateway.engine.drain import StreamDrain
from exec_gateway.engine.models import ExecutionResult, FailureKind
from exec_gateway.engine.pool import PoolRejectedError, WorkerPool

logger = logging.getLogger(__name__)

_DEFAULT_WAIT_POLL_SECONDS = 0.1
_DEFAULT_DRAIN_GRACE_SECONDS = 5.0
_KILL_WAIT_SECONDS = 5.0


class CommandRunner(Protocol):
    """Capability that runs one command and returns its captured outcome."""

    def run(self, command: str, timeout_ms: int) -> ExecutionResult:
        """Run ``command``; never raise for execution failures."""


def resolve_working_dir(path: Path | str | None) -> Path:
    """Return ``path`` if it is an existing directory, else the current directory."""

    if path is not None:
        candidate = Path(path)
        if not candidate.exists():
            logger.error("The execution directory %s does not exist.", candidate.absolute())
        elif not candidate.is_dir():
            logger.error("The execution directory %s is not a directory.", candidate.absolute())
        else:
            return candidate.absolute()
    return Path.cwd()


def build_run_args(command: str, *, os_name: str | None = None) -> str | list[str]:
    """Turn a command string into Popen arguments.

    Windows wraps the whole string into one ``cmd.exe /c`` invocation so shell
    built-ins work. Elsewhere the string is split on whitespace; quoted arguments
    containing spaces are not supported.
    """

    stripped = command.strip()
    if (os_name or os.name) == "nt":
        return f"cmd.exe /c {stripped}" if stripped else ""
    return stripped.split()


class ProcessRunner:
    """Spawn a process, drain both output streams, enforce the timeout."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        pool: WorkerPool,
        working_dir: Path | str | None = None,
        os_name: str | None = None,
        interrupt_requested: Callable[[], bool] | None = None,
        wait_poll_seconds: float = _DEFAULT_WAIT_POLL_SECONDS,
        drain_grace_seconds: float = _DEFAULT_DRAIN_GRACE_SECONDS,
    ) -> None:
        self.pool = pool
        self.working_dir = resolve_working_dir(working_dir)
        self.os_name = os_name or os.name
        self.interrupt_requested = interrupt_requested
        self.wait_poll_seconds = wait_poll_seconds
        self.drain_grace_seconds = drain_grace_seconds

    def run(self, command: str, timeout_ms: int) -> ExecutionResult:
        run_args = build_run_args(command, os_name=self.os_name)
        if not run_args:
            logger.error("Refusing to run an empty command.")
            return ExecutionResult.failed()

        start_monotonic = time.monotonic()
        try:
            process = subprocess.Popen(  # noqa: S603
                run_args,
                cwd=self.working_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError) as error:
            logger.error(
                "Failed system command [%s] (%s): %s",
                command,
                FailureKind.SPAWN_FAILURE.value,
                error,
            )
            return ExecutionResult.failed()

        drains = [
            StreamDrain(process.stdout, name="stdout"),
            StreamDrain(process.stderr, name="stderr"),
        ]
        started: list[StreamDrain] = []
        failure: FailureKind | None = None
        try:
            for drain in drains:
                self.pool.submit(drain.run, child=True)
                started.append(drain)
            failure = self._wait(process, command=command, timeout_ms=timeout_ms)
        except PoolRejectedError as error:
            logger.error("Cannot drain output of [%s]: %s", command, error)
            failure = FailureKind.IO_ERROR
        except Exception:
            logger.exception("Failed system command [%s]", command)
            failure = FailureKind.IO_ERROR

        if failure is not None:
            _kill_process(process)

        for drain in drains:
            if drain not in started:
                # The process is gone, so reading inline reaches EOF.
                drain.run()
        outputs = [self._collect(drain, command=command, forced=failure is not None) for drain in drains]

        logger.info(
            "Execution of [%s] terminated in %d ms.",
            command,
            (time.monotonic() - start_monotonic) * 1000,
        )
        if failure is not None:
            return ExecutionResult.failed(stdout=outputs[0], stderr=outputs[1])
        return ExecutionResult(
            success=True,
            stdout=outputs[0],
            stderr=outputs[1],
            exit_code=process.returncode,
        )

    def _wait(
        self,
        process: subprocess.Popen[bytes],
        *,
        command: str,
        timeout_ms: int,
    ) -> FailureKind | None:
        deadline = time.monotonic() + timeout_ms / 1000 if timeout_ms > 0 else None
        if self.interrupt_requested is None:
            try:
                process.wait(timeout=None if deadline is None else timeout_ms / 1000)
            except subprocess.TimeoutExpired:
                logger.warning("Timeout (%d ms) occurred when executing [%s]", timeout_ms, command)
                return FailureKind.TIMEOUT
            return None

        while True:
            if self.interrupt_requested():
                logger.warning("Interrupted while waiting for [%s]", command)
                return FailureKind.INTERRUPTED_WAIT
            wait_seconds = self.wait_poll_seconds
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(
                        "Timeout (%d ms) occurred when executing [%s]",
                        timeout_ms,
                        command,
                    )
                    return FailureKind.TIMEOUT
                wait_seconds = min(wait_seconds, remaining)
            try:
                process.wait(timeout=wait_seconds)
            except subprocess.TimeoutExpired:
                continue
            return None

    def _collect(self, drain: StreamDrain, *, command: str, forced: bool) -> bytes:
        if drain.join(self.drain_grace_seconds if forced else None):
            return drain.getvalue()
        logger.warning(
            "The %s stream of [%s] is still open after kill; using partial output.",
            drain.name,
            command,
        )
        return drain.snapshot()


def _kill_process(process: subprocess.Popen[bytes]) -> None:
    if process.poll() is not None:
        return
    try:
        process.kill()
    except OSError:
        return
    try:
        process.wait(timeout=_KILL_WAIT_SECONDS)
    except subprocess.TimeoutExpired:
        logger.error("Process %s did not exit after kill.", process.pid)
