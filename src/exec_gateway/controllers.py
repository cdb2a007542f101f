"""CLI controller for running commands through the execution engine."""

from __future__ import annotations

import logging
import queue
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from exec_gateway.config import Settings
from exec_gateway.engine import ExecEngine, ExecutionResult

logger = logging.getLogger(__name__)

_COMPLETION_POLL_SECONDS = 0.2


@dataclass(slots=True)
class CommandSpec:
    """One ``QUEUE=COMMAND`` argument."""

    queue_id: str
    command: str


@dataclass(slots=True)
class ExecRunCommand:
    """CLI input for the run command."""

    specs: tuple[CommandSpec, ...]
    working_dir: Path | None = None
    timeout_ms: int | None = None
    shutdown_timeout_ms: int | None = None


@dataclass(slots=True)
class ExecRunResult:
    """Run report to render in CLI."""

    lines: list[str]
    success: bool


def parse_command_spec(raw: str) -> CommandSpec:
    """Parse ``QUEUE=COMMAND``; both parts must be non-empty."""

    queue_id, separator, command = raw.partition("=")
    queue_id = queue_id.strip()
    command = command.strip()
    if not separator or not queue_id or not command:
        raise ValueError(f"Expected QUEUE=COMMAND, got {raw!r}.")
    return CommandSpec(queue_id=queue_id, command=command)


class ExecCliController:
    """Coordinates engine lifecycle for CLI invocations."""

    def run_commands(self, command: ExecRunCommand) -> ExecRunResult:
        """Submit all specs, wait for every completion, report in arrival order."""

        settings = Settings.from_env(working_dir=command.working_dir)
        specs_by_token: dict[object, CommandSpec] = dict(enumerate(command.specs))
        completions: queue.Queue[tuple[object, ExecutionResult]] = queue.Queue()
        stop_requested = threading.Event()

        def _on_completed(correlation_token: object, result: ExecutionResult) -> None:
            completions.put((correlation_token, result))

        engine = ExecEngine.from_settings(
            settings,
            listener=_on_completed,
            interrupt_requested=stop_requested.is_set,
        )
        lines: list[str] = []
        success = True
        stopping = False
        with _signal_handlers(stop_requested):
            for token, spec in specs_by_token.items():
                engine.submit(
                    spec.queue_id,
                    spec.command,
                    timeout_ms=command.timeout_ms,
                    correlation_token=token,
                )
            remaining = len(specs_by_token)
            while remaining:
                if stop_requested.is_set() and not stopping:
                    # Queued commands complete as rejected instead of starting.
                    stopping = True
                    engine.shutdown(wait_for_completion=False)
                try:
                    token, result = completions.get(timeout=_COMPLETION_POLL_SECONDS)
                except queue.Empty:
                    continue
                remaining -= 1
                success = success and result.success
                lines.extend(_format_result(specs_by_token[token], result))

        shutdown_timeout_ms = (
            command.shutdown_timeout_ms
            if command.shutdown_timeout_ms is not None
            else settings.engine.shutdown_timeout_ms
        )
        engine.shutdown(wait_for_completion=True, timeout_ms=shutdown_timeout_ms)
        if stop_requested.is_set():
            lines.append("Interrupted: running commands were killed.")
        return ExecRunResult(lines=lines, success=success)


def _format_result(spec: CommandSpec, result: ExecutionResult) -> list[str]:
    status = "ok" if result.success else "failed"
    exit_code = "-" if result.exit_code is None else str(result.exit_code)
    lines = [
        f"[{spec.queue_id}] {status} exit={exit_code} "
        f"stdout={len(result.stdout)}B stderr={len(result.stderr)}B :: {spec.command}",
    ]
    lines.extend(f"  | {line}" for line in result.stdout_text().splitlines())
    lines.extend(f"  ! {line}" for line in result.stderr_text().splitlines())
    return lines


@contextmanager
def _signal_handlers(stop_requested: threading.Event) -> Iterator[None]:
    if not hasattr(signal, "SIGINT"):
        yield
        return

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.warning("Received %s; killing running commands.", name)
        stop_requested.set()

    try:
        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        yield
        return

    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)
