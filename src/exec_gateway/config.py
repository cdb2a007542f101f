"""Runtime configuration for the execution engine and CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(slots=True)
class EngineSettings:
    """Execution engine settings."""

    working_dir: Path | None = None
    default_timeout_ms: int = 0
    worker_keep_alive_seconds: float = 60.0
    wait_poll_seconds: float = 0.1
    drain_grace_seconds: float = 5.0
    shutdown_timeout_ms: int = 3_600_000


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    engine: EngineSettings = field(default_factory=EngineSettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, working_dir: Path | None = None) -> Settings:
        """Load settings from ``EXEC_GATEWAY_*`` environment variables."""

        env_working_dir = os.getenv("EXEC_GATEWAY_WORKING_DIR", "").strip()
        settings = cls(
            engine=EngineSettings(
                working_dir=working_dir or (Path(env_working_dir) if env_working_dir else None),
                default_timeout_ms=_env_int("EXEC_GATEWAY_DEFAULT_TIMEOUT_MS", 0),
                worker_keep_alive_seconds=_env_float(
                    "EXEC_GATEWAY_WORKER_KEEP_ALIVE_SECONDS",
                    60.0,
                ),
                wait_poll_seconds=_env_float("EXEC_GATEWAY_WAIT_POLL_SECONDS", 0.1),
                drain_grace_seconds=_env_float("EXEC_GATEWAY_DRAIN_GRACE_SECONDS", 5.0),
                shutdown_timeout_ms=_env_int("EXEC_GATEWAY_SHUTDOWN_TIMEOUT_MS", 3_600_000),
            ),
            log_level=os.getenv("EXEC_GATEWAY_LOG_LEVEL", "WARNING").strip().upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        engine = self.engine
        if engine.default_timeout_ms < 0:
            raise ValueError("EXEC_GATEWAY_DEFAULT_TIMEOUT_MS must be >= 0.")
        if engine.worker_keep_alive_seconds <= 0:
            raise ValueError("EXEC_GATEWAY_WORKER_KEEP_ALIVE_SECONDS must be > 0.")
        if engine.wait_poll_seconds <= 0:
            raise ValueError("EXEC_GATEWAY_WAIT_POLL_SECONDS must be > 0.")
        if engine.drain_grace_seconds <= 0:
            raise ValueError("EXEC_GATEWAY_DRAIN_GRACE_SECONDS must be > 0.")
        if engine.shutdown_timeout_ms < 0:
            raise ValueError("EXEC_GATEWAY_SHUTDOWN_TIMEOUT_MS must be >= 0.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid EXEC_GATEWAY_LOG_LEVEL: {self.log_level!r}. "
                f"Expected one of {', '.join(_LOG_LEVELS)}.",
            )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {raw!r}") from error
