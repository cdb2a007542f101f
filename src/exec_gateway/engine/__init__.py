"""Serialized-per-queue execution of external commands.

Requests submitted to the same queue run one at a time in submission order;
different queues run in parallel on a shared elastic thread pool. Each request
ends in exactly one completion delivered to the registered listener, whether
the command ran, timed out, failed to start, or was rejected during shutdown.
"""

from exec_gateway.engine.client import CompletionRouter, ExecQueue
from exec_gateway.engine.models import ExecRequest, ExecutionResult, FailureKind, RequestState
from exec_gateway.engine.notifier import CompletionListener, CompletionNotifier
from exec_gateway.engine.pool import PoolRejectedError, WorkerPool
from exec_gateway.engine.registry import QueueRegistry
from exec_gateway.engine.runner import (
    CommandRunner,
    ProcessRunner,
    build_run_args,
    resolve_working_dir,
)
from exec_gateway.engine.service import ExecEngine

__all__ = [
    "CommandRunner",
    "CompletionListener",
    "CompletionNotifier",
    "CompletionRouter",
    "ExecEngine",
    "ExecQueue",
    "ExecRequest",
    "ExecutionResult",
    "FailureKind",
    "PoolRejectedError",
    "ProcessRunner",
    "QueueRegistry",
    "RequestState",
    "WorkerPool",
    "build_run_args",
    "resolve_working_dir",
]
