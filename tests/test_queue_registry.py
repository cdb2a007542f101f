from __future__ import annotations

import logging
import threading
import time

import allure
from support import FakeRunner, ResultCollector

from exec_gateway.engine.models import ExecRequest, ExecutionResult, RequestState
from exec_gateway.engine.notifier import CompletionNotifier
from exec_gateway.engine.pool import WorkerPool
from exec_gateway.engine.registry import QueueRegistry

pytestmark = [
    allure.epic("Execution Engine"),
    allure.feature("Queue Serialization"),
]


def _registry(
    pool: WorkerPool,
    runner: FakeRunner,
    listener: ResultCollector | None = None,
) -> QueueRegistry:
    return QueueRegistry(pool=pool, runner=runner, notifier=CompletionNotifier(listener))


def _request(queue_id: str, label: str, token: object = None) -> ExecRequest:
    return ExecRequest(
        queue_id=queue_id,
        command_line=f"{queue_id}:{label}",
        correlation_token=token if token is not None else label,
    )


def test_notifications_follow_submission_order_per_queue(
    pool: WorkerPool,
    collector: ResultCollector,
) -> None:
    runner = FakeRunner(delay=0.002)
    registry = _registry(pool, runner, collector)
    queues = ("alpha", "beta", "gamma")

    for index in range(20):
        for queue_id in queues:
            registry.submit(_request(queue_id, str(index), token=(queue_id, index)))

    items = collector.wait_for(60)
    for queue_id in queues:
        order = [token[1] for token, _ in items if token[0] == queue_id]
        assert order == list(range(20))
        assert runner.max_running[queue_id] == 1
    assert all(result.success for _, result in items)


def test_distinct_queues_run_in_parallel(pool: WorkerPool, collector: ResultCollector) -> None:
    barrier = threading.Barrier(2, timeout=5)

    class _BarrierRunner:
        def run(self, command: str, timeout_ms: int) -> ExecutionResult:
            barrier.wait()
            return ExecutionResult(success=True, stdout=command.encode(), exit_code=0)

    registry = QueueRegistry(
        pool=pool,
        runner=_BarrierRunner(),
        notifier=CompletionNotifier(collector),
    )
    registry.submit(_request("qA", "one"))
    registry.submit(_request("qB", "two"))

    items = collector.wait_for(2)
    assert all(result.success for _, result in items)


def test_empty_queues_are_removed(pool: WorkerPool, collector: ResultCollector) -> None:
    registry = _registry(pool, FakeRunner(), collector)

    registry.submit(_request("q1", "a"))
    registry.submit(_request("q1", "b"))
    collector.wait_for(2)

    deadline = time.monotonic() + 5
    while registry.queue_ids() and time.monotonic() < deadline:
        time.sleep(0.01)
    assert registry.queue_ids() == []
    assert registry.pending_count("q1") == 0


def test_submit_does_not_wait_for_running_command(
    pool: WorkerPool,
    collector: ResultCollector,
) -> None:
    runner = FakeRunner()
    gate = threading.Event()
    runner.gates["slow"] = gate
    registry = _registry(pool, runner, collector)
    registry.submit(_request("q1", "slow"))

    started = time.monotonic()
    registry.submit(_request("q1", "next"))
    elapsed = time.monotonic() - started

    assert elapsed < 0.5
    assert registry.pending_count("q1") == 2
    gate.set()
    assert collector.wait_for(2)[1][0] == "next"


def test_rejected_dispatch_completes_as_failure(collector: ResultCollector) -> None:
    worker_pool = WorkerPool(keep_alive_seconds=1.0)
    worker_pool.shutdown(wait=False)
    runner = FakeRunner()
    registry = _registry(worker_pool, runner, collector)

    registry.submit(_request("q1", "a"))
    registry.submit(_request("q1", "b"))

    items = collector.wait_for(2, timeout=1)
    assert [token for token, _ in items] == ["a", "b"]
    assert all(result.success is False for _, result in items)
    assert runner.calls == []
    assert registry.queue_ids() == []


def test_shutdown_rejects_queued_requests_after_running_one(collector: ResultCollector) -> None:
    worker_pool = WorkerPool(keep_alive_seconds=1.0)
    runner = FakeRunner()
    gate = threading.Event()
    runner.gates["running"] = gate
    registry = _registry(worker_pool, runner, collector)

    registry.submit(_request("q1", "running"))
    registry.submit(_request("q1", "queued-1"))
    registry.submit(_request("q1", "queued-2"))
    deadline = time.monotonic() + 5
    while not runner.calls and time.monotonic() < deadline:
        time.sleep(0.01)

    assert registry.shutdown(wait_for_completion=False) is False
    gate.set()

    items = collector.wait_for(3)
    assert [token for token, _ in items] == ["running", "queued-1", "queued-2"]
    assert [result.success for _, result in items] == [True, False, False]
    assert runner.calls == ["q1:running"]
    assert registry.shutdown(wait_for_completion=True, timeout_ms=5_000) is True


def test_runner_exception_becomes_failure_and_queue_continues(
    pool: WorkerPool,
    collector: ResultCollector,
    caplog,
) -> None:
    registry = _registry(pool, FakeRunner(), collector)

    registry.submit(_request("q1", "boom"))
    registry.submit(_request("q1", "after"))

    items = collector.wait_for(2)
    assert [(token, result.success) for token, result in items] == [
        ("boom", False),
        ("after", True),
    ]
    assert "Command runner failed" in caplog.text


def test_finished_request_outside_registry_is_logged_and_notified(
    pool: WorkerPool,
    collector: ResultCollector,
    caplog,
) -> None:
    registry = _registry(pool, FakeRunner(), collector)
    stray = _request("ghost", "stray")

    with caplog.at_level(logging.CRITICAL):
        registry.on_request_finished(stray, ExecutionResult(success=True))

    assert "Internal invariant violated" in caplog.text
    assert collector.tokens() == ["stray"]
    assert stray.state is RequestState.COMPLETED


def test_head_mismatch_keeps_running_head(pool: WorkerPool, collector: ResultCollector, caplog) -> None:
    runner = FakeRunner()
    gate = threading.Event()
    runner.gates["head"] = gate
    registry = _registry(pool, runner, collector)
    head = _request("q1", "head")
    second = _request("q1", "second")
    registry.submit(head)
    registry.submit(second)

    registry.on_request_finished(second, ExecutionResult.failed())
    assert "is the head of queue" in caplog.text
    assert registry.pending_count("q1") == 1

    gate.set()
    items = collector.wait_for(2)
    assert [token for token, _ in items] == ["second", "head"]
    assert runner.calls == ["q1:head"]


def test_listener_runs_without_registry_lock(pool: WorkerPool) -> None:
    seen: list[list[str]] = []
    done = threading.Event()
    registry: QueueRegistry

    def _listener(token: object, result: ExecutionResult) -> None:
        seen.append(registry.queue_ids())
        done.set()

    notifier = CompletionNotifier()
    registry = QueueRegistry(pool=pool, runner=FakeRunner(), notifier=notifier)
    notifier.set_listener(_listener)
    registry.submit(_request("q1", "a"))

    assert done.wait(timeout=5)
    assert seen == [[]]


def test_listener_can_submit_follow_up_to_same_queue(
    pool: WorkerPool,
    collector: ResultCollector,
) -> None:
    notifier = CompletionNotifier()
    registry = QueueRegistry(pool=pool, runner=FakeRunner(), notifier=notifier)

    def _listener(token: object, result: ExecutionResult) -> None:
        collector(token, result)
        if token == "first":
            registry.submit(_request("q1", "follow-up"))

    notifier.set_listener(_listener)
    registry.submit(_request("q1", "first"))

    assert [token for token, _ in collector.wait_for(2)] == ["first", "follow-up"]
