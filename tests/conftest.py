"""Shared test fixtures."""

from __future__ import annotations

import pytest
from support import ResultCollector

from exec_gateway.engine import WorkerPool


@pytest.fixture()
def collector() -> ResultCollector:
    return ResultCollector()


@pytest.fixture()
def pool():
    worker_pool = WorkerPool(keep_alive_seconds=5.0)
    yield worker_pool
    worker_pool.shutdown(wait=True, timeout=10)
