"""Tests for the extraction executor factory."""

import threading
from concurrent import futures

from SafeUnzip.concurrency import create_executor


def test_single_worker_runs_inline() -> None:
    assert create_executor(1) == (None, False)
    assert create_executor(0) == (None, False)


def test_thread_pool_for_multiple_workers() -> None:
    executor, needs_shutdown = create_executor(4, thread_name_prefix="test-pool")
    try:
        assert needs_shutdown is True
        assert isinstance(executor, futures.ThreadPoolExecutor)
        name = executor.submit(lambda: threading.current_thread().name).result()
        assert name.startswith("test-pool")
    finally:
        executor.shutdown(wait=True)
