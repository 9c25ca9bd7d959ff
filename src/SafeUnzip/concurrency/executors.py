"""Executor factory used by the extraction coordinator."""

from __future__ import annotations

from concurrent import futures
from typing import Optional, Tuple

Executor = futures.Executor


def create_executor(
    workers: int, *, thread_name_prefix: str = "safeunzip-extract"
) -> Tuple[Optional[Executor], bool]:
    """
    Return a thread pool sized for filesystem-bound extraction work.

    Args:
        workers: Desired concurrency level.
        thread_name_prefix: Prefix applied to worker thread names.

    Returns:
        Tuple of (executor, needs_shutdown). ``(None, False)`` means the caller
        should run work inline on the current thread. Caller is responsible for
        shutting down the returned executor when ``needs_shutdown`` is ``True``.
    """
    if workers <= 1:
        return None, False
    return (
        futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix=thread_name_prefix),
        True,
    )
