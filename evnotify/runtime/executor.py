"""
Execution gateways for work that must not block event processing.

The dispatcher hands subscriber notifications (which need store lookups) to
an :class:`ExecutionGateway`. It needs no result and no completion signal.
Tasks are wrapped with :func:`contained` before submission, so a failing
task is logged and dropped inside the worker.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Protocol

import structlog

logger = structlog.get_logger(__name__)

Task = Callable[[], None]


class ExecutionGateway(Protocol):
    """
    Protocol interface for running a unit of work off the calling thread.
    """

    def submit(self, task: Task) -> None:
        ...


def contained(task: Task, description: str, **context: Any) -> Task:
    """
    Wrap a task so that no exception escapes it.

    Parameters
    ----------
    task
        Unit of work.
    description
        Short name of the work, used in the error log.
    **context
        Identifiers logged with a failure (event kind, station, ...).

    Returns
    -------
    callable
        Task that logs failures at error level and returns normally.
    """

    def _run() -> None:
        try:
            task()
        except Exception:
            logger.error("Background task failed", task=description, exc_info=True, **context)

    return _run


class ThreadPoolGateway:
    """
    Gateway backed by a :class:`concurrent.futures.ThreadPoolExecutor`.

    Submitted tasks are scheduled immediately, in no guaranteed order, and
    always run to completion (no cancellation).

    Parameters
    ----------
    max_workers
        Pool size.
    thread_name_prefix
        Prefix of worker thread names.
    """

    def __init__(self, max_workers: int = 4, thread_name_prefix: str = "subscriber-notify"):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)

    def submit(self, task: Task) -> None:
        """
        Schedule a task.

        Raises
        ------
        RuntimeError
            If the gateway has been shut down.
        """
        self._pool.submit(task)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting tasks; optionally wait for submitted ones to finish.
        """
        self._pool.shutdown(wait=wait)


class InlineGateway:
    """
    Gateway that runs tasks synchronously on the caller thread.

    Useful for tests and single-threaded tools.
    """

    def submit(self, task: Task) -> None:
        task()
