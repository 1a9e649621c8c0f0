"""Async utility helpers for solidauth.

Message handlers are plain callables invoked by the host window, while
the login sequence is a coroutine. These helpers bridge the two.
"""

from __future__ import annotations

import asyncio
import logging

from collections.abc import Coroutine
from typing import Any


logger = logging.getLogger("solidauth.utils")

# Strong references to scheduled tasks; the event loop only keeps weak ones.
_background_tasks: set[asyncio.Task[Any]] = set()


def _log_task_result(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)


def fire_and_forget(coro: Coroutine[Any, Any, Any], name: str | None = None) -> Any:
    """Schedule ``coro`` without awaiting it.

    Parameters
    ----------
    coro : Coroutine
        The coroutine to run.
    name : str, optional
        Task name used in log messages.

    Returns
    -------
    asyncio.Task or Any
        The scheduled task when an event loop is running; otherwise the
        coroutine is run to completion and its result returned.

    Notes
    -----
    A failing task is logged. Without a running loop the failure is also
    logged, then re-raised to the caller.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        try:
            return asyncio.run(coro)
        except Exception as exc:
            logger.error("Task %s failed: %s", name or "<anonymous>", exc)
            raise

    task = loop.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_log_task_result)
    return task
