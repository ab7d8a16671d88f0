"""Small helpers shared by the host and renderer modules."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Optional

from tubeshell.obs import logger


async def call_listener(listener: Callable[..., Any], *args: Any, label: str = "listener") -> None:
    """
    Call a sync or async listener, logging (not raising) its failure.

    Used wherever one subscriber's error must not stop dispatch to the others.
    """
    try:
        result = listener(*args)
        if inspect.isawaitable(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception(f"Error in {label}")


def spawn(coro, tasks: Optional[set[asyncio.Task]] = None, name: Optional[str] = None) -> asyncio.Task:
    """Start a task and keep a strong reference to it in ``tasks`` until it finishes."""
    task = asyncio.get_running_loop().create_task(coro, name=name)
    if tasks is not None:
        tasks.add(task)
        task.add_done_callback(tasks.discard)
    task.add_done_callback(_log_task_failure)
    return task


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc!r}")


def format_time(seconds: Any) -> str:
    """Format seconds as M:SS; invalid or empty values give 0:00."""
    try:
        value = float(seconds)
    except (TypeError, ValueError):
        return "0:00"
    if value != value or value <= 0 or value == float("inf"):
        return "0:00"
    mins = int(value // 60)
    secs = int(value % 60)
    return f"{mins}:{secs:02d}"
