"""
Background task helpers
Every detached coroutine reports its failure through one logging sink
"""
import asyncio
import logging
from typing import Coroutine, Optional, Set

logger = logging.getLogger(__name__)

# Strong references so detached tasks are not garbage collected mid-flight
_background_tasks: Set[asyncio.Task] = set()


def log_task_exception(task: asyncio.Task) -> None:
    """Done-callback: log the exception of a finished task, if any."""
    _background_tasks.discard(task)
    if task.cancelled():
        logger.debug(f"Background task {task.get_name()} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            f"Background task {task.get_name()} failed: {exc}",
            exc_info=(type(exc), exc, exc.__traceback__)
        )


def spawn(coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
    """Start a coroutine as a task whose errors always reach the log."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(log_task_exception)
    return task
