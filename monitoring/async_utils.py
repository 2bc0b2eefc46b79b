import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional


logger = logging.getLogger(__name__)


async def run_tasks_with_cleanup(
    tasks: Iterable[asyncio.Task],
    cleanup: Optional[Callable[[], Awaitable[None]]] = None,
) -> None:
    """Supervise sibling loops until they all finish or one of them fails.

    On the first failure, or when the caller is cancelled, the survivors are
    cancelled and awaited, ``cleanup`` runs, and the failure is re-raised.
    """
    pending = set(tasks)
    failure: Optional[BaseException] = None
    try:
        while pending and failure is None:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if task.cancelled() or task.exception() is None:
                    continue
                logger.error("Task %s failed: %r", task.get_name(), task.exception())
                failure = failure or task.exception()
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if cleanup is not None:
            await cleanup()
    if failure is not None:
        raise failure
