import asyncio
from typing import Any, Awaitable

async def bounded_wait(aw: Awaitable[Any], timeout: float | None) -> tuple[bool, Any]:
    """Wait for ``aw`` at most ``timeout`` seconds.

    Returns ``(True, result)`` when it finished in time and ``(False, None)``
    when the deadline passed or the task was cancelled underneath us. A task
    still pending at the deadline is cancelled. Exceptions raised by ``aw``
    propagate.
    """
    task = asyncio.ensure_future(aw)
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task not in done:
        task.cancel()
        return False, None
    if task.cancelled():
        return False, None
    return True, task.result()
