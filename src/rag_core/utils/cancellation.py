"""Cancellation support for outbound calls.

Callers (the HTTP layer) hand an `asyncio.Event` down; it is set when the
client goes away. Network calls are raced against it.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from rag_core.utils.errors import OperationCancelledError

T = TypeVar("T")


def is_cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


async def run_cancellable(awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event] = None) -> T:
    """
    Await `awaitable` unless `cancel_event` fires first.

    Raises:
        OperationCancelledError: the event was set before or during the call
    """
    if cancel_event is None:
        return await awaitable

    if cancel_event.is_set():
        # Close the coroutine so it is not reported as never awaited
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelledError()

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()

    if work in done:
        return work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    raise OperationCancelledError()
