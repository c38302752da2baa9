"""Turn a client disconnect into a cancellation event for the core services."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request

POLL_INTERVAL = 0.5


@asynccontextmanager
async def cancel_on_disconnect(request: Request) -> AsyncIterator[asyncio.Event]:
    """Yield an event that is set once the client has gone away."""
    event = asyncio.Event()

    async def _watch() -> None:
        while not event.is_set():
            if await request.is_disconnected():
                event.set()
                return
            await asyncio.sleep(POLL_INTERVAL)

    watcher = asyncio.create_task(_watch())
    try:
        yield event
    finally:
        watcher.cancel()
