"""
Tie long-running workflow calls to the lifetime of the HTTP request.
"""

import asyncio
from typing import Awaitable, TypeVar

from fastapi import Request

from .logger import get_logger

logger = get_logger("cancellation")

T = TypeVar("T")


class ClientDisconnected(Exception):
    """The client went away before the workflow finished."""


async def _wait_for_disconnect(request: Request, interval: float) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(interval)


async def run_until_disconnect(request: Request, awaitable: Awaitable[T], interval: float = 0.5) -> T:
    """
    Await `awaitable`, cancelling it if the client disconnects first.

    Cancellation propagates into the ledger poll loop, which stops between
    polls. Records already written stay as they are; an issuance cut short
    leaves a retriable pending badge.

    Raises:
        ClientDisconnected: If the client disconnected first
    """
    work = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request, interval))
    try:
        await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()

    if work.done():
        return work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    logger.warning(f"Client disconnected from {request.url.path}; workflow cancelled")
    raise ClientDisconnected(request.url.path)
