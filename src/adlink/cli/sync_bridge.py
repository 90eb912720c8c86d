"""Run the async diagnostics and bootstrap coroutines from synchronous Typer commands.

A single event loop is reused across calls and closed at interpreter exit.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import threading
from collections.abc import Awaitable
from contextlib import suppress
from typing import Any

_SYNC_BRIDGE_LOOP: asyncio.AbstractEventLoop | None = None
_SYNC_BRIDGE_LOCK = threading.Lock()
_loop_logger = logging.getLogger("adlink.loop")


def _cancel_pending(loop: asyncio.AbstractEventLoop) -> None:
    pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
    if not pending:
        return
    for task in pending:
        task.cancel()
    with suppress(Exception):
        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))


def close_sync_bridge_loop() -> None:
    """Dispose of the shared event loop used by :func:`await_sync`."""

    global _SYNC_BRIDGE_LOOP
    loop = _SYNC_BRIDGE_LOOP
    if loop is None:
        return
    if loop.is_closed():
        _SYNC_BRIDGE_LOOP = None
        return

    _cancel_pending(loop)
    # Executor threads may still be finishing an abandoned ldap3 call.
    with suppress(Exception):
        loop.run_until_complete(loop.shutdown_default_executor())
    loop.close()
    _SYNC_BRIDGE_LOOP = None


atexit.register(close_sync_bridge_loop)


def await_sync(coro: Awaitable[Any]) -> Any:
    """Execute an awaitable from synchronous code on a reusable loop."""

    global _SYNC_BRIDGE_LOOP
    with _SYNC_BRIDGE_LOCK:
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is not None:
            raise RuntimeError("await_sync cannot be used inside a running event loop")

        if _SYNC_BRIDGE_LOOP is None or _SYNC_BRIDGE_LOOP.is_closed():
            _SYNC_BRIDGE_LOOP = asyncio.new_event_loop()
            _loop_logger.debug("sync_bridge.loop_created")

        loop = _SYNC_BRIDGE_LOOP
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(coro)
        finally:
            _cancel_pending(loop)
            asyncio.set_event_loop(None)


__all__ = ["await_sync", "close_sync_bridge_loop"]
