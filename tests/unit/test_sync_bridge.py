from __future__ import annotations

import asyncio
import warnings

import pytest

from adlink.cli import sync_bridge
from adlink.cli.sync_bridge import await_sync, close_sync_bridge_loop


async def _simple_coroutine(value: int) -> int:
    await asyncio.sleep(0)
    return value


async def _spawn_background_task() -> None:
    async def _background() -> None:
        await asyncio.sleep(10)

    _ = asyncio.create_task(_background())
    await asyncio.sleep(0)


def test_await_sync_reuse_no_resource_warning(recwarn: pytest.WarningsRecorder) -> None:
    warnings.simplefilter("always", ResourceWarning)

    assert await_sync(_simple_coroutine(1)) == 1
    assert await_sync(_simple_coroutine(2)) == 2

    resource_warnings = [w for w in recwarn if w.category is ResourceWarning]
    assert not resource_warnings


def test_await_sync_cancels_background_tasks() -> None:
    await_sync(_spawn_background_task())
    loop = sync_bridge._SYNC_BRIDGE_LOOP
    assert loop is not None
    assert not [task for task in asyncio.all_tasks(loop) if not task.done()]
    assert await_sync(_simple_coroutine(3)) == 3


def test_await_sync_rejects_running_loop() -> None:
    async def _nested() -> None:
        coro = _simple_coroutine(1)
        try:
            await_sync(coro)
        finally:
            coro.close()

    with pytest.raises(RuntimeError):
        asyncio.run(_nested())


def test_close_sync_bridge_loop_is_idempotent() -> None:
    await_sync(_simple_coroutine(4))
    close_sync_bridge_loop()
    close_sync_bridge_loop()
    assert sync_bridge._SYNC_BRIDGE_LOOP is None
    assert await_sync(_simple_coroutine(5)) == 5
