import asyncio

import pytest

from finfeed.utils.event_loop_manager import EventLoopManager


async def _double(x):
    await asyncio.sleep(0)
    return x * 2


def test_run_async_on_background_loop():
    with EventLoopManager("test-loop") as mgr:
        assert mgr.is_running()
        assert mgr.run_async(_double(21), timeout=5) == 42
        assert mgr.start() is False
    assert mgr.is_running() is False


def test_not_started_raises():
    mgr = EventLoopManager()
    with pytest.raises(RuntimeError):
        mgr.run_async(_double(1))
