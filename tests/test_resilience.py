from __future__ import annotations

import asyncio

import pytest

from repolens.utils.resilience import call_with_fallback, with_timeout


async def _slow(value, delay: float):
    await asyncio.sleep(delay)
    return value


async def _boom():
    raise RuntimeError("down")


async def test_with_timeout_raises_on_expiry() -> None:
    assert await with_timeout(_slow("ok", 0), 1.0) == "ok"
    with pytest.raises(asyncio.TimeoutError):
        await with_timeout(_slow("late", 1.0), 0.01)


async def test_call_with_fallback_covers_timeouts_and_errors() -> None:
    assert await call_with_fallback(_slow("ok", 0), 1.0, fallback="", label="fetch") == "ok"
    assert await call_with_fallback(_slow("late", 1.0), 0.01, fallback="", label="fetch") == ""
    assert await call_with_fallback(_boom(), 1.0, fallback=[], label="history") == []


async def test_call_with_fallback_lets_cancellation_through() -> None:
    task = asyncio.create_task(call_with_fallback(_slow("late", 5.0), 10.0, fallback="", label="fetch"))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
