import asyncio
import time

import pytest

from krb_operator.waiter import wait_for


@pytest.mark.asyncio
async def test_returns_false_after_timeout():
    calls = 0

    async def never():
        nonlocal calls
        calls += 1
        return False

    started = time.monotonic()
    assert await wait_for("ns", 0.3, never, interval=0.05) is False
    elapsed = time.monotonic() - started

    assert 0.3 <= elapsed < 0.3 + 0.05 + 0.2
    assert calls > 1


@pytest.mark.asyncio
async def test_returns_true_as_soon_as_check_passes():
    calls = 0

    async def second_time():
        nonlocal calls
        calls += 1
        return calls >= 2

    started = time.monotonic()
    assert await wait_for("ns", 10, second_time, interval=0.05) is True

    assert calls == 2
    assert time.monotonic() - started < 1


@pytest.mark.asyncio
async def test_checks_immediately():
    async def ready():
        return True

    started = time.monotonic()
    assert await wait_for("ns", 5, ready, interval=1) is True
    assert time.monotonic() - started < 0.5


@pytest.mark.asyncio
async def test_check_errors_propagate():
    async def broken():
        raise RuntimeError("api down")

    with pytest.raises(RuntimeError, match="api down"):
        await wait_for("ns", 1, broken, interval=0.01)


@pytest.mark.asyncio
async def test_interval_longer_than_timeout_is_capped():
    async def never():
        return False

    started = time.monotonic()
    assert await wait_for("ns", 0.1, never, interval=5) is False
    assert time.monotonic() - started < 1


@pytest.mark.asyncio
async def test_does_not_block_the_event_loop():
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            ticks += 1
            await asyncio.sleep(0.01)

    async def never():
        return False

    task = asyncio.create_task(ticker())
    try:
        await wait_for("ns", 0.2, never, interval=0.05)
    finally:
        task.cancel()
    assert ticks > 5
