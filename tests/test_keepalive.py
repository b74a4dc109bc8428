import asyncio

import pytest

from vkmax.client.keepalive import Keepalive
from vkmax.shared.errors import KeepaliveAlreadyStartedError, RequestTimeoutError


@pytest.mark.asyncio
async def test_keepalive_ticks_until_stopped():
    sent = []

    async def send():
        sent.append(True)

    keepalive = Keepalive(send, interval=0.02)
    keepalive.start()
    await asyncio.sleep(0.09)
    await keepalive.stop()
    count = len(sent)
    await asyncio.sleep(0.05)

    assert count >= 2
    assert len(sent) == count
    assert not keepalive.running


@pytest.mark.asyncio
async def test_failing_tick_is_logged_and_loop_continues():
    calls = []

    async def send():
        calls.append(True)
        if len(calls) == 1:
            raise RequestTimeoutError(1, 1, 0.01)

    keepalive = Keepalive(send, interval=0.02)
    keepalive.start()
    await asyncio.sleep(0.09)

    assert keepalive.failures == 1
    assert keepalive.ticks >= 2
    assert keepalive.running
    await keepalive.stop()


@pytest.mark.asyncio
async def test_start_twice_fails():
    async def send():
        pass

    keepalive = Keepalive(send, interval=10)
    keepalive.start()
    with pytest.raises(KeepaliveAlreadyStartedError):
        keepalive.start()
    keepalive.cancel()
    await asyncio.sleep(0)
    assert not keepalive.running


@pytest.mark.asyncio
async def test_stop_without_start_is_a_no_op():
    async def send():
        pass

    keepalive = Keepalive(send)
    await keepalive.stop()
    keepalive.cancel()
    assert not keepalive.running
