import asyncio

import pytest

from conftest import DummyConnector, DummyWebSocket, reply
from vkmax.client.events import EVENT_CLOSE
from vkmax.client.ws_client import RpcSession
from vkmax.shared.errors import AlreadyConnectedError, NotConnectedError, RequestTimeoutError, TransportError
from vkmax.shared.opcodes import ConnectionState, Opcode


@pytest.mark.asyncio
async def test_connect_opens_socket_with_configured_url(config, connector, dummy_ws):
    session = RpcSession(config, connector=connector)

    websocket = await session.connect()

    assert websocket is dummy_ws
    assert session.state is ConnectionState.OPEN
    assert session.is_connected
    url, kwargs = connector.calls[0]
    assert url == config.ws_url
    assert kwargs["ping_interval"] is None
    assert "Mozilla" in kwargs["user_agent_header"]
    await session.disconnect()


@pytest.mark.asyncio
async def test_second_connect_fails_without_opening_another_socket(config, connector):
    session = RpcSession(config, connector=connector)
    await session.connect()

    with pytest.raises(AlreadyConnectedError):
        await session.connect()

    assert len(connector.calls) == 1
    assert session.is_connected
    await session.disconnect()


@pytest.mark.asyncio
async def test_disconnect_without_connection_fails(config):
    session = RpcSession(config)
    with pytest.raises(NotConnectedError):
        await session.disconnect()


@pytest.mark.asyncio
async def test_invoke_without_connection_fails(config):
    session = RpcSession(config)
    with pytest.raises(NotConnectedError):
        await session.invoke(Opcode.KEEPALIVE, {"interactive": False})
    assert session.next_seq == 1


@pytest.mark.asyncio
async def test_disconnect_closes_socket_and_emits_close_once(config, connector, dummy_ws):
    session = RpcSession(config, connector=connector)
    closes = []
    session.on(EVENT_CLOSE, lambda: closes.append(True))
    await session.connect()

    await session.disconnect()
    await asyncio.sleep(0.01)

    assert dummy_ws.closed is True
    assert dummy_ws.close_code == 1000
    assert session.state is ConnectionState.DISCONNECTED
    assert session.websocket is None
    assert closes == [True]


@pytest.mark.asyncio
async def test_peer_close_moves_to_disconnected(config, connector, dummy_ws):
    session = RpcSession(config, connector=connector)
    closes = []
    session.on(EVENT_CLOSE, lambda: closes.append(True))
    await session.connect()

    dummy_ws.drop()
    await asyncio.sleep(0.02)

    assert session.state is ConnectionState.DISCONNECTED
    assert not session.is_connected
    assert closes == [True]
    with pytest.raises(NotConnectedError):
        await session.disconnect()


@pytest.mark.asyncio
async def test_connect_failure_raises_transport_error(config):
    connector = DummyConnector(error=OSError("connection refused"))
    session = RpcSession(config, connector=connector)

    with pytest.raises(TransportError) as exc_info:
        await session.connect()

    assert isinstance(exc_info.value.__cause__, OSError)
    assert session.state is ConnectionState.DISCONNECTED
    assert session.websocket is None


@pytest.mark.asyncio
async def test_malformed_frames_are_dropped(config, connector, dummy_ws):
    session = RpcSession(config, connector=connector)
    received = []
    session.set_event_callback(lambda client, frame: received.append(frame))
    await session.connect()

    dummy_ws.push("not json at all")
    dummy_ws.push('["a", "list"]')
    dummy_ws.push({"opcode": "128"})
    dummy_ws.push(b"\xff\xfe")
    dummy_ws.push({"opcode": 128, "payload": {"ok": True}})
    await asyncio.sleep(0.02)

    assert [f.payload for f in received] == [{"ok": True}]
    assert session.is_connected
    await session.disconnect()


@pytest.mark.asyncio
async def test_sequence_is_not_reset_by_reconnect(config):
    responder = lambda request: reply({})
    first, second = DummyWebSocket(responder), DummyWebSocket(responder)
    session = RpcSession(config, connector=DummyConnector(first, second))

    await session.connect()
    await session.invoke(Opcode.KEEPALIVE, {"interactive": False})
    await session.invoke(Opcode.KEEPALIVE, {"interactive": False})
    await session.disconnect()

    await session.connect()
    await session.invoke(Opcode.KEEPALIVE, {"interactive": False})

    assert [f["seq"] for f in second.sent_frames()] == [3]
    await session.disconnect()


@pytest.mark.asyncio
async def test_pending_request_outlives_close_until_timeout(config, connector, dummy_ws):
    config.request_timeout = 0.05
    session = RpcSession(config, connector=connector)
    await session.connect()

    task = asyncio.create_task(session.invoke(Opcode.GET_CHATS, {}))
    await asyncio.sleep(0.01)
    dummy_ws.drop()
    await asyncio.sleep(0.01)
    assert not task.done()

    with pytest.raises(RequestTimeoutError):
        await task
    assert len(session.pending) == 0


@pytest.mark.asyncio
async def test_cancelled_connect_allows_a_new_connect(config, dummy_ws):
    calls = []

    async def slow_then_ready(url, **kwargs):
        calls.append(url)
        if len(calls) == 1:
            await asyncio.sleep(10)
        return dummy_ws

    session = RpcSession(config, connector=slow_then_ready)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(session.connect(), 0.05)

    assert session.state is ConnectionState.DISCONNECTED
    assert session.websocket is None

    await session.connect()
    assert session.is_connected
    assert len(calls) == 2
    await session.disconnect()


@pytest.mark.asyncio
async def test_timed_out_request_leaves_no_pending_entry(config, connector):
    config.request_timeout = 0.05
    session = RpcSession(config, connector=connector)
    await session.connect()

    with pytest.raises(RequestTimeoutError) as exc_info:
        await session.invoke(Opcode.GET_CHATS, {})

    assert exc_info.value.seq == 1
    assert len(session.pending) == 0
    assert not hasattr(session.pending, "get")
    await session.disconnect()
