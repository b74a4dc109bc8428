import asyncio

import pytest

from conftest import DummyConnector, DummyWebSocket, reply
from vkmax.client.events import EVENT_MESSAGE
from vkmax.client.pending import PendingRequest, PendingRequestTable
from vkmax.client.ws_client import RpcSession
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.errors import InvalidCallbackError, RequestTimeoutError, TransportError
from vkmax.shared.opcodes import Opcode


def echo(request: dict) -> dict:
    return reply({"echo": request["payload"]})


async def _open_session(config, ws) -> RpcSession:
    session = RpcSession(config, connector=DummyConnector(ws))
    await session.connect()
    return session


@pytest.mark.asyncio
async def test_sequence_numbers_start_at_one_and_increase(config):
    ws = DummyWebSocket(responder=echo)
    session = await _open_session(config, ws)

    results = await asyncio.gather(*(session.invoke(Opcode.GET_CHATS, {"n": i}) for i in range(3)))

    assert [f["seq"] for f in ws.sent_frames()] == [1, 2, 3]
    assert [r.payload["echo"]["n"] for r in results] == [0, 1, 2]
    assert session.next_seq == 4
    assert len(session.pending) == 0
    await session.disconnect()


@pytest.mark.asyncio
async def test_request_frame_shape(config, dummy_ws):
    dummy_ws.responder = echo
    session = await _open_session(config, dummy_ws)

    await session.invoke(Opcode.SEND_MESSAGE, {"chatId": 1})

    assert dummy_ws.sent_frames()[0] == {
        "ver": 11,
        "cmd": 0,
        "seq": 1,
        "opcode": 64,
        "payload": {"chatId": 1},
    }
    await session.disconnect()


@pytest.mark.asyncio
async def test_response_resolves_with_the_exact_frame(config, dummy_ws):
    session = await _open_session(config, dummy_ws)

    task = asyncio.create_task(session.invoke(Opcode.GET_MESSAGES, {}))
    await asyncio.sleep(0.01)
    assert 1 in session.pending

    frame = RpcEnvelope(opcode=Opcode.GET_MESSAGES, payload={"messages": []}, seq=1, cmd=1)
    assert session.dispatch(frame) is True

    result = await task
    assert result is frame
    assert 1 not in session.pending
    await session.disconnect()


@pytest.mark.asyncio
async def test_second_response_with_same_seq_is_an_event(config, dummy_ws):
    session = await _open_session(config, dummy_ws)
    events = []
    session.on(EVENT_MESSAGE, events.append)

    task = asyncio.create_task(session.invoke(Opcode.GET_MESSAGES, {}))
    await asyncio.sleep(0.01)
    first = RpcEnvelope(opcode=49, payload={"n": 1}, seq=1, cmd=1)
    duplicate = RpcEnvelope(opcode=49, payload={"n": 2}, seq=1, cmd=1)

    assert session.dispatch(first) is True
    assert session.dispatch(duplicate) is False
    assert (await task) is first
    assert events == [duplicate]
    await session.disconnect()


@pytest.mark.asyncio
async def test_request_times_out_and_late_response_becomes_event(config, dummy_ws):
    config.request_timeout = 0.05
    session = await _open_session(config, dummy_ws)
    events = []
    session.on(EVENT_MESSAGE, events.append)

    with pytest.raises(RequestTimeoutError) as exc_info:
        await session.invoke(Opcode.GET_CONTACTS, {"contactIds": [1]})

    assert exc_info.value.seq == 1
    assert exc_info.value.opcode == 32
    assert len(session.pending) == 0

    dummy_ws.push({"ver": 11, "cmd": 1, "seq": 1, "opcode": 32, "payload": {}})
    await asyncio.sleep(0.02)
    assert [e.seq for e in events] == [1]
    await session.disconnect()


@pytest.mark.asyncio
async def test_unsolicited_frames_reach_callback_in_order(config, dummy_ws):
    session = await _open_session(config, dummy_ws)
    received = []
    session.set_event_callback(lambda client, frame: received.append((client, frame)))

    for text in ("first", "second"):
        dummy_ws.push({"ver": 11, "cmd": 0, "seq": 0, "opcode": 128,
                       "payload": {"chatId": 5, "message": {"text": text}}})
    await asyncio.sleep(0.02)

    assert [f.payload["message"]["text"] for _, f in received] == ["first", "second"]
    assert all(client is session for client, _ in received)
    assert all(f.opcode == Opcode.MESSAGE_RECEIVED for _, f in received)
    await session.disconnect()


@pytest.mark.asyncio
async def test_async_event_callback_is_awaited(config, dummy_ws):
    session = await _open_session(config, dummy_ws)
    done = asyncio.Event()

    async def on_event(client, frame):
        done.set()

    session.set_event_callback(on_event)
    dummy_ws.push({"opcode": 128, "payload": {}})
    await asyncio.wait_for(done.wait(), 1.0)
    await session.disconnect()


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_receive_loop(config, dummy_ws):
    session = await _open_session(config, dummy_ws)
    seen = []

    def on_event(client, frame):
        seen.append(frame.seq)
        raise RuntimeError("boom")

    session.set_event_callback(on_event)
    dummy_ws.push({"opcode": 128, "seq": 100})
    dummy_ws.push({"opcode": 128, "seq": 101})
    await asyncio.sleep(0.02)

    assert seen == [100, 101]
    assert session.is_connected
    await session.disconnect()


def test_set_event_callback_rejects_non_callable(config):
    session = RpcSession(config)
    with pytest.raises(InvalidCallbackError):
        session.set_event_callback("not callable")
    with pytest.raises(TypeError):
        session.set_event_callback(None)


@pytest.mark.asyncio
async def test_send_failure_raises_transport_error_and_clears_entry(config, dummy_ws):
    session = await _open_session(config, dummy_ws)
    dummy_ws.send_error = ConnectionResetError("reset")

    with pytest.raises(TransportError):
        await session.invoke(Opcode.SEND_MESSAGE, {})

    assert len(session.pending) == 0
    assert session.next_seq == 2
    await session.disconnect()


@pytest.mark.asyncio
async def test_pending_table_settles_once():
    loop = asyncio.get_running_loop()
    table = PendingRequestTable()
    entry = PendingRequest(seq=7, opcode=64, future=loop.create_future())
    table.add(entry)

    with pytest.raises(ValueError):
        table.add(PendingRequest(seq=7, opcode=64, future=loop.create_future()))

    frame = RpcEnvelope(opcode=64, seq=7, cmd=1)
    assert table.resolve(7, frame) is True
    assert table.resolve(7, frame) is False
    assert table.reject(7, RuntimeError("late")) is False
    assert entry.future.result() is frame
    assert table.resolve(None, frame) is False
    assert 7 not in table
