import asyncio
import json
from typing import Any, Callable, Optional

import pytest

from vkmax.client.events import EventBus
from vkmax.shared.config import ClientConfig
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.errors import NotLoggedInError


def reply(payload: Any = None, **extra: Any) -> dict:
    """Response body for DummyWebSocket responders; seq/opcode are filled in."""
    return {"payload": payload, **extra}


class DummyWebSocket:
    """
    Stand-in for a websockets ClientConnection.

    ``push`` queues an inbound frame for the receive loop, ``drop`` simulates
    the peer closing. A ``responder(request_dict)`` may return a reply body
    that is pushed back with the request's seq and opcode.
    """

    def __init__(self, responder: Optional[Callable[[dict], Optional[dict]]] = None) -> None:
        self.sent_messages: list = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.responder = responder
        self.send_error: Optional[Exception] = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent_messages.append(data)
        if self.responder is not None:
            request = json.loads(data)
            body = self.responder(request)
            if body is not None:
                self.push({"ver": 11, "cmd": 1, "seq": request["seq"], "opcode": request["opcode"], **body})

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = True
        self.close_code = code
        self._inbox.put_nowait(None)

    def push(self, frame: Any) -> None:
        if not isinstance(frame, (str, bytes)):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def drop(self) -> None:
        self._inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item

    def sent_frames(self) -> list:
        return [json.loads(m) for m in self.sent_messages]

    def sent_opcodes(self) -> list:
        return [f["opcode"] for f in self.sent_frames()]


class DummyConnector:
    """Replaces websockets.connect; hands out the given sockets in order."""

    def __init__(self, *sockets: Any, error: Optional[Exception] = None) -> None:
        self.sockets = list(sockets)
        self.error = error
        self.calls: list = []

    async def __call__(self, url: str, **kwargs: Any) -> Any:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.sockets.pop(0)


class FakeClient:
    """Records ``invoke`` calls; answers from a per-opcode table."""

    def __init__(self, responses: Optional[dict] = None, logged_in: bool = True) -> None:
        self.calls: list = []
        self.responses = responses or {}
        self.logged_in = logged_in
        self.config = ClientConfig(file_ready_timeout=0.1)
        self.events = EventBus()

    async def invoke(self, opcode: int, payload: Any) -> RpcEnvelope:
        self.calls.append((int(opcode), payload))
        response = self.responses.get(int(opcode), {})
        if callable(response):
            response = response(payload)
        return RpcEnvelope(opcode=int(opcode), payload=response, seq=len(self.calls), cmd=1)

    def require_login(self) -> None:
        if not self.logged_in:
            raise NotLoggedInError()

    def opcodes(self) -> list:
        return [opcode for opcode, _ in self.calls]


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        ws_url="ws://127.0.0.1:8765",
        request_timeout=0.5,
        keepalive_interval=0.05,
        file_ready_timeout=0.1,
        ping_interval=None,
        ping_timeout=None,
    )


@pytest.fixture
def dummy_ws() -> DummyWebSocket:
    return DummyWebSocket()


@pytest.fixture
def connector(dummy_ws: DummyWebSocket) -> DummyConnector:
    return DummyConnector(dummy_ws)


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
