from __future__ import annotations
import asyncio
import inspect
import time
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional

import websockets
import websockets.exceptions

from vkmax.client.events import EVENT_CLOSE, EVENT_MESSAGE, EventBus, EventListener
from vkmax.client.pending import PendingRequest, PendingRequestTable
from vkmax.shared.config import USER_AGENT, ClientConfig
from vkmax.shared.envelope import RpcEnvelope, create_request
from vkmax.shared.errors import (
    AlreadyConnectedError,
    InvalidCallbackError,
    NotConnectedError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)
from vkmax.shared.log import get_logger, log_frame
from vkmax.shared.opcodes import ConnectionState

logger = get_logger(__name__)


# (client, frame) -> None | awaitable
EventCallback = Callable[[Any, RpcEnvelope], Any]
Connector = Callable[..., Awaitable[Any]]


class RpcSession:
    """
    One WebSocket connection plus the request/response correlator on top of it.

    Outbound requests get strictly increasing sequence numbers. Inbound frames
    whose seq matches an outstanding request settle that request; every other
    frame is an unsolicited event, emitted on ``events`` and handed to the
    single registered event callback.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        connector: Optional[Connector] = None,
        owner: Any = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.websocket: Optional[websockets.ClientConnection] = None
        self.state = ConnectionState.DISCONNECTED
        self.events = EventBus()
        self.pending = PendingRequestTable()
        self._seq = 1
        self._recv_task: Optional[asyncio.Task] = None
        self._event_callback: Optional[EventCallback] = None
        # passed as the first callback argument; the MaxClient that owns us
        self._owner = owner
        self._connector: Connector = connector or websockets.connect

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.OPEN and self.websocket is not None

    @property
    def next_seq(self) -> int:
        """Sequence number the next request will use"""
        return self._seq

    # ---- connection lifecycle ----

    async def connect(self) -> Any:
        """Open the WebSocket and start the receive loop"""
        if self.websocket is not None or self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            raise AlreadyConnectedError()

        url = self.config.ws_url
        logger.info("Connecting to %s...", url)
        self.state = ConnectionState.CONNECTING
        try:
            websocket = await self._connector(
                url,
                ping_interval=self.config.ping_interval,
                ping_timeout=self.config.ping_timeout,
                user_agent_header=USER_AGENT["headerUserAgent"],
            )
        except asyncio.CancelledError:
            self.state = ConnectionState.DISCONNECTED
            logger.warning("Connect to %s cancelled", url)
            raise
        except Exception as e:
            self.state = ConnectionState.DISCONNECTED
            logger.error("WebSocket error: %s", e)
            raise TransportError(f"Failed to connect to {url}: {e}") from e

        self.websocket = websocket
        self.state = ConnectionState.OPEN
        self._recv_task = asyncio.create_task(self._recv_loop(websocket))
        logger.info("Connected. Receive task started.")
        return websocket

    async def disconnect(self) -> None:
        """Stop the receive loop and close the socket"""
        websocket = self.websocket
        if websocket is None:
            raise NotConnectedError()

        self.state = ConnectionState.CLOSED
        task, self._recv_task = self._recv_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        try:
            await websocket.close(code=1000)
        except Exception as e:
            logger.error("Error closing connection: %s", e)
        self._handle_close(websocket)

    async def _recv_loop(self, websocket: Any) -> None:
        try:
            async for raw in websocket:
                try:
                    if isinstance(raw, bytes):
                        raw = raw.decode("utf-8")
                    frame = RpcEnvelope.from_json(raw)
                except (ProtocolError, UnicodeDecodeError) as e:
                    logger.error("Error parsing message, frame dropped: %s", e)
                    continue
                try:
                    self.dispatch(frame)
                except Exception as e:
                    logger.error("Failed to dispatch inbound frame: %s", e)
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning("Connection closed by peer: %s", e)
        except Exception as e:
            logger.error("Receive loop failed: %s", e)
        finally:
            self._handle_close(websocket)

    def _handle_close(self, websocket: Any) -> None:
        # a newer connection may already be in place
        if self.websocket is not websocket:
            return
        self.websocket = None
        self._recv_task = None
        self.state = ConnectionState.DISCONNECTED
        logger.info("WebSocket connection closed")
        if self.pending:
            logger.warning("%d request(s) still pending; they will time out", len(self.pending))
        self.events.emit(EVENT_CLOSE)

    # ---- correlator ----

    def _next_seq(self) -> int:
        seq = self._seq
        self._seq += 1
        return seq

    async def invoke(self, opcode: int, payload: Any) -> RpcEnvelope:
        """
        Send a request and wait for the frame that carries the same seq.

        Raises:
            NotConnectedError: no open connection
            TransportError: the frame could not be sent
            RequestTimeoutError: no response within ``config.request_timeout``
        """
        websocket = self.websocket
        if websocket is None or not self.is_connected:
            raise NotConnectedError()

        seq = self._next_seq()
        request = create_request(opcode, seq, payload)
        loop = asyncio.get_running_loop()
        entry = PendingRequest(seq=seq, opcode=int(opcode), future=loop.create_future())
        self.pending.add(entry)

        log_frame(logger, "debug", "-> REQUEST", request)
        try:
            await websocket.send(request.to_json())
        except Exception as e:
            self.pending.discard(seq)
            raise TransportError(f"Failed to send request seq={seq}: {e}") from e

        timeout = self.config.request_timeout
        if seq in self.pending:
            entry.timer = loop.call_later(timeout, self._expire, entry, timeout)
        try:
            return await entry.future
        finally:
            self.pending.discard(seq)

    def _expire(self, entry: PendingRequest, timeout: float) -> None:
        if self.pending.reject(entry.seq, RequestTimeoutError(entry.seq, entry.opcode, timeout)):
            logger.warning(
                "Request timeout after %.2fs",
                time.monotonic() - entry.sent_at,
                extra={"seq": entry.seq, "opcode": entry.opcode},
            )

    def dispatch(self, frame: RpcEnvelope) -> bool:
        """
        Route one inbound frame. Returns True if it settled a pending request,
        False if it was treated as an unsolicited event.
        """
        if self.pending.resolve(frame.seq, frame):
            log_frame(logger, "debug", "<- RESPONSE", frame)
            return True

        log_frame(logger, "debug", "<- EVENT", frame)
        self.events.emit(EVENT_MESSAGE, frame)
        callback = self._event_callback
        if callback is not None:
            asyncio.get_running_loop().call_soon(self._run_event_callback, callback, frame)
        return False

    def _run_event_callback(self, callback: EventCallback, frame: RpcEnvelope) -> None:
        client = self._owner if self._owner is not None else self
        try:
            result = callback(client, frame)
            if inspect.isawaitable(result):
                self.events.track(asyncio.ensure_future(result))
        except Exception as e:
            logger.error("Error in event callback: %s", e)

    def set_event_callback(self, callback: EventCallback) -> None:
        """Register the callback for unsolicited frames; replaces any previous one"""
        if not callable(callback):
            raise InvalidCallbackError()
        self._event_callback = callback

    def on(self, event: str, listener: EventListener) -> None:
        self.events.on(event, listener)

    def off(self, event: str, listener: EventListener) -> None:
        self.events.off(event, listener)
