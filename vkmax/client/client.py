#!/usr/bin/env python3
"""
VK MAX client

Connection, authentication and keepalive on top of RpcSession. Every other
operation lives in vkmax.functions and goes through ``MaxClient.invoke``.

    client = MaxClient()
    await client.connect()
    token = await client.send_code("+79001234567")
    await client.sign_in(token, "1234")
"""

from __future__ import annotations
from typing import Any, Optional

from vkmax.client.events import EVENT_CLOSE, EventListener
from vkmax.client.keepalive import Keepalive
from vkmax.client.state import SessionState
from vkmax.client.ws_client import Connector, EventCallback, RpcSession
from vkmax.functions import media
from vkmax.shared.config import USER_AGENT, ClientConfig
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.errors import AuthenticationError, NotConnectedError, NotLoggedInError, ProtocolError
from vkmax.shared.log import get_logger
from vkmax.shared.opcodes import Opcode
from vkmax.shared.utils import generate_device_id

logger = get_logger(__name__)


class MaxClient:
    """WebSocket client for the VK MAX messenger."""

    def __init__(self, config: Optional[ClientConfig] = None, *, connector: Optional[Connector] = None) -> None:
        self.config = config or ClientConfig()
        self.session = RpcSession(self.config, connector=connector, owner=self)
        self.state = SessionState()
        self.keepalive = Keepalive(self._send_keepalive_packet, self.config.keepalive_interval)
        self.session.on(EVENT_CLOSE, self._on_transport_close)

    @property
    def is_connected(self) -> bool:
        return self.session.is_connected

    @property
    def is_logged_in(self) -> bool:
        return self.state.logged_in

    @property
    def events(self):
        return self.session.events

    # ---- connection ----

    async def connect(self) -> Any:
        return await self.session.connect()

    async def disconnect(self) -> None:
        if self.session.websocket is None:
            raise NotConnectedError()
        await self.keepalive.stop()
        self.state.clear()
        await self.session.disconnect()

    def _on_transport_close(self) -> None:
        self.keepalive.cancel()
        if self.state.logged_in:
            logger.info("Session ended by connection close")
        self.state.clear()

    async def invoke(self, opcode: int, payload: Any) -> RpcEnvelope:
        return await self.session.invoke(opcode, payload)

    def set_callback(self, callback: EventCallback) -> None:
        """Register ``callback(client, frame)`` for server-pushed frames"""
        self.session.set_event_callback(callback)

    def on(self, event: str, listener: EventListener) -> None:
        self.session.on(event, listener)

    def off(self, event: str, listener: EventListener) -> None:
        self.session.off(event, listener)

    def require_login(self) -> None:
        if not self.is_connected:
            raise NotConnectedError()
        if not self.is_logged_in:
            raise NotLoggedInError()

    # ---- authentication ----

    async def send_hello(self) -> RpcEnvelope:
        """HELLO must precede any auth opcode on a fresh connection."""
        payload = {
            "userAgent": dict(USER_AGENT),
            "deviceId": generate_device_id(),
        }
        return await self.invoke(Opcode.HELLO, payload)

    async def send_code(self, phone: str) -> str:
        """Ask the server to text a verification code; returns the token for sign_in."""
        if not self.is_connected:
            raise NotConnectedError()
        await self.send_hello()
        payload = {
            "phone": phone,
            "type": "START_AUTH",
            "language": self.config.language,
        }
        response = await self.invoke(Opcode.START_AUTH, payload)
        response.raise_for_error(AuthenticationError)
        token = response.payload.get("token") if isinstance(response.payload, dict) else None
        if not isinstance(token, str):
            raise ProtocolError("START_AUTH response carries no token")
        return token

    async def sign_in(self, sms_token: str, sms_code: "str | int") -> RpcEnvelope:
        if not self.is_connected:
            raise NotConnectedError()
        payload = {
            "token": sms_token,
            "verifyCode": str(sms_code),
            "authTokenType": "CHECK_CODE",
        }
        response = await self.invoke(Opcode.VERIFY_CODE, payload)
        response.raise_for_error(AuthenticationError)
        self._complete_login(response)
        return response

    async def login_by_token(self, token: str) -> RpcEnvelope:
        if not self.is_connected:
            raise NotConnectedError()
        await self.send_hello()
        logger.info("using session")
        payload = {
            "interactive": True,
            "token": token,
            "chatsSync": 0,
            "contactsSync": 0,
            "presenceSync": 0,
            "draftsSync": 0,
            "chatsCount": self.config.chats_count,
        }
        response = await self.invoke(Opcode.LOGIN_BY_TOKEN, payload)
        response.raise_for_error(AuthenticationError)
        self._complete_login(response, token=token)
        return response

    def _complete_login(self, response: RpcEnvelope, token: Optional[str] = None) -> None:
        # the socket may have closed between the reply and this point
        if not self.is_connected:
            raise NotConnectedError("Connection closed before login completed")
        self.state.login(response.payload, token=token)
        if self.state.phone:
            logger.info("Successfully logged in as %s", self.state.phone)
        self.keepalive.start()

    async def _send_keepalive_packet(self) -> RpcEnvelope:
        return await self.invoke(Opcode.KEEPALIVE, {"interactive": False})

    # ---- media shortcuts ----

    async def upload_and_send_photo(self, chat_id: int, data: bytes, filename: str, text: str = "") -> RpcEnvelope:
        return await media.upload_and_send_photo(self, chat_id, data, filename, text)

    async def upload_and_send_video(self, chat_id: int, data: bytes, filename: str, text: str = "") -> RpcEnvelope:
        return await media.upload_and_send_video(self, chat_id, data, filename, text)

    async def upload_and_send_file(self, chat_id: int, data: bytes, filename: str) -> RpcEnvelope:
        return await media.upload_and_send_file(self, chat_id, data, filename)
