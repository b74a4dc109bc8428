from __future__ import annotations
from typing import TYPE_CHECKING, Any

from vkmax.shared.config import PRIVACY_ALL, PRIVACY_CONTACTS
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.opcodes import Opcode

if TYPE_CHECKING:
    from vkmax.client.client import MaxClient


async def _update_user_setting(client: "MaxClient", key: str, value: Any) -> RpcEnvelope:
    return await client.invoke(Opcode.UPDATE_SETTINGS, {"settings": {"user": {key: value}}})


def _privacy(allowed: bool) -> str:
    return PRIVACY_ALL if allowed else PRIVACY_CONTACTS


async def change_online_status_visibility(client: "MaxClient", hidden: bool) -> RpcEnvelope:
    return await _update_user_setting(client, "HIDDEN", hidden)


async def set_is_findable_by_phone(client: "MaxClient", findable: bool) -> RpcEnvelope:
    return await _update_user_setting(client, "SEARCH_BY_PHONE", _privacy(findable))


async def set_calls_privacy(client: "MaxClient", can_be_called: bool) -> RpcEnvelope:
    return await _update_user_setting(client, "INCOMING_CALL", _privacy(can_be_called))


async def invite_privacy(client: "MaxClient", invitable: bool) -> RpcEnvelope:
    return await _update_user_setting(client, "CHATS_INVITE", _privacy(invitable))
