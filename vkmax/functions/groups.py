from __future__ import annotations
from typing import TYPE_CHECKING, Dict, List, Tuple

from vkmax.functions.messages import ChatId, get_messages
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.errors import InvalidArgumentError, ProtocolError
from vkmax.shared.log import get_logger
from vkmax.shared.opcodes import Opcode
from vkmax.shared.utils import generate_random_id

if TYPE_CHECKING:
    from vkmax.client.client import MaxClient

logger = get_logger(__name__)

MAX_MEMBERS_PAGE = 500

# (deleting_messages, control_participants, control_admins) -> permission mask
ADMIN_PERMISSIONS: Dict[Tuple[bool, bool, bool], int] = {
    (False, False, False): 120,
    (True, False, False): 121,
    (True, True, False): 123,
    (False, False, True): 124,
    (True, False, True): 125,
    (False, True, False): 250,
    (False, True, True): 254,
    (True, True, True): 255,
}


def admin_permissions(deleting_messages: bool, control_participants: bool, control_admins: bool) -> int:
    return ADMIN_PERMISSIONS[(bool(deleting_messages), bool(control_participants), bool(control_admins))]


async def create_group(client: "MaxClient", group_name: str, participant_ids: List[int]) -> RpcEnvelope:
    return await client.invoke(Opcode.SEND_MESSAGE, {
        "message": {
            "cid": generate_random_id(),
            "attaches": [
                {
                    "_type": "CONTROL",
                    "event": "new",
                    "chatType": "CHAT",
                    "title": group_name,
                    "userIds": list(participant_ids),
                }
            ],
        },
        "notify": True,
    })


async def invite_users(
    client: "MaxClient",
    group_id: ChatId,
    participant_ids: List[int],
    show_history: bool = True,
) -> RpcEnvelope:
    return await client.invoke(Opcode.MANAGE_USERS, {
        "chatId": group_id,
        "userIds": list(participant_ids),
        "showHistory": show_history,
        "operation": "add",
    })


async def remove_users(
    client: "MaxClient",
    group_id: ChatId,
    participant_ids: List[int],
    delete_messages: bool = False,
) -> RpcEnvelope:
    return await client.invoke(Opcode.MANAGE_USERS, {
        "chatId": group_id,
        "userIds": list(participant_ids),
        "operation": "remove",
        # -1 wipes the removed users' messages
        "cleanMsgPeriod": -1 if delete_messages else 0,
    })


async def add_admin(
    client: "MaxClient",
    group_id: ChatId,
    admin_ids: List[int],
    deleting_messages: bool = False,
    control_participants: bool = False,
    control_admins: bool = False,
) -> RpcEnvelope:
    return await client.invoke(Opcode.MANAGE_USERS, {
        "chatId": group_id,
        "userIds": list(admin_ids),
        "type": "ADMIN",
        "operation": "add",
        "permissions": admin_permissions(deleting_messages, control_participants, control_admins),
    })


async def remove_admin(client: "MaxClient", group_id: ChatId, admin_ids: List[int]) -> RpcEnvelope:
    return await client.invoke(Opcode.MANAGE_USERS, {
        "chatId": group_id,
        "userIds": list(admin_ids),
        "type": "ADMIN",
        "operation": "remove",
    })


async def get_group_members(
    client: "MaxClient",
    group_id: ChatId,
    marker: int = 0,
    count: int = MAX_MEMBERS_PAGE,
) -> RpcEnvelope:
    if count > MAX_MEMBERS_PAGE:
        raise InvalidArgumentError(f"Maximum available count is {MAX_MEMBERS_PAGE}")
    return await client.invoke(Opcode.GET_GROUP_MEMBERS, {
        "type": "MEMBER",
        "marker": marker,
        "chatId": group_id,
        "count": count,
    })


async def change_group_settings(
    client: "MaxClient",
    group_id: ChatId,
    all_can_pin_message: bool = False,
    only_owner_can_change_icon_title: bool = True,
    only_admin_can_add_member: bool = True,
) -> RpcEnvelope:
    return await client.invoke(Opcode.CHANGE_GROUP_SETTINGS, {
        "chatId": group_id,
        "options": {
            "ONLY_OWNER_CAN_CHANGE_ICON_TITLE": only_owner_can_change_icon_title,
            "ALL_CAN_PIN_MESSAGE": all_can_pin_message,
            "ONLY_ADMIN_CAN_ADD_MEMBER": only_admin_can_add_member,
        },
    })


async def join_group_by_link(client: "MaxClient", link_hash: str) -> RpcEnvelope:
    """Join, subscribe to the new chat and load its latest page; returns the join response."""
    data = await client.invoke(Opcode.JOIN_BY_LINK, {"link": f"join/{link_hash}"})
    data.raise_for_error()

    chat = data.payload.get("chat") if isinstance(data.payload, dict) else None
    if not isinstance(chat, dict) or "id" not in chat:
        raise ProtocolError("JOIN_BY_LINK response carries no chat")
    chat_id = chat["id"]

    await client.invoke(Opcode.CHAT_SUBSCRIBE, {"chatId": chat_id, "subscribe": True})
    await get_messages(client, chat_id, from_=chat.get("cid"))
    logger.info("Joined chat via link", extra={"chat_id": chat_id})
    return data


async def resolve_group_by_link(client: "MaxClient", link_hash: str) -> RpcEnvelope:
    return await client.invoke(Opcode.RESOLVE_LINK, {"link": f"join/{link_hash}"})
