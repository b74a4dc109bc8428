from __future__ import annotations
from typing import TYPE_CHECKING

from vkmax.functions.messages import ChatId
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.opcodes import Opcode
from vkmax.shared.utils import generate_random_id

if TYPE_CHECKING:
    from vkmax.client.client import MaxClient

CHANNEL_LINK_BASE = "https://max.ru"


def channel_link(username: str) -> str:
    return f"{CHANNEL_LINK_BASE}/{username}"


async def resolve_channel_username(client: "MaxClient", username: str) -> RpcEnvelope:
    return await client.invoke(Opcode.RESOLVE_LINK, {"link": channel_link(username)})


async def resolve_channel_id(client: "MaxClient", channel_id: ChatId) -> RpcEnvelope:
    return await client.invoke(Opcode.GET_CHATS, {"chatIds": [channel_id]})


async def join_channel(client: "MaxClient", username: str) -> RpcEnvelope:
    return await client.invoke(Opcode.JOIN_BY_LINK, {"link": channel_link(username)})


async def create_channel(client: "MaxClient", channel_name: str) -> RpcEnvelope:
    return await client.invoke(Opcode.SEND_MESSAGE, {
        "message": {
            "cid": generate_random_id(),
            "attaches": [
                {
                    "_type": "CONTROL",
                    "event": "new",
                    "title": channel_name,
                    "chatType": "CHANNEL",
                }
            ],
            "text": "",
        }
    })


async def mute_channel(client: "MaxClient", channel_id: ChatId, mute: bool = True) -> RpcEnvelope:
    return await client.invoke(Opcode.UPDATE_SETTINGS, {
        "settings": {
            "chats": {
                str(channel_id): {
                    # -1 means "until unmuted"
                    "dontDisturbUntil": -1 if mute else 0,
                }
            }
        }
    })
