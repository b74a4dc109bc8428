from __future__ import annotations
from typing import TYPE_CHECKING, List

from vkmax.functions.messages import ChatId, MessageId
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.opcodes import Opcode

if TYPE_CHECKING:
    from vkmax.client.client import MaxClient


async def get_contacts(client: "MaxClient", contact_ids: List[int]) -> RpcEnvelope:
    return await client.invoke(Opcode.GET_CONTACTS, {"contactIds": list(contact_ids)})


async def add_contact(client: "MaxClient", contact_id: int) -> RpcEnvelope:
    return await client.invoke(Opcode.ADD_CONTACT, {"contactId": contact_id, "action": "ADD"})


async def react_to_message(
    client: "MaxClient",
    chat_id: ChatId,
    message_id: MessageId,
    reaction: str,
) -> RpcEnvelope:
    """Add an emoji reaction, then fetch the message's reactions; returns the latter."""
    await client.invoke(Opcode.ADD_REACTION, {
        "chatId": chat_id,
        "messageId": str(message_id),
        "reaction": {
            "reactionType": "EMOJI",
            "id": reaction,
        },
    })
    return await client.invoke(Opcode.GET_REACTIONS, {
        "chatId": chat_id,
        "messageId": str(message_id),
        "count": 100,
    })
