from __future__ import annotations
from typing import TYPE_CHECKING, Iterable, Optional, Union

from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.opcodes import Opcode
from vkmax.shared.utils import generate_random_id

if TYPE_CHECKING:
    from vkmax.client.client import MaxClient

ChatId = Union[int, str]
MessageId = Union[int, str]


def build_message(text: str = "", *, attaches: Optional[list] = None, link: Optional[dict] = None) -> dict:
    """The ``message`` object of a SEND_MESSAGE payload, with a fresh cid"""
    message = {
        "text": text,
        "cid": generate_random_id(),
        "elements": [],
        "attaches": list(attaches or []),
    }
    if link is not None:
        message["link"] = link
    return message


async def send_message(client: "MaxClient", chat_id: ChatId, text: str, notify: bool = True) -> RpcEnvelope:
    payload = {
        "chatId": int(chat_id),
        "message": build_message(text),
        "notify": notify,
    }
    return await client.invoke(Opcode.SEND_MESSAGE, payload)


async def edit_message(client: "MaxClient", chat_id: ChatId, message_id: MessageId, text: str) -> RpcEnvelope:
    payload = {
        "chatId": chat_id,
        "messageId": str(message_id),
        "text": text,
        "elements": [],
        "attachments": [],
    }
    return await client.invoke(Opcode.EDIT_MESSAGE, payload)


async def delete_message(
    client: "MaxClient",
    chat_id: ChatId,
    message_ids: Iterable[MessageId],
    for_me: bool = False,
) -> RpcEnvelope:
    payload = {
        "chatId": chat_id,
        "messageIds": [str(m) for m in message_ids],
        "forMe": for_me,
    }
    return await client.invoke(Opcode.DELETE_MESSAGE, payload)


async def read_message(client: "MaxClient", chat_id: ChatId, message_id: MessageId) -> RpcEnvelope:
    payload = {
        "type": "READ_MESSAGE",
        "chatId": chat_id,
        "messageId": str(message_id),
        "mark": generate_random_id(),
    }
    return await client.invoke(Opcode.READ_MESSAGE, payload)


async def get_messages(
    client: "MaxClient",
    chat_id: ChatId,
    from_: Optional[MessageId] = None,
    forward: int = 0,
    backward: int = 30,
) -> RpcEnvelope:
    """Page through history around ``from_``; ``None`` lets the server pick the newest."""
    payload = {
        "chatId": chat_id,
        "from": from_,
        "forward": forward,
        "backward": backward,
        "getMessages": True,
    }
    return await client.invoke(Opcode.GET_MESSAGES, payload)


async def reply_message(
    client: "MaxClient",
    chat_id: ChatId,
    text: str,
    reply_to_message_id: MessageId,
    notify: bool = True,
) -> RpcEnvelope:
    payload = {
        "chatId": chat_id,
        "message": build_message(
            text,
            link={"type": "REPLY", "messageId": str(reply_to_message_id)},
        ),
        "notify": notify,
    }
    return await client.invoke(Opcode.SEND_MESSAGE, payload)
