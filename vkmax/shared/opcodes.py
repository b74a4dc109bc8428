from __future__ import annotations

from enum import Enum, IntEnum
from typing import Set


class Opcode(IntEnum):
    """VK MAX RPC opcodes carried in the envelope's ``opcode`` field."""

    # Session
    KEEPALIVE = 1                    # periodic no-op, payload {"interactive": false}
    HELLO = 6                        # first frame: user agent + device id

    # Authentication
    START_AUTH = 17                  # send SMS code to a phone number
    VERIFY_CODE = 18                 # exchange SMS token + code for a session
    LOGIN_BY_TOKEN = 19              # resume a session from a stored token

    # Profile
    UPDATE_SETTINGS = 22

    # Contacts
    GET_CONTACTS = 32
    ADD_CONTACT = 34

    # Chats & messages
    GET_CHATS = 48
    GET_MESSAGES = 49
    READ_MESSAGE = 50
    CHANGE_GROUP_SETTINGS = 55
    JOIN_BY_LINK = 57
    GET_GROUP_MEMBERS = 59
    SEND_MESSAGE = 64
    DELETE_MESSAGE = 66
    EDIT_MESSAGE = 67
    CHAT_SUBSCRIBE = 75
    MANAGE_USERS = 77
    RESOLVE_LINK = 89

    # Reactions
    ADD_REACTION = 178
    GET_REACTIONS = 181

    # Media upload
    FILE_UPLOAD_NOTIFICATION = 65
    REQUEST_UPLOAD_URL = 80          # images
    REQUEST_VIDEO_UPLOAD_URL = 82
    REQUEST_FILE_UPLOAD_URL = 87

    # Server-pushed events
    MESSAGE_RECEIVED = 128
    FILE_READY_NOTIFICATION = 136

    @classmethod
    def from_value(cls, value: int) -> Opcode:
        """Convert an integer to Opcode, raise ValueError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown opcode: {value}")

    @classmethod
    def is_valid(cls, value: int) -> bool:
        """Check if an integer is a known opcode."""
        try:
            cls(value)
            return True
        except ValueError:
            return False


class ConnectionState(str, Enum):
    """Lifecycle of the single WebSocket owned by a session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Command(IntEnum):
    """Values of the envelope ``cmd`` field."""
    REQUEST = 0
    RESPONSE = 1


# Opcodes the server pushes without a matching request
EVENT_OPCODES: Set[Opcode] = {
    Opcode.MESSAGE_RECEIVED,
    Opcode.FILE_READY_NOTIFICATION,
}
