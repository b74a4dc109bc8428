from __future__ import annotations
from typing import Any, Optional


class MaxError(Exception):
    """Base class for every error raised by vkmax."""
    pass


# ---- local connection preconditions ----

class ConnectionStateError(MaxError):
    """Raised when an operation is not valid in the current connection state."""
    pass

class AlreadyConnectedError(ConnectionStateError):
    def __init__(self, message: str = "Already connected") -> None:
        super().__init__(message)

class NotConnectedError(ConnectionStateError):
    def __init__(self, message: str = "WebSocket not connected. Call .connect() first.") -> None:
        super().__init__(message)


# ---- transport / protocol ----

class TransportError(MaxError):
    """Socket-level failure while opening the connection or sending a frame."""
    pass

class RequestTimeoutError(MaxError):
    """No response arrived for a request before its timeout."""

    def __init__(self, seq: int, opcode: int, timeout: float) -> None:
        super().__init__(f"Request timeout (seq={seq}, opcode={opcode}, after {timeout}s)")
        self.seq = seq
        self.opcode = opcode
        self.timeout = timeout

class ProtocolError(MaxError):
    """An inbound frame was not valid JSON or not a valid envelope."""
    pass


# ---- server-reported errors ----

class ApplicationError(MaxError):
    """The server answered with an ``error`` field in an otherwise valid response."""

    def __init__(self, error: Any, *, opcode: Optional[int] = None) -> None:
        super().__init__(str(error))
        self.error = error
        self.opcode = opcode

class AuthenticationError(ApplicationError):
    pass


# ---- API misuse ----

class PreconditionError(MaxError):
    pass

class KeepaliveAlreadyStartedError(PreconditionError):
    def __init__(self, message: str = "Keepalive task already started") -> None:
        super().__init__(message)

class InvalidCallbackError(PreconditionError, TypeError):
    def __init__(self, message: str = "callback must be callable") -> None:
        super().__init__(message)

class NotLoggedInError(PreconditionError):
    def __init__(self, message: str = "Not logged in. Call .login_by_token() or .sign_in() first.") -> None:
        super().__init__(message)

class InvalidArgumentError(PreconditionError, ValueError):
    pass


# ---- media ----

class UploadError(MaxError):
    """Uploading a media blob to an upload endpoint failed."""
    pass
