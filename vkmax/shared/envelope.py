from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import json

from vkmax.shared.config import RPC_VERSION
from vkmax.shared.errors import ApplicationError, ProtocolError
from vkmax.shared.opcodes import Command


@dataclass
class RpcEnvelope:
    """
    Every frame on the socket, in both directions, uses the envelope:
    {
    "ver":     INT (protocol version, 11),
    "cmd":     INT (0 = request, 1 = response),
    "seq":     INT (client sequence number; echoed in responses),
    "opcode":  INT (operation),
    "payload": { ... } (operation-specific),
    "error":   ANY (optional, responses only)
    }

    Server-pushed events use the same shape; their seq does not match any
    outstanding request.
    """
    opcode: int
    payload: Any = None
    seq: Optional[int] = None
    ver: int = RPC_VERSION
    cmd: int = Command.REQUEST
    error: Any = None

    @classmethod
    def from_json(cls, json_str: str) -> 'RpcEnvelope':
        """Parse JSON string into RpcEnvelope, validating structure"""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON: {e}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RpcEnvelope':
        """Create RpcEnvelope from dictionary, validating field types"""
        if not isinstance(data, dict):
            raise ProtocolError("Frame must be a JSON object")
        if 'opcode' not in data:
            raise ProtocolError("Missing required field: 'opcode'")

        if not _is_int(data['opcode']):
            raise ProtocolError("'opcode' must be an integer")
        seq = data.get('seq')
        if seq is not None and not _is_int(seq):
            raise ProtocolError("'seq' must be an integer")
        ver = data.get('ver', RPC_VERSION)
        if not _is_int(ver):
            raise ProtocolError("'ver' must be an integer")
        cmd = data.get('cmd', Command.RESPONSE)
        if not _is_int(cmd):
            raise ProtocolError("'cmd' must be an integer")

        return cls(
            opcode=data['opcode'],
            payload=data.get('payload'),
            seq=seq,
            ver=ver,
            cmd=cmd,
            error=data.get('error'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert RpcEnvelope back to dictionary"""
        result = {
            'ver': self.ver,
            'cmd': int(self.cmd),
            'seq': self.seq,
            'opcode': int(self.opcode),
            'payload': self.payload,
        }
        if self.error is not None:
            result['error'] = self.error
        return result

    def to_json(self) -> str:
        """Convert RpcEnvelope to JSON string"""
        return json.dumps(self.to_dict(), separators=(',', ':'), ensure_ascii=False)

    @property
    def payload_error(self) -> Any:
        """The application-level error of a response, top-level or inside the payload."""
        if isinstance(self.payload, dict) and self.payload.get('error'):
            return self.payload['error']
        return self.error or None

    def raise_for_error(self, exc_type: type = ApplicationError) -> 'RpcEnvelope':
        """Raise ``exc_type`` if the response carries an error; return self otherwise."""
        error = self.payload_error
        if error:
            raise exc_type(error, opcode=self.opcode)
        return self


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def create_request(opcode: int, seq: int, payload: Any) -> RpcEnvelope:
    """Helper to build an outbound request envelope"""
    return RpcEnvelope(
        opcode=opcode,
        payload=payload,
        seq=seq,
        ver=RPC_VERSION,
        cmd=Command.REQUEST,
    )
