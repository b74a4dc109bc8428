from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.log import get_logger

logger = get_logger(__name__)


@dataclass
class PendingRequest:
    """One in-flight request awaiting the frame with the same seq."""
    seq: int
    opcode: int
    future: "asyncio.Future[RpcEnvelope]"
    timer: Optional[asyncio.TimerHandle] = None
    sent_at: float = field(default_factory=time.monotonic)

    def settle(self, frame: Optional[RpcEnvelope] = None, exc: Optional[BaseException] = None) -> bool:
        """Complete the future once. Returns False if it was already done."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.future.done():
            return False
        if exc is not None:
            self.future.set_exception(exc)
        else:
            self.future.set_result(frame)
        return True


class PendingRequestTable:
    """
    seq → PendingRequest for every request that has not settled yet.

    Each removal method pops the entry before touching its future, so
    whichever of response, timeout or discard comes first wins and the
    others find nothing.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, PendingRequest] = {}

    def __contains__(self, seq: object) -> bool:
        return seq in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._entries))

    def add(self, entry: PendingRequest) -> None:
        if entry.seq in self._entries:
            raise ValueError(f"seq {entry.seq} is already pending")
        self._entries[entry.seq] = entry

    def resolve(self, seq: Optional[int], frame: RpcEnvelope) -> bool:
        """Settle ``seq`` with ``frame``. False means no live request had that seq."""
        if seq is None:
            return False
        entry = self._entries.pop(seq, None)
        if entry is None:
            return False
        return entry.settle(frame=frame)

    def reject(self, seq: int, exc: BaseException) -> bool:
        entry = self._entries.pop(seq, None)
        if entry is None:
            return False
        return entry.settle(exc=exc)

    def discard(self, seq: int) -> None:
        """Drop ``seq`` without settling it."""
        entry = self._entries.pop(seq, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
