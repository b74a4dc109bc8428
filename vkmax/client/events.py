from __future__ import annotations
import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, Set

from vkmax.shared.log import get_logger

logger = get_logger(__name__)

EventListener = Callable[..., Any]

# Event names emitted by RpcSession
EVENT_MESSAGE = "message"   # (frame,) for every unsolicited frame
EVENT_CLOSE = "close"       # () when the transport closes for any reason


class EventBus:
    """
    Fan-out of named events to any number of listeners.

    Listeners run synchronously inside ``emit`` in registration order. A
    listener that returns an awaitable is scheduled as a task; the bus keeps
    a strong reference to it until it finishes. Listener exceptions are logged
    and never reach the emitter.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[EventListener]] = {}
        self._background_tasks: Set[asyncio.Task] = set()

    def on(self, event: str, listener: EventListener) -> None:
        if not callable(listener):
            raise TypeError("listener must be callable")
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: EventListener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> int:
        """Call every listener of ``event``; returns how many were called."""
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    self.track(asyncio.ensure_future(result))
            except Exception as e:
                logger.error("Event listener error [%s]: %s", event, e)
        return len(listeners)

    def track(self, task: "asyncio.Future[Any]") -> None:
        """Keep a strong reference to a background task until completion."""
        self._background_tasks.add(task)

        def _discard(_task: "asyncio.Future[Any]") -> None:
            self._background_tasks.discard(_task)
            if not _task.cancelled() and _task.exception() is not None:
                logger.error("Background listener failed: %s", _task.exception())

        task.add_done_callback(_discard)

    def expect(self, event: str, predicate: Optional[Callable[..., bool]] = None) -> "asyncio.Future[Any]":
        """
        Future that completes with the first argument of the next ``event``
        whose args satisfy ``predicate``. The listener is registered before
        this returns and removed once the future is done or cancelled.
        """
        fut: asyncio.Future = asyncio.get_running_loop().create_future()

        def _listener(*args: Any) -> None:
            if fut.done():
                return
            if predicate is None or predicate(*args):
                fut.set_result(args[0] if args else None)

        self.on(event, _listener)
        fut.add_done_callback(lambda _fut: self.off(event, _listener))
        return fut

    async def wait_for(
        self,
        event: str,
        predicate: Optional[Callable[..., bool]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Wait for the next matching ``event``.
        Raises asyncio.TimeoutError if nothing matches within ``timeout``.
        """
        return await asyncio.wait_for(self.expect(event, predicate), timeout)
