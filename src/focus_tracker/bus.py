"""Best-effort message delivery between the tracker and page contexts."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from pydantic import BaseModel

from .messages import Message, parse_message, to_wire

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], Awaitable[None]]
Handler = Callable[[Message, Optional[str]], Awaitable[Optional[dict[str, Any]]]]


def tab_context(tab_id: int) -> str:
    return f"tab:{tab_id}"


class MessageBus:
    """Routes outbound messages to subscribed page contexts.

    A context that is not subscribed simply does not receive the message;
    that is the normal state for tabs without a client attached.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, Listener] = {}

    def subscribe(self, context_id: str, listener: Listener) -> None:
        self._listeners[context_id] = listener
        logger.debug("Context %s subscribed.", context_id)

    def unsubscribe(self, context_id: str) -> None:
        if self._listeners.pop(context_id, None) is not None:
            logger.debug("Context %s unsubscribed.", context_id)

    @property
    def contexts(self) -> list[str]:
        return list(self._listeners)

    async def send(self, context_id: str, message: BaseModel) -> bool:
        listener = self._listeners.get(context_id)
        if listener is None:
            return False
        return await self._deliver(context_id, listener, to_wire(message))

    async def broadcast(self, message: BaseModel, *, exclude: Optional[str] = None) -> int:
        payload = to_wire(message)
        delivered = 0
        for context_id, listener in list(self._listeners.items()):
            if context_id == exclude:
                continue
            if await self._deliver(context_id, listener, payload):
                delivered += 1
        return delivered

    async def _deliver(self, context_id: str, listener: Listener, payload: dict[str, Any]) -> bool:
        try:
            await listener(dict(payload))
        except Exception:
            logger.exception("Listener for %s failed on %s", context_id, payload.get("action"))
            return False
        return True


class Messenger(Protocol):
    async def request(self, message: BaseModel) -> Optional[dict[str, Any]]:
        ...


class LocalMessenger:
    """Sends client requests to an in-process handler.

    Returns ``None`` when no handler is attached, mirroring a runtime with no
    receiver on the other end.
    """

    def __init__(self, handler: Optional[Handler] = None, context_id: Optional[str] = None) -> None:
        self.handler = handler
        self.context_id = context_id

    async def request(self, message: BaseModel) -> Optional[dict[str, Any]]:
        if self.handler is None:
            return None
        return await self.handler(parse_message(message), self.context_id)
