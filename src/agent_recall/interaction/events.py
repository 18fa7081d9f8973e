"""
Interaction Events

Observability events for a conversation turn. Every event is written to
the log and then passed to registered async listeners. Events are
advisory: a failing listener is logged and never fails the turn.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger("agent_recall.interaction")

AGENT_MESSAGE_RECEIVED = "AGENT_MESSAGE_RECEIVED"
AGENT_RESPONSE_SENT = "AGENT_RESPONSE_SENT"
AGENT_SCHEDULED_POST = "AGENT_SCHEDULED_POST"
AGENT_ACTION_CALLED = "AGENT_ACTION_CALLED"

EventListener = Callable[[str, Dict[str, Any]], Awaitable[None]]


class InteractionLogger:
    """
    Emits interaction events.

    Example:
        >>> events = InteractionLogger()
        >>>
        >>> @events.listener
        >>> async def record(event, payload):
        >>>     print(event, payload["message_id"])
    """

    def __init__(self):
        self._listeners: List[EventListener] = []
        self._pending: Set[asyncio.Task] = set()

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)
        logger.debug(f"Registered interaction listener: {getattr(listener, '__name__', listener)}")

    def listener(self, func: EventListener) -> EventListener:
        """Decorator form of add_listener."""
        self.add_listener(func)
        return func

    def clear_listeners(self) -> None:
        self._listeners.clear()

    async def emit(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"{event} {payload}")
        await self._notify(event, payload)

    def emit_in_background(self, event: str, payload: Dict[str, Any]) -> None:
        """
        Log the event now and deliver it to listeners in a tracked task.

        The caller never waits on a listener; `drain()` waits for delivery.
        """
        logger.info(f"{event} {payload}")
        if not self._listeners:
            return
        task = asyncio.create_task(self._notify(event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for background deliveries still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def _notify(self, event: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event, payload)
            except Exception as e:
                logger.error(f"Interaction listener failed for {event}: {e}", exc_info=True)

    @staticmethod
    def _payload(client: str, agent_id, user_id, room_id, message_id) -> Dict[str, Any]:
        return {
            "client": client or "unknown",
            "agent_id": str(agent_id),
            "user_id": str(user_id),
            "room_id": str(room_id),
            "message_id": str(message_id),
        }

    async def log_message_received(self, client: str, agent_id, user_id, room_id, message_id) -> None:
        """Delivered to listeners in the background so the turn is not held up."""
        self.emit_in_background(
            AGENT_MESSAGE_RECEIVED,
            self._payload(client, agent_id, user_id, room_id, message_id),
        )

    async def log_agent_response(
        self, client: str, agent_id, user_id, room_id, message_id, status: str
    ) -> None:
        """status is one of "sent", "ignored" or "error"."""
        payload = self._payload(client, agent_id, user_id, room_id, message_id)
        payload["status"] = status
        await self.emit(AGENT_RESPONSE_SENT, payload)

    async def log_scheduled_post(
        self, client: str, agent_id, user_id, room_id, message_id, status: str
    ) -> None:
        payload = self._payload(client, agent_id, user_id, room_id, message_id)
        payload["status"] = status
        await self.emit(AGENT_SCHEDULED_POST, payload)

    async def log_action_called(
        self,
        client: str,
        agent_id,
        user_id,
        room_id,
        message_id,
        action_name: str,
        tags: Optional[List[str]] = None,
    ) -> None:
        payload = self._payload(client, agent_id, user_id, room_id, message_id)
        payload["action_name"] = action_name
        payload["tags"] = list(tags or [])
        await self.emit(AGENT_ACTION_CALLED, payload)
