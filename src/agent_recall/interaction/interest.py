"""
Interest Tracking

Per-room engagement state for one session. A room with an entry is one
the agent is engaged in; removing the entry disengages it.
"""

import logging
from typing import Dict, Iterator, Optional

from agent_recall.models.memory import now_ms
from agent_recall.models.state import InterestMessage, InterestState

logger = logging.getLogger("agent_recall.interaction")

MAX_INTEREST_MESSAGES = 10


class InterestStore:
    """
    Room id -> InterestState map owned by a session.

    Not shared between sessions and not thread-safe; all access happens on
    the owning event loop.
    """

    def __init__(self, max_messages: int = MAX_INTEREST_MESSAGES):
        self.max_messages = max_messages
        self._rooms: Dict[str, InterestState] = {}

    def get(self, room_id: str) -> Optional[InterestState]:
        return self._rooms.get(room_id)

    def is_engaged(self, room_id: str) -> bool:
        return room_id in self._rooms

    def engage(self, room_id: str, handler: Optional[str] = None) -> InterestState:
        """Create or refresh the room's entry and mark `handler` as the active one."""
        state = self._rooms.get(room_id)
        if state is None:
            state = InterestState()
            self._rooms[room_id] = state
            logger.debug(f"Engaged in room {room_id}")
        state.current_handler = handler
        state.last_message_sent = now_ms()
        return state

    def record_message(self, room_id: str, user_id: str, user_name: str, content: str) -> InterestState:
        """Append to the room's message log, keeping only the newest entries."""
        state = self._rooms.get(room_id) or self.engage(room_id)
        state.messages.append(InterestMessage(user_id=user_id, user_name=user_name, content=content))
        if len(state.messages) > self.max_messages:
            del state.messages[: len(state.messages) - self.max_messages]
        return state

    def disengage(self, room_id: str) -> None:
        if self._rooms.pop(room_id, None) is not None:
            logger.debug(f"Disengaged from room {room_id}")

    def prune(self, older_than_ms: int) -> int:
        """Drop rooms whose last message was sent before `older_than_ms`; returns the count."""
        stale = [r for r, s in self._rooms.items() if s.last_message_sent < older_than_ms]
        for room_id in stale:
            del self._rooms[room_id]
        return len(stale)

    def clear(self) -> None:
        self._rooms.clear()

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __iter__(self) -> Iterator[str]:
        return iter(self._rooms)

    def __len__(self) -> int:
        return len(self._rooms)
