"""
Message Processor

Drives one conversational turn: turn an inbound platform message into a
memory, compose state around it, and later generate, deliver and record
the agent's reply.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from agent_recall.errors import AgentRecallError
from agent_recall.identity import message_id_from, room_id_from, user_id_from
from agent_recall.interaction.events import InteractionLogger
from agent_recall.llm.client import ModelClass
from agent_recall.models.memory import Content, Memory, now_ms
from agent_recall.models.message import ReceivedMessage
from agent_recall.models.state import ComposedState
from agent_recall.runtime.composer import CompositionPolicy
from agent_recall.runtime.formatting import compose_context

logger = logging.getLogger("agent_recall.interaction")

# Delivers a reply; returns the memories of what was actually sent, if it tracked them
DeliveryCallback = Callable[..., Awaitable[Optional[List[Memory]]]]


@dataclass
class PreprocessResult:
    memory: Memory
    state: ComposedState


class MessageProcessor:
    """
    Per-turn orchestration for an AgentRuntime.

    `preprocess` must run before `respond` or `generate`; the processor
    keeps the turn's anchor memory and state between the two.
    """

    def __init__(self, runtime, events: Optional[InteractionLogger] = None):
        self.runtime = runtime
        self.events = events or runtime.events
        self.memory: Optional[Memory] = None
        self.state: Optional[ComposedState] = None

    async def preprocess(
        self,
        received: ReceivedMessage,
        policy: CompositionPolicy = CompositionPolicy.FULL,
    ) -> PreprocessResult:
        """
        Record an inbound message and compose the state for replying to it.

        Raises:
            InvalidInputError: If the raw room, user or message id is empty
        """
        room_id = room_id_from(received.raw_room_id)
        user_id = user_id_from(received.raw_user_id)
        memory_id = message_id_from(received.raw_message_id, self.runtime.agent_id)

        await self.runtime.ensure_connection(
            user_id,
            room_id,
            received.user_name,
            received.user_screen_name,
            received.source,
        )

        self.memory = self._build_memory(received, memory_id, user_id, room_id)
        await self.runtime.message_manager.create_memory(self.memory, is_unique=True)
        self.state = await self.runtime.compose_state(self.memory, policy=policy)

        await self.events.log_message_received(
            client=received.source,
            agent_id=self.runtime.agent_id,
            user_id=user_id,
            room_id=room_id,
            message_id=self.memory.id,
        )
        return PreprocessResult(memory=self.memory, state=self.state)

    def _build_memory(self, received: ReceivedMessage, memory_id, user_id, room_id) -> Memory:
        agent_id = self.runtime.agent_id
        in_reply_to = None
        if received.in_reply_to:
            in_reply_to = message_id_from(received.in_reply_to, agent_id)

        return Memory(
            id=memory_id,
            agent_id=agent_id,
            user_id=user_id,
            room_id=room_id,
            content=Content(
                text=received.text,
                attachments=received.attachments,
                source=received.source,
                in_reply_to=in_reply_to,
                url=received.message_url,
            ),
            created_at=received.created_at or now_ms(),
        )

    def _require_turn(self) -> None:
        if self.memory is None or self.state is None:
            raise AgentRecallError("preprocess() must be called before responding")

    async def generate(self, template: str, tags: Optional[List[str]] = None) -> Content:
        """Generate a reply from the composed state without delivering it."""
        self._require_turn()
        context = compose_context(self.state.template_values(), template)
        return await self.runtime.generation.generate_message_response(
            context, tags=tags, model_class=ModelClass.LARGE
        )

    def _build_response_memory(self, content: Content) -> Memory:
        return Memory(
            id=message_id_from(str(self.memory.id), self.runtime.agent_id),
            agent_id=self.runtime.agent_id,
            user_id=self.runtime.agent_id,
            room_id=self.memory.room_id,
            content=content,
            created_at=now_ms(),
        )

    async def respond(
        self,
        template: str,
        tags: Optional[List[str]] = None,
        callback: Optional[DeliveryCallback] = None,
    ) -> Content:
        """
        Generate, deliver and record the reply, then run actions and evaluators.

        Errors are reported as an "error" response event and re-raised.
        """
        self._require_turn()
        memory = self.memory
        try:
            response = await self.generate(template, tags)

            delivered = await callback(response) if callback else None
            responses = list(delivered or []) or [self._build_response_memory(response)]
            for response_memory in responses:
                await self.runtime.message_manager.create_memory(response_memory, is_unique=True)

            self.state = await self.runtime.update_recent_message_state(self.state)
            await self.runtime.process_actions(memory, responses, self.state, callback, tags)
            await self.runtime.evaluate(memory, self.state, did_respond=True, callback=callback)
        except Exception as e:
            logger.error(f"Failed to respond to {memory.id}: {e}", exc_info=True)
            await self._log_response("error")
            raise

        await self._log_response("sent")
        return response

    async def ignore(self) -> None:
        """Record that the agent chose not to reply to this turn."""
        self._require_turn()
        await self._log_response("ignored")

    async def _log_response(self, status: str) -> None:
        await self.events.log_agent_response(
            client=self.memory.content.source or "unknown",
            agent_id=self.runtime.agent_id,
            user_id=self.memory.user_id,
            room_id=self.memory.room_id,
            message_id=self.memory.id,
            status=status,
        )
