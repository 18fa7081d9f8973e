"""
Agent Runtime

Wires one character to its persistence, model access and plugins, and
owns the per-turn operations the message processor drives: connection
bootstrap, state composition, action dispatch and evaluation.
"""

import asyncio
import logging
import os
from typing import Any, Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from agent_recall.config import AgentConfig
from agent_recall.database.base import DatabaseAdapter
from agent_recall.identity import to_stable_id
from agent_recall.interaction.events import InteractionLogger
from agent_recall.knowledge.manager import KnowledgeLoadReport, PdfReader, RAGKnowledgeManager
from agent_recall.llm.client import GenerationError, LLMClient, ModelClass
from agent_recall.llm.generation import UTILITY_SYSTEM_PROMPT, GenerationDispatcher
from agent_recall.memory.manager import MemoryManager
from agent_recall.models.character import Character
from agent_recall.models.memory import Account, Memory
from agent_recall.models.state import ComposedState
from agent_recall.runtime.composer import CompositionPolicy, StateComposer
from agent_recall.runtime.formatting import (
    compose_context,
    format_evaluator_examples,
    format_evaluator_names,
    format_evaluators,
)
from agent_recall.runtime.registry import (
    Action,
    ActionRegistry,
    Evaluator,
    EvaluatorRegistry,
    HandlerCallback,
    Provider,
)
from agent_recall.vector.base import VectorStore

logger = logging.getLogger("agent_recall.runtime")

EVALUATION_TEMPLATE = """TASK: Based on the conversation and conditions, determine which evaluation functions are appropriate to call.
Examples:
{{evaluator_examples}}

INSTRUCTIONS: You are helping me to decide which appropriate functions to call based on the conversation between {{sender_name}} and {{agent_name}}.

{{recent_messages}}

Evaluator Functions:
{{evaluators}}

TASK: Based on the most recent conversation, determine which evaluators functions are appropriate to call to call.
Include the name of evaluators that are relevant and should be called in the "values" array.

Available evaluator names to include are {{evaluator_names}}

Respond with a JSON object: {"values": ["evaluator name", ...]}"""


class EvaluatorNames(BaseModel):
    values: List[str] = Field(default_factory=list, description="The names of the evaluators")


class AgentRuntime:
    """
    Runtime for a single agent.

    Usage:
        runtime = AgentRuntime(character, database, vector_store, llm)
        await runtime.initialize()

        state = await runtime.compose_state(memory)
    """

    def __init__(
        self,
        character: Character,
        database: DatabaseAdapter,
        vector_store: VectorStore,
        llm: LLMClient,
        config: Optional[AgentConfig] = None,
        actions: Iterable[Action] = (),
        evaluators: Iterable[Evaluator] = (),
        providers: Iterable[Provider] = (),
        agent_id: Optional[UUID] = None,
        events: Optional[InteractionLogger] = None,
        pdf_reader: Optional[PdfReader] = None,
    ):
        self.character = character
        self.database = database
        self.vector_store = vector_store
        self.llm = llm
        self.config = config or AgentConfig()
        self.events = events or InteractionLogger()

        # character id, then explicit id, then derived from the name
        self.agent_id: UUID = character.id or agent_id or to_stable_id(character.name)

        self.message_manager = self._memory_manager("messages")
        self.description_manager = self._memory_manager("descriptions")
        self.lore_manager = self._memory_manager("lore")
        self.documents_manager = self._memory_manager("documents")
        self.knowledge_manager = RAGKnowledgeManager(
            runtime=self,
            vector_store=vector_store,
            database=database,
            embedder=llm,
            config=self.config.rag,
            pdf_reader=pdf_reader,
            character_name=character.name,
        )

        self.composer = StateComposer(self)
        self.generation = GenerationDispatcher(llm)

        self.actions = ActionRegistry()
        self.evaluators = EvaluatorRegistry()
        self.providers: List[Provider] = []
        for action in actions:
            self.register_action(action)
        for evaluator in evaluators:
            self.register_evaluator(evaluator)
        for provider in providers:
            self.register_provider(provider)

        logger.info(f"Agent ID: {self.agent_id} ({character.name})")

    def _memory_manager(self, table_name: str) -> MemoryManager:
        return MemoryManager(
            runtime=self,
            table_name=table_name,
            vector_store=self.vector_store,
            database=self.database,
            embedder=self.llm,
        )

    async def initialize(self) -> KnowledgeLoadReport:
        """
        Bootstrap the agent's own account, room and membership, then load
        the character's knowledge. Knowledge items that fail are reported,
        not raised.
        """
        await self.ensure_room_exists(self.agent_id)
        # participants reference the account, so it must exist first
        await self.ensure_user_exists(
            self.agent_id, self.character.username or self.character.name, self.character.name
        )
        await self.ensure_participant_in_room(self.agent_id, self.agent_id)

        if not self.character.knowledge:
            return KnowledgeLoadReport()
        return await self.knowledge_manager.process_character_knowledge(self.character.knowledge)

    # ========== Registration ==========

    def register_action(self, action: Action) -> None:
        self.actions.register(action)

    def register_evaluator(self, evaluator: Evaluator) -> None:
        self.evaluators.register(evaluator)

    def register_provider(self, provider: Provider) -> None:
        self.providers.append(provider)

    # ========== Settings ==========

    def get_setting(self, key: str) -> Optional[Any]:
        """Character secrets, character settings, config settings, then the environment."""
        settings = self.character.settings or {}
        secrets = settings.get("secrets") or {}
        for source in (secrets, settings, self.config.settings):
            value = source.get(key)
            if value not in (None, ""):
                return value
        return os.getenv(key)

    def get_conversation_length(self) -> int:
        return self.config.runtime.conversation_length

    # ========== Connection bootstrap ==========

    async def ensure_user_exists(
        self,
        user_id: UUID,
        user_name: Optional[str],
        name: Optional[str],
        email: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        account = await self.database.get_account_by_id(user_id)
        if account:
            return
        await self.database.create_account(Account(
            id=user_id,
            name=name or user_name or "Unknown User",
            username=user_name or name or "Unknown",
            email=email,
            details={"summary": "", "source": source or ""},
        ))
        logger.info(f"User {user_name} created successfully.")

    async def ensure_room_exists(self, room_id: UUID) -> None:
        room = await self.database.get_room(room_id)
        if not room:
            await self.database.create_room(room_id)
            logger.info(f"Room {room_id} created successfully.")

    async def ensure_participant_in_room(self, user_id: UUID, room_id: UUID) -> None:
        if await self.database.get_is_user_in_the_room(room_id, user_id):
            return
        await self.database.add_participant(user_id, room_id)
        if user_id == self.agent_id:
            logger.info(f"Agent {self.character.name} linked to room {room_id} successfully.")
        else:
            logger.info(f"User {user_id} linked to room {room_id} successfully.")

    async def ensure_connection(
        self,
        user_id: UUID,
        room_id: UUID,
        user_name: Optional[str] = None,
        user_screen_name: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        """Make sure both accounts and the room exist, then that both are members of it."""
        await asyncio.gather(
            self.ensure_user_exists(
                self.agent_id,
                self.character.name or "Agent",
                self.character.name or "Agent",
                source=source,
            ),
            self.ensure_user_exists(
                user_id,
                user_name or f"User{user_id}",
                user_screen_name or f"User{user_id}",
                source=source,
            ),
            self.ensure_room_exists(room_id),
        )
        await asyncio.gather(
            self.ensure_participant_in_room(user_id, room_id),
            self.ensure_participant_in_room(self.agent_id, room_id),
        )

    # ========== State ==========

    async def compose_state(
        self,
        message: Memory,
        additional_keys: Optional[dict] = None,
        policy: CompositionPolicy = CompositionPolicy.FULL,
    ) -> ComposedState:
        return await self.composer.compose_state(message, additional_keys, policy)

    async def update_recent_message_state(self, state: ComposedState) -> ComposedState:
        return await self.composer.update_recent_message_state(state)

    # ========== Actions and evaluators ==========

    async def process_actions(
        self,
        message: Memory,
        responses: List[Memory],
        state: Optional[ComposedState] = None,
        callback: Optional[HandlerCallback] = None,
        tags: Optional[List[str]] = None,
    ) -> None:
        """Run the handler of each response's action. Handler errors are logged."""
        for response in responses:
            action_name = response.content.action
            if not action_name:
                logger.debug(f"No action in response {response.id}")
                continue

            action = self.actions.get(action_name)
            if action is None:
                logger.warning(f"No action found for {action_name}")
                continue

            await self.events.log_action_called(
                client=message.content.source or "unknown",
                agent_id=self.agent_id,
                user_id=message.user_id,
                room_id=message.room_id,
                message_id=message.id,
                action_name=action.name,
                tags=tags,
            )
            try:
                logger.info(f"Executing handler for action: {action.name}")
                await action.handler(self, message, state, {}, callback)
            except Exception as e:
                logger.error(f"Action {action.name} failed: {e}", exc_info=True)

    async def _evaluator_if_valid(
        self, evaluator: Evaluator, message: Memory, state: ComposedState, did_respond: bool
    ) -> Optional[Evaluator]:
        if not did_respond and not evaluator.always_run:
            return None
        try:
            if await evaluator.validate(self, message, state):
                return evaluator
        except Exception as e:
            logger.error(f"Validation of evaluator {evaluator.name} failed: {e}", exc_info=True)
        return None

    async def evaluate(
        self,
        message: Memory,
        state: ComposedState,
        did_respond: bool = False,
        callback: Optional[HandlerCallback] = None,
    ) -> List[str]:
        """
        Ask the model which of the valid evaluators apply and run them.

        Returns the evaluator names the model selected.
        """
        candidates = await asyncio.gather(*(
            self._evaluator_if_valid(evaluator, message, state, did_respond)
            for evaluator in self.evaluators
        ))
        valid = [e for e in candidates if e is not None]
        if not valid:
            return []

        eval_state = state.model_copy(update=dict(
            evaluators=format_evaluators(valid),
            evaluator_names=format_evaluator_names(valid),
            evaluator_examples=format_evaluator_examples(valid),
        ))
        template = self.character.templates.get("evaluation_template") or EVALUATION_TEMPLATE
        context = compose_context(eval_state.template_values(), template)

        try:
            result = await self.llm.generate_object(
                context,
                EvaluatorNames,
                ModelClass.SMALL,
                system_prompt=UTILITY_SYSTEM_PROMPT,
            )
        except GenerationError as e:
            logger.error(f"Evaluator selection failed: {e}")
            return []

        selected = {self.evaluators.get(name) for name in result.values}
        for evaluator in valid:
            if evaluator not in selected:
                continue
            try:
                await evaluator.handler(self, message, state, {}, callback)
            except Exception as e:
                logger.error(f"Evaluator {evaluator.name} failed: {e}", exc_info=True)

        return result.values
