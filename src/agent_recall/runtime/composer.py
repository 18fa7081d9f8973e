"""
State Composer

Builds the ComposedState handed to generation for one turn. Reads run in
two concurrent phases: first the data sources (goals, knowledge, recent
interactions, recent messages with their actors), then action/evaluator
validation and providers, which need the first phase's state.
"""

import asyncio
import logging
import random
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from agent_recall.models.knowledge import RAGKnowledgeItem
from agent_recall.models.memory import Actor, Goal, Media, Memory
from agent_recall.models.state import ComposedState
from agent_recall.runtime.formatting import (
    add_header,
    compose_action_examples,
    compose_context,
    format_action_names,
    format_actions,
    format_attachments,
    format_evaluator_examples,
    format_evaluator_names,
    format_evaluators,
    format_goals,
    format_knowledge,
    format_messages,
    format_posts,
    gen_names,
    replace_user_placeholders,
    retrieve_actor_ids,
    shuffle_and_slice,
)

logger = logging.getLogger("agent_recall.runtime")

HIDDEN_ATTACHMENT_TEXT = "[Hidden]"
KNOWLEDGE_LIMIT = 5
ACTION_EXAMPLES_COUNT = 10
GOALS_HEADER = (
    "# Goals\n{{agent_name}} should prioritize accomplishing the objectives that are in progress."
)


class CompositionPolicy(str, Enum):
    """How much of the state to build."""
    FULL = "full"
    # Skip knowledge retrieval and providers for lower latency
    SKIP_KNOWLEDGE = "skip_knowledge"


def collect_attachments(
    message: Memory,
    recent_messages: Sequence[Memory],
    window_ms: int,
) -> List[Media]:
    """
    Attachments of the recent messages, oldest first.

    Attachments older than `window_ms` before the newest attachment-bearing
    message keep their metadata but have their text replaced with
    "[Hidden]". Returned attachments are copies; the memories are not
    modified. Falls back to the message's own attachments when no recent
    message carries any.
    """
    newest = next((m for m in recent_messages if m.content.attachments), None)
    if newest is None:
        return list(message.content.attachments)

    cutoff = newest.created_at - window_ms
    collected = []
    for memory in reversed(recent_messages):
        for media in memory.content.attachments:
            if memory.created_at < cutoff:
                media = media.model_copy(update={"text": HIDDEN_ATTACHMENT_TEXT})
            else:
                media = media.model_copy()
            collected.append(media)
    return collected


class StateComposer:
    """
    Assembles prompt context for an AgentRuntime.

    The runtime supplies the character, the managers, the registries and
    settings; the composer only reads from them.
    """

    def __init__(self, runtime):
        self.runtime = runtime

    @property
    def character(self):
        return self.runtime.character

    def _count_setting(self, key: str, default: int) -> int:
        value = self.runtime.get_setting(key)
        if value in (None, ""):
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Setting {key}={value!r} is not a number, using {default}")
            return default

    @property
    def _window_ms(self) -> int:
        return self.runtime.config.runtime.attachment_window_seconds * 1000

    # ========== Phase 1: data sources ==========

    async def _get_goals(self, message: Memory) -> Tuple[str, List[Goal]]:
        goals = await self.runtime.database.get_goals(
            room_id=message.room_id,
            user_id=message.user_id,
            only_in_progress=True,
        )
        return format_goals(goals), goals

    async def _get_knowledge(
        self, message: Memory, policy: CompositionPolicy
    ) -> Tuple[str, List[RAGKnowledgeItem]]:
        if policy == CompositionPolicy.SKIP_KNOWLEDGE:
            return "", []
        items = await self.runtime.knowledge_manager.get_knowledge(
            query=message.content.text,
            limit=KNOWLEDGE_LIMIT,
        )
        return format_knowledge(items), items

    async def _get_recent_interactions(self, message: Memory) -> List[Memory]:
        """Messages from the user in other rooms shared with the agent."""
        agent_id = self.runtime.agent_id
        if message.user_id == agent_id:
            return []

        rooms = await self.runtime.database.get_rooms_for_participants(
            [message.user_id, agent_id]
        )
        other_rooms = [room for room in rooms if room != message.room_id]
        if not other_rooms:
            return []

        return await self.runtime.message_manager.get_memories_by_room_ids(
            room_ids=other_rooms,
            limit=self.runtime.config.runtime.recent_interactions_limit,
            user_id=message.user_id,
        )

    async def _get_messages_and_actors(self, room_id) -> Tuple[List[Memory], List[Actor]]:
        recent = await self.runtime.message_manager.get_memories(
            room_id=room_id,
            count=self.runtime.get_conversation_length(),
            unique=False,
        )
        actors = await self.runtime.database.get_accounts_by_ids(retrieve_actor_ids(recent))
        return recent, actors

    # ========== Character sections ==========

    def _build_bio(self) -> str:
        bio = self.character.bio or ""
        if isinstance(bio, list):
            return " ".join(shuffle_and_slice(bio))
        return bio

    def _build_lore(self) -> str:
        if not self.character.lore:
            return ""
        count = self._count_setting("LORE_COUNT", self.runtime.config.runtime.lore_count)
        return "\n".join(shuffle_and_slice(self.character.lore, count))

    def _build_topics(self) -> str:
        if not self.character.topics:
            return ""
        count = self._count_setting("TOPICS_COUNT", self.runtime.config.runtime.topics_count)
        topics = shuffle_and_slice(self.character.topics, count)
        if len(topics) > 1:
            listed = f"{', '.join(topics[:-1])} and {topics[-1]}"
        else:
            listed = topics[0]
        return f"{self.character.name} is interested in {listed}"

    def _build_message_directions(self) -> str:
        style = self.character.style
        directions = style.all + style.chat
        return add_header(f"# Message Directions for {self.character.name}", "\n".join(directions))

    def _build_post_directions(self) -> str:
        style = self.character.style
        count = self.runtime.get_conversation_length() // 2
        directions = shuffle_and_slice(style.all + style.post, count)
        return add_header(f"# Post Directions for {self.character.name}", "\n".join(directions))

    def _build_post_examples(self) -> str:
        count = self._count_setting(
            "POST_EXAMPLES_COUNT", self.runtime.config.runtime.post_examples_count
        )
        examples = "\n".join(shuffle_and_slice(self.character.post_examples, count))
        return add_header(f"Example Posts for {self.character.name}:\n\n", examples)

    def _build_message_examples(self) -> str:
        count = self._count_setting(
            "MESSAGE_EXAMPLES_COUNT", self.runtime.config.runtime.message_examples_count
        )
        conversations = []
        for example in shuffle_and_slice(self.character.message_examples, count):
            names = gen_names(5)
            lines = []
            for message in example:
                line = f"{message.user}: {message.content.get('text', '')}"
                if message.content.get("action"):
                    line += f" ({message.content['action']})"
                lines.append(replace_user_placeholders(line, names))
            conversations.append("\n".join(lines))
        return add_header(
            f"Example Conversations for {self.character.name}\n\n",
            "\n\n".join(conversations),
        )

    def _format_message_interactions(self, interactions: List[Memory], actors: List[Actor]) -> str:
        lines = []
        for memory in interactions:
            if memory.user_id == self.runtime.agent_id:
                sender = self.character.name
            else:
                sender = next((a.name for a in actors if a.id == memory.user_id), "unknown")
            lines.append(f"{sender}: {memory.content.text}")
        return "\n".join(lines)

    # ========== Composition ==========

    async def compose_state(
        self,
        message: Memory,
        additional_keys: Optional[Dict[str, Any]] = None,
        policy: CompositionPolicy = CompositionPolicy.FULL,
    ) -> ComposedState:
        """
        Build the state for a turn anchored on `message`.

        Keys in `additional_keys` override computed sections and are
        available to template substitution.
        """
        policy = CompositionPolicy(policy)

        retrieving_start = time.time()
        (goals, goals_data), (knowledge, knowledge_data), interactions, (recent, actors) = (
            await asyncio.gather(
                self._get_goals(message),
                self._get_knowledge(message, policy),
                self._get_recent_interactions(message),
                self._get_messages_and_actors(message.room_id),
            )
        )
        logger.info(f"Retrieving took {(time.time() - retrieving_start) * 1000:.0f}ms")

        agent_name = next(
            (a.name for a in actors if a.id == self.runtime.agent_id), self.character.name
        )
        sender_name = next((a.name for a in actors if a.id == message.user_id), "")
        attachments = format_attachments(collect_attachments(message, recent, self._window_ms))

        fields: Dict[str, Any] = dict(
            agent_id=self.runtime.agent_id,
            room_id=message.room_id,
            user_id=message.user_id,
            agent_name=agent_name,
            sender_name=sender_name,
            system=self.character.system or "",
            bio=self._build_bio(),
            lore=self._build_lore(),
            adjective=random.choice(self.character.adjectives) if self.character.adjectives else "",
            topic=random.choice(self.character.topics) if self.character.topics else "",
            topics=self._build_topics(),
            message_directions=self._build_message_directions(),
            post_directions=self._build_post_directions(),
            character_post_examples=self._build_post_examples(),
            character_message_examples=self._build_message_examples(),
            knowledge=knowledge,
            knowledge_data=knowledge_data,
            goals=add_header(compose_context({"agent_name": agent_name}, GOALS_HEADER), goals),
            goals_data=goals_data,
            actors_data=actors,
            recent_messages=add_header("# Conversation Messages", format_messages(recent, actors)),
            recent_posts=add_header(
                "# Posts in Thread", format_posts(recent, actors, conversation_header=False)
            ),
            recent_messages_data=recent,
            recent_message_interactions=self._format_message_interactions(interactions, actors),
            recent_post_interactions=format_posts(interactions, actors, conversation_header=True),
            recent_interactions_data=interactions,
            attachments=add_header("# Attachments", attachments),
        )
        fields.update(additional_keys or {})
        state = ComposedState(**fields)

        action_state_start = time.time()
        state = await self._build_action_state(message, state, policy)
        logger.info(f"Action state took {(time.time() - action_state_start) * 1000:.0f}ms")
        return state

    async def _validated(self, item, message: Memory, state: ComposedState):
        try:
            if await item.validate(self.runtime, message, state):
                return item
        except Exception as e:
            logger.error(f"Validation of {item.name} failed: {e}", exc_info=True)
        return None

    async def _get_providers(self, message: Memory, state: ComposedState) -> str:
        async def _get(provider) -> str:
            try:
                return await provider.get(self.runtime, message, state) or ""
            except Exception as e:
                logger.error(f"Provider {type(provider).__name__} failed: {e}", exc_info=True)
                return ""

        results = await asyncio.gather(*(_get(p) for p in self.runtime.providers))
        return "\n".join(r for r in results if r)

    async def _build_action_state(
        self,
        message: Memory,
        state: ComposedState,
        policy: CompositionPolicy,
    ) -> ComposedState:
        async def _no_providers() -> str:
            return ""

        providers_op = (
            _no_providers()
            if policy == CompositionPolicy.SKIP_KNOWLEDGE
            else self._get_providers(message, state)
        )
        evaluators, actions, providers = await asyncio.gather(
            asyncio.gather(*(self._validated(e, message, state) for e in self.runtime.evaluators)),
            asyncio.gather(*(self._validated(a, message, state) for a in self.runtime.actions)),
            providers_op,
        )
        evaluators = [e for e in evaluators if e is not None]
        actions = [a for a in actions if a is not None]

        return state.model_copy(update=dict(
            action_names=f"Possible response actions: {format_action_names(actions)}",
            actions=add_header("# Available Actions", format_actions(actions)) if actions else "",
            action_examples=(
                add_header("# Action Examples", compose_action_examples(actions, ACTION_EXAMPLES_COUNT))
                if actions else ""
            ),
            actions_data=actions,
            evaluators=format_evaluators(evaluators) if evaluators else "",
            evaluator_names=format_evaluator_names(evaluators) if evaluators else "",
            evaluator_examples=format_evaluator_examples(evaluators) if evaluators else "",
            evaluators_data=evaluators,
            providers=add_header(
                f"# Additional Information About {self.character.name} and The World", providers
            ),
        ))

    async def update_recent_message_state(self, state: ComposedState) -> ComposedState:
        """Refresh recent messages and attachments after the agent has replied."""
        recent = await self.runtime.message_manager.get_memories(
            room_id=state.room_id,
            count=self.runtime.get_conversation_length(),
            unique=False,
        )
        actors = list(state.actors_data)
        known = {actor.id for actor in actors}
        missing = [user_id for user_id in retrieve_actor_ids(recent) if user_id not in known]
        if missing:
            actors.extend(await self.runtime.database.get_accounts_by_ids(missing))

        attachments: List[Media] = []
        if recent:
            attachments = collect_attachments(recent[0], recent, self._window_ms)
        return state.model_copy(update=dict(
            recent_messages=add_header(
                "# Conversation Messages", format_messages(recent, actors)
            ),
            recent_messages_data=recent,
            actors_data=actors,
            attachments=add_header("# Attachments", format_attachments(attachments)),
        ))
