"""
Tests for MessageProcessor

End-to-end turns against the in-memory stores with a mocked chat model.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_recall.errors import AgentRecallError, InvalidInputError
from agent_recall.identity import message_id_from, room_id_from, user_id_from
from agent_recall.interaction.delivery import build_response_memories
from agent_recall.interaction.events import AGENT_MESSAGE_RECEIVED, AGENT_RESPONSE_SENT
from agent_recall.interaction.processor import MessageProcessor
from agent_recall.models.message import ReceivedMessage
from agent_recall.runtime.composer import CompositionPolicy

TEMPLATE = "{{recent_messages}}\n{{agent_name}}:"


def _completion(payload):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = json.dumps(payload)
    response.usage = None
    return response


def _received(**overrides):
    fields = dict(
        raw_message_id="1001",
        raw_user_id="u-1",
        user_name="bob",
        user_screen_name="Bob",
        raw_room_id="chat-9",
        source="telegram",
        text="hello Ada",
    )
    fields.update(overrides)
    return ReceivedMessage(**fields)


class TestMessageProcessor:
    """Tests for preprocess, respond and ignore."""

    @pytest.fixture
    def events_seen(self, runtime):
        seen = []

        @runtime.events.listener
        async def record(event, payload):
            seen.append((event, payload.get("status")))

        return seen

    @pytest.fixture
    def processor(self, runtime, events_seen):
        runtime.llm.client.chat.completions.create = AsyncMock(
            return_value=_completion({"text": "Hi Bob!", "action": None})
        )
        return MessageProcessor(runtime)

    @pytest.mark.asyncio
    async def test_preprocess_records_message(self, runtime, processor, database, events_seen):
        result = await processor.preprocess(_received(in_reply_to="1000"))
        await processor.events.drain()

        memory = result.memory
        assert memory.id == message_id_from("1001", runtime.agent_id)
        assert memory.room_id == room_id_from("chat-9")
        assert memory.user_id == user_id_from("u-1")
        assert memory.content.in_reply_to == message_id_from("1000", runtime.agent_id)
        assert memory.content.source == "telegram"

        assert memory.id in database.memories
        assert (await database.get_account_by_id(memory.user_id)).name == "Bob"
        assert await database.get_is_user_in_the_room(memory.room_id, runtime.agent_id)
        assert "Bob: hello Ada" in result.state.recent_messages
        assert events_seen == [(AGENT_MESSAGE_RECEIVED, None)]

    @pytest.mark.asyncio
    async def test_preprocess_is_idempotent(self, runtime, database):
        await MessageProcessor(runtime).preprocess(_received())
        await MessageProcessor(runtime).preprocess(_received())

        assert database.create_memory_calls == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["raw_room_id", "raw_user_id", "raw_message_id"])
    async def test_empty_ids_rejected(self, processor, database, field):
        with pytest.raises(InvalidInputError):
            await processor.preprocess(_received(**{field: ""}))

        assert database.memories == {}
        assert database.accounts == {}

    @pytest.mark.asyncio
    async def test_skip_knowledge_policy_passed_through(self, runtime, processor):
        runtime.knowledge_manager.get_knowledge = AsyncMock(return_value=[])

        await processor.preprocess(_received(), policy=CompositionPolicy.SKIP_KNOWLEDGE)
        await processor.events.drain()

        runtime.knowledge_manager.get_knowledge.assert_not_called()

    @pytest.mark.asyncio
    async def test_respond_records_reply(self, runtime, processor, database, events_seen):
        await processor.preprocess(_received())
        await processor.events.drain()

        content = await processor.respond(TEMPLATE)

        assert content.text == "Hi Bob!"
        reply_id = message_id_from(str(processor.memory.id), runtime.agent_id)
        reply = database.memories[reply_id][0]
        assert reply.user_id == runtime.agent_id
        assert reply.room_id == processor.memory.room_id
        assert "Ada: Hi Bob!" in processor.state.recent_messages
        assert events_seen[-1] == (AGENT_RESPONSE_SENT, "sent")

        prompt = runtime.llm.client.chat.completions.create.call_args.kwargs["messages"][-1]["content"]
        assert "Bob: hello Ada" in prompt
        assert "Ada:" in prompt

    @pytest.mark.asyncio
    async def test_respond_stores_delivered_memories(self, runtime, processor, database):
        await processor.preprocess(_received())
        await processor.events.drain()

        async def deliver(content):
            return build_response_memories(
                processor.memory, runtime.agent_id, content, ["Hi", "Bob!"]
            )

        await processor.respond(TEMPLATE, callback=deliver)

        replies = [m for m, _, _ in database.memories.values() if m.user_id == runtime.agent_id]
        assert sorted(m.content.text for m in replies) == ["Bob!", "Hi"]

    @pytest.mark.asyncio
    async def test_respond_failure_reports_error(self, runtime, processor, events_seen):
        await processor.preprocess(_received())
        await processor.events.drain()
        runtime.llm.client.chat.completions.create.side_effect = RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            await processor.respond(TEMPLATE)

        assert events_seen[-1] == (AGENT_RESPONSE_SENT, "error")

    @pytest.mark.asyncio
    async def test_ignore(self, processor, events_seen):
        await processor.preprocess(_received())
        await processor.events.drain()

        await processor.ignore()

        assert events_seen[-1] == (AGENT_RESPONSE_SENT, "ignored")

    @pytest.mark.asyncio
    async def test_respond_requires_preprocess(self, processor):
        with pytest.raises(AgentRecallError):
            await processor.respond(TEMPLATE)
