"""
Tests for AgentRuntime

Connection bootstrap, initialization, settings, action dispatch and
evaluation.
"""

import json
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from agent_recall.identity import to_stable_id
from agent_recall.interaction.events import AGENT_ACTION_CALLED
from agent_recall.models.character import Character
from agent_recall.runtime.agent import AgentRuntime
from agent_recall.runtime.registry import Action, Evaluator


def _completion(payload):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = json.dumps(payload)
    response.usage = None
    return response


class RecordingAction(Action):
    name = "SEND_GIF"
    description = "Reply with a gif"
    similes = ["GIF"]

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def validate(self, runtime, message, state) -> bool:
        return True

    async def handler(self, runtime, message, state=None, options=None, callback=None):
        self.calls.append(message.id)
        if self.fail:
            raise RuntimeError("gif service down")


class RecordingEvaluator(Evaluator):
    description = "Records that it ran"

    def __init__(self, name, always_run=False, valid=True):
        self.name = name
        self.always_run = always_run
        self.valid = valid
        self.calls = 0

    async def validate(self, runtime, message, state) -> bool:
        return self.valid

    async def handler(self, runtime, message, state=None, options=None, callback=None):
        self.calls += 1


class TestAgentRuntime:
    """Tests for AgentRuntime."""

    @pytest.mark.asyncio
    async def test_ensure_connection_bootstraps_both_parties(self, runtime, database):
        user_id, room_id = uuid4(), uuid4()

        await runtime.ensure_connection(user_id, room_id, "bob", "Bob", "discord")
        await runtime.ensure_connection(user_id, room_id, "bob", "Bob", "discord")

        assert database.accounts[runtime.agent_id].name == "Ada"
        assert database.accounts[user_id].name == "Bob"
        assert database.accounts[user_id].details["source"] == "discord"
        assert room_id in database.rooms
        assert database.participants == {(user_id, room_id), (runtime.agent_id, room_id)}

    @pytest.mark.asyncio
    async def test_missing_names_get_defaults(self, runtime, database):
        user_id = uuid4()

        await runtime.ensure_connection(user_id, uuid4())

        assert database.accounts[user_id].name == f"User{user_id}"

    @pytest.mark.asyncio
    async def test_initialize_loads_knowledge(self, runtime, database):
        runtime.character.knowledge = ["Ada was born in London.", "missing.txt"]

        report = await runtime.initialize()

        assert runtime.agent_id in database.rooms
        assert (runtime.agent_id, runtime.agent_id) in database.participants
        assert report.processed == ["Ada was born in London."]
        assert report.failed == ["missing.txt"]

    @pytest.mark.asyncio
    async def test_initialize_without_knowledge(self, runtime):
        report = await runtime.initialize()

        assert report.processed == []
        assert not report.has_errors

    def test_agent_id_derived_from_name(self, database, vector_store, llm):
        runtime = AgentRuntime(Character(name="Nova"), database, vector_store, llm)

        assert runtime.agent_id == to_stable_id("Nova")

    def test_get_setting_precedence(self, runtime, monkeypatch):
        monkeypatch.setenv("AGENT_RECALL_TEST_KEY", "from-env")
        assert runtime.get_setting("AGENT_RECALL_TEST_KEY") == "from-env"

        runtime.config.settings["AGENT_RECALL_TEST_KEY"] = "from-config"
        assert runtime.get_setting("AGENT_RECALL_TEST_KEY") == "from-config"

        runtime.character.settings = {
            "AGENT_RECALL_TEST_KEY": "from-character",
            "secrets": {"AGENT_RECALL_TEST_KEY": "from-secrets"},
        }
        assert runtime.get_setting("AGENT_RECALL_TEST_KEY") == "from-secrets"

    @pytest.mark.asyncio
    async def test_process_actions_dispatches_by_alias(self, runtime, make_memory):
        action = RecordingAction()
        runtime.register_action(action)
        seen = []

        @runtime.events.listener
        async def record(event, payload):
            seen.append((event, payload["action_name"]))

        message = make_memory(text="make me laugh")
        response = make_memory(text="here", action="gif")

        await runtime.process_actions(message, [response], tags=["fun"])

        assert action.calls == [message.id]
        assert seen == [(AGENT_ACTION_CALLED, "SEND_GIF")]

    @pytest.mark.asyncio
    async def test_process_actions_unknown_and_failing(self, runtime, make_memory):
        action = RecordingAction(fail=True)
        runtime.register_action(action)
        message = make_memory()

        await runtime.process_actions(message, [
            make_memory(action="DANCE"),
            make_memory(action="SEND_GIF"),
            make_memory(),
        ])

        assert action.calls == [message.id]

    @pytest.mark.asyncio
    async def test_evaluate_runs_selected_valid_evaluators(self, runtime, make_memory):
        chosen = RecordingEvaluator("SUMMARIZE")
        skipped = RecordingEvaluator("REFLECT")
        invalid = RecordingEvaluator("FACTS", valid=False)
        for evaluator in (chosen, skipped, invalid):
            runtime.register_evaluator(evaluator)
        runtime.llm.client.chat.completions.create = AsyncMock(
            return_value=_completion({"values": ["SUMMARIZE", "FACTS"]})
        )
        message = make_memory(agent_id=runtime.agent_id)
        state = await runtime.compose_state(message)

        selected = await runtime.evaluate(message, state, did_respond=True)

        assert selected == ["SUMMARIZE", "FACTS"]
        assert (chosen.calls, skipped.calls, invalid.calls) == (1, 0, 0)
        prompt = runtime.llm.client.chat.completions.create.call_args.kwargs["messages"][-1]["content"]
        assert "'SUMMARIZE'" in prompt
        assert "'FACTS'" not in prompt

    @pytest.mark.asyncio
    async def test_evaluate_without_response_only_always_run(self, runtime, make_memory):
        runtime.register_evaluator(RecordingEvaluator("SUMMARIZE"))
        runtime.llm.client.chat.completions.create = AsyncMock()
        message = make_memory(agent_id=runtime.agent_id)
        state = await runtime.compose_state(message)

        assert await runtime.evaluate(message, state, did_respond=False) == []
        runtime.llm.client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_evaluate_generation_failure_returns_empty(self, runtime, make_memory):
        always = RecordingEvaluator("GOALS", always_run=True)
        runtime.register_evaluator(always)
        runtime.llm.client.chat.completions.create = AsyncMock(return_value=_completion([]))
        runtime.llm.max_retries = 1
        message = make_memory(agent_id=runtime.agent_id)
        state = await runtime.compose_state(message)

        assert await runtime.evaluate(message, state) == []
        assert always.calls == 0
