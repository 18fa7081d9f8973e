"""
Tests for the action/evaluator registries and prompt formatting helpers.
"""

from uuid import uuid4

import pytest

from agent_recall.models.memory import Actor, Content, Goal, Media, Memory, Objective
from agent_recall.runtime.formatting import (
    add_header,
    compose_action_examples,
    compose_context,
    format_goals,
    format_messages,
    format_posts,
    format_timestamp,
    replace_user_placeholders,
    retrieve_actor_ids,
)
from agent_recall.runtime.registry import (
    Action,
    ActionExample,
    ActionRegistry,
    Evaluator,
    EvaluatorRegistry,
    normalize_name,
)


class SendGif(Action):
    name = "SEND_GIF"
    description = "Reply with a gif"
    similes = ["post gif", "GIF"]
    examples = [[
        ActionExample(user="{{user1}}", content={"text": "make me laugh"}),
        ActionExample(user="Ada", content={"text": "here you go", "action": "SEND_GIF"}),
    ]]

    async def validate(self, runtime, message, state) -> bool:
        return True

    async def handler(self, runtime, message, state=None, options=None, callback=None):
        return None


class Summarize(Evaluator):
    name = "SUMMARIZE"
    similes = ["GIF"]

    async def validate(self, runtime, message, state) -> bool:
        return True

    async def handler(self, runtime, message, state=None, options=None, callback=None):
        return None


class TestRegistry:
    """Tests for ActionRegistry and EvaluatorRegistry."""

    def test_normalize_name(self):
        assert normalize_name("Send_GIF") == "sendgif"
        assert normalize_name("send-gif ") == "sendgif"
        assert normalize_name("") == ""

    def test_exact_and_alias_lookup(self):
        registry = ActionRegistry()
        action = SendGif()
        registry.register(action)

        assert registry.get("send_gif") is action
        assert registry.get("POST_GIF") is action
        assert registry.get("gif") is action
        assert len(registry) == 1

    def test_no_substring_matching(self):
        registry = ActionRegistry()
        registry.register(SendGif())

        assert registry.get("SEND") is None
        assert registry.get("SEND_GIF_NOW") is None

    def test_alias_conflict_keeps_first_owner(self):
        registry = ActionRegistry()

        class PostGif(SendGif):
            name = "POST_GIF_V2"
            similes = ["GIF"]

        first = SendGif()
        registry.register(first)
        registry.register(PostGif())

        assert registry.get("GIF") is first

    def test_nameless_item_rejected(self):
        class Nameless(SendGif):
            name = ""

        with pytest.raises(ValueError):
            ActionRegistry().register(Nameless())

    def test_registries_are_independent(self):
        actions, evaluators = ActionRegistry(), EvaluatorRegistry()
        actions.register(SendGif())
        evaluators.register(Summarize())

        assert evaluators.get("GIF").name == "SUMMARIZE"
        assert actions.get("GIF").name == "SEND_GIF"
        assert [e.name for e in evaluators] == ["SUMMARIZE"]


class TestFormatting:
    """Tests for prompt formatting helpers."""

    def test_add_header(self):
        assert add_header("# Lore", "") == ""
        assert add_header("# Lore", "fact") == "# Lore\nfact\n"

    def test_compose_context_blanks_unknown_keys(self):
        assert compose_context({"agent_name": "Ada"}, "{{agent_name}} {{missing}}!") == "Ada !"

    def test_replace_user_placeholders(self):
        assert replace_user_placeholders("{{user1}} and {{user2}} and {{user9}}", ["A", "B"]) == (
            "A and B and {{user9}}"
        )

    def test_format_timestamp(self):
        now = 10_000_000
        assert format_timestamp(now - 5_000, now) == "just now"
        assert format_timestamp(now - 120_000, now) == "2 minutes ago"
        assert format_timestamp(now - 3_600_000, now) == "1 hour ago"

    def test_format_messages_oldest_first_with_names(self):
        room, ada, bob = uuid4(), uuid4(), uuid4()
        actors = [Actor(id=ada, name="Ada"), Actor(id=bob, name="Bob")]
        newer = Memory(
            id=uuid4(), agent_id=ada, user_id=ada, room_id=room,
            content=Content(text="hi bob", action="CONTINUE"), created_at=2_000,
        )
        older = Memory(
            id=uuid4(), agent_id=ada, user_id=bob, room_id=room,
            content=Content(
                text="hello",
                attachments=[Media(id="img1", title="cat", url="http://x/cat.png")],
            ),
            created_at=1_000,
        )

        lines = format_messages([newer, older], actors).split("\n")

        assert lines[0].endswith(
            f"[{str(older.id)[-5:]}] Bob: hello (Attachments: img1 - cat (http://x/cat.png))"
        )
        assert lines[1].endswith("Ada: hi bob (CONTINUE)")

    def test_unknown_sender(self):
        message = Memory(id=uuid4(), agent_id=uuid4(), user_id=uuid4(), room_id=uuid4())
        assert "Unknown User:" in format_messages([message], [])

    def test_format_posts_groups_by_room(self):
        user = uuid4()
        room_a, room_b = uuid4(), uuid4()
        posts = [
            Memory(id=uuid4(), agent_id=user, user_id=user, room_id=room_a, content=Content(text="a1")),
            Memory(id=uuid4(), agent_id=user, user_id=user, room_id=room_b, content=Content(text="b1")),
        ]

        text = format_posts(posts, [Actor(id=user, name="Ada", username="ada_bot")])

        assert f"Conversation: {str(room_a)[-5:]}" in text
        assert f"Conversation: {str(room_b)[-5:]}" in text
        assert "Name: Ada (@ada_bot)" in text

    def test_retrieve_actor_ids_distinct(self):
        a, b = uuid4(), uuid4()
        messages = [
            Memory(id=uuid4(), agent_id=a, user_id=user, room_id=a) for user in (a, b, a)
        ]
        assert retrieve_actor_ids(messages) == [a, b]

    def test_format_goals(self):
        goal = Goal(
            room_id=uuid4(),
            user_id=uuid4(),
            name="Learn Rust",
            objectives=[
                Objective(description="read the book", completed=True),
                Objective(description="write a CLI"),
            ],
        )

        text = format_goals([goal])

        assert "Goal: Learn Rust" in text
        assert "- [x] read the book (DONE)" in text
        assert "- [ ] write a CLI (IN PROGRESS)" in text

    def test_action_examples_replace_placeholders(self):
        text = compose_action_examples([SendGif()], 10)

        assert "{{user1}}" not in text
        assert "Ada: here you go (SEND_GIF)" in text
