"""
Prompt Formatting Helpers

Render memories, knowledge, goals, attachments and registry entries into
the text sections of a composed state.
"""

import random
import re
import time
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar
from uuid import UUID

from agent_recall.models.knowledge import RAGKnowledgeItem
from agent_recall.models.memory import Actor, Goal, Media, Memory
from agent_recall.runtime.registry import Action, Evaluator

T = TypeVar("T")

TEMPLATE_KEY_PATTERN = re.compile(r"\{\{(\w+)\}\}")
USER_PLACEHOLDER_PATTERN = re.compile(r"\{\{user(\d+)\}\}")

# Names substituted for {{userN}} placeholders in examples
EXAMPLE_NAMES = (
    "Alice", "Bob", "Carmen", "Dmitri", "Elena", "Farid", "Grace", "Hiro",
    "Ines", "Jamal", "Kaito", "Lena", "Marco", "Nadia", "Oscar", "Priya",
    "Quinn", "Rosa", "Sven", "Tamar", "Uma", "Victor", "Wen", "Yusuf", "Zoe",
)


def add_header(header: str, body: str) -> str:
    """Prefix a non-empty body with a header line; empty body yields ""."""
    if not body:
        return ""
    return f"{header}\n{body}\n" if header else f"{body}\n"


def compose_context(values: Dict[str, str], template: str) -> str:
    """Replace {{key}} placeholders; unknown keys become empty strings."""
    return TEMPLATE_KEY_PATTERN.sub(lambda m: str(values.get(m.group(1), "") or ""), template)


def shuffle_and_slice(items: Sequence[T], count: Optional[int] = None) -> List[T]:
    """Random sample without mutating the input."""
    shuffled = list(items)
    random.shuffle(shuffled)
    if count:
        return shuffled[:count]
    return shuffled


def gen_names(count: int) -> List[str]:
    return random.sample(EXAMPLE_NAMES, min(count, len(EXAMPLE_NAMES)))


def replace_user_placeholders(text: str, names: List[str]) -> str:
    def _sub(match):
        index = int(match.group(1)) - 1
        return names[index] if 0 <= index < len(names) else match.group(0)
    return USER_PLACEHOLDER_PATTERN.sub(_sub, text)


def format_timestamp(created_at: int, now_ms: Optional[int] = None) -> str:
    """Relative time such as "5 minutes ago"."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    seconds = max(0, (now_ms - created_at) // 1000)
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def retrieve_actor_ids(messages: Iterable[Memory]) -> List[UUID]:
    """Distinct sender ids in first-seen order."""
    seen = []
    for message in messages:
        if message.user_id not in seen:
            seen.append(message.user_id)
    return seen


def _actor_name(actors: List[Actor], user_id: UUID) -> str:
    for actor in actors:
        if actor.id == user_id:
            return actor.name
    return "Unknown User"


def format_messages(messages: List[Memory], actors: List[Actor]) -> str:
    """Oldest-first chat transcript of newest-first memories."""
    lines = []
    for message in reversed(messages):
        name = _actor_name(actors, message.user_id)
        line = (
            f"({format_timestamp(message.created_at)}) "
            f"[{str(message.id)[-5:]}] {name}: {message.content.text}"
        )
        if message.content.attachments:
            listed = ", ".join(
                f"{media.id} - {media.title} ({media.url})" for media in message.content.attachments
            )
            line += f" (Attachments: {listed})"
        action = message.content.action
        if action and action != "null":
            line += f" ({action})"
        lines.append(line)
    return "\n".join(lines)


def format_posts(
    messages: List[Memory],
    actors: List[Actor],
    conversation_header: bool = True,
) -> str:
    """Posts grouped by room, each room oldest-first."""
    rooms: Dict[UUID, List[Memory]] = {}
    for message in messages:
        rooms.setdefault(message.room_id, []).append(message)

    sections = []
    for room_id, room_messages in rooms.items():
        room_messages = sorted(room_messages, key=lambda m: m.created_at)
        posts = []
        for message in room_messages:
            actor = next((a for a in actors if a.id == message.user_id), None)
            name = actor.name if actor else "Unknown User"
            username = actor.username if actor else "unknown"
            reply = f"In reply to: {message.content.in_reply_to}\n" if message.content.in_reply_to else ""
            posts.append(
                f"Name: {name} (@{username})\n"
                f"ID: {message.id}\n"
                f"{reply}"
                f"Date: {format_timestamp(message.created_at)}\n"
                f"Text:\n{message.content.text}"
            )
        body = "\n\n".join(posts)
        if conversation_header:
            body = f"Conversation: {str(room_id)[-5:]}\n{body}"
        sections.append(body)
    return "\n\n".join(sections)


def format_attachments(attachments: List[Media]) -> str:
    return "\n".join(
        f"ID: {media.id}\n"
        f"Name: {media.title}\n"
        f"URL: {media.url}\n"
        f"Type: {media.source}\n"
        f"Description: {media.description}\n"
        f"Text: {media.text}\n"
        for media in attachments
    )


def format_knowledge(items: List[RAGKnowledgeItem]) -> str:
    return "\n".join(f"- {item.content.text}" for item in items)


def format_goals(goals: List[Goal]) -> str:
    blocks = []
    for goal in goals:
        lines = [f"Goal: {goal.name}", f"id: {goal.id}", "Objectives:"]
        for objective in goal.objectives:
            mark = "[x]" if objective.completed else "[ ]"
            status = "DONE" if objective.completed else "IN PROGRESS"
            lines.append(f"- {mark} {objective.description} ({status})")
        blocks.append("\n".join(lines))
    return "\n".join(blocks)


def format_action_names(actions: List[Action]) -> str:
    return ", ".join(action.name for action in shuffle_and_slice(actions))


def format_actions(actions: List[Action]) -> str:
    return ",\n".join(f"{action.name}: {action.description}" for action in shuffle_and_slice(actions))


def compose_action_examples(actions: List[Action], count: int) -> str:
    """Up to `count` example conversations drawn from the actions' examples."""
    pool = [example for action in actions for example in action.examples]
    rendered = []
    for example in shuffle_and_slice(pool, count):
        names = gen_names(5)
        lines = []
        for message in example:
            text = message.content.get("text", "")
            action = message.content.get("action")
            line = f"{message.user}: {text}" + (f" ({action})" if action else "")
            lines.append(replace_user_placeholders(line, names))
        rendered.append("\n".join(lines))
    return "\n\n".join(rendered)


def format_evaluator_names(evaluators: List[Evaluator]) -> str:
    return ",\n".join(f"'{evaluator.name}'" for evaluator in evaluators)


def format_evaluators(evaluators: List[Evaluator]) -> str:
    return ",\n".join(f"'{evaluator.name}: {evaluator.description}'" for evaluator in evaluators)


def format_evaluator_examples(evaluators: List[Evaluator]) -> str:
    blocks = []
    for evaluator in evaluators:
        for example in evaluator.examples:
            names = gen_names(5)
            messages = "\n".join(
                replace_user_placeholders(
                    f"{message.user}: {message.content.get('text', '')}"
                    + (f" ({message.content['action']})" if message.content.get("action") else ""),
                    names,
                )
                for message in example.messages
            )
            blocks.append(
                f"Context:\n{replace_user_placeholders(example.context, names)}\n\n"
                f"Messages:\n{messages}\n\n"
                f"Outcome:\n{replace_user_placeholders(example.outcome, names)}"
            )
    return "\n\n".join(blocks)
