"""Data models package."""

from agent_recall.models.character import Character, CharacterStyle, KnowledgeSource, MessageExample
from agent_recall.models.knowledge import KnowledgeContent, KnowledgeMetadata, RAGKnowledgeItem
from agent_recall.models.memory import (
    Account,
    Actor,
    Content,
    Goal,
    GoalStatus,
    Media,
    Memory,
    Objective,
    now_ms,
)
from agent_recall.models.message import ReceivedMessage
from agent_recall.models.state import ComposedState, InterestMessage, InterestState, PreviousContext

__all__ = [
    "Account",
    "Actor",
    "Character",
    "CharacterStyle",
    "ComposedState",
    "Content",
    "Goal",
    "GoalStatus",
    "InterestMessage",
    "InterestState",
    "KnowledgeContent",
    "KnowledgeMetadata",
    "KnowledgeSource",
    "Media",
    "Memory",
    "MessageExample",
    "Objective",
    "PreviousContext",
    "RAGKnowledgeItem",
    "ReceivedMessage",
    "now_ms",
]
