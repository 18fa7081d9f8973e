"""Interaction package - per-turn message flow, engagement tracking and events."""

from agent_recall.interaction.delivery import CONTINUE_ACTION, build_response_memories, split_message
from agent_recall.interaction.events import (
    AGENT_ACTION_CALLED,
    AGENT_MESSAGE_RECEIVED,
    AGENT_RESPONSE_SENT,
    AGENT_SCHEDULED_POST,
    InteractionLogger,
)
from agent_recall.interaction.interest import InterestStore
from agent_recall.interaction.message_wall import MessageWall
from agent_recall.interaction.processor import MessageProcessor, PreprocessResult

__all__ = [
    "AGENT_ACTION_CALLED",
    "AGENT_MESSAGE_RECEIVED",
    "AGENT_RESPONSE_SENT",
    "AGENT_SCHEDULED_POST",
    "CONTINUE_ACTION",
    "InteractionLogger",
    "InterestStore",
    "MessageProcessor",
    "MessageWall",
    "PreprocessResult",
    "build_response_memories",
    "split_message",
]
