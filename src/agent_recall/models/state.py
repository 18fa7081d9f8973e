"""
Composed State and Interest Tracking Models
"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from agent_recall.models.knowledge import RAGKnowledgeItem
from agent_recall.models.memory import Actor, Goal, Memory


class ComposedState(BaseModel):
    """
    Read-only snapshot handed to generation for one turn.

    String fields are pre-rendered prompt sections; the structured fields
    keep the source data for callers that need it. Extra keys passed by
    callers are stored as-is and are available to template substitution.
    """

    agent_id: UUID
    room_id: UUID
    user_id: Optional[UUID] = None
    agent_name: str = ""
    sender_name: str = ""
    bio: str = ""
    lore: str = ""
    adjective: str = ""
    topic: str = ""
    topics: str = ""
    character_post_examples: str = ""
    character_message_examples: str = ""
    message_directions: str = ""
    post_directions: str = ""
    knowledge: str = ""
    knowledge_data: List[RAGKnowledgeItem] = Field(default_factory=list)
    goals: str = ""
    goals_data: List[Goal] = Field(default_factory=list)
    actors: str = ""
    actors_data: List[Actor] = Field(default_factory=list)
    recent_messages: str = ""
    recent_posts: str = ""
    recent_messages_data: List[Memory] = Field(default_factory=list)
    recent_message_interactions: str = ""
    recent_post_interactions: str = ""
    recent_interactions_data: List[Memory] = Field(default_factory=list)
    attachments: str = ""
    action_names: str = ""
    actions: str = ""
    action_examples: str = ""
    actions_data: list = Field(default_factory=list)
    evaluators: str = ""
    evaluator_names: str = ""
    evaluator_examples: str = ""
    evaluators_data: list = Field(default_factory=list)
    providers: str = ""

    class Config:
        extra = "allow"
        arbitrary_types_allowed = True

    def template_values(self) -> dict:
        """Flat mapping of string values for {{key}} substitution."""
        values = {}
        data = dict(self.__dict__)
        data.update(self.model_extra or {})
        for key, value in data.items():
            if isinstance(value, (str, int, float)) or value is None:
                values[key] = "" if value is None else str(value)
        return values


class InterestMessage(BaseModel):
    user_id: str
    user_name: str = ""
    content: str = ""


class PreviousContext(BaseModel):
    content: str
    timestamp: int


class InterestState(BaseModel):
    """Per-room engagement tracker. An entry's presence means the bot is engaged."""

    current_handler: Optional[str] = None
    last_message_sent: int = 0
    messages: List[InterestMessage] = Field(default_factory=list)
    previous_context: Optional[PreviousContext] = None
    context_similarity_threshold: Optional[float] = None
