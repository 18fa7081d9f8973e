"""
Memory Data Model

Conversational events persisted by the MemoryManager, plus the
account and goal projections the state composer reads alongside them.
"""

import time
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class Media(BaseModel):
    """An attachment carried by a message."""

    id: str = Field(..., description="Platform attachment id")
    url: str = ""
    title: str = ""
    source: str = ""
    description: str = ""
    text: str = Field(default="", description="Extracted text of the attachment")
    content_type: Optional[str] = None


class Content(BaseModel):
    """
    Payload of a memory.

    Extra keys are preserved so platform adapters can attach their own
    fields without a schema change.
    """

    text: str = ""
    action: Optional[str] = None
    source: Optional[str] = None
    url: Optional[str] = None
    in_reply_to: Optional[UUID] = None
    attachments: List[Media] = Field(default_factory=list)

    class Config:
        extra = "allow"


class Memory(BaseModel):
    """
    A persisted, timestamped conversational event tied to a room and user.

    The id is derived from the platform message id and the agent id, so
    re-ingesting the same platform message yields the same Memory id.
    """

    id: UUID
    agent_id: UUID
    user_id: UUID
    room_id: UUID
    content: Content = Field(default_factory=Content)
    created_at: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    unique: bool = True


class Actor(BaseModel):
    """Account projection used to resolve display names."""

    id: UUID
    name: str
    username: str = ""
    details: dict = Field(default_factory=dict)


class Account(BaseModel):
    id: UUID
    name: str
    username: str = ""
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    details: dict = Field(default_factory=dict)


class GoalStatus(str, Enum):
    DONE = "DONE"
    FAILED = "FAILED"
    IN_PROGRESS = "IN_PROGRESS"


class Objective(BaseModel):
    id: Optional[str] = None
    description: str
    completed: bool = False


class Goal(BaseModel):
    """A multi-step objective the agent tracks within a room."""

    id: Optional[UUID] = None
    room_id: UUID
    user_id: UUID
    name: str
    status: GoalStatus = GoalStatus.IN_PROGRESS
    objectives: List[Objective] = Field(default_factory=list)

    class Config:
        use_enum_values = True
