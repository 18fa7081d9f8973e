"""
Character Data Model

Static persona definition loaded at startup.
"""

from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class CharacterStyle(BaseModel):
    all: List[str] = Field(default_factory=list)
    chat: List[str] = Field(default_factory=list)
    post: List[str] = Field(default_factory=list)


class MessageExample(BaseModel):
    user: str
    content: dict = Field(default_factory=dict)


class KnowledgeSource(BaseModel):
    """A knowledge file reference, relative to the knowledge root."""

    path: str
    shared: bool = False


class Character(BaseModel):
    """
    Persona definition.

    `bio` may be a single string or a list of fragments that are shuffled
    per turn. `knowledge` entries are either direct strings or file
    references.
    """

    id: Optional[UUID] = None
    name: str
    username: Optional[str] = None
    system: Optional[str] = None
    bio: Union[str, List[str]] = ""
    lore: List[str] = Field(default_factory=list)
    message_examples: List[List[MessageExample]] = Field(default_factory=list)
    post_examples: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    adjectives: List[str] = Field(default_factory=list)
    style: CharacterStyle = Field(default_factory=CharacterStyle)
    knowledge: List[Union[str, KnowledgeSource]] = Field(default_factory=list)
    templates: Dict[str, str] = Field(default_factory=dict)
    settings: Dict[str, Any] = Field(
        default_factory=dict,
        description="Per-character overrides read by AgentRuntime.get_setting()",
    )
