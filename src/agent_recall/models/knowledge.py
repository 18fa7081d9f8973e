"""
Knowledge Data Model

Long-form knowledge items and the chunks derived from them.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class KnowledgeMetadata(BaseModel):
    """Free-form metadata with the chunk linkage fields the RAG layer relies on."""

    is_main: bool = False
    is_chunk: bool = False
    original_id: Optional[str] = None
    chunk_index: Optional[int] = None
    source: Optional[str] = None
    type: Optional[str] = None
    is_shared: bool = False
    input_hash: Optional[str] = None
    truncated: bool = False
    original_length: Optional[int] = None

    class Config:
        extra = "allow"


class KnowledgeContent(BaseModel):
    text: str = ""
    metadata: KnowledgeMetadata = Field(default_factory=KnowledgeMetadata)


class RAGKnowledgeItem(BaseModel):
    """
    A unit of long-form knowledge.

    Parents carry a UUID string id and is_main=True. Chunks use the
    "{parent}-chunk-{n}" id form and link back through original_id.
    """

    id: str = Field(..., description="UUID string or chunk id")
    agent_id: str
    content: KnowledgeContent = Field(default_factory=KnowledgeContent)
    created_at: Optional[int] = None
    embedding: Optional[List[float]] = None
    score: Optional[float] = Field(default=None, description="Similarity score, set on retrieval")
    matched_terms: List[str] = Field(
        default_factory=list,
        description="Query terms found in the text, set by rerank",
    )
