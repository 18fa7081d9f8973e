"""
Vector Store Contract

Abstract interface over an external similarity index. Every operation is
scoped by a namespace, normally the agent id, so several agents can share
one index without seeing each other's vectors.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class VectorRecord(BaseModel):
    """A vector to upsert, keyed by id."""
    id: str
    values: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class VectorMatch(BaseModel):
    """A search hit with its cosine similarity score."""
    id: str
    score: float
    values: Optional[List[float]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


def hash_input(text: str) -> str:
    """Content hash used for dedup lookups: sha256 of trimmed, lowercased text."""
    return hashlib.sha256(text.strip().lower().encode("utf-8")).hexdigest()


class VectorStore(ABC):
    """
    Abstract base class for vector index backends.

    Implementations must support an exact-match metadata filter alongside
    the vector query; the dedup idiom in `find_by_hash` depends on it.
    """

    @abstractmethod
    async def upsert(self, namespace: str, records: List[VectorRecord]) -> None:
        """Insert or overwrite records by id."""
        pass

    @abstractmethod
    async def search(
        self,
        namespace: str,
        vector: List[float],
        top_k: int,
        type_tag: Optional[str] = None,
        metadata_filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """
        Nearest neighbours by cosine similarity, best first.

        Args:
            namespace: Tenant scope
            vector: Query vector. A zero vector yields score 0 for every match.
            top_k: Maximum number of matches
            type_tag: If given, only records whose metadata "type" equals it
            metadata_filter: Exact-match filter on metadata keys
        """
        pass

    @abstractmethod
    async def remove_by_id(self, namespace: str, id: str) -> None:
        pass

    @abstractmethod
    async def remove_by_filter(self, namespace: str, metadata_filter: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def remove_all(self, namespace: str) -> None:
        pass

    async def find_by_hash(
        self,
        namespace: str,
        type_tag: str,
        input_hash: str,
        dimension: int,
    ) -> Optional[VectorMatch]:
        """
        Return a record whose content hash matches, or None.

        Queries with a zero vector and top_k=1 so only the metadata filter
        decides the result.
        """
        matches = await self.search(
            namespace,
            [0.0] * dimension,
            top_k=1,
            type_tag=type_tag,
            metadata_filter={"input_hash": input_hash},
        )
        return matches[0] if matches else None
