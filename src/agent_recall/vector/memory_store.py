"""
In-Memory Vector Store

Process-local VectorStore used for development and tests.
"""

import math
from typing import Any, Dict, List, Optional

from agent_recall.vector.base import VectorMatch, VectorRecord, VectorStore


def cosine_similarity(a: List[float], b: List[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero norm."""
    if not any(a) or not any(b):
        return 0.0
    if len(a) != len(b):
        raise ValueError(f"Vector dimension mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def _matches(metadata: Dict[str, Any], metadata_filter: Optional[Dict[str, Any]]) -> bool:
    if not metadata_filter:
        return True
    return all(metadata.get(key) == value for key, value in metadata_filter.items())


class InMemoryVectorStore(VectorStore):
    def __init__(self):
        self._namespaces: Dict[str, Dict[str, VectorRecord]] = {}

    async def upsert(self, namespace: str, records: List[VectorRecord]) -> None:
        bucket = self._namespaces.setdefault(namespace, {})
        for record in records:
            bucket[record.id] = record.model_copy(deep=True)

    async def search(
        self,
        namespace: str,
        vector: List[float],
        top_k: int,
        type_tag: Optional[str] = None,
        metadata_filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        bucket = self._namespaces.get(namespace, {})
        combined = dict(metadata_filter or {})
        if type_tag is not None:
            combined["type"] = type_tag

        matches = [
            VectorMatch(
                id=record.id,
                score=cosine_similarity(vector, record.values),
                values=list(record.values),
                metadata=dict(record.metadata),
            )
            for record in bucket.values()
            if _matches(record.metadata, combined)
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def remove_by_id(self, namespace: str, id: str) -> None:
        self._namespaces.get(namespace, {}).pop(id, None)

    async def remove_by_filter(self, namespace: str, metadata_filter: Dict[str, Any]) -> None:
        bucket = self._namespaces.get(namespace, {})
        for record_id in [rid for rid, r in bucket.items() if _matches(r.metadata, metadata_filter)]:
            del bucket[record_id]

    async def remove_all(self, namespace: str) -> None:
        self._namespaces.pop(namespace, None)

    def count(self, namespace: str) -> int:
        return len(self._namespaces.get(namespace, {}))
