"""Vector store package - similarity index contract and backends."""

from agent_recall.vector.base import VectorMatch, VectorRecord, VectorStore, hash_input
from agent_recall.vector.memory_store import InMemoryVectorStore
from agent_recall.vector.pgvector_store import PgVectorStore

__all__ = [
    "InMemoryVectorStore",
    "PgVectorStore",
    "VectorMatch",
    "VectorRecord",
    "VectorStore",
    "hash_input",
]
