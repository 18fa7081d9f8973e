"""
pgvector Store

VectorStore backed by a PostgreSQL table with the pgvector extension.
Shares the asyncpg pool of the relational adapter when one is given.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import asyncpg

from agent_recall.vector.base import VectorMatch, VectorRecord, VectorStore

logger = logging.getLogger("agent_recall.vector")


class PgVectorStore(VectorStore):
    """
    Vectors live in `vectors(namespace, id, embedding, metadata)`.

    Cosine similarity is `1 - (embedding <=> query)`. pgvector returns NaN
    distance for a zero query vector, so those scores are reported as 0.
    """

    def __init__(self, connection_string: str = None, pool: Optional[asyncpg.Pool] = None):
        self.connection_string = connection_string or "postgresql://127.0.0.1/agent_recall"
        self._pool = pool
        self._owns_pool = pool is None

    async def connect(self) -> None:
        """Initialize connection pool."""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(self.connection_string, min_size=2, max_size=10)
        self._owns_pool = True

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self._pool and self._owns_pool:
            await self._pool.close()
            self._pool = None

    async def upsert(self, namespace: str, records: List[VectorRecord]) -> None:
        if not records:
            return
        async with self._pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO vectors (namespace, id, embedding, metadata)
                VALUES ($1, $2, $3::vector, $4::jsonb)
                ON CONFLICT (namespace, id) DO UPDATE SET
                    embedding = EXCLUDED.embedding,
                    metadata = EXCLUDED.metadata
                """,
                [
                    (namespace, record.id, str(record.values), json.dumps(record.metadata))
                    for record in records
                ],
            )

    async def search(
        self,
        namespace: str,
        vector: List[float],
        top_k: int,
        type_tag: Optional[str] = None,
        metadata_filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        combined = dict(metadata_filter or {})
        if type_tag is not None:
            combined["type"] = type_tag

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, embedding::text AS embedding, metadata,
                       1 - (embedding <=> $2::vector) AS similarity
                FROM vectors
                WHERE namespace = $1
                  AND metadata @> $3::jsonb
                ORDER BY embedding <=> $2::vector
                LIMIT $4
                """,
                namespace,
                str(vector),
                json.dumps(combined),
                top_k,
            )

        matches = []
        for row in rows:
            similarity = row["similarity"]
            # NaN != NaN
            if similarity is None or similarity != similarity:
                similarity = 0.0
            metadata = row["metadata"]
            if isinstance(metadata, str):
                metadata = json.loads(metadata)
            matches.append(
                VectorMatch(
                    id=row["id"],
                    score=float(similarity),
                    values=json.loads(row["embedding"]) if row["embedding"] else None,
                    metadata=metadata or {},
                )
            )
        return matches

    async def remove_by_id(self, namespace: str, id: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "DELETE FROM vectors WHERE namespace = $1 AND id = $2",
                namespace,
                id,
            )

    async def remove_by_filter(self, namespace: str, metadata_filter: Dict[str, Any]) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "DELETE FROM vectors WHERE namespace = $1 AND metadata @> $2::jsonb",
                namespace,
                json.dumps(metadata_filter),
            )

    async def remove_all(self, namespace: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute("DELETE FROM vectors WHERE namespace = $1", namespace)
            logger.info(f"Removed all vectors in namespace {namespace}")
