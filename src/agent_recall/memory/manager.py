"""
Memory Manager

Owns the lifecycle of conversational memories for one agent and one
memory type (table name): dedup-on-id creation, retrieval by room,
deletion and counting. Each memory can be shadowed by a vector in the
agent's namespace.
"""

import asyncio
import logging
import time
from typing import List, Optional, Protocol, Set
from uuid import UUID

from agent_recall.database.base import DatabaseAdapter
from agent_recall.errors import DuplicateSkipped, VectorWriteError
from agent_recall.llm.client import LLMClient
from agent_recall.memory.dual_write import write_relational, write_vector_best_effort
from agent_recall.models.memory import Memory
from agent_recall.vector.base import VectorRecord, VectorStore, hash_input

logger = logging.getLogger("agent_recall.memory")


class RuntimeContext(Protocol):
    agent_id: UUID


class MemoryManager:
    """
    Memory store for one agent and one table name.

    Vector upserts requested by `create_memory` run in the background;
    call `drain()` to wait for them (tests, shutdown).
    """

    def __init__(
        self,
        runtime: RuntimeContext,
        table_name: str,
        vector_store: VectorStore,
        database: DatabaseAdapter,
        embedder: LLMClient,
    ):
        self.runtime = runtime
        self.table_name = table_name
        self.vector_store = vector_store
        self.database = database
        self.embedder = embedder
        self._pending: Set[asyncio.Task] = set()

    @property
    def namespace(self) -> str:
        return str(self.runtime.agent_id)

    async def get_memories(
        self,
        room_id: UUID,
        count: int = 10,
        unique: bool = True,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[Memory]:
        """Newest-first memories of a room, optionally bounded by created_at (epoch ms)."""
        return await self.database.get_memories(
            room_id=room_id,
            table_name=self.table_name,
            count=count,
            unique=unique,
            agent_id=self.runtime.agent_id,
            start=start,
            end=end,
        )

    async def get_cached_embedding(self, text: str) -> Optional[List[float]]:
        """Vector of a previously stored memory with the same normalized text, if any."""
        match = await self.vector_store.find_by_hash(
            self.namespace,
            self.table_name,
            hash_input(text),
            self.embedder.get_embedding_dimension(),
        )
        if match is not None:
            return match.values
        return None

    async def create_memory(
        self,
        memory: Memory,
        source: str = "",
        is_unique: bool = True,
        is_vector_required: bool = False,
    ) -> None:
        """
        Persist a memory unless one with the same id already exists.

        The relational write is awaited and its errors propagate. The vector
        write, if requested, is scheduled in the background and never fails
        the call.
        """
        existing = await self.get_memory_by_id(memory.id)
        if existing:
            reason = DuplicateSkipped(f"Memory {memory.id} already exists")
            logger.info(f"Skipping: {reason}")
            return

        logger.debug(f"Creating memory {memory.id} in {self.table_name}")
        await write_relational(
            self.database.create_memory(memory, self.table_name, is_unique)
        )

        if not is_vector_required:
            return

        if not memory.content.text.strip():
            logger.debug(f"Memory {memory.id} has no text, skipping embedding")
            return

        task = asyncio.create_task(
            write_vector_best_effort(
                self._embed_and_upsert(memory, source),
                f"memory {memory.id}",
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _embed_and_upsert(self, memory: Memory, source: str) -> None:
        embedding = await self.embedder.generate_embedding(memory.content.text)
        expected = self.embedder.get_embedding_dimension()
        if not embedding:
            raise VectorWriteError("Embedding provider returned an empty vector")
        if len(embedding) != expected:
            raise VectorWriteError(
                f"Embedding dimension mismatch: got {len(embedding)}, expected {expected}"
            )

        await self.vector_store.upsert(
            self.namespace,
            [
                VectorRecord(
                    id=str(memory.id),
                    values=embedding,
                    metadata={
                        "type": self.table_name,
                        "created_at": int(time.time() * 1000),
                        "user_id": str(memory.user_id),
                        "room_id": str(memory.room_id),
                        "source": source,
                        "input_hash": hash_input(memory.content.text),
                    },
                )
            ],
        )

    async def drain(self) -> None:
        """Wait for every background vector write started so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def get_memory_by_id(self, memory_id: UUID) -> Optional[Memory]:
        """The memory, or None if absent or owned by another agent."""
        result = await self.database.get_memory_by_id(memory_id)
        if result and result.agent_id != self.runtime.agent_id:
            return None
        return result

    async def get_memories_by_room_ids(
        self,
        room_ids: List[UUID],
        limit: Optional[int] = None,
        user_id: Optional[UUID] = None,
    ) -> List[Memory]:
        return await self.database.get_memories_by_room_ids(
            table_name=self.table_name,
            room_ids=room_ids,
            agent_id=self.runtime.agent_id,
            limit=limit,
            user_id=user_id,
        )

    async def remove_memory(self, memory_id: UUID) -> None:
        await self._remove_both(
            self.vector_store.remove_by_id(self.namespace, str(memory_id)),
            self.database.remove_memory(memory_id, self.table_name),
            f"memory {memory_id}",
        )

    async def remove_all_memories(self, room_id: UUID) -> None:
        await self._remove_both(
            self.vector_store.remove_by_filter(
                self.namespace,
                {"type": self.table_name, "room_id": str(room_id)},
            ),
            self.database.remove_all_memories(room_id, self.table_name),
            f"memories of room {room_id}",
        )

    async def _remove_both(self, vector_op, relational_op, description: str) -> None:
        """Run both deletions concurrently; both are awaited before returning."""
        vector_result, relational_result = await asyncio.gather(
            vector_op, relational_op, return_exceptions=True
        )
        if isinstance(vector_result, Exception):
            logger.warning(f"Vector deletion failed for {description}: {vector_result}")
        if isinstance(relational_result, Exception):
            raise relational_result

    async def count_memories(self, room_id: UUID, unique: bool = True) -> int:
        return await self.database.count_memories(room_id, self.table_name, unique)

    async def count_memories_for_user(self, user_id: UUID) -> int:
        return await self.database.count_memories_for_user(
            user_id, self.runtime.agent_id, self.table_name
        )
