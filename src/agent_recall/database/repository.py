"""
PostgreSQL Adapter

asyncpg implementation of DatabaseAdapter: memories, knowledge,
accounts, rooms, participants and goals.
"""

import json
import logging
import time
from typing import List, Optional
from uuid import UUID

import asyncpg

from agent_recall.database.base import DatabaseAdapter
from agent_recall.models.knowledge import KnowledgeContent, RAGKnowledgeItem
from agent_recall.models.memory import Account, Actor, Content, Goal, Memory, Objective

logger = logging.getLogger("agent_recall.database")


def _load_json(value):
    """JSONB columns come back as str unless a codec is registered."""
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_memory(row) -> Memory:
    return Memory(
        id=row["id"],
        agent_id=row["agent_id"],
        user_id=row["user_id"],
        room_id=row["room_id"],
        content=Content(**(_load_json(row["content"]) or {})),
        created_at=row["created_at"],
        unique=row["unique"],
    )


def _row_to_knowledge(row) -> RAGKnowledgeItem:
    return RAGKnowledgeItem(
        id=row["id"],
        agent_id=str(row["agent_id"]) if row["agent_id"] else "",
        content=KnowledgeContent(**(_load_json(row["content"]) or {})),
        created_at=row["created_at"],
    )


class PostgresDatabaseAdapter(DatabaseAdapter):
    """
    Repository for all relational operations.

    Provides methods for:
    - Memory CRUD scoped by type (table name), room and agent
    - Knowledge items and their chunks
    - Accounts, rooms and participants
    - Goals
    """

    def __init__(self, connection_string: str = None):
        self.connection_string = connection_string or "postgresql://127.0.0.1/agent_recall"
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> Optional[asyncpg.Pool]:
        return self._pool

    async def connect(self) -> None:
        """Initialize connection pool."""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(self.connection_string, min_size=2, max_size=10)

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None

    # ========== Memory Operations ==========

    async def get_memories(
        self,
        room_id: UUID,
        table_name: str,
        count: Optional[int] = None,
        unique: bool = True,
        agent_id: Optional[UUID] = None,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[Memory]:
        if not table_name:
            raise ValueError("table_name is required")
        if not room_id:
            raise ValueError("room_id is required")

        sql = "SELECT * FROM memories WHERE type = $1 AND room_id = $2"
        values: list = [table_name, room_id]

        if start:
            values.append(start)
            sql += f" AND created_at >= ${len(values)}"
        if end:
            values.append(end)
            sql += f" AND created_at <= ${len(values)}"
        if unique:
            sql += ' AND "unique" = true'
        if agent_id:
            values.append(agent_id)
            sql += f" AND agent_id = ${len(values)}"

        sql += " ORDER BY created_at DESC"

        if count:
            values.append(count)
            sql += f" LIMIT ${len(values)}"

        logger.debug(f"Fetching memories: room={room_id} table={table_name} limit={count}")
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *values)
        return [_row_to_memory(row) for row in rows]

    async def get_memory_by_id(self, memory_id: UUID) -> Optional[Memory]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM memories WHERE id = $1", memory_id)
        if row:
            return _row_to_memory(row)
        return None

    async def get_memories_by_room_ids(
        self,
        table_name: str,
        room_ids: List[UUID],
        agent_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        user_id: Optional[UUID] = None,
    ) -> List[Memory]:
        if not room_ids:
            return []

        sql = "SELECT * FROM memories WHERE type = $1 AND room_id = ANY($2::uuid[])"
        values: list = [table_name, list(room_ids)]

        if agent_id:
            values.append(agent_id)
            sql += f" AND agent_id = ${len(values)}"
        if user_id:
            values.append(user_id)
            sql += f" AND user_id = ${len(values)}"

        sql += " ORDER BY created_at DESC"
        if limit:
            values.append(limit)
            sql += f" LIMIT ${len(values)}"

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *values)
        return [_row_to_memory(row) for row in rows]

    async def create_memory(self, memory: Memory, table_name: str, unique: bool = True) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO memories (id, type, content, user_id, room_id, agent_id, "unique", created_at)
                VALUES ($1, $2, $3::jsonb, $4, $5, $6, $7, $8)
                ON CONFLICT (id) DO NOTHING
                """,
                memory.id,
                table_name,
                json.dumps(memory.content.model_dump(mode="json", exclude_none=True)),
                memory.user_id,
                memory.room_id,
                memory.agent_id,
                unique,
                memory.created_at,
            )

    async def remove_memory(self, memory_id: UUID, table_name: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "DELETE FROM memories WHERE type = $1 AND id = $2",
                table_name,
                memory_id,
            )

    async def remove_all_memories(self, room_id: UUID, table_name: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "DELETE FROM memories WHERE type = $1 AND room_id = $2",
                table_name,
                room_id,
            )

    async def count_memories(self, room_id: UUID, table_name: str, unique: bool = True) -> int:
        if not table_name:
            raise ValueError("table_name is required")
        sql = "SELECT COUNT(*) FROM memories WHERE type = $1 AND room_id = $2"
        if unique:
            sql += ' AND "unique" = true'
        async with self._pool.acquire() as conn:
            return await conn.fetchval(sql, table_name, room_id)

    async def count_memories_for_user(self, user_id: UUID, agent_id: UUID, table_name: str) -> int:
        if not table_name:
            raise ValueError("table_name is required")
        async with self._pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM memories WHERE user_id = $1 AND agent_id = $2 AND type = $3",
                user_id,
                agent_id,
                table_name,
            )

    # ========== Knowledge Operations ==========

    async def get_knowledge_by_ids(self, ids: List[str], agent_id: UUID) -> List[RAGKnowledgeItem]:
        if not ids:
            logger.debug("Empty id list passed to get_knowledge_by_ids")
            return []
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM knowledge
                WHERE (agent_id = $1 OR is_shared = true)
                  AND id = ANY($2::text[])
                """,
                agent_id,
                list(ids),
            )
        return [_row_to_knowledge(row) for row in rows]

    async def create_knowledge(self, item: RAGKnowledgeItem) -> None:
        metadata = item.content.metadata
        is_chunk = metadata.is_chunk and metadata.original_id is not None
        agent_id = None if metadata.is_shared else item.agent_id
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO knowledge (
                    id, agent_id, content, created_at,
                    is_main, original_id, chunk_index, is_shared
                ) VALUES ($1, $2, $3::jsonb, $4, $5, $6, $7, $8)
                ON CONFLICT (id) DO NOTHING
                """,
                item.id,
                UUID(str(agent_id)) if agent_id else None,
                json.dumps(item.content.model_dump(mode="json", exclude_none=True)),
                item.created_at or int(time.time() * 1000),
                not is_chunk,
                metadata.original_id if is_chunk else None,
                (metadata.chunk_index or 0) if is_chunk else None,
                metadata.is_shared,
            )

    async def remove_knowledge(self, knowledge_id: str) -> None:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                if "-chunk-*" in knowledge_id:
                    main_id = knowledge_id.split("-chunk-")[0]
                    await conn.execute("DELETE FROM knowledge WHERE original_id = $1", main_id)
                else:
                    await conn.execute("DELETE FROM knowledge WHERE original_id = $1", knowledge_id)
                    await conn.execute("DELETE FROM knowledge WHERE id = $1", knowledge_id)

    async def clear_knowledge(self, agent_id: UUID, shared: bool = False) -> None:
        sql = (
            "DELETE FROM knowledge WHERE (agent_id = $1 OR is_shared = true)"
            if shared
            else "DELETE FROM knowledge WHERE agent_id = $1"
        )
        async with self._pool.acquire() as conn:
            await conn.execute(sql, agent_id)

    # ========== Account / Room Operations ==========

    async def get_account_by_id(self, user_id: UUID) -> Optional[Account]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM accounts WHERE id = $1", user_id)
        if row:
            return Account(
                id=row["id"],
                name=row["name"],
                username=row["username"] or "",
                email=row["email"],
                avatar_url=row["avatar_url"],
                details=_load_json(row["details"]) or {},
            )
        return None

    async def create_account(self, account: Account) -> bool:
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO accounts (id, name, username, email, avatar_url, details)
                    VALUES ($1, $2, $3, $4, $5, $6::jsonb)
                    ON CONFLICT (id) DO NOTHING
                    """,
                    account.id,
                    account.name,
                    account.username,
                    account.email,
                    account.avatar_url,
                    json.dumps(account.details),
                )
            return True
        except asyncpg.PostgresError as e:
            logger.error(f"Error creating account {account.id}: {e}")
            return False

    async def get_accounts_by_ids(self, user_ids: List[UUID]) -> List[Actor]:
        if not user_ids:
            return []
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT id, name, username, details FROM accounts WHERE id = ANY($1::uuid[])",
                list(user_ids),
            )
        return [
            Actor(
                id=row["id"],
                name=row["name"],
                username=row["username"] or "",
                details=_load_json(row["details"]) or {},
            )
            for row in rows
        ]

    async def get_room(self, room_id: UUID) -> Optional[UUID]:
        async with self._pool.acquire() as conn:
            return await conn.fetchval("SELECT id FROM rooms WHERE id = $1", room_id)

    async def create_room(self, room_id: UUID) -> UUID:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO rooms (id) VALUES ($1) ON CONFLICT (id) DO NOTHING",
                room_id,
            )
        return room_id

    async def get_is_user_in_the_room(self, room_id: UUID, user_id: UUID) -> bool:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT id FROM participants WHERE room_id = $1 AND user_id = $2",
                room_id,
                user_id,
            )
        return row is not None

    async def add_participant(self, user_id: UUID, room_id: UUID) -> bool:
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO participants (user_id, room_id)
                    VALUES ($1, $2)
                    ON CONFLICT (user_id, room_id) DO NOTHING
                    """,
                    user_id,
                    room_id,
                )
            return True
        except asyncpg.PostgresError as e:
            logger.error(f"Error adding participant {user_id} to room {room_id}: {e}")
            return False

    async def get_participants_for_account(self, user_id: UUID) -> List[UUID]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch("SELECT room_id FROM participants WHERE user_id = $1", user_id)
        return [row["room_id"] for row in rows]

    async def get_rooms_for_participants(self, user_ids: List[UUID]) -> List[UUID]:
        if not user_ids:
            return []
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT room_id
                FROM participants
                WHERE user_id = ANY($1::uuid[])
                GROUP BY room_id
                HAVING COUNT(DISTINCT user_id) = $2
                """,
                list(user_ids),
                len(set(user_ids)),
            )
        return [row["room_id"] for row in rows]

    # ========== Goal Operations ==========

    async def get_goals(
        self,
        room_id: UUID,
        user_id: Optional[UUID] = None,
        only_in_progress: bool = True,
        count: int = 5,
    ) -> List[Goal]:
        sql = "SELECT * FROM goals WHERE room_id = $1"
        values: list = [room_id]
        if user_id:
            values.append(user_id)
            sql += f" AND user_id = ${len(values)}"
        if only_in_progress:
            sql += " AND status = 'IN_PROGRESS'"
        sql += " ORDER BY created_at DESC"
        if count:
            values.append(count)
            sql += f" LIMIT ${len(values)}"

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *values)
        return [
            Goal(
                id=row["id"],
                room_id=row["room_id"],
                user_id=row["user_id"],
                name=row["name"],
                status=row["status"],
                objectives=[Objective(**o) for o in (_load_json(row["objectives"]) or [])],
            )
            for row in rows
        ]
