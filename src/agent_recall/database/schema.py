"""
Database Schema

Defines and creates the PostgreSQL schema with the pgvector extension.
"""

import asyncpg

SCHEMA_SQL = """
-- Enable vector extension
CREATE EXTENSION IF NOT EXISTS vector;

-- 1. Accounts: users and agents
CREATE TABLE IF NOT EXISTS accounts (
    id UUID PRIMARY KEY,
    name TEXT NOT NULL,
    username TEXT,
    email TEXT,
    avatar_url TEXT,
    details JSONB DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- 2. Rooms: conversation scopes
CREATE TABLE IF NOT EXISTS rooms (
    id UUID PRIMARY KEY,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- 3. Participants: account membership in rooms
CREATE TABLE IF NOT EXISTS participants (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID REFERENCES accounts(id) ON DELETE CASCADE,
    room_id UUID REFERENCES rooms(id) ON DELETE CASCADE,
    user_state TEXT,                            -- 'FOLLOWED', 'MUTED' or NULL
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (user_id, room_id)
);

-- 4. Memories: conversational events, partitioned by type (table name)
CREATE TABLE IF NOT EXISTS memories (
    id UUID PRIMARY KEY,                        -- Derived from platform message id + agent id
    type TEXT NOT NULL,                         -- 'messages', 'descriptions', 'lore', 'documents'
    content JSONB NOT NULL,
    user_id UUID,
    room_id UUID,
    agent_id UUID,
    "unique" BOOLEAN DEFAULT TRUE,
    created_at BIGINT NOT NULL                  -- Epoch milliseconds
);

-- 5. Knowledge: long-form items and their chunks
CREATE TABLE IF NOT EXISTS knowledge (
    id TEXT PRIMARY KEY,                        -- UUID or '{uuid}-chunk-{n}'
    agent_id UUID,                              -- NULL for shared knowledge
    content JSONB NOT NULL,
    created_at BIGINT NOT NULL,
    is_main BOOLEAN DEFAULT FALSE,
    original_id TEXT,
    chunk_index INTEGER,
    is_shared BOOLEAN DEFAULT FALSE
);

-- 6. Goals
CREATE TABLE IF NOT EXISTS goals (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    room_id UUID,
    user_id UUID,
    name TEXT NOT NULL,
    status TEXT DEFAULT 'IN_PROGRESS',
    objectives JSONB DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- 7. Vectors: similarity index for memories and knowledge
CREATE TABLE IF NOT EXISTS vectors (
    namespace TEXT NOT NULL,                    -- Agent id
    id TEXT NOT NULL,
    embedding vector NOT NULL,
    metadata JSONB DEFAULT '{}'::jsonb,
    PRIMARY KEY (namespace, id)
);

-- Indexes for performance
CREATE INDEX IF NOT EXISTS idx_memories_room
    ON memories(room_id, type, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_memories_agent
    ON memories(agent_id);
CREATE INDEX IF NOT EXISTS idx_knowledge_agent
    ON knowledge(agent_id);
CREATE INDEX IF NOT EXISTS idx_knowledge_original
    ON knowledge(original_id);
CREATE INDEX IF NOT EXISTS idx_participants_user
    ON participants(user_id);
CREATE INDEX IF NOT EXISTS idx_goals_room
    ON goals(room_id);
CREATE INDEX IF NOT EXISTS idx_vectors_metadata
    ON vectors USING gin (metadata jsonb_path_ops);
"""


class DatabaseSchema:
    """
    Manages PostgreSQL database schema creation.
    """

    def __init__(self, connection_string: str = None):
        """
        Initialize schema manager.

        Args:
            connection_string: PostgreSQL connection string.
                             Defaults to local 'agent_recall' database.
        """
        self.connection_string = connection_string or "postgresql://localhost/agent_recall"
        self._initialized = False

    async def initialize(self) -> None:
        """
        Create all tables and indexes if they don't exist.
        """
        if self._initialized:
            return

        conn = await asyncpg.connect(self.connection_string)
        try:
            await conn.execute(SCHEMA_SQL)
        finally:
            await conn.close()

        self._initialized = True

    async def drop_all(self) -> None:
        """
        Drop all tables. USE WITH CAUTION - this destroys all data.
        """
        drop_sql = """
        DROP TABLE IF EXISTS vectors CASCADE;
        DROP TABLE IF EXISTS goals CASCADE;
        DROP TABLE IF EXISTS knowledge CASCADE;
        DROP TABLE IF EXISTS memories CASCADE;
        DROP TABLE IF EXISTS participants CASCADE;
        DROP TABLE IF EXISTS rooms CASCADE;
        DROP TABLE IF EXISTS accounts CASCADE;
        """
        conn = await asyncpg.connect(self.connection_string)
        try:
            await conn.execute(drop_sql)
        finally:
            await conn.close()

    async def get_stats(self) -> dict:
        """
        Get database statistics.
        """
        conn = await asyncpg.connect(self.connection_string)
        try:
            stats = {}
            stats["accounts"] = await conn.fetchval("SELECT COUNT(*) FROM accounts")
            stats["rooms"] = await conn.fetchval("SELECT COUNT(*) FROM rooms")
            stats["memories"] = await conn.fetchval("SELECT COUNT(*) FROM memories")
            stats["knowledge"] = await conn.fetchval("SELECT COUNT(*) FROM knowledge")
            stats["vectors"] = await conn.fetchval("SELECT COUNT(*) FROM vectors")
            stats["db_size"] = await conn.fetchval("SELECT pg_size_pretty(pg_database_size(current_database()))")
            stats["connected"] = True
            return stats
        finally:
            await conn.close()
