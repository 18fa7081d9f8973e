"""
Shared fixtures: an in-memory DatabaseAdapter, a deterministic embedding
provider and a runtime wired to both.
"""

import hashlib
import math
import re
from typing import Dict, List, Optional
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest

from agent_recall.config import AgentConfig
from agent_recall.database.base import DatabaseAdapter
from agent_recall.llm.base import EmbeddingProvider
from agent_recall.llm.client import LLMClient
from agent_recall.models.character import Character, CharacterStyle, MessageExample
from agent_recall.models.knowledge import RAGKnowledgeItem
from agent_recall.models.memory import Account, Actor, Content, Goal, Memory, now_ms
from agent_recall.runtime.agent import AgentRuntime
from agent_recall.vector.memory_store import InMemoryVectorStore

EMBEDDING_DIMENSION = 64


class HashEmbeddingProvider(EmbeddingProvider):
    """Bag-of-words vectors: texts sharing words have positive similarity."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]

    async def batch_embed(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self.embed(text) for text in texts]

    def get_embedding_dimension(self) -> int:
        return self.dimension

    def get_model_name(self) -> str:
        return "hash-embedding"


class InMemoryDatabase(DatabaseAdapter):
    """Dict-backed DatabaseAdapter with the same semantics as the Postgres one."""

    def __init__(self):
        self.memories: Dict[UUID, tuple] = {}
        self.knowledge: Dict[str, RAGKnowledgeItem] = {}
        self.accounts: Dict[UUID, Account] = {}
        self.rooms: set = set()
        self.participants: set = set()
        self.goals: List[Goal] = []
        self.create_memory_calls = 0
        self.create_knowledge_calls = 0

    async def get_memories(self, room_id, table_name, count=None, unique=True,
                           agent_id=None, start=None, end=None):
        rows = [
            memory for memory, table, is_unique in self._rows()
            if table == table_name and memory.room_id == room_id
            and (not unique or is_unique)
            and (agent_id is None or memory.agent_id == agent_id)
            and (start is None or memory.created_at >= start)
            and (end is None or memory.created_at <= end)
        ]
        rows.sort(key=lambda m: m.created_at, reverse=True)
        return rows[:count] if count else rows

    def _rows(self):
        return list(self.memories.values())

    async def get_memory_by_id(self, memory_id):
        row = self.memories.get(memory_id)
        return row[0] if row else None

    async def get_memories_by_room_ids(self, table_name, room_ids, agent_id=None, limit=None, user_id=None):
        rows = [
            memory for memory, table, _ in self._rows()
            if table == table_name and memory.room_id in room_ids
            and (agent_id is None or memory.agent_id == agent_id)
            and (user_id is None or memory.user_id == user_id)
        ]
        rows.sort(key=lambda m: m.created_at, reverse=True)
        return rows[:limit] if limit else rows

    async def create_memory(self, memory, table_name, unique=True):
        self.create_memory_calls += 1
        self.memories.setdefault(memory.id, (memory, table_name, unique))

    async def remove_memory(self, memory_id, table_name):
        row = self.memories.get(memory_id)
        if row and row[1] == table_name:
            del self.memories[memory_id]

    async def remove_all_memories(self, room_id, table_name):
        for memory, table, _ in self._rows():
            if table == table_name and memory.room_id == room_id:
                del self.memories[memory.id]

    async def count_memories(self, room_id, table_name, unique=True):
        return len([
            m for m, table, is_unique in self._rows()
            if table == table_name and m.room_id == room_id and (not unique or is_unique)
        ])

    async def count_memories_for_user(self, user_id, agent_id, table_name):
        return len([
            m for m, table, _ in self._rows()
            if table == table_name and m.user_id == user_id and m.agent_id == agent_id
        ])

    async def get_knowledge_by_ids(self, ids, agent_id):
        return [
            item for item in self.knowledge.values()
            if item.id in ids
            and (item.agent_id == str(agent_id) or item.content.metadata.is_shared)
        ]

    async def create_knowledge(self, item):
        self.create_knowledge_calls += 1
        self.knowledge.setdefault(item.id, item)

    async def remove_knowledge(self, knowledge_id):
        if "-chunk-*" in knowledge_id:
            main_id = knowledge_id.split("-chunk-")[0]
            doomed = [k for k, v in self.knowledge.items() if v.content.metadata.original_id == main_id]
        else:
            doomed = [
                k for k, v in self.knowledge.items()
                if v.content.metadata.original_id == knowledge_id or k == knowledge_id
            ]
        for key in doomed:
            del self.knowledge[key]

    async def clear_knowledge(self, agent_id, shared=False):
        for key, item in list(self.knowledge.items()):
            # shared rows are stored without an owner
            if item.content.metadata.is_shared:
                if shared:
                    del self.knowledge[key]
            elif item.agent_id == str(agent_id):
                del self.knowledge[key]

    def chunks_of(self, parent_id: str) -> List[RAGKnowledgeItem]:
        return sorted(
            (v for v in self.knowledge.values() if v.content.metadata.original_id == parent_id),
            key=lambda item: item.content.metadata.chunk_index,
        )

    async def get_account_by_id(self, user_id):
        return self.accounts.get(user_id)

    async def create_account(self, account):
        self.accounts.setdefault(account.id, account)
        return True

    async def get_accounts_by_ids(self, user_ids):
        return [
            Actor(id=a.id, name=a.name, username=a.username, details=a.details)
            for a in self.accounts.values() if a.id in user_ids
        ]

    async def get_room(self, room_id):
        return room_id if room_id in self.rooms else None

    async def create_room(self, room_id):
        self.rooms.add(room_id)
        return room_id

    async def get_is_user_in_the_room(self, room_id, user_id):
        return (user_id, room_id) in self.participants

    async def add_participant(self, user_id, room_id):
        self.participants.add((user_id, room_id))
        return True

    async def get_participants_for_account(self, user_id):
        return [room for user, room in self.participants if user == user_id]

    async def get_rooms_for_participants(self, user_ids):
        wanted = set(user_ids)
        rooms = {room for _, room in self.participants}
        return [
            room for room in rooms
            if wanted <= {user for user, r in self.participants if r == room}
        ]

    async def get_goals(self, room_id, user_id=None, only_in_progress=True, count=5):
        goals = [
            g for g in self.goals
            if g.room_id == room_id
            and (user_id is None or g.user_id == user_id)
            and (not only_in_progress or g.status == "IN_PROGRESS")
        ]
        return goals[:count]


@pytest.fixture
def embedding_provider():
    return HashEmbeddingProvider()


@pytest.fixture
def llm(embedding_provider):
    """LLMClient with a deterministic embedder and a mocked chat client."""
    return LLMClient(
        api_key="test-key",
        embedding_provider=embedding_provider,
        client=MagicMock(),
    )


@pytest.fixture
def database():
    return InMemoryDatabase()


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()


@pytest.fixture
def character():
    return Character(
        id=UUID("00000000-0000-4000-8000-000000000001"),
        name="Ada",
        username="ada_bot",
        bio=["Ada writes compilers.", "Ada likes tea."],
        lore=["Ada once rewrote a parser overnight.", "Ada mentors new engineers."],
        topics=["compilers", "type systems"],
        adjectives=["precise"],
        style=CharacterStyle(all=["be concise"], chat=["answer directly"], post=["no hashtags"]),
        post_examples=["Parsers are just functions."],
        message_examples=[[
            MessageExample(user="{{user1}}", content={"text": "What do you work on?"}),
            MessageExample(user="Ada", content={"text": "Compilers, mostly."}),
        ]],
    )


@pytest.fixture
def config(tmp_path):
    cfg = AgentConfig()
    cfg.rag.knowledge_root = str(tmp_path)
    return cfg


@pytest.fixture
def runtime(character, database, vector_store, llm, config):
    return AgentRuntime(character, database, vector_store, llm, config=config)


@pytest.fixture
def make_memory():
    """Factory for memories with sensible defaults."""
    def _make(
        text: str = "hello",
        agent_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        room_id: Optional[UUID] = None,
        memory_id: Optional[UUID] = None,
        created_at: Optional[int] = None,
        **content_fields,
    ) -> Memory:
        return Memory(
            id=memory_id or uuid4(),
            agent_id=agent_id or uuid4(),
            user_id=user_id or uuid4(),
            room_id=room_id or uuid4(),
            content=Content(text=text, **content_fields),
            created_at=created_at or now_ms(),
        )
    return _make
