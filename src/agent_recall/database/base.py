"""
Relational Persistence Contract

The subset of database operations the memory, knowledge and runtime
layers need. Implementations must enforce uniqueness of memory ids; the
managers' existence checks are not atomic across processes.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from agent_recall.models.knowledge import RAGKnowledgeItem
from agent_recall.models.memory import Account, Actor, Goal, Memory


class DatabaseAdapter(ABC):

    # ========== Memories ==========

    @abstractmethod
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
        """
        Memories of a room, newest first.

        Args:
            start: Lower created_at bound in epoch milliseconds
            end: Upper created_at bound in epoch milliseconds
        """
        pass

    @abstractmethod
    async def get_memory_by_id(self, memory_id: UUID) -> Optional[Memory]:
        pass

    @abstractmethod
    async def get_memories_by_room_ids(
        self,
        table_name: str,
        room_ids: List[UUID],
        agent_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        user_id: Optional[UUID] = None,
    ) -> List[Memory]:
        pass

    @abstractmethod
    async def create_memory(self, memory: Memory, table_name: str, unique: bool = True) -> None:
        pass

    @abstractmethod
    async def remove_memory(self, memory_id: UUID, table_name: str) -> None:
        pass

    @abstractmethod
    async def remove_all_memories(self, room_id: UUID, table_name: str) -> None:
        pass

    @abstractmethod
    async def count_memories(self, room_id: UUID, table_name: str, unique: bool = True) -> int:
        pass

    @abstractmethod
    async def count_memories_for_user(self, user_id: UUID, agent_id: UUID, table_name: str) -> int:
        pass

    # ========== Knowledge ==========

    @abstractmethod
    async def get_knowledge_by_ids(self, ids: List[str], agent_id: UUID) -> List[RAGKnowledgeItem]:
        """Items owned by the agent or shared, in no particular order."""
        pass

    @abstractmethod
    async def create_knowledge(self, item: RAGKnowledgeItem) -> None:
        pass

    @abstractmethod
    async def remove_knowledge(self, knowledge_id: str) -> None:
        """
        Remove an item and its chunks.

        A "{id}-chunk-*" pattern removes only the chunks of id.
        """
        pass

    @abstractmethod
    async def clear_knowledge(self, agent_id: UUID, shared: bool = False) -> None:
        pass

    # ========== Accounts, rooms, participants ==========

    @abstractmethod
    async def get_account_by_id(self, user_id: UUID) -> Optional[Account]:
        pass

    @abstractmethod
    async def create_account(self, account: Account) -> bool:
        pass

    @abstractmethod
    async def get_accounts_by_ids(self, user_ids: List[UUID]) -> List[Actor]:
        pass

    @abstractmethod
    async def get_room(self, room_id: UUID) -> Optional[UUID]:
        pass

    @abstractmethod
    async def create_room(self, room_id: UUID) -> UUID:
        pass

    @abstractmethod
    async def get_is_user_in_the_room(self, room_id: UUID, user_id: UUID) -> bool:
        pass

    @abstractmethod
    async def add_participant(self, user_id: UUID, room_id: UUID) -> bool:
        pass

    @abstractmethod
    async def get_participants_for_account(self, user_id: UUID) -> List[UUID]:
        """Room ids the user participates in."""
        pass

    @abstractmethod
    async def get_rooms_for_participants(self, user_ids: List[UUID]) -> List[UUID]:
        """Rooms in which every one of user_ids participates."""
        pass

    # ========== Goals ==========

    @abstractmethod
    async def get_goals(
        self,
        room_id: UUID,
        user_id: Optional[UUID] = None,
        only_in_progress: bool = True,
        count: int = 5,
    ) -> List[Goal]:
        pass
