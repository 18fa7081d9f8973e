"""Conversational memory package."""

from agent_recall.memory.dual_write import write_relational, write_vector_best_effort
from agent_recall.memory.manager import MemoryManager

__all__ = ["MemoryManager", "write_relational", "write_vector_best_effort"]
