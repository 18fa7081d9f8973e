"""
Agent Recall

Retrieval-augmented memory and context composition for conversational
agents: vector-indexed memories, chunked knowledge with reranked
retrieval, and per-turn prompt state.
"""

from agent_recall.interaction.processor import MessageProcessor
from agent_recall.knowledge.manager import RAGKnowledgeManager
from agent_recall.memory.manager import MemoryManager
from agent_recall.request_queue import RequestQueue
from agent_recall.runtime.agent import AgentRuntime
from agent_recall.runtime.composer import CompositionPolicy

__version__ = "0.1.0"
__all__ = [
    "AgentRuntime",
    "CompositionPolicy",
    "MemoryManager",
    "MessageProcessor",
    "RAGKnowledgeManager",
    "RequestQueue",
]
