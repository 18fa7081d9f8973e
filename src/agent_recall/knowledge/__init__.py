"""Knowledge (RAG) package - ingestion, chunking and retrieval."""

from agent_recall.knowledge.chunking import split_chunks
from agent_recall.knowledge.manager import KnowledgeLoadReport, RAGKnowledgeManager
from agent_recall.knowledge.preprocess import STOP_WORDS, TextNormalizer, get_query_terms
from agent_recall.knowledge.rerank import has_proximity_match, rerank_results

__all__ = [
    "KnowledgeLoadReport",
    "RAGKnowledgeManager",
    "STOP_WORDS",
    "TextNormalizer",
    "get_query_terms",
    "has_proximity_match",
    "rerank_results",
    "split_chunks",
]
