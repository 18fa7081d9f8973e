"""Model access package - embeddings and generation."""

from agent_recall.llm.base import EmbeddingError, EmbeddingProvider
from agent_recall.llm.client import GenerationError, LLMClient, ModelClass
from agent_recall.llm.generation import GenerationDispatcher, MessageResponse, ShouldRespond
from agent_recall.llm.openai_provider import OpenAIEmbeddingProvider

__all__ = [
    "EmbeddingError",
    "EmbeddingProvider",
    "GenerationDispatcher",
    "GenerationError",
    "LLMClient",
    "MessageResponse",
    "ModelClass",
    "OpenAIEmbeddingProvider",
    "ShouldRespond",
]
