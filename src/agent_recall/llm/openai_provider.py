"""
OpenAI embedding provider implementation.
"""

from typing import List, Optional

from openai import AsyncOpenAI

from agent_recall.llm.base import EmbeddingError, EmbeddingProvider


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embedding provider, text-embedding-3-large by default.

    Works against any OpenAI-compatible endpoint via base_url.
    """

    DIMENSIONS = {
        "text-embedding-ada-002": 1536,
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = "text-embedding-3-large",
        dimension: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self._dimension = dimension

    async def batch_embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        request = {"model": self.model, "input": texts}
        if self._dimension and self.model.startswith("text-embedding-3"):
            # v3 models can shorten their output to the configured index size
            request["dimensions"] = self._dimension

        try:
            response = await self.client.embeddings.create(**request)
        except Exception as e:
            raise EmbeddingError(f"OpenAI embedding failed: {e}") from e
        return self.check_batch(texts, [item.embedding for item in response.data])

    def get_embedding_dimension(self) -> int:
        if self._dimension:
            return self._dimension
        return self.DIMENSIONS.get(self.model, 1536)

    def get_model_name(self) -> str:
        return self.model
