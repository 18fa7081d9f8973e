"""
Embedding contract for the memory and knowledge layers.

Memories and knowledge chunks are indexed in a VectorStore whose vectors
all share one dimension. Providers turn text into those vectors; the
managers only ever see this interface.
"""

from abc import ABC, abstractmethod
from typing import List


class EmbeddingError(Exception):
    """The provider failed or returned vectors that cannot be indexed."""
    pass


class EmbeddingProvider(ABC):
    """
    Turns memory text and knowledge chunks into index vectors.

    A batch call returns exactly one vector per input text, in input order,
    each of length get_embedding_dimension().
    """

    @abstractmethod
    async def batch_embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed a parent document and its chunks (or a set of memories) in one call.

        Raises:
            EmbeddingError: If the upstream call fails or the batch is malformed
        """
        pass

    @abstractmethod
    def get_embedding_dimension(self) -> int:
        """Dimension of the vector index this provider writes into."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        pass

    def check_batch(self, texts: List[str], vectors: List[List[float]]) -> List[List[float]]:
        """Reject a batch that would misalign chunks or break the index dimension."""
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        expected = self.get_embedding_dimension()
        for index, vector in enumerate(vectors):
            if len(vector) != expected:
                raise EmbeddingError(
                    f"Embedding {index} has dimension {len(vector)}, index expects {expected}"
                )
        return vectors
