"""
Best-Effort Dual Write

Relational and vector stores are written without a shared transaction.
The relational write is authoritative and its errors propagate; the
vector write is best-effort and its errors are logged and dropped.
"""

import logging
from typing import Awaitable, TypeVar

from agent_recall.errors import VectorWriteError
from agent_recall.llm.base import EmbeddingError

logger = logging.getLogger("agent_recall.memory")

T = TypeVar("T")


async def write_relational(operation: Awaitable[T]) -> T:
    """Await the authoritative write. Failures propagate to the caller."""
    return await operation


async def write_vector_best_effort(operation: Awaitable, description: str) -> bool:
    """
    Await a vector-side write, capturing any failure.

    Returns:
        True if the write completed, False if it failed and was logged
    """
    try:
        await operation
        return True
    except VectorWriteError as e:
        logger.warning(f"Vector write skipped for {description}: {e}")
    except EmbeddingError as e:
        logger.warning(f"Embedding failed for {description}: {e}")
    except Exception as e:
        logger.error(f"Vector write failed for {description}: {e}", exc_info=True)
    return False
