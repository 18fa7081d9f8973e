"""
LLM Client

Handles all model interactions:
- Embeddings (batched, with an LRU cache)
- Free-text generation
- Schema-validated object generation
- Boolean classification
"""

import asyncio
import json
import logging
import os
import random
from enum import Enum
from typing import Any, Callable, List, Optional, Type, TypeVar

from openai import APIConnectionError, AsyncOpenAI, InternalServerError, RateLimitError
from pydantic import BaseModel, Field, ValidationError

from agent_recall.config import EmbeddingConfig, LLMConfig
from agent_recall.errors import UpstreamTransientError
from agent_recall.llm.base import EmbeddingProvider
from agent_recall.llm.openai_provider import OpenAIEmbeddingProvider

logger = logging.getLogger("agent_recall.llm")

T = TypeVar("T", bound=BaseModel)

# Provider failures worth retrying (rate limits, network, 5xx)
TRANSIENT_ERRORS = (RateLimitError, APIConnectionError, InternalServerError)


class ModelClass(str, Enum):
    """Size class of the model used for a call."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class GenerationError(Exception):
    """Raised when the model output cannot be turned into the requested shape."""
    pass


class TrueOrFalse(BaseModel):
    analysis: str = Field(default="", description="A detailed analysis of your response")
    response: bool


class LLMClient:
    """
    Client for model interactions using an OpenAI-compatible API.

    The embedding provider is pluggable; generation always goes through
    the chat completions endpoint.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = "gpt-4o-mini",
        small_model: Optional[str] = None,
        large_model: Optional[str] = None,
        max_retries: int = 3,
        temperature: float = 0.7,
        usage_callback: Optional[Callable] = None,
        enable_embedding_cache: bool = True,
        max_cache_size: int = 1000,
        embedding_provider: Optional[EmbeddingProvider] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.models = {
            ModelClass.SMALL: small_model or model,
            ModelClass.MEDIUM: model,
            ModelClass.LARGE: large_model or model,
        }
        self.max_retries = max_retries
        self.temperature = temperature
        self.usage_callback = usage_callback
        self.client = client or AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
        )

        self._embedding_provider = embedding_provider or OpenAIEmbeddingProvider(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
        )

        # Embedding cache (LRU)
        self.enable_embedding_cache = enable_embedding_cache
        self.max_cache_size = max_cache_size
        self._embedding_cache: dict[str, List[float]] = {}
        self._cache_order: list[str] = []  # For LRU tracking

        # Cache statistics
        self._cache_hits = 0
        self._cache_misses = 0

    @classmethod
    def from_config(cls, llm_config: LLMConfig, embedding_config: EmbeddingConfig) -> "LLMClient":
        provider = OpenAIEmbeddingProvider(
            api_key=embedding_config.api_key or llm_config.api_key,
            base_url=llm_config.base_url,
            model=embedding_config.model,
            dimension=embedding_config.dimension,
        )
        return cls(
            api_key=llm_config.api_key,
            base_url=llm_config.base_url,
            model=llm_config.model,
            small_model=llm_config.small_model,
            large_model=llm_config.large_model,
            max_retries=llm_config.max_retries,
            temperature=llm_config.temperature,
            enable_embedding_cache=embedding_config.enable_cache,
            max_cache_size=embedding_config.max_cache_size,
            embedding_provider=provider,
        )

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        return self._embedding_provider

    def get_embedding_dimension(self) -> int:
        return self._embedding_provider.get_embedding_dimension()

    def model_for(self, model_class: ModelClass) -> str:
        return self.models.get(ModelClass(model_class), self.model)

    async def _report_usage(self, response: Any, model: str) -> None:
        """Helper to report token usage via callback."""
        if self.usage_callback and getattr(response, "usage", None):
            await self.usage_callback(
                model,
                response.usage.prompt_tokens,
                getattr(response.usage, "completion_tokens", 0),
                response.usage.total_tokens,
            )

    # ========== Embeddings ==========

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate embedding vector for text with caching.

        Internally uses batch_generate_embeddings so single calls share
        the cache.
        """
        embeddings = await self.batch_generate_embeddings([text])
        return embeddings[0]

    async def batch_generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in a single API call.

        Cached texts are served locally; only the misses go to the provider.

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors in the same order as input texts
        """
        if not texts:
            return []

        uncached_texts = []
        uncached_indices = []
        result_embeddings = [None] * len(texts)

        for i, text in enumerate(texts):
            if self.enable_embedding_cache and text in self._embedding_cache:
                self._cache_hits += 1
                self._touch_cache(text)
                result_embeddings[i] = self._embedding_cache[text]
            else:
                uncached_texts.append(text)
                uncached_indices.append(i)

        if not uncached_texts:
            return result_embeddings

        self._cache_misses += len(uncached_texts)
        embeddings_from_api = await self._embedding_provider.batch_embed(uncached_texts)

        for i, embedding in enumerate(embeddings_from_api):
            original_index = uncached_indices[i]
            text = uncached_texts[i]
            result_embeddings[original_index] = embedding
            if self.enable_embedding_cache:
                self._add_to_cache(text, embedding)

        return result_embeddings

    def _touch_cache(self, key: str) -> None:
        """Update LRU order for cache hit."""
        if key in self._cache_order:
            self._cache_order.remove(key)
        self._cache_order.append(key)

    def _add_to_cache(self, key: str, value: List[float]) -> None:
        """Add to cache with LRU eviction."""
        if key in self._embedding_cache:
            self._embedding_cache[key] = value
            self._touch_cache(key)
            return
        if len(self._embedding_cache) >= self.max_cache_size and self._cache_order:
            oldest = self._cache_order.pop(0)
            del self._embedding_cache[oldest]
        self._embedding_cache[key] = value
        self._cache_order.append(key)

    def get_cache_stats(self) -> dict:
        """Get cache hit/miss statistics."""
        total = self._cache_hits + self._cache_misses
        hit_rate = (self._cache_hits / total * 100) if total > 0 else 0

        return {
            "hits": self._cache_hits,
            "misses": self._cache_misses,
            "total_requests": total,
            "hit_rate_percent": round(hit_rate, 2),
            "cache_size": len(self._embedding_cache),
            "max_cache_size": self.max_cache_size,
        }

    def clear_embedding_cache(self) -> None:
        """Clear the embedding cache."""
        self._embedding_cache.clear()
        self._cache_order.clear()
        self._cache_hits = 0
        self._cache_misses = 0

    # ========== Generation ==========

    async def _chat(self, **kwargs) -> Any:
        try:
            return await self.client.chat.completions.create(**kwargs)
        except TRANSIENT_ERRORS as e:
            raise UpstreamTransientError(str(e), code=getattr(e, "status_code", None)) from e

    async def generate_text(
        self,
        context: str,
        model_class: ModelClass = ModelClass.MEDIUM,
        system_prompt: Optional[str] = None,
        max_tokens: int = 1000,
    ) -> str:
        """Free-text completion of a composed context."""
        model = self.model_for(model_class)
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": context})

        response = await self._chat(
            model=model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=max_tokens,
        )
        await self._report_usage(response, model)
        return (response.choices[0].message.content or "").strip()

    async def generate_object(
        self,
        context: str,
        schema: Type[T],
        model_class: ModelClass = ModelClass.MEDIUM,
        system_prompt: Optional[str] = None,
    ) -> T:
        """
        Generate a JSON object and validate it against a pydantic schema.

        Malformed or invalid output is retried up to max_retries times with
        exponential backoff and jitter.

        Raises:
            GenerationError: If no attempt produced a valid object
        """
        model = self.model_for(model_class)
        prompt = (
            f"{context}\n\n"
            f"Respond with a single JSON object matching this JSON schema:\n"
            f"{json.dumps(schema.model_json_schema())}"
        )
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            response = await self._chat(
                model=model,
                messages=messages,
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
            await self._report_usage(response, model)

            try:
                raw = json.loads(response.choices[0].message.content)
                return schema.model_validate(raw)
            except (json.JSONDecodeError, ValidationError, IndexError, TypeError) as e:
                last_error = e
                logger.warning(
                    f"Invalid {schema.__name__} output on attempt {attempt + 1}/{self.max_retries}: {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(0.5 * (2 ** attempt) + random.uniform(0, 0.5))

        raise GenerationError(
            f"Model did not produce a valid {schema.__name__} after {self.max_retries} attempts"
        ) from last_error

    async def generate_true_or_false(
        self,
        context: str,
        model_class: ModelClass = ModelClass.SMALL,
    ) -> bool:
        """Boolean classification; False when the model output is unusable."""
        try:
            result = await self.generate_object(context, TrueOrFalse, model_class)
            return result.response
        except GenerationError as e:
            logger.error(f"Error in generate_true_or_false: {e}")
            return False
