"""
Unit Tests for LLM Client

Tests LLM client logic using mocks. Does not require OpenAI API key.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError, RateLimitError

from agent_recall.errors import UpstreamTransientError
from agent_recall.llm.base import EmbeddingError
from agent_recall.llm.client import GenerationError, LLMClient, ModelClass
from agent_recall.llm.generation import GenerationDispatcher, ShouldRespond
from agent_recall.llm.openai_provider import OpenAIEmbeddingProvider
from agent_recall.request_queue import RequestQueue


def _completion(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage = MagicMock(prompt_tokens=100, completion_tokens=50, total_tokens=150)
    return response


class TestLLMClient:
    """Unit tests for LLMClient."""

    @pytest.fixture
    def mock_llm_client(self, embedding_provider):
        """Create an LLM client with a mocked chat endpoint."""
        client = LLMClient(
            api_key="mock-key",
            model="gpt-4o-mini",
            large_model="gpt-4o",
            embedding_provider=embedding_provider,
            client=MagicMock(),
        )
        client.client.chat.completions.create = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_embedding_cache_serves_repeats(self, mock_llm_client, embedding_provider):
        first = await mock_llm_client.generate_embedding("what fruit do I like?")
        second = await mock_llm_client.generate_embedding("what fruit do I like?")

        assert first == second
        assert len(embedding_provider.calls) == 1
        assert mock_llm_client._cache_hits == 1
        assert mock_llm_client._cache_misses == 1

    @pytest.mark.asyncio
    async def test_batch_only_sends_misses(self, mock_llm_client, embedding_provider):
        await mock_llm_client.generate_embedding("alpha")

        results = await mock_llm_client.batch_generate_embeddings(["alpha", "beta", "gamma"])

        assert len(results) == 3
        assert embedding_provider.calls[-1] == ["beta", "gamma"]

    @pytest.mark.asyncio
    async def test_cache_evicts_least_recently_used(self, embedding_provider):
        client = LLMClient(
            api_key="mock-key", embedding_provider=embedding_provider, client=MagicMock(), max_cache_size=2
        )
        await client.generate_embedding("a")
        await client.generate_embedding("b")
        await client.generate_embedding("a")
        await client.generate_embedding("c")

        stats = client.get_cache_stats()
        assert stats["cache_size"] == 2
        assert "b" not in client._embedding_cache
        assert "a" in client._embedding_cache

    def test_model_for_size_class(self, mock_llm_client):
        assert mock_llm_client.model_for(ModelClass.SMALL) == "gpt-4o-mini"
        assert mock_llm_client.model_for(ModelClass.LARGE) == "gpt-4o"

    @pytest.mark.asyncio
    async def test_generate_text_strips_output(self, mock_llm_client):
        mock_llm_client.client.chat.completions.create.return_value = _completion("  hi there \n")

        assert await mock_llm_client.generate_text("context") == "hi there"

    @pytest.mark.asyncio
    async def test_generate_object_retries_invalid_json(self, mock_llm_client):
        mock_llm_client.client.chat.completions.create.side_effect = [
            _completion("not json"),
            _completion(json.dumps({"analysis": "ok", "response": True})),
        ]

        with patch("agent_recall.llm.client.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await mock_llm_client.generate_true_or_false("is the sky blue?")

        assert result is True
        assert mock_llm_client.client.chat.completions.create.call_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_generate_object_raises_after_retries(self, mock_llm_client):
        from agent_recall.llm.client import TrueOrFalse

        mock_llm_client.client.chat.completions.create.return_value = _completion("{}")

        with patch("agent_recall.llm.client.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(GenerationError):
                await mock_llm_client.generate_object("context", TrueOrFalse)

        assert mock_llm_client.client.chat.completions.create.call_count == 3

    @pytest.mark.asyncio
    async def test_true_or_false_defaults_to_false(self, mock_llm_client):
        mock_llm_client.client.chat.completions.create.return_value = _completion("[]")

        with patch("agent_recall.llm.client.asyncio.sleep", new=AsyncMock()):
            assert await mock_llm_client.generate_true_or_false("anything") is False

    @pytest.mark.asyncio
    async def test_usage_callback_reports_tokens(self, embedding_provider):
        callback = AsyncMock()
        client = LLMClient(
            api_key="mock-key", embedding_provider=embedding_provider, client=MagicMock(), usage_callback=callback
        )
        client.client.chat.completions.create = AsyncMock(return_value=_completion("ok"))

        await client.generate_text("context")

        callback.assert_awaited_once_with("gpt-4o-mini", 100, 50, 150)

    @pytest.mark.asyncio
    async def test_rate_limit_raised_as_transient_error(self, mock_llm_client):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_llm_client.client.chat.completions.create.side_effect = RateLimitError(
            "Rate limit reached", response=httpx.Response(429, request=request), body=None
        )

        with pytest.raises(UpstreamTransientError) as exc_info:
            await mock_llm_client.generate_text("context")

        assert exc_info.value.code == 429
        assert isinstance(exc_info.value.__cause__, RateLimitError)

    @pytest.mark.asyncio
    async def test_connection_error_retried_by_request_queue(self, mock_llm_client):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_llm_client.client.chat.completions.create.side_effect = [
            APIConnectionError(request=request),
            _completion("recovered"),
        ]
        queue = RequestQueue(delay_min=0, delay_range=0, sleep=AsyncMock())

        result = await queue.enqueue(lambda: mock_llm_client.generate_text("context"))

        assert result == "recovered"
        assert mock_llm_client.client.chat.completions.create.await_count == 2
        await queue.close()


class TestGenerationDispatcher:
    """Tests for GenerationDispatcher."""

    @pytest.fixture
    def dispatcher(self, llm):
        llm.client.chat.completions.create = AsyncMock()
        return GenerationDispatcher(llm)

    @pytest.mark.asyncio
    async def test_message_response_maps_to_content(self, dispatcher):
        dispatcher.llm.client.chat.completions.create.return_value = _completion(json.dumps({
            "response_analysis": "greeting",
            "text": " Hello! ",
            "user": "Ada",
            "action": "CONTINUE",
        }))

        content = await dispatcher.generate_message_response("context")

        assert content.text == "Hello!"
        assert content.action == "CONTINUE"
        assert content.user == "Ada"

    @pytest.mark.asyncio
    async def test_message_response_errors_propagate(self, dispatcher):
        dispatcher.llm.client.chat.completions.create.side_effect = RuntimeError("embedding_provider down")

        with pytest.raises(RuntimeError):
            await dispatcher.generate_message_response("context")

    @pytest.mark.asyncio
    async def test_should_respond_falls_back_to_ignore(self, dispatcher):
        dispatcher.llm.client.chat.completions.create.return_value = _completion(
            json.dumps({"response": "MAYBE"})
        )

        with patch("agent_recall.llm.client.asyncio.sleep", new=AsyncMock()):
            assert await dispatcher.generate_should_respond("context") == ShouldRespond.IGNORE


class TestOpenAIEmbeddingProvider:
    """Tests for OpenAIEmbeddingProvider."""

    def _provider(self, vectors, dimension=4):
        client = MagicMock()
        client.embeddings.create = AsyncMock(
            return_value=MagicMock(data=[MagicMock(embedding=v) for v in vectors])
        )
        return OpenAIEmbeddingProvider(
            model="text-embedding-3-large", dimension=dimension, client=client
        )

    @pytest.mark.asyncio
    async def test_requests_configured_dimension(self):
        provider = self._provider([[0.1, 0.2, 0.3, 0.4], [0.4, 0.3, 0.2, 0.1]])

        vectors = await provider.batch_embed(["parent", "chunk"])

        assert vectors[1] == [0.4, 0.3, 0.2, 0.1]
        kwargs = provider.client.embeddings.create.call_args.kwargs
        assert kwargs["dimensions"] == 4
        assert kwargs["input"] == ["parent", "chunk"]

    @pytest.mark.asyncio
    async def test_wrong_dimension_rejected(self):
        provider = self._provider([[0.1, 0.2, 0.3]])

        with pytest.raises(EmbeddingError, match="index expects 4"):
            await provider.batch_embed(["parent"])

    @pytest.mark.asyncio
    async def test_missing_vectors_rejected(self):
        provider = self._provider([[0.1, 0.2, 0.3, 0.4]])

        with pytest.raises(EmbeddingError, match="Expected 2 embeddings"):
            await provider.batch_embed(["parent", "chunk"])

    @pytest.mark.asyncio
    async def test_api_failure_wrapped(self):
        provider = self._provider([])
        provider.client.embeddings.create.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(EmbeddingError, match="quota exceeded"):
            await provider.batch_embed(["parent"])
