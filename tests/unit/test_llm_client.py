"""
Unit Tests for the LLM Client
=============================

- JSON completions are parsed into dictionaries
- Provider errors map onto the domain taxonomy with the right retry flag
- Missing API key is a non-retryable configuration error
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APITimeoutError, RateLimitError

from config.settings import LLMSettings
from core.exceptions import (
    LLMInvalidResponseError,
    LLMNotConfiguredError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from infrastructure.llm_client import LLMClient

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def completion(content):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


@pytest.fixture
def llm():
    client = LLMClient(LLMSettings(OPENAI_API_KEY="test-key", LLM_MAX_RETRIES=1))
    client._client = MagicMock()
    client._client.chat.completions.create = AsyncMock(return_value=completion('{"score": 0.8}'))
    return client


class TestCompletions:
    @pytest.mark.asyncio
    async def test_complete_json_parses_object(self, llm):
        data = await llm.complete_json("Rate this page", system="Reply in JSON")

        assert data == {"score": 0.8}
        kwargs = llm._client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "Reply in JSON"}
        assert llm.get_metrics() == {"total_requests": 1, "total_tokens": 42}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, llm):
        llm._client.chat.completions.create.return_value = completion("not json")

        with pytest.raises(LLMInvalidResponseError):
            await llm.complete_json("Rate this page")

    @pytest.mark.asyncio
    async def test_non_object_json_raises(self, llm):
        llm._client.chat.completions.create.return_value = completion("[1, 2]")

        with pytest.raises(LLMInvalidResponseError):
            await llm.complete_json("Rate this page")


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self, llm):
        llm._client.chat.completions.create.side_effect = RateLimitError(
            "slow down", response=httpx.Response(429, request=REQUEST), body=None
        )

        with pytest.raises(LLMRateLimitError) as exc_info:
            await llm.complete("Rate this page")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self, llm):
        llm._client.chat.completions.create.side_effect = APITimeoutError(request=REQUEST)

        with pytest.raises(LLMTimeoutError) as exc_info:
            await llm.complete("Rate this page")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_missing_key_is_not_retryable(self):
        client = LLMClient(LLMSettings(OPENAI_API_KEY=""))

        with pytest.raises(LLMNotConfiguredError) as exc_info:
            await client.complete("Rate this page")
        assert exc_info.value.retryable is False
