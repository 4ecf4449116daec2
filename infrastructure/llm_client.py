"""
LLM Client: OpenAI Chat Completions with Fault Tolerance

Thin abstraction used by the scoring and claims stages:
- Adaptive retry with exponential backoff (tenacity)
- JSON-mode completions parsed into dictionaries
- Provider errors mapped onto the domain exception taxonomy, with timeouts
  and rate limits flagged retryable so the analysis queue can retry the task
"""

import json
import time
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, OpenAIError, RateLimitError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import LLMSettings, get_settings
from core.exceptions import (
    LLMError,
    LLMInvalidResponseError,
    LLMNotConfiguredError,
    LLMRateLimitError,
    LLMTimeoutError,
)


class LLMClient:
    """
    OpenAI client wrapper.

    Usage:
        client = LLMClient()
        data = await client.complete_json(
            system="You are an SEO auditor. Reply in JSON.",
            prompt="Score this page ...",
        )
    """

    def __init__(self, llm_settings: Optional[LLMSettings] = None):
        self.settings = llm_settings or get_settings().llm
        self._client: Optional[AsyncOpenAI] = None

        self.total_requests = 0
        self.total_tokens = 0

        logger.info(
            f"LLMClient initialized | model={self.settings.model} | "
            f"max_retries={self.settings.max_retries} | configured={self.settings.is_configured}"
        )

    @property
    def client(self) -> AsyncOpenAI:
        if not self.settings.is_configured:
            raise LLMNotConfiguredError()
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key.get_secret_value(),
                timeout=httpx.Timeout(self.settings.request_timeout),
                max_retries=0,  # We handle retries ourselves
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 1200,
        json_mode: bool = False,
    ) -> str:
        """
        Generate a completion.

        Raises:
            LLMNotConfiguredError: No API key configured
            LLMTimeoutError: Request timed out after retries
            LLMRateLimitError: Rate limited after retries
            LLMError: Any other provider error
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        params: Dict[str, Any] = {
            "model": self.settings.model,
            "messages": messages,
            "temperature": self.settings.temperature if temperature is None else temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        @retry(
            stop=stop_after_attempt(self.settings.max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            retry=retry_if_exception_type(
                (APITimeoutError, APIConnectionError, RateLimitError, httpx.TimeoutException)
            ),
            before_sleep=before_sleep_log(logger, "WARNING"),
            reraise=True,
        )
        async def _execute():
            return await self.client.chat.completions.create(**params)

        start = time.perf_counter()
        try:
            response = await _execute()
        except RateLimitError as e:
            raise LLMRateLimitError(f"Rate limit exceeded: {e}", cause=e) from e
        except (APITimeoutError, httpx.TimeoutException) as e:
            raise LLMTimeoutError(f"Request timeout: {e}", cause=e) from e
        except APIConnectionError as e:
            raise LLMError(f"Connection error: {e}", retryable=True, cause=e) from e
        except OpenAIError as e:
            raise LLMError(f"Provider error: {e}", cause=e) from e

        self.total_requests += 1
        if response.usage is not None:
            self.total_tokens += response.usage.total_tokens

        logger.debug(
            f"LLM completion | model={self.settings.model} | latency_ms={(time.perf_counter() - start) * 1000:.0f}"
        )
        return response.choices[0].message.content or ""

    async def complete_json(self, prompt: str, system: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        """Generate a JSON-mode completion and parse it."""
        content = await self.complete(prompt, system=system, json_mode=True, **kwargs)
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise LLMInvalidResponseError(response_text=content, cause=e) from e
        if not isinstance(data, dict):
            raise LLMInvalidResponseError("LLM returned non-object JSON", response_text=content)
        return data

    def get_metrics(self) -> Dict[str, Any]:
        return {"total_requests": self.total_requests, "total_tokens": self.total_tokens}

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
