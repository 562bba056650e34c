"""
NEUFIN — LLM Client
Chat-completion client returning raw model text. Any failure, including a
missing credential, surfaces as LLMFailure so callers can fall back.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, RateLimitError

from neufin.config.settings import LLMSettings, get_settings
from neufin.data.errors import LLMFailure
from neufin.utils.logger import get_logger

logger = get_logger("llm_client")


class LLMClient(ABC):
    """Text-in, text-out completion interface."""

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's reply. Raises LLMFailure."""

    async def close(self) -> None:
        """Release resources."""


class OpenAILLMClient(LLMClient):
    """OpenAI chat completions in JSON mode, hard-capped by asyncio.wait_for."""

    def __init__(self, settings: Optional[LLMSettings] = None):
        self.settings = settings or get_settings().llm
        self._client: Optional[AsyncOpenAI] = None

    @property
    def configured(self) -> bool:
        return bool(self.settings.openai_api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.configured:
            raise LLMFailure("OPENAI_API_KEY not configured")

        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.settings.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    response_format={"type": "json_object"},
                    temperature=self.settings.temperature,
                    max_tokens=self.settings.max_tokens,
                ),
                timeout=self.settings.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise LLMFailure(f"timed out after {self.settings.timeout_seconds}s") from e
        except RateLimitError as e:
            raise LLMFailure(f"rate limited: {e}") from e
        except (APITimeoutError, APIConnectionError) as e:
            raise LLMFailure(f"connection error: {e}") from e
        except APIStatusError as e:
            raise LLMFailure(f"http {e.status_code}: {e}") from e

        if not response.choices:
            raise LLMFailure("empty response")
        content = response.choices[0].message.content
        if not content:
            raise LLMFailure("empty response")
        return content

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
