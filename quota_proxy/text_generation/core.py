"""
Upstream chat completion calls.

The proxy forwards the caller's message list unchanged and returns the
text of the first choice. Any failure is raised as UpstreamError so the
caller can roll back the reserved usage slot.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from quota_proxy.config import LLMSettings
from quota_proxy.exceptions import UpstreamError
from quota_proxy.utils.logging import Timer

logger = logging.getLogger(__name__)

Messages = List[Any]


class UpstreamCaller(ABC):
    """Abstract base class for the LLM behind the proxy."""

    @abstractmethod
    async def complete(self, messages: Messages) -> str:
        """
        Run a chat completion.

        Args:
            messages: Chat messages, passed through unvalidated.

        Returns:
            The generated text.

        Raises:
            UpstreamError: If the call fails or the response is malformed.
        """
        pass

    async def close(self) -> None:
        """Release client resources."""
        return None


class OpenAIChatCaller(UpstreamCaller):
    """Chat completion caller using the OpenAI async client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        json_response: bool = True,
        timeout: float = 60.0,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize the caller.

        Args:
            api_key: OpenAI API key.
            model: Model name.
            temperature: Sampling temperature.
            json_response: Ask for a JSON object response format.
            timeout: Request timeout in seconds.
            base_url: Optional API base URL override.
            client: Preconfigured client, mainly for tests.
        """
        self.model = model
        self.temperature = temperature
        self.json_response = json_response
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "OpenAIChatCaller":
        """Create a caller from LLM settings."""
        if not settings.is_configured:
            raise ValueError("OPENAI_API_KEY is not configured")

        return cls(
            api_key=settings.openai_api_key.get_secret_value(),
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            json_response=settings.openai_json_response,
            timeout=settings.llm_api_timeout,
            base_url=settings.openai_base_url,
        )

    async def complete(self, messages: Messages) -> str:
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if self.json_response:
            params["response_format"] = {"type": "json_object"}

        try:
            with Timer("openai_chat_completion", logger):
                response = await self._client.chat.completions.create(**params)
        except openai.APIStatusError as e:
            raise UpstreamError(
                f"OpenAI error {e.status_code}: {e.message}",
                status_code=e.status_code,
                original_error=e,
            ) from e
        except openai.APITimeoutError as e:
            raise UpstreamError("OpenAI request timed out", original_error=e) from e
        except openai.APIError as e:
            raise UpstreamError(f"OpenAI request failed: {e.message}", original_error=e) from e

        if not getattr(response, "choices", None):
            raise UpstreamError("OpenAI returned a response without choices")

        content = response.choices[0].message.content
        logger.debug(f"OpenAI completion received ({len(content or '')} chars)")
        return content or ""

    async def close(self) -> None:
        await self._client.close()
