"""
Tests for the OpenAI upstream caller.

The AsyncOpenAI client is replaced by a mock; no network calls are made.
"""

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
from pydantic import SecretStr

from quota_proxy.config import LLMSettings
from quota_proxy.exceptions import UpstreamError
from quota_proxy.text_generation import OpenAIChatCaller

MESSAGES = [{"role": "user", "content": "Fill in the form"}]
REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def make_caller(**kwargs):
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.close = AsyncMock()
    caller = OpenAIChatCaller(api_key="sk-test", client=client, **kwargs)
    return caller, client.chat.completions.create


def completion(content):
    return MagicMock(choices=[MagicMock(message=MagicMock(content=content))])


class TestOpenAIChatCaller(unittest.IsolatedAsyncioTestCase):
    """Tests for OpenAIChatCaller.complete."""

    async def test_returns_first_choice(self):
        caller, create = make_caller()
        create.return_value = completion('{"name": "Ada"}')

        self.assertEqual(await caller.complete(MESSAGES), '{"name": "Ada"}')

    async def test_request_parameters(self):
        caller, create = make_caller()
        create.return_value = completion("hello")

        await caller.complete(MESSAGES)

        create.assert_awaited_once_with(
            model="gpt-4o-mini",
            messages=MESSAGES,
            temperature=0.2,
            response_format={"type": "json_object"},
        )

    async def test_plain_text_response_format(self):
        caller, create = make_caller(json_response=False, model="gpt-4o", temperature=0.7)
        create.return_value = completion("hello")

        await caller.complete(MESSAGES)

        kwargs = create.call_args.kwargs
        self.assertNotIn("response_format", kwargs)
        self.assertEqual(kwargs["model"], "gpt-4o")
        self.assertEqual(kwargs["temperature"], 0.7)

    async def test_null_content_is_empty_string(self):
        caller, create = make_caller()
        create.return_value = completion(None)

        self.assertEqual(await caller.complete(MESSAGES), "")

    async def test_no_choices_is_malformed(self):
        caller, create = make_caller()
        create.return_value = MagicMock(choices=[])

        with self.assertRaises(UpstreamError) as ctx:
            await caller.complete(MESSAGES)
        self.assertIn("without choices", ctx.exception.message)

    async def test_status_error(self):
        caller, create = make_caller()
        create.side_effect = openai.InternalServerError(
            "upstream exploded",
            response=httpx.Response(500, request=REQUEST),
            body=None,
        )

        with self.assertRaises(UpstreamError) as ctx:
            await caller.complete(MESSAGES)

        self.assertEqual(ctx.exception.message, "OpenAI error 500: upstream exploded")
        self.assertEqual(ctx.exception.upstream_status, 500)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.error_code.value, "INTERNAL")

    async def test_rate_limit_status(self):
        caller, create = make_caller()
        create.side_effect = openai.RateLimitError(
            "slow down",
            response=httpx.Response(429, request=REQUEST),
            body=None,
        )

        with self.assertRaises(UpstreamError) as ctx:
            await caller.complete(MESSAGES)
        self.assertEqual(ctx.exception.message, "OpenAI error 429: slow down")

    async def test_timeout(self):
        caller, create = make_caller()
        create.side_effect = openai.APITimeoutError(request=REQUEST)

        with self.assertRaises(UpstreamError) as ctx:
            await caller.complete(MESSAGES)
        self.assertEqual(ctx.exception.message, "OpenAI request timed out")

    async def test_connection_error(self):
        caller, create = make_caller()
        create.side_effect = openai.APIConnectionError(request=REQUEST)

        with self.assertRaises(UpstreamError) as ctx:
            await caller.complete(MESSAGES)
        self.assertTrue(ctx.exception.message.startswith("OpenAI request failed"))

    async def test_close(self):
        caller, _ = make_caller()
        await caller.close()
        caller._client.close.assert_awaited_once()


class TestFromSettings(unittest.TestCase):
    """Tests for OpenAIChatCaller.from_settings."""

    def test_requires_api_key(self):
        with self.assertRaises(ValueError):
            OpenAIChatCaller.from_settings(LLMSettings(openai_api_key=None))

    @patch("quota_proxy.text_generation.core.AsyncOpenAI")
    def test_builds_client_from_settings(self, mock_openai):
        settings = LLMSettings(
            openai_api_key=SecretStr("sk-test-key"),
            openai_model="gpt-4o",
            llm_api_timeout=30.0,
        )

        caller = OpenAIChatCaller.from_settings(settings)

        self.assertEqual(caller.model, "gpt-4o")
        mock_openai.assert_called_once_with(
            api_key="sk-test-key",
            base_url=None,
            timeout=30.0,
            max_retries=0,
        )


if __name__ == "__main__":
    unittest.main()
