"""Tests for the OpenAI vision client."""

from unittest.mock import AsyncMock

import pytest

from core.errors import ConfigurationError, InvalidResponseError, RateLimitedError
from wardrobe_pipeline.providers import OpenAIVisionClient
from wardrobe_pipeline.providers.openai_vision import strip_code_fence


def completion(content, finish_reason="stop"):
    return {"choices": [{"message": {"content": content}, "finish_reason": finish_reason}]}


def make_client(response=None, error=None):
    client = OpenAIVisionClient("sk-test", model="gpt-4o-mini")
    client._request = AsyncMock(return_value=response, side_effect=error)
    return client


class TestStripCodeFence:
    """Tests for strip_code_fence()"""

    @pytest.mark.parametrize("content", [
        '{"type": "coat"}',
        '```json\n{"type": "coat"}\n```',
        '```\n{"type": "coat"}\n```',
        '  {"type": "coat"}  ',
    ])
    def test_strips(self, content):
        assert strip_code_fence(content) == '{"type": "coat"}'


class TestOpenAIVisionClient:
    """Tests for OpenAIVisionClient.run()"""

    @pytest.mark.asyncio
    async def test_returns_parsed_reply(self):
        client = make_client(completion('```json\n{"type": "tee", "colour": ["navy"]}\n```'))

        result = await client.run("https://signed/url")

        assert result == {"type": "tee", "colour": ["navy"]}
        call = client._request.await_args
        assert call.args == ("POST", "https://api.openai.com/v1/chat/completions")
        body = call.kwargs["json_body"]
        assert body["model"] == "gpt-4o-mini"
        image_part = body["messages"][0]["content"][1]
        assert image_part["image_url"]["url"] == "https://signed/url"
        assert call.kwargs["headers"]["Authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_api_error_body(self):
        client = make_client({"error": {"message": "model not found"}})

        with pytest.raises(ConfigurationError) as exc_info:
            await client.run("https://signed/url")

        assert "model not found" in str(exc_info.value)
        assert exc_info.value.provider.value == "openai"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        {"choices": []},
        completion(""),
        completion("I think it's a jacket"),
        ["not", "an", "object"],
    ])
    async def test_unusable_reply(self, response):
        client = make_client(response)

        with pytest.raises(InvalidResponseError) as exc_info:
            await client.run("https://signed/url")

        assert exc_info.value.code.value == "invalid_json"

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        client = make_client(error=RateLimitedError("429", provider="openai", http_status=429))

        with pytest.raises(RateLimitedError):
            await client.run("https://signed/url")

    def test_provider_identity(self):
        client = OpenAIVisionClient("k", base_url="https://proxy.local/v1/")

        assert client.provider_name == "openai"
        assert client.model == "gpt-4o"
        assert client.base_url == "https://proxy.local/v1"
