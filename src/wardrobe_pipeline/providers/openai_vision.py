"""OpenAI vision client for garment attribute detection."""

import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from core.errors import ConfigurationError, InvalidResponseError, Provider
from core.logging import logged_operation
from wardrobe_pipeline.providers.base import HttpProviderClient

OPENAI_API_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

DETECTION_PROMPT = """Describe the clothing item in this image as a JSON object with these optional fields:
- type: garment type, one string (e.g. "t-shirt", "jeans", "dress", "jacket", "sneakers")
- colour: list of up to 3 colour names, most prominent first (e.g. ["navy", "white"])
- pattern: one string (e.g. "solid", "striped", "floral", "checked")
- fabric: one string (e.g. "cotton", "denim", "wool", "leather")
- season: list of seasons (e.g. ["spring", "summer"]) or ["all-season"]
- fit: one string (e.g. "slim", "regular", "relaxed", "oversized")

Reply with the JSON object only, all values lowercase. Leave out any field you are unsure about."""


def strip_code_fence(content: str) -> str:
    """Remove a markdown code fence wrapped around a JSON reply."""
    text = content.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class OpenAIVisionClient(HttpProviderClient):
    """
    Calls a chat completions vision model and returns its JSON reply.

    Args:
        api_key: OpenAI API key
        model: Vision model name
        timeout_ms: Per-request timeout
        base_url: API base URL
        session: Optional shared aiohttp session
    """

    provider = Provider.OPENAI
    log_component = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout_ms: int = 15000,
        base_url: str = OPENAI_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        super().__init__(timeout_ms=timeout_ms, session=session)

    @logged_operation(level=logging.DEBUG, operation_name="detect_attributes")
    async def run(self, image_url: str) -> Dict[str, Any]:
        """
        Ask the model to describe the garment at image_url.

        Args:
            image_url: Short-lived signed URL of the item image

        Returns:
            Parsed JSON object from the model reply (not yet canonicalised)

        Raises:
            ClassifiedError: provider=openai on any failure; unparseable
                replies raise InvalidResponseError
        """
        data = await self._request(
            "POST",
            f"{self.base_url}/chat/completions",
            operation="OpenAI vision request",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json_body={
                "model": self.model,
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": DETECTION_PROMPT},
                            {
                                "type": "image_url",
                                "image_url": {"url": image_url, "detail": "low"},
                            },
                        ],
                    }
                ],
                "max_tokens": 500,
                "temperature": 0.1,
            },
        )

        if not isinstance(data, dict):
            raise InvalidResponseError("OpenAI returned a non-object response", provider=self.provider)

        if data.get("error"):
            message = data["error"].get("message") if isinstance(data["error"], dict) else data["error"]
            raise ConfigurationError(f"OpenAI API error: {message}", provider=self.provider)

        choices = data.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content:
            raise InvalidResponseError("OpenAI returned empty response", provider=self.provider)

        try:
            parsed = json.loads(strip_code_fence(content))
        except json.JSONDecodeError as e:
            raise InvalidResponseError(
                f"Failed to parse OpenAI response as JSON: {e}",
                provider=self.provider,
                cause=e,
            ) from e

        self._log(
            logging.DEBUG,
            "Vision response parsed",
            status=choices[0].get("finish_reason"),
        )
        return parsed
