"""Replicate background removal client."""

import asyncio
import base64
import logging
from typing import Any, Dict, Optional

import aiohttp

from core.errors import (
    InvalidResponseError,
    Provider,
    ProviderFailedError,
    RequestTimeoutError,
    TransientError,
)
from core.logging import logged_operation
from wardrobe_pipeline.providers.base import HttpProviderClient

REPLICATE_API_URL = "https://api.replicate.com/v1"
DEFAULT_MODEL_VERSION = "fb8af171cfa1616ddcf1242c093f9c46bcada5ad4cf6f2fbe8b81b330ec5c003"

TERMINAL_STATUSES = ("succeeded", "failed", "canceled")


def detect_mime_type(data: bytes) -> str:
    """Guess an image MIME type from magic bytes (JPEG if unknown)."""
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"


class ReplicateBackgroundRemover(HttpProviderClient):
    """
    Removes the background of an item photo via a Replicate prediction.

    The timeout covers the whole prediction lifecycle: creation, polling and
    the output download.

    Args:
        api_token: Replicate API token
        model_version: Model version hash
        timeout_ms: Budget for the whole prediction
        poll_interval_ms: Delay between status polls
        base_url: API base URL
        session: Optional shared aiohttp session
    """

    provider = Provider.REPLICATE
    log_component = "replicate"

    def __init__(
        self,
        api_token: str,
        model_version: str = DEFAULT_MODEL_VERSION,
        timeout_ms: int = 20000,
        poll_interval_ms: int = 1000,
        base_url: str = REPLICATE_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_token = api_token
        # Accept "owner/model:version" as well as a bare version hash
        self.model_version = model_version.split(":")[-1]
        self.model = f"rembg:{self.model_version[:12]}"
        self.poll_interval_ms = poll_interval_ms
        self.base_url = base_url.rstrip("/")
        super().__init__(timeout_ms=timeout_ms, session=session)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Token {self.api_token}",
            "Content-Type": "application/json",
        }

    def _remaining_ms(self, deadline: float) -> int:
        remaining = int((deadline - asyncio.get_running_loop().time()) * 1000)
        if remaining <= 0:
            raise RequestTimeoutError(
                f"Background removal timed out after {self.timeout_ms}ms",
                provider=self.provider,
            )
        return remaining

    @logged_operation(level=logging.DEBUG, operation_name="remove_background")
    async def run(self, image: bytes) -> bytes:
        """
        Remove the background from an image.

        Args:
            image: Original image bytes

        Returns:
            Processed image bytes (as produced by the model)

        Raises:
            ClassifiedError: provider=replicate on any failure
        """
        deadline = asyncio.get_running_loop().time() + self.timeout_ms / 1000

        data_uri = (
            f"data:{detect_mime_type(image)};base64,"
            f"{base64.b64encode(image).decode('ascii')}"
        )
        prediction: Dict[str, Any] = await self._request(
            "POST",
            f"{self.base_url}/predictions",
            operation="Replicate create prediction",
            headers=self._headers(),
            json_body={"version": self.model_version, "input": {"image": data_uri}},
            timeout_ms=self._remaining_ms(deadline),
        )
        prediction_id = prediction.get("id")
        if not prediction_id:
            raise InvalidResponseError(
                "Replicate create prediction returned no prediction id", provider=self.provider
            )
        self._log(logging.DEBUG, "Prediction created", status=prediction.get("status"))

        while prediction.get("status") not in TERMINAL_STATUSES:
            self._remaining_ms(deadline)
            await asyncio.sleep(self.poll_interval_ms / 1000)
            prediction = await self._request(
                "GET",
                f"{self.base_url}/predictions/{prediction_id}",
                operation="Replicate poll prediction",
                headers=self._headers(),
                timeout_ms=self._remaining_ms(deadline),
            )

        status = prediction.get("status")
        if status == "failed":
            raise ProviderFailedError(
                f"Background removal failed: {prediction.get('error') or 'Unknown error'}",
                provider=self.provider,
            )
        if status == "canceled":
            raise TransientError("Background removal was canceled", provider=self.provider)

        output = prediction.get("output")
        output_url = output[0] if isinstance(output, list) and output else output
        if not output_url or not isinstance(output_url, str):
            raise ProviderFailedError(
                "No output URL in prediction result", provider=self.provider
            )

        return await self._request(
            "GET",
            output_url,
            operation="Replicate output download",
            timeout_ms=self._remaining_ms(deadline),
            expect_json=False,
        )
