"""
Shared aiohttp plumbing for provider clients.

Every request carries its own ClientTimeout. Non-2xx responses, timeouts and
connection failures are raised as ClassifiedError with the client's provider.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from core.errors import (
    ClassifiedError,
    InvalidResponseError,
    NetworkError,
    Provider,
    RequestTimeoutError,
    error_for_status,
)
from core.logging import LoggedClass

# Response bodies quoted in error messages are cut to this many characters
MAX_ERROR_BODY_LENGTH = 200


class HttpProviderClient(LoggedClass):
    """
    Base class for async HTTP provider clients.

    Usage:
        async with ReplicateBackgroundRemover(token, version) as remover:
            clean = await remover.run(image_bytes)

    A session passed in by the caller is reused and never closed here.
    """

    provider: Provider = Provider.INTERNAL

    def __init__(
        self,
        timeout_ms: int,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.timeout_ms = timeout_ms
        self._session = session
        self._owns_session = session is None
        super().__init__()

    @property
    def provider_name(self) -> str:
        return self.provider.value

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _timeout(self, timeout_ms: Optional[int] = None) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=(timeout_ms or self.timeout_ms) / 1000)

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        headers: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        expect_json: bool = True,
    ) -> Any:
        """
        Issue one HTTP request.

        Args:
            method: HTTP method
            url: Full request URL (never logged; may carry tokens)
            operation: Short name used in logs and error messages
            headers: Request headers
            json_body: JSON payload
            timeout_ms: Override of the client timeout
            expect_json: Parse the body as JSON, else return raw bytes

        Returns:
            Parsed JSON or raw bytes

        Raises:
            ClassifiedError: On non-2xx status, timeout, connection failure or
                unparseable JSON
        """
        session = await self._ensure_session()
        effective_timeout = timeout_ms or self.timeout_ms

        try:
            async with session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                timeout=self._timeout(effective_timeout),
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    error = error_for_status(
                        response.status,
                        f"{operation} failed: {response.status} - {body[:MAX_ERROR_BODY_LENGTH]}",
                        provider=self.provider,
                    )
                    self._log(
                        logging.WARNING,
                        f"{operation} request failed",
                        http_status=response.status,
                        error_category=error.category.value,
                        error_code=error.code.value,
                        provider=self.provider.value,
                    )
                    raise error

                if not expect_json:
                    return await response.read()

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise InvalidResponseError(
                        f"{operation} returned invalid JSON",
                        provider=self.provider,
                        cause=e,
                    ) from e

        except ClassifiedError:
            raise
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(
                f"{operation} timed out after {effective_timeout}ms",
                provider=self.provider,
                cause=e,
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"{operation} connection error: {e}",
                provider=self.provider,
                cause=e,
            ) from e
