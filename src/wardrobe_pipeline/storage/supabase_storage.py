"""Supabase Storage backed artifact store."""

import asyncio
from typing import Any, Callable, Optional, TypeVar

from supabase import Client

from core.errors import (
    ClassifiedError,
    ErrorCode,
    InvalidResponseError,
    Provider,
    ServerError,
    classify_exception,
    error_for_status,
)
from core.logging import LoggedClass
from wardrobe_pipeline.storage.base import ArtifactStore

T = TypeVar("T")


def _storage_status(exc: BaseException) -> Optional[int]:
    """Storage errors carry their HTTP status in a dict payload or as an attribute."""
    for attr in ("status", "status_code", "statusCode"):
        value = getattr(exc, attr, None)
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError):
                pass
    if exc.args and isinstance(exc.args[0], dict):
        value = exc.args[0].get("statusCode") or exc.args[0].get("status")
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None
    return None


class SupabaseArtifactStore(LoggedClass, ArtifactStore):
    """
    Artifact store over a Supabase Storage bucket.

    Args:
        client: Supabase client (service role)
        bucket: Storage bucket name
    """

    def __init__(self, client: Client, bucket: str = "wardrobe-items"):
        self.client = client
        self.bucket = bucket
        super().__init__()

    async def _run(self, operation: str, key: str, call: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(call)
        except ClassifiedError:
            raise
        except Exception as e:
            status = _storage_status(e)
            if status is not None:
                raise error_for_status(
                    status, f"Storage {operation} failed for {key}: {e}", Provider.STORAGE, e
                ) from e
            classified = classify_exception(e, provider=Provider.STORAGE)
            if classified.code == ErrorCode.UNKNOWN:
                raise ServerError(
                    f"Storage {operation} failed for {key}: {e}",
                    provider=Provider.STORAGE,
                    cause=e,
                ) from e
            raise classified from e

    async def download(self, key: str) -> bytes:
        return await self._run(
            "download", key, lambda: self.client.storage.from_(self.bucket).download(key)
        )

    async def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        def call() -> Any:
            return self.client.storage.from_(self.bucket).upload(
                key,
                data,
                file_options={"content-type": content_type, "upsert": "true"},
            )

        await self._run("upload", key, call)

    async def signed_url(self, key: str, expires_in: int) -> str:
        result = await self._run(
            "signed_url",
            key,
            lambda: self.client.storage.from_(self.bucket).create_signed_url(key, expires_in),
        )
        url = None
        if isinstance(result, dict):
            url = result.get("signedURL") or result.get("signedUrl")
        if not url:
            raise InvalidResponseError(
                "Signed URL generation returned empty result", provider=Provider.STORAGE
            )
        return url
