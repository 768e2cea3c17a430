"""In-memory artifact store."""

from typing import Dict, Optional, Tuple

from core.errors import NotFoundError, Provider
from wardrobe_pipeline.storage.base import ArtifactStore


class InMemoryArtifactStore(ArtifactStore):
    """Dict-backed artifact store for tests and local runs."""

    def __init__(self, bucket: str = "wardrobe-items"):
        self.bucket = bucket
        self._objects: Dict[str, Tuple[bytes, str]] = {}

    def put(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        """Synchronous write for test setup."""
        self._objects[key] = (bytes(data), content_type)

    def content_type(self, key: str) -> Optional[str]:
        entry = self._objects.get(key)
        return entry[1] if entry else None

    def __contains__(self, key: str) -> bool:
        return key in self._objects

    async def download(self, key: str) -> bytes:
        entry = self._objects.get(key)
        if entry is None:
            raise NotFoundError(
                f"Object not found: {key}", provider=Provider.STORAGE, http_status=404
            )
        return entry[0]

    async def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        self.put(key, data, content_type)

    async def signed_url(self, key: str, expires_in: int) -> str:
        if key not in self._objects:
            raise NotFoundError(
                f"Object not found: {key}", provider=Provider.STORAGE, http_status=404
            )
        return f"memory://{self.bucket}/{key}?expires_in={expires_in}"
