"""Artifact store contract for item images."""

from abc import ABC, abstractmethod


class ArtifactStore(ABC):
    """
    Blob storage holding original and derived item images.

    Failures raise ClassifiedError subclasses with provider=storage.
    """

    @abstractmethod
    async def download(self, key: str) -> bytes:
        """Read an artifact; NotFoundError if it does not exist."""

    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        """Write an artifact, overwriting any existing one at the key."""

    @abstractmethod
    async def signed_url(self, key: str, expires_in: int) -> str:
        """Short-lived URL granting read access to an artifact."""
