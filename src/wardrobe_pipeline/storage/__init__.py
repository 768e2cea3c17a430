"""Artifact storage for item images."""

from wardrobe_pipeline.storage.base import ArtifactStore
from wardrobe_pipeline.storage.memory import InMemoryArtifactStore

__all__ = ["ArtifactStore", "InMemoryArtifactStore"]
