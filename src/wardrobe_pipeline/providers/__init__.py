"""Provider clients used by the pipelines."""

from wardrobe_pipeline.providers.base import HttpProviderClient
from wardrobe_pipeline.providers.openai_vision import OpenAIVisionClient
from wardrobe_pipeline.providers.replicate import ReplicateBackgroundRemover

__all__ = [
    "HttpProviderClient",
    "OpenAIVisionClient",
    "ReplicateBackgroundRemover",
]
