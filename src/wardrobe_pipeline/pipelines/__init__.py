"""Concrete pipelines run by the claim-execute unit."""

from wardrobe_pipeline.pipelines.attribute_detection import (
    ATTRIBUTE_DETECTION_LAYOUT,
    AttributeDetectionPipeline,
)
from wardrobe_pipeline.pipelines.base import Pipeline, PipelineLayout
from wardrobe_pipeline.pipelines.canonicalise import AttributeCanonicaliser, CanonicalAttributes
from wardrobe_pipeline.pipelines.image_cleanup import (
    IMAGE_CLEANUP_LAYOUT,
    ImageCleanupPipeline,
    output_paths,
)
from wardrobe_pipeline.pipelines.image_processing import PillowImageProcessor

__all__ = [
    "ATTRIBUTE_DETECTION_LAYOUT",
    "AttributeCanonicaliser",
    "AttributeDetectionPipeline",
    "CanonicalAttributes",
    "IMAGE_CLEANUP_LAYOUT",
    "ImageCleanupPipeline",
    "Pipeline",
    "PipelineLayout",
    "PillowImageProcessor",
    "output_paths",
]
