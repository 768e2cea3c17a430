"""AI attribute detection pipeline."""

import logging
from typing import Any, Dict, Optional, Protocol

from core.errors import (
    ClassifiedError,
    ErrorCode,
    MissingImageError,
    NotFoundError,
    Provider,
    wrap_exception,
)
from core.logging import LoggedClass
from wardrobe_pipeline.pipelines.base import Pipeline, PipelineLayout
from wardrobe_pipeline.pipelines.canonicalise import AttributeCanonicaliser
from wardrobe_pipeline.schemas.jobs import EntityRecord, JobRecord, to_iso, utc_now
from wardrobe_pipeline.storage.base import ArtifactStore

ATTRIBUTE_DETECTION_LAYOUT = PipelineLayout(
    name="attribute-detection",
    items_table="items",
    jobs_table="attribute_detection_jobs",
    status_column="attribute_status",
    result_columns=("type", "colour", "pattern", "fabric", "season", "fit"),
    job_source_column="image_key",
)


class VisionModel(Protocol):
    provider_name: str
    model: Optional[str]

    async def run(self, image_url: str) -> Any: ...


class AttributeDetectionPipeline(LoggedClass, Pipeline):
    """
    Sign the item image, ask the vision model, canonicalise its reply.

    Besides the attribute columns, every finalize also stamps
    attribute_last_run_at and sets attribute_error_reason (cleared on success).
    """

    def __init__(
        self,
        artifacts: ArtifactStore,
        vision: VisionModel,
        canonicaliser: Optional[AttributeCanonicaliser] = None,
        signed_url_expiry_seconds: int = 300,
        layout: PipelineLayout = ATTRIBUTE_DETECTION_LAYOUT,
    ):
        self.artifacts = artifacts
        self.vision = vision
        self.canonicaliser = canonicaliser or AttributeCanonicaliser()
        self.signed_url_expiry_seconds = signed_url_expiry_seconds
        self.layout = layout
        self.provider_name = getattr(vision, "provider_name", "openai")
        self.model = getattr(vision, "model", None)
        super().__init__()

    def source_key(self, entity: EntityRecord) -> Optional[str]:
        """The cleaned image when available, else the original upload."""
        return entity.row.get("clean_key") or entity.row.get("original_key") or None

    async def execute(
        self, entity: EntityRecord, job: Optional[JobRecord] = None
    ) -> Dict[str, Any]:
        image_key = self.source_key(entity)
        if not image_key:
            raise MissingImageError("Item has no valid image key (clean_key or original_key)")

        try:
            image_url = await self.artifacts.signed_url(image_key, self.signed_url_expiry_seconds)
        except NotFoundError as e:
            raise MissingImageError(
                f"Image not found for item {entity.id}",
                provider=Provider.STORAGE,
                http_status=e.http_status,
                cause=e,
            ) from e
        except Exception as e:
            raise wrap_exception(e, "Failed to generate signed URL", Provider.STORAGE) from e

        raw = await self.vision.run(image_url)
        attributes = self.canonicaliser.canonicalise(raw)

        self._log(
            logging.DEBUG,
            "Attributes canonicalised",
            item_id=entity.id,
            status="detected" if attributes.has_any() else "empty",
        )
        return attributes.to_columns()

    def success_fields(self, result: Dict[str, Any]) -> Dict[str, Any]:
        fields = super().success_fields(result)
        fields["attribute_error_reason"] = None
        fields["attribute_last_run_at"] = to_iso(utc_now())
        return fields

    def failure_fields(self, error: ClassifiedError, will_retry: bool) -> Dict[str, Any]:
        fields = super().failure_fields(error, will_retry)
        fields["attribute_error_reason"] = error.code.value
        fields["attribute_last_run_at"] = to_iso(utc_now())
        return fields

    def reset_fields(self, will_retry: bool) -> Dict[str, Any]:
        fields = super().reset_fields(will_retry)
        fields["attribute_error_reason"] = ErrorCode.TIMEOUT.value
        return fields
