"""Background removal pipeline producing clean and thumbnail images."""

import logging
from typing import Any, Dict, NamedTuple, Optional, Protocol

from core.errors import Provider, ValidationError, wrap_exception
from core.logging import LoggedClass
from wardrobe_pipeline.pipelines.base import Pipeline, PipelineLayout
from wardrobe_pipeline.pipelines.image_processing import PillowImageProcessor
from wardrobe_pipeline.schemas.jobs import EntityRecord, JobRecord
from wardrobe_pipeline.storage.base import ArtifactStore

IMAGE_CLEANUP_LAYOUT = PipelineLayout(
    name="image-cleanup",
    items_table="items",
    jobs_table="image_processing_jobs",
    status_column="image_processing_status",
    result_columns=("clean_key", "thumb_key"),
    job_source_column="original_key",
)


class BackgroundRemover(Protocol):
    provider_name: str
    model: Optional[str]

    async def run(self, image: bytes) -> bytes: ...


class OutputPaths(NamedTuple):
    clean_key: str
    thumb_key: str


def output_paths(original_key: str) -> OutputPaths:
    """
    Derive deterministic output keys from an original image key.

    Expected key layout: user/{user_id}/items/{item_id}/original.{ext}

    Raises:
        ValidationError: If the key does not follow the layout
    """
    parts = original_key.split("/")
    if len(parts) < 5 or parts[0] != "user" or parts[2] != "items":
        raise ValidationError(f"Invalid original_key path format: {original_key}")
    prefix = f"user/{parts[1]}/items/{parts[3]}"
    return OutputPaths(clean_key=f"{prefix}/clean.jpg", thumb_key=f"{prefix}/thumb.jpg")


class ImageCleanupPipeline(LoggedClass, Pipeline):
    """
    Download original, remove background, resize, upload clean + thumbnail.

    Uploads overwrite, so a retried attempt rewrites the same keys. Keys are
    only persisted (by the caller) after both uploads succeed.
    """

    def __init__(
        self,
        artifacts: ArtifactStore,
        remover: BackgroundRemover,
        processor: Optional[PillowImageProcessor] = None,
        layout: PipelineLayout = IMAGE_CLEANUP_LAYOUT,
    ):
        self.artifacts = artifacts
        self.remover = remover
        self.processor = processor or PillowImageProcessor()
        self.layout = layout
        self.provider_name = getattr(remover, "provider_name", "replicate")
        self.model = getattr(remover, "model", None)
        super().__init__()

    def source_key(self, entity: EntityRecord) -> Optional[str]:
        return entity.row.get("original_key") or None

    async def execute(
        self, entity: EntityRecord, job: Optional[JobRecord] = None
    ) -> Dict[str, Any]:
        original_key = self.source_key(entity)
        if not original_key:
            raise ValidationError("Item has no original_key")

        paths = output_paths(original_key)

        try:
            original = await self.artifacts.download(original_key)
        except Exception as e:
            raise wrap_exception(e, "Failed to download original", Provider.STORAGE) from e

        clean = await self.remover.run(original)

        clean_image = await self.processor.clean_image(clean)
        thumbnail = await self.processor.thumbnail(clean)

        try:
            await self.artifacts.upload(paths.clean_key, clean_image, "image/jpeg")
            await self.artifacts.upload(paths.thumb_key, thumbnail, "image/jpeg")
        except Exception as e:
            raise wrap_exception(e, "Failed to upload processed images", Provider.STORAGE) from e

        self._log(logging.DEBUG, "Processed images uploaded", item_id=entity.id)

        return {"clean_key": paths.clean_key, "thumb_key": paths.thumb_key}
