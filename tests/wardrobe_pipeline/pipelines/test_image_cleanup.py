"""Tests for the background removal pipeline."""

import io

import pytest
from PIL import Image

from core.errors import ClassifiedError, ServerError, ValidationError
from wardrobe_pipeline.pipelines import ImageCleanupPipeline, PillowImageProcessor, output_paths
from wardrobe_pipeline.schemas.jobs import EntityRecord

ORIGINAL_KEY = "user/u1/items/42/original.png"


def png_bytes(size=(400, 300), mode="RGBA", color=(200, 30, 30, 128)):
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, "PNG")
    return buffer.getvalue()


class FakeRemover:
    provider_name = "replicate"
    model = "test-version"

    def __init__(self, output=None, error=None):
        self.output = output
        self.error = error
        self.inputs = []

    async def run(self, image: bytes) -> bytes:
        self.inputs.append(image)
        if self.error:
            raise self.error
        return self.output if self.output is not None else image


def entity(original_key=ORIGINAL_KEY, **row):
    data = {"id": "42", "user_id": "u1", "image_processing_status": "processing",
            "original_key": original_key}
    data.update(row)
    return EntityRecord.from_row(data, "image_processing_status")


class TestOutputPaths:
    """Tests for output_paths()"""

    def test_derives_keys(self):
        paths = output_paths("user/u1/items/42/original.jpg")

        assert paths.clean_key == "user/u1/items/42/clean.jpg"
        assert paths.thumb_key == "user/u1/items/42/thumb.jpg"

    @pytest.mark.parametrize("key", [
        "original.jpg",
        "users/u1/items/42/original.jpg",
        "user/u1/things/42/original.jpg",
        "user/u1/items/42",
    ])
    def test_rejects_bad_layout(self, key):
        with pytest.raises(ValidationError):
            output_paths(key)


class TestImageCleanupPipeline:
    """Tests for ImageCleanupPipeline.execute()"""

    @pytest.mark.asyncio
    async def test_uploads_clean_and_thumbnail(self, artifacts):
        artifacts.put(ORIGINAL_KEY, b"original-bytes", "image/png")
        remover = FakeRemover(output=png_bytes())
        pipeline = ImageCleanupPipeline(
            artifacts, remover, PillowImageProcessor(clean_max_dimension=200, thumbnail_size=50)
        )

        result = await pipeline.execute(entity())

        assert remover.inputs == [b"original-bytes"]
        assert result == {
            "clean_key": "user/u1/items/42/clean.jpg",
            "thumb_key": "user/u1/items/42/thumb.jpg",
        }
        assert artifacts.content_type(result["clean_key"]) == "image/jpeg"

        with Image.open(io.BytesIO(await artifacts.download(result["clean_key"]))) as clean:
            assert clean.format == "JPEG"
            assert clean.size == (200, 150)
        with Image.open(io.BytesIO(await artifacts.download(result["thumb_key"]))) as thumb:
            assert thumb.format == "JPEG"
            assert thumb.size == (50, 50)

    @pytest.mark.asyncio
    async def test_missing_original_key(self, artifacts):
        pipeline = ImageCleanupPipeline(artifacts, FakeRemover())

        with pytest.raises(ValidationError):
            await pipeline.execute(entity(original_key=None))

    @pytest.mark.asyncio
    async def test_missing_original_object(self, artifacts):
        pipeline = ImageCleanupPipeline(artifacts, FakeRemover())

        with pytest.raises(ClassifiedError) as exc_info:
            await pipeline.execute(entity())

        assert exc_info.value.code.value == "not_found"
        assert exc_info.value.provider.value == "storage"

    @pytest.mark.asyncio
    async def test_provider_error_propagates_without_upload(self, artifacts):
        artifacts.put(ORIGINAL_KEY, png_bytes())
        remover = FakeRemover(error=ServerError("busy", provider="replicate", http_status=503))
        pipeline = ImageCleanupPipeline(artifacts, remover)

        with pytest.raises(ServerError):
            await pipeline.execute(entity())

        assert "user/u1/items/42/clean.jpg" not in artifacts

    def test_result_fields(self, artifacts):
        pipeline = ImageCleanupPipeline(artifacts, FakeRemover())

        assert pipeline.provider_name == "replicate"
        assert pipeline.model == "test-version"
        assert pipeline.source_key(entity()) == ORIGINAL_KEY
        assert pipeline.success_fields({"clean_key": "c", "thumb_key": "t", "other": 1}) == {
            "clean_key": "c",
            "thumb_key": "t",
            "image_processing_status": "succeeded",
        }
        assert pipeline.failure_fields(ServerError("x"), will_retry=True) == {
            "clean_key": None,
            "thumb_key": None,
            "image_processing_status": "pending",
        }
        assert pipeline.reset_fields(will_retry=False)["image_processing_status"] == "failed"
