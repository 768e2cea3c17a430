"""Tests for the attribute detection pipeline."""

from unittest.mock import AsyncMock

import pytest

from core.errors import (
    InvalidResponseError,
    MissingImageError,
    RateLimitedError,
    ServerError,
)
from wardrobe_pipeline.pipelines import AttributeDetectionPipeline
from wardrobe_pipeline.schemas.jobs import EntityRecord


class FakeVision:
    provider_name = "openai"
    model = "gpt-4o"

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.urls = []

    async def run(self, image_url):
        self.urls.append(image_url)
        if self.error:
            raise self.error
        return self.reply


def entity(**row):
    data = {"id": "7", "user_id": "u1", "attribute_status": "processing",
            "original_key": "user/u1/items/7/original.jpg"}
    data.update(row)
    return EntityRecord.from_row(data, "attribute_status")


class TestAttributeDetectionPipeline:
    """Tests for AttributeDetectionPipeline"""

    @pytest.mark.asyncio
    async def test_detects_and_canonicalises(self, artifacts):
        artifacts.put("user/u1/items/7/original.jpg", b"img")
        vision = FakeVision(reply={
            "type": "Tee",
            "colour": ["Navy", "gray", "sparkly"],
            "pattern": "plain",
            "fabric": "cotton",
            "season": "all season",
            "fit": None,
        })
        pipeline = AttributeDetectionPipeline(artifacts, vision, signed_url_expiry_seconds=60)

        result = await pipeline.execute(entity())

        assert vision.urls == [
            "memory://wardrobe-items/user/u1/items/7/original.jpg?expires_in=60"
        ]
        assert result == {
            "type": "t-shirt",
            "colour": ["navy", "grey"],
            "pattern": "solid",
            "fabric": "cotton",
            "season": ["all-season"],
            "fit": None,
        }

    @pytest.mark.asyncio
    async def test_prefers_clean_image(self, artifacts):
        artifacts.put("user/u1/items/7/clean.jpg", b"img")
        vision = FakeVision(reply={})
        pipeline = AttributeDetectionPipeline(artifacts, vision)

        result = await pipeline.execute(entity(clean_key="user/u1/items/7/clean.jpg"))

        assert "clean.jpg" in vision.urls[0]
        assert result["colour"] is None
        assert result["type"] is None

    @pytest.mark.asyncio
    async def test_no_image_key(self, artifacts):
        pipeline = AttributeDetectionPipeline(artifacts, FakeVision(reply={}))

        with pytest.raises(MissingImageError):
            await pipeline.execute(entity(original_key=None))

    @pytest.mark.asyncio
    async def test_image_not_in_storage(self, artifacts):
        vision = FakeVision(reply={})
        pipeline = AttributeDetectionPipeline(artifacts, vision)

        with pytest.raises(MissingImageError) as exc_info:
            await pipeline.execute(entity())

        assert exc_info.value.provider.value == "storage"
        assert vision.urls == []

    @pytest.mark.asyncio
    async def test_signing_failure_keeps_classification(self, artifacts):
        artifacts.signed_url = AsyncMock(side_effect=ServerError("storage down", http_status=502))
        pipeline = AttributeDetectionPipeline(artifacts, FakeVision(reply={}))

        with pytest.raises(ServerError) as exc_info:
            await pipeline.execute(entity())

        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_vision_error_propagates(self, artifacts):
        artifacts.put("user/u1/items/7/original.jpg", b"img")
        pipeline = AttributeDetectionPipeline(
            artifacts, FakeVision(error=RateLimitedError("slow down", provider="openai"))
        )

        with pytest.raises(RateLimitedError):
            await pipeline.execute(entity())

    @pytest.mark.asyncio
    async def test_malformed_reply(self, artifacts):
        artifacts.put("user/u1/items/7/original.jpg", b"img")
        pipeline = AttributeDetectionPipeline(artifacts, FakeVision(reply=["not", "a", "dict"]))

        with pytest.raises(InvalidResponseError):
            await pipeline.execute(entity())

    def test_finalize_fields(self, artifacts):
        pipeline = AttributeDetectionPipeline(artifacts, FakeVision())

        success = pipeline.success_fields({"type": "coat", "colour": ["black"]})
        assert success["attribute_status"] == "succeeded"
        assert success["type"] == "coat"
        assert success["fit"] is None
        assert success["attribute_error_reason"] is None
        assert success["attribute_last_run_at"] is not None

        failure = pipeline.failure_fields(InvalidResponseError("bad"), will_retry=False)
        assert failure["attribute_status"] == "failed"
        assert failure["attribute_error_reason"] == "invalid_json"
        assert failure["type"] is None

        reset = pipeline.reset_fields(will_retry=True)
        assert reset["attribute_status"] == "pending"
        assert reset["attribute_error_reason"] == "timeout"
