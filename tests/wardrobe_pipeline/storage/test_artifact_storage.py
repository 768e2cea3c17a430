"""Tests for the artifact stores."""

from unittest.mock import Mock

import pytest

from core.errors import ErrorCode, InvalidResponseError, NotFoundError, Provider, ServerError
from wardrobe_pipeline.storage import InMemoryArtifactStore
from wardrobe_pipeline.storage.supabase_storage import SupabaseArtifactStore


class StorageApiError(Exception):
    """Stand-in for the storage client's error, which carries a dict payload."""


def make_client():
    bucket = Mock()
    client = Mock()
    client.storage.from_.return_value = bucket
    return client, bucket


class TestInMemoryArtifactStore:
    """Tests for InMemoryArtifactStore."""

    @pytest.mark.asyncio
    async def test_upload_then_download(self):
        store = InMemoryArtifactStore()

        await store.upload("user/u/items/i/clean.jpg", b"jpeg", "image/jpeg")

        assert await store.download("user/u/items/i/clean.jpg") == b"jpeg"
        assert store.content_type("user/u/items/i/clean.jpg") == "image/jpeg"
        assert "user/u/items/i/clean.jpg" in store

    @pytest.mark.asyncio
    async def test_missing_object(self):
        with pytest.raises(NotFoundError) as exc_info:
            await InMemoryArtifactStore().download("missing")
        assert exc_info.value.provider == Provider.STORAGE

    @pytest.mark.asyncio
    async def test_signed_url(self):
        store = InMemoryArtifactStore(bucket="b")
        store.put("k", b"x")
        assert await store.signed_url("k", 300) == "memory://b/k?expires_in=300"


class TestSupabaseArtifactStore:
    """Tests for SupabaseArtifactStore with a mocked client."""

    @pytest.mark.asyncio
    async def test_download(self):
        client, bucket = make_client()
        bucket.download.return_value = b"bytes"

        data = await SupabaseArtifactStore(client, bucket="wardrobe-items").download("k")

        assert data == b"bytes"
        client.storage.from_.assert_called_with("wardrobe-items")

    @pytest.mark.asyncio
    async def test_upload_upserts(self):
        client, bucket = make_client()

        await SupabaseArtifactStore(client).upload("k", b"data", "image/jpeg")

        bucket.upload.assert_called_once_with(
            "k", b"data", file_options={"content-type": "image/jpeg", "upsert": "true"}
        )

    @pytest.mark.asyncio
    async def test_signed_url_reads_either_key(self):
        client, bucket = make_client()
        bucket.create_signed_url.return_value = {"signedUrl": "https://signed"}

        assert await SupabaseArtifactStore(client).signed_url("k", 60) == "https://signed"

    @pytest.mark.asyncio
    async def test_signed_url_missing(self):
        client, bucket = make_client()
        bucket.create_signed_url.return_value = {}

        with pytest.raises(InvalidResponseError):
            await SupabaseArtifactStore(client).signed_url("k", 60)

    @pytest.mark.asyncio
    async def test_not_found_payload(self):
        client, bucket = make_client()
        bucket.download.side_effect = StorageApiError({"statusCode": "404", "error": "not_found"})

        with pytest.raises(NotFoundError) as exc_info:
            await SupabaseArtifactStore(client).download("k")

        assert exc_info.value.http_status == 404
        assert exc_info.value.provider == Provider.STORAGE

    @pytest.mark.asyncio
    async def test_unknown_error_is_transient(self):
        client, bucket = make_client()
        bucket.upload.side_effect = RuntimeError("unexpected")

        with pytest.raises(ServerError) as exc_info:
            await SupabaseArtifactStore(client).upload("k", b"x")

        assert exc_info.value.code == ErrorCode.SERVER_ERROR
