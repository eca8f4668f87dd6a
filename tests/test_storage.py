"""
Tests for the blob stores.

GridFS runs against a mocked motor bucket; the local store writes under a
temporary directory.
"""

from unittest.mock import patch, AsyncMock, MagicMock

import pytest
from bson import ObjectId
from gridfs.errors import NoFile

from labelhub.config import BlobBackend
from labelhub.services.storage import (
    DEFAULT_CONTENT_TYPE,
    GridFSBlobStore,
    LocalBlobStore,
    create_blob_store
)
from labelhub.utils.exceptions import BlobStoreError, NotFoundError

from tests.conftest import PNG_BYTES


async def collect(stream) -> bytes:
    return b"".join([chunk async for chunk in stream])


@pytest.fixture
def mock_bucket():
    """Motor GridFS bucket replaced by a mock."""
    with patch("labelhub.services.storage.AsyncIOMotorGridFSBucket") as bucket_class:
        yield bucket_class.return_value


@pytest.fixture
def mock_database():
    return MagicMock()


@pytest.fixture
def gridfs_store(mock_bucket, mock_database) -> GridFSBlobStore:
    return GridFSBlobStore(mock_database, bucket_name="uploads")


def grid_out(chunks, metadata=None):
    """Download stream handing out `chunks` one readchunk() at a time."""
    stream = MagicMock()
    stream.metadata = metadata
    stream.length = sum(len(chunk) for chunk in chunks)
    stream.readchunk = AsyncMock(side_effect=list(chunks) + [b""])
    stream.close = MagicMock(return_value=None)
    return stream


class TestGridFSPut:
    """Uploading into the bucket."""

    async def test_put_returns_file_id(self, gridfs_store, mock_bucket):
        file_id = ObjectId()
        mock_bucket.upload_from_stream = AsyncMock(return_value=file_id)

        blob_ref = await gridfs_store.put(PNG_BYTES, "image/png", {"filename": "a.png", "datasetId": "d1"})

        assert blob_ref == str(file_id)
        mock_bucket.upload_from_stream.assert_awaited_once_with(
            "a.png",
            PNG_BYTES,
            metadata={"filename": "a.png", "datasetId": "d1", "contentType": "image/png"}
        )

    async def test_put_defaults_content_type(self, gridfs_store, mock_bucket):
        mock_bucket.upload_from_stream = AsyncMock(return_value=ObjectId())

        await gridfs_store.put(b"raw", None, {})

        metadata = mock_bucket.upload_from_stream.call_args.kwargs["metadata"]
        assert metadata["contentType"] == DEFAULT_CONTENT_TYPE

    async def test_put_failure(self, gridfs_store, mock_bucket):
        mock_bucket.upload_from_stream = AsyncMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(BlobStoreError) as exc_info:
            await gridfs_store.put(PNG_BYTES, "image/png", {})
        assert exc_info.value.operation == "put"


class TestGridFSGet:
    """Opening and streaming stored files."""

    async def test_streams_chunks(self, gridfs_store, mock_bucket):
        file_id = ObjectId()
        stream = grid_out([b"ab", b"cd", b"e"], metadata={"contentType": "image/png"})
        mock_bucket.open_download_stream = AsyncMock(return_value=stream)

        content_type, chunks = await gridfs_store.get(str(file_id))

        assert content_type == "image/png"
        assert [chunk async for chunk in chunks] == [b"ab", b"cd", b"e"]
        mock_bucket.open_download_stream.assert_awaited_once_with(file_id)
        stream.close.assert_called_once()

    async def test_missing_content_type(self, gridfs_store, mock_bucket):
        mock_bucket.open_download_stream = AsyncMock(return_value=grid_out([b"x"]))

        content_type, chunks = await gridfs_store.get(str(ObjectId()))

        assert content_type == DEFAULT_CONTENT_TYPE
        assert await collect(chunks) == b"x"

    async def test_stream_closed_when_abandoned(self, gridfs_store, mock_bucket):
        stream = grid_out([b"ab", b"cd"], metadata={"contentType": "image/png"})
        mock_bucket.open_download_stream = AsyncMock(return_value=stream)

        _, chunks = await gridfs_store.get(str(ObjectId()))
        assert await chunks.__anext__() == b"ab"
        await chunks.aclose()

        stream.close.assert_called_once()
        assert stream.readchunk.await_count == 1

    async def test_awaitable_close_is_awaited(self, gridfs_store, mock_bucket):
        stream = grid_out([b"ab"], metadata={"contentType": "image/png"})
        stream.close = AsyncMock()
        mock_bucket.open_download_stream = AsyncMock(return_value=stream)

        _, chunks = await gridfs_store.get(str(ObjectId()))
        await collect(chunks)

        stream.close.assert_awaited_once()

    async def test_missing_file(self, gridfs_store, mock_bucket):
        blob_ref = str(ObjectId())
        mock_bucket.open_download_stream = AsyncMock(side_effect=NoFile("no file"))

        with pytest.raises(NotFoundError) as exc_info:
            await gridfs_store.get(blob_ref)
        assert exc_info.value.details == {"kind": "blob", "id": blob_ref}

    async def test_malformed_ref_skips_bucket(self, gridfs_store, mock_bucket):
        mock_bucket.open_download_stream = AsyncMock()

        with pytest.raises(NotFoundError):
            await gridfs_store.get("not-an-object-id")
        mock_bucket.open_download_stream.assert_not_awaited()

    async def test_driver_error(self, gridfs_store, mock_bucket):
        mock_bucket.open_download_stream = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(BlobStoreError) as exc_info:
            await gridfs_store.get(str(ObjectId()))
        assert exc_info.value.operation == "get"


class TestGridFSLookup:
    """Existence checks and health."""

    @pytest.mark.parametrize("found,expected", [([{"_id": "x"}], True), ([], False)])
    async def test_exists(self, gridfs_store, mock_bucket, found, expected):
        file_id = ObjectId()
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=found)
        mock_bucket.find = MagicMock(return_value=cursor)

        assert await gridfs_store.exists(str(file_id)) is expected
        mock_bucket.find.assert_called_once_with({"_id": file_id}, limit=1)
        cursor.to_list.assert_awaited_once_with(length=1)

    async def test_exists_malformed_ref(self, gridfs_store, mock_bucket):
        assert await gridfs_store.exists("nope") is False
        mock_bucket.find.assert_not_called()

    async def test_healthy(self, gridfs_store, mock_database):
        files = MagicMock()
        files.find_one = AsyncMock(return_value=None)
        mock_database.__getitem__.return_value = files

        health = await gridfs_store.health_check()

        assert health == {"status": "healthy", "storage_type": "gridfs", "bucket": "uploads"}
        mock_database.__getitem__.assert_called_with("uploads.files")

    async def test_unhealthy(self, gridfs_store, mock_database):
        files = MagicMock()
        files.find_one = AsyncMock(side_effect=RuntimeError("server selection timeout"))
        mock_database.__getitem__.return_value = files

        health = await gridfs_store.health_check()

        assert health["status"] == "unhealthy"
        assert "server selection timeout" in health["error"]


class TestLocalBlobStore:
    """Files with JSON sidecars on disk."""

    async def test_put_and_get(self, blob_store: LocalBlobStore):
        blob_ref = await blob_store.put(PNG_BYTES, "image/png", {"filename": "a.png"})

        assert await blob_store.exists(blob_ref)
        content_type, chunks = await blob_store.get(blob_ref)
        assert content_type == "image/png"
        assert await collect(chunks) == PNG_BYTES

    async def test_unknown_ref(self, blob_store: LocalBlobStore):
        with pytest.raises(NotFoundError):
            await blob_store.get("0" * 32)
        assert not await blob_store.exists("0" * 32)

    @pytest.mark.parametrize("blob_ref", ["../etc/passwd", "", "ABC"])
    async def test_malformed_ref(self, blob_store: LocalBlobStore, blob_ref):
        with pytest.raises(NotFoundError):
            await blob_store.get(blob_ref)
        assert not await blob_store.exists(blob_ref)


class TestCreateBlobStore:
    """Backend selection from settings."""

    def test_local(self, test_settings):
        assert isinstance(create_blob_store(test_settings), LocalBlobStore)

    def test_gridfs(self, test_settings, mock_bucket, mock_database):
        settings = test_settings.model_copy(update={"blob_backend": BlobBackend.GRIDFS})

        store = create_blob_store(settings, mock_database)

        assert isinstance(store, GridFSBlobStore)
        assert store.bucket is mock_bucket

    def test_gridfs_needs_database(self, test_settings):
        settings = test_settings.model_copy(update={"blob_backend": BlobBackend.GRIDFS})
        with pytest.raises(BlobStoreError):
            create_blob_store(settings)
