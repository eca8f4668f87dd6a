"""
Blob storage service with backend-specific implementations.
Stores image bytes with a content type and metadata, keyed by an opaque reference.
"""

import inspect
import json
import re
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import aiofiles
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket

from labelhub.config import BlobBackend, Settings
from labelhub.models.database import parse_object_id, utc_now
from labelhub.utils.exceptions import BlobStoreError, NotFoundError
from labelhub.utils.logging import logger, log_storage_operation

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CHUNK_SIZE = 255 * 1024


class BlobStore(ABC):
    """Abstract base class for blob storage implementations."""

    @abstractmethod
    async def put(self, data: bytes, content_type: Optional[str], metadata: Dict[str, Any]) -> str:
        """Store data and return its blob reference."""
        pass

    @abstractmethod
    async def get(self, blob_ref: str) -> Tuple[str, AsyncIterator[bytes]]:
        """Return the content type and a byte stream for a stored blob."""
        pass

    @abstractmethod
    async def exists(self, blob_ref: str) -> bool:
        """Check if a blob exists."""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Report backend health for monitoring."""
        pass


class LocalBlobStore(BlobStore):
    """Local filesystem blob storage for development and tests."""

    _REF_PATTERN = re.compile(r"^[0-9a-f]{32}$")

    def __init__(self, base_path: str = "./storage"):
        """Initialize local storage with base directory."""
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized local blob storage at: {self.base_path.absolute()}")

    def _paths(self, blob_ref: str) -> Tuple[Path, Path]:
        if not self._REF_PATTERN.match(blob_ref or ""):
            raise NotFoundError("blob", blob_ref)
        folder = self.base_path / blob_ref[:2]
        return folder / blob_ref, folder / f"{blob_ref}.json"

    async def put(self, data: bytes, content_type: Optional[str], metadata: Dict[str, Any]) -> str:
        """Write blob bytes and a JSON sidecar holding its metadata."""
        started = time.perf_counter()
        blob_ref = uuid.uuid4().hex
        try:
            data_path, meta_path = self._paths(blob_ref)
            data_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiofiles.open(data_path, "wb") as f:
                await f.write(data)

            sidecar = {
                "content_type": content_type or DEFAULT_CONTENT_TYPE,
                "length": len(data),
                "upload_date": utc_now().isoformat(),
                "metadata": metadata
            }
            async with aiofiles.open(meta_path, "w") as f:
                await f.write(json.dumps(sidecar, default=str))

        except Exception as e:
            logger.error(f"Failed to store blob {blob_ref}: {e}")
            raise BlobStoreError(f"Upload failed: {e}", operation="put", blob_ref=blob_ref)

        log_storage_operation("put", blob_ref, size_bytes=len(data),
                              duration_ms=(time.perf_counter() - started) * 1000)
        return blob_ref

    async def get(self, blob_ref: str) -> Tuple[str, AsyncIterator[bytes]]:
        """Open a stored blob for streaming."""
        data_path, meta_path = self._paths(blob_ref)
        if not data_path.exists():
            raise NotFoundError("blob", blob_ref)

        try:
            async with aiofiles.open(meta_path, "r") as f:
                sidecar = json.loads(await f.read())
        except FileNotFoundError:
            sidecar = {}
        except Exception as e:
            logger.error(f"Failed to read metadata for blob {blob_ref}: {e}")
            raise BlobStoreError(f"Download failed: {e}", operation="get", blob_ref=blob_ref)

        async def stream() -> AsyncIterator[bytes]:
            async with aiofiles.open(data_path, "rb") as f:
                while True:
                    chunk = await f.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk

        log_storage_operation("get", blob_ref, size_bytes=sidecar.get("length"))
        return sidecar.get("content_type") or DEFAULT_CONTENT_TYPE, stream()

    async def exists(self, blob_ref: str) -> bool:
        """Check if blob exists in local filesystem."""
        try:
            data_path, _ = self._paths(blob_ref)
        except NotFoundError:
            return False
        return data_path.exists()

    async def health_check(self) -> Dict[str, Any]:
        healthy = self.base_path.is_dir()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "storage_type": "local",
            "path": str(self.base_path.absolute())
        }


class GridFSBlobStore(BlobStore):
    """MongoDB GridFS blob storage."""

    def __init__(self, database: AsyncIOMotorDatabase, bucket_name: str = "uploads"):
        """Initialize GridFS bucket on the given database."""
        self.database = database
        self.bucket_name = bucket_name
        self.bucket = AsyncIOMotorGridFSBucket(database, bucket_name=bucket_name)
        logger.info(f"Initialized GridFS bucket: {bucket_name}")

    async def put(self, data: bytes, content_type: Optional[str], metadata: Dict[str, Any]) -> str:
        """Upload blob bytes into GridFS."""
        started = time.perf_counter()
        filename = metadata.get("filename") or uuid.uuid4().hex
        try:
            file_id = await self.bucket.upload_from_stream(
                filename,
                data,
                metadata={**metadata, "contentType": content_type or DEFAULT_CONTENT_TYPE}
            )
        except Exception as e:
            logger.error(f"Failed to upload blob {filename} to GridFS: {e}")
            raise BlobStoreError(f"Upload failed: {e}", operation="put")

        blob_ref = str(file_id)
        log_storage_operation("put", blob_ref, size_bytes=len(data),
                              duration_ms=(time.perf_counter() - started) * 1000,
                              bucket=self.bucket_name)
        return blob_ref

    async def get(self, blob_ref: str) -> Tuple[str, AsyncIterator[bytes]]:
        """Open a GridFS download stream."""
        file_id = parse_object_id(blob_ref)
        if file_id is None:
            raise NotFoundError("blob", blob_ref)

        try:
            grid_out = await self.bucket.open_download_stream(file_id)
        except NoFile:
            raise NotFoundError("blob", blob_ref)
        except Exception as e:
            logger.error(f"Failed to open blob {blob_ref}: {e}")
            raise BlobStoreError(f"Download failed: {e}", operation="get", blob_ref=blob_ref)

        metadata = grid_out.metadata or {}
        content_type = metadata.get("contentType") or DEFAULT_CONTENT_TYPE

        async def stream() -> AsyncIterator[bytes]:
            try:
                while True:
                    chunk = await grid_out.readchunk()
                    if not chunk:
                        break
                    yield chunk
            finally:
                closing = grid_out.close()
                if inspect.isawaitable(closing):
                    await closing

        log_storage_operation("get", blob_ref, size_bytes=grid_out.length, bucket=self.bucket_name)
        return content_type, stream()

    async def exists(self, blob_ref: str) -> bool:
        """Check if a GridFS file exists."""
        file_id = parse_object_id(blob_ref)
        if file_id is None:
            return False
        try:
            files = await self.bucket.find({"_id": file_id}, limit=1).to_list(length=1)
        except Exception as e:
            logger.error(f"Failed to look up blob {blob_ref}: {e}")
            raise BlobStoreError(f"Lookup failed: {e}", operation="exists", blob_ref=blob_ref)
        return bool(files)

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self.database[f"{self.bucket_name}.files"].find_one({}, projection={"_id": 1})
            return {"status": "healthy", "storage_type": "gridfs", "bucket": self.bucket_name}
        except Exception as e:
            logger.error(f"GridFS health check failed: {e}")
            return {"status": "unhealthy", "storage_type": "gridfs", "error": str(e)}


def create_blob_store(settings: Settings, database: Optional[AsyncIOMotorDatabase] = None) -> BlobStore:
    """Build the blob store selected by configuration."""
    if settings.blob_backend == BlobBackend.LOCAL:
        return LocalBlobStore(settings.storage_path)

    if database is None:
        raise BlobStoreError("GridFS backend needs a database handle", operation="init")
    return GridFSBlobStore(database, bucket_name=settings.gridfs_bucket)
