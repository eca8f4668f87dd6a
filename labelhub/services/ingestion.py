"""
Image ingestion pipeline.
Validates upload batches, writes blobs and appends image records to a dataset.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePath
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from labelhub.models.bounding_box import BoundingBox, normalize_bounding_box
from labelhub.models.database import ImageRecord, LabelEvent, as_utc, utc_now
from labelhub.services.database import DatasetStore
from labelhub.services.labels import apply_label_event
from labelhub.services.storage import BlobStore
from labelhub.utils.exceptions import AuthenticationError, ValidationError
from labelhub.utils.logging import logger, log_ingest_progress

MAX_BATCH_FILES = 10
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif"})

T = TypeVar("T")

_datetime_adapter = TypeAdapter(datetime)


@dataclass(frozen=True)
class Scalar(Generic[T]):
    """One value shared by every file of the batch."""
    value: T


@dataclass(frozen=True)
class PerFile(Generic[T]):
    """One value per file, aligned by position."""
    values: Sequence[T]


PerFileValue = Union[Scalar[T], PerFile[T]]


def per_file_value(raw: Any) -> PerFileValue:
    """
    Wrap a raw upload field.

    Lists and tuples are positional; anything else is broadcast. A single
    element list, which is what form posts produce for a field sent once, is
    broadcast as well.
    """
    if isinstance(raw, (Scalar, PerFile)):
        return raw
    if isinstance(raw, (list, tuple)):
        if len(raw) == 1:
            return Scalar(raw[0])
        return PerFile(list(raw))
    return Scalar(raw)


def resolve(pfv: PerFileValue, index: int, default: Optional[T] = None) -> Optional[T]:
    """Value of a per-file field for the file at `index`."""
    if isinstance(pfv, Scalar):
        return default if pfv.value is None else pfv.value
    if index < len(pfv.values) and pfv.values[index] is not None:
        return pfv.values[index]
    return default


@dataclass
class UploadedFile:
    """One file of an upload batch."""
    data: bytes
    original_name: str
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        return PurePath(self.original_name or "").suffix.lstrip(".").lower()


@dataclass
class IngestMetadata:
    """Per-file label metadata sent alongside an upload batch."""
    label: PerFileValue = field(default_factory=lambda: Scalar(None))
    labeled_by: PerFileValue = field(default_factory=lambda: Scalar(None))
    labeled_at: PerFileValue = field(default_factory=lambda: Scalar(None))
    bounding_box: PerFileValue = field(default_factory=lambda: Scalar(None))
    is_cropped: PerFileValue = field(default_factory=lambda: Scalar(False))

    @classmethod
    def from_raw(cls, label: Any = None, labeled_by: Any = None, labeled_at: Any = None,
                 bounding_box: Any = None, is_cropped: Any = False) -> "IngestMetadata":
        return cls(
            label=per_file_value(label),
            labeled_by=per_file_value(labeled_by),
            labeled_at=per_file_value(labeled_at),
            bounding_box=per_file_value(bounding_box),
            is_cropped=per_file_value(is_cropped)
        )


def parse_labeled_at(value: Any, clock: Callable[[], datetime] = utc_now) -> datetime:
    """Parse a client timestamp, falling back to now when absent or unparseable."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return clock()
    try:
        parsed = _datetime_adapter.validate_python(value)
    except PydanticValidationError:
        logger.debug(f"Unparseable labeledAt {value!r}, using current time")
        return clock()
    return as_utc(parsed)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    return bool(value)


def check_file_count(count: int) -> None:
    """Reject empty batches and batches over the file limit."""
    if not count:
        raise ValidationError("No files were uploaded", field="images", reason="empty")
    if count > MAX_BATCH_FILES:
        raise ValidationError(
            f"At most {MAX_BATCH_FILES} files can be uploaded at once",
            field="images", reason="too_many_files", value=count
        )


def check_file_size(original_name: str, size: int) -> None:
    if size > MAX_FILE_SIZE_BYTES:
        raise ValidationError(
            f"File exceeds {MAX_FILE_SIZE_BYTES} bytes", field="images",
            reason="file_too_large", value=original_name
        )


def validate_batch(files: Sequence[UploadedFile], metadata: IngestMetadata) -> List[Optional[BoundingBox]]:
    """Check the whole batch; returns the parsed bounding box of each file."""
    check_file_count(len(files))

    boxes = []
    for index, upload in enumerate(files):
        if upload.extension not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                "Only image files are accepted!", field="images",
                reason="unsupported_extension", value=upload.original_name
            )
        check_file_size(upload.original_name, len(upload.data))
        boxes.append(normalize_bounding_box(resolve(metadata.bounding_box, index)))
    return boxes


class IngestionPipeline:
    """Validates and persists batches of uploaded images."""

    def __init__(self, store: DatasetStore, blob_store: BlobStore,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.blob_store = blob_store
        self.clock = clock

    async def ingest(self, dataset_id: str, files: Sequence[UploadedFile],
                     metadata: Optional[IngestMetadata] = None,
                     caller_id: Optional[str] = None) -> List[ImageRecord]:
        """
        Store a batch of images in a dataset.

        The batch is validated as a whole before any blob is written. Blobs
        written before a later failure are not removed; their references are
        logged so they can be reconciled.
        """
        metadata = metadata or IngestMetadata()
        boxes = validate_batch(files, metadata)

        dataset = await self.store.get_dataset(dataset_id)
        if not dataset.owner_id:
            if not caller_id:
                raise AuthenticationError("Dataset has no owner and the caller is not authenticated")
            logger.info(f"Dataset {dataset_id} missing owner, assigning {caller_id}")
            await self.store.repair_owner(dataset_id, caller_id)

        records: List[ImageRecord] = []
        written: List[str] = []
        try:
            for index, upload in enumerate(files):
                filename = secrets.token_hex(16) + "." + upload.extension
                upload_date = self.clock()
                blob_ref = await self.blob_store.put(
                    upload.data,
                    upload.content_type,
                    {
                        "datasetId": dataset_id,
                        "filename": filename,
                        "originalName": upload.original_name,
                        "uploadDate": upload_date.isoformat()
                    }
                )
                written.append(blob_ref)
                records.append(self._build_record(index, upload, blob_ref, filename,
                                                  upload_date, boxes[index], metadata))
                log_ingest_progress(dataset_id, index + 1, len(files), blob_ref=blob_ref)

            await self.store.append_images(dataset_id, records)

        except Exception:
            if written:
                logger.warning(
                    f"Ingest into dataset {dataset_id} failed after writing blobs; "
                    f"orphaned blob refs: {written}"
                )
            raise

        logger.info(f"Ingested {len(records)} images into dataset {dataset_id}")
        return records

    def _build_record(self, index: int, upload: UploadedFile, blob_ref: str, filename: str,
                      upload_date: datetime, box: Optional[BoundingBox],
                      metadata: IngestMetadata) -> ImageRecord:
        record = ImageRecord(
            blob_ref=blob_ref,
            filename=filename,
            original_name=upload.original_name,
            content_type=upload.content_type,
            upload_date=upload_date,
            bounding_box=box,
            is_cropped=_as_bool(resolve(metadata.is_cropped, index, False))
        )

        label = str(resolve(metadata.label, index, "")).strip()
        if label:
            event = LabelEvent(
                label=label,
                labeled_by=str(resolve(metadata.labeled_by, index, "")),
                labeled_at=parse_labeled_at(resolve(metadata.labeled_at, index), self.clock)
            )
            apply_label_event(record, event)
        return record
