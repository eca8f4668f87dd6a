"""
Upload API endpoints.
Handles image batch uploads and streaming stored images back.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse

from labelhub.api.deps import get_current_user_id, get_services
from labelhub.models.api import UploadResponse
from labelhub.services.container import Services
from labelhub.services.ingestion import (
    MAX_FILE_SIZE_BYTES,
    IngestMetadata,
    UploadedFile,
    check_file_count,
    check_file_size
)
from labelhub.utils.exceptions import ValidationError
from labelhub.utils.logging import logger


router = APIRouter()


@router.get("/file/{blob_ref}")
async def get_image_file(
    blob_ref: str,
    services: Services = Depends(get_services)
) -> StreamingResponse:
    """Stream a stored image."""
    content_type, stream = await services.blob_store.get(blob_ref)
    if not content_type.startswith("image/"):
        logger.warning(f"Blob {blob_ref} is not an image: {content_type}")
        raise ValidationError("File is not an image", field="blob_ref", reason="not_an_image")
    return StreamingResponse(stream, media_type=content_type)


def _first_given(*values: Optional[List[str]]) -> Optional[List[str]]:
    return next((value for value in values if value is not None), None)


async def upload_metadata(
    label: Optional[List[str]] = Form(None),
    labeled_by: Optional[List[str]] = Form(None),
    labeled_by_camel: Optional[List[str]] = Form(None, alias="labeledBy"),
    labeled_at: Optional[List[str]] = Form(None),
    labeled_at_camel: Optional[List[str]] = Form(None, alias="labeledAt"),
    bounding_box: Optional[List[str]] = Form(None),
    bounding_box_camel: Optional[List[str]] = Form(None, alias="boundingBox"),
    coordinates: Optional[List[str]] = Form(None, description="Bounding box, same as boundingBox"),
    is_cropped: Optional[List[str]] = Form(None),
    is_cropped_camel: Optional[List[str]] = Form(None, alias="isCropped")
) -> IngestMetadata:
    """Per-file metadata form fields, by field name or camelCase name."""
    return IngestMetadata.from_raw(
        label=label,
        labeled_by=_first_given(labeled_by, labeled_by_camel),
        labeled_at=_first_given(labeled_at, labeled_at_camel),
        bounding_box=_first_given(bounding_box, bounding_box_camel, coordinates),
        is_cropped=_first_given(is_cropped, is_cropped_camel)
    )


async def read_upload(upload: UploadFile) -> UploadedFile:
    """Read one uploaded part, buffering at most one byte past the size limit."""
    original_name = upload.filename or ""
    if upload.size is not None:
        check_file_size(original_name, upload.size)

    data = await upload.read(MAX_FILE_SIZE_BYTES + 1)
    check_file_size(original_name, len(data))
    return UploadedFile(data=data, original_name=original_name, content_type=upload.content_type)


@router.post("/{dataset_id}/upload", response_model=UploadResponse)
async def upload_images(
    dataset_id: str,
    images: List[UploadFile] = File(..., description="Up to 10 jpg/jpeg/png/gif files"),
    metadata: IngestMetadata = Depends(upload_metadata),
    services: Services = Depends(get_services),
    user_id: Optional[str] = Depends(get_current_user_id)
) -> Dict[str, Any]:
    """
    Upload a batch of images into a dataset.

    Each metadata field may be sent once, applying to every file, or once per
    file in the same order as the files.
    """
    logger.info(f"Upload into dataset {dataset_id}: {len(images)} files")

    check_file_count(len(images))
    files = [await read_upload(upload) for upload in images]

    records = await services.ingestion.ingest(dataset_id, files, metadata, caller_id=user_id)
    return {
        "message": "Images uploaded successfully",
        "images": [record.model_dump(mode="json") for record in records]
    }
