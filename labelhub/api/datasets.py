"""
Dataset API endpoints.
Handles dataset lifecycle, image listings, statistics and CSV export.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from labelhub.api.deps import get_current_user_id, get_services
from labelhub.models.api import (
    DatasetCreateRequest,
    DatasetRenameRequest,
    DatasetStats,
    DeleteAllResponse
)
from labelhub.services.container import Services
from labelhub.utils.logging import logger


router = APIRouter()


@router.get("")
async def list_datasets(
    newest_first: bool = Query(True, description="Sort by creation time, newest first"),
    services: Services = Depends(get_services)
) -> List[Dict[str, Any]]:
    """List all datasets."""
    datasets = await services.store.list_datasets(newest_first=newest_first)
    logger.info(f"Retrieved {len(datasets)} datasets")
    return [dataset.model_dump(mode="json") for dataset in datasets]


@router.post("", status_code=201)
async def create_dataset(
    request: DatasetCreateRequest,
    services: Services = Depends(get_services),
    user_id: Optional[str] = Depends(get_current_user_id)
) -> Dict[str, Any]:
    """
    Create an empty dataset.

    The owner defaults to the calling user when the body does not name one.
    """
    dataset = await services.store.create_dataset(
        request.name,
        request.owner_id or user_id,
        description=request.description
    )
    return dataset.model_dump(mode="json")


@router.delete("/reset", response_model=DeleteAllResponse)
async def delete_all_datasets(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Delete every dataset. Blobs are left in place."""
    deleted = await services.store.delete_all()
    return {"message": "All datasets deleted", "deleted": deleted}


@router.get("/{dataset_id}")
async def get_dataset(
    dataset_id: str,
    services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """Get a dataset with its images."""
    dataset = await services.store.get_dataset(dataset_id)
    logger.info(f"Retrieved dataset: {dataset.name}")
    return dataset.model_dump(mode="json")


@router.put("/{dataset_id}")
async def rename_dataset(
    dataset_id: str,
    request: DatasetRenameRequest,
    services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """Rename a dataset."""
    dataset = await services.store.rename_dataset(dataset_id, request.name)
    return dataset.model_dump(mode="json")


@router.get("/{dataset_id}/images")
async def list_images(
    dataset_id: str,
    services: Services = Depends(get_services)
) -> List[Dict[str, Any]]:
    """All images of a dataset in upload order."""
    images = await services.query.list_images(dataset_id)
    return [image.model_dump(mode="json") for image in images]


@router.get("/{dataset_id}/labeled")
async def list_labeled_images(
    dataset_id: str,
    page: int = Query(0, description="Zero-based page number"),
    services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """
    Labeled images, most recently labeled first.

    Returns six images per page together with the total number of labeled
    images.
    """
    result = await services.query.list_labeled(dataset_id, page)
    logger.info(f"Labeled images for dataset {dataset_id}: page={page}, total={result.total}")
    return result.model_dump(mode="json")


@router.get("/{dataset_id}/stats", response_model=DatasetStats)
async def dataset_stats(
    dataset_id: str,
    services: Services = Depends(get_services)
) -> DatasetStats:
    """Labeled and unlabeled image counts."""
    return await services.query.dataset_stats(dataset_id)


@router.get("/{dataset_id}/export")
async def export_dataset(
    dataset_id: str,
    services: Services = Depends(get_services)
) -> Response:
    """Download labeled images as CSV."""
    dataset = await services.store.get_dataset(dataset_id)
    content = services.query.render_csv(dataset)

    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": services.query.content_disposition(dataset)
        }
    )
