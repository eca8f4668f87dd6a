"""
Label API endpoints.
Handles labeling, label reset and per-image consensus.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends

from labelhub.api.deps import get_current_user_id, get_services
from labelhub.models.api import LabelCount, LabelRequest, LabelResetResponse
from labelhub.services.container import Services


router = APIRouter()


@router.put("/{dataset_id}/images/{image_id}")
async def label_image(
    dataset_id: str,
    image_id: str,
    request: LabelRequest,
    services: Services = Depends(get_services),
    user_id: Optional[str] = Depends(get_current_user_id)
) -> Dict[str, Any]:
    """Append a label to an image's history."""
    image = await services.labels.append_label(
        dataset_id,
        image_id,
        request.label,
        labeled_by=request.labeled_by if request.labeled_by is not None else (user_id or ""),
        bounding_box=request.bounding_box
    )
    return image.model_dump(mode="json")


@router.delete("/{dataset_id}/images/{image_id}", response_model=LabelResetResponse)
async def reset_image_label(
    dataset_id: str,
    image_id: str,
    services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """Clear an image's labels. The image itself is kept."""
    image = await services.labels.reset_label(dataset_id, image_id)
    return {
        "message": "Image label information deleted successfully",
        "dataset_id": dataset_id,
        "image_id": image_id,
        "image": image.model_dump(mode="json")
    }


@router.get("/{dataset_id}/images/{image_id}/label-stats", response_model=List[LabelCount])
async def label_stats(
    dataset_id: str,
    image_id: str,
    services: Services = Depends(get_services)
) -> List[LabelCount]:
    """How many labelers currently vote for each label."""
    return await services.labels.label_consensus(dataset_id, image_id)
