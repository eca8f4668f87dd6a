"""
API request and response models for LabelHub.
Defines the structure of HTTP requests and responses and of query results.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel

from labelhub.models.database import ImageRecord


# Request bodies accept camelCase keys as well as field names
REQUEST_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


class DatasetCreateRequest(BaseModel):
    """Request model for dataset creation."""
    name: str = Field(..., max_length=255, description="Dataset name")
    description: Optional[str] = Field(None, max_length=1000, description="Dataset description")
    owner_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("owner_id", "ownerId", "userId"),
        description="Owner, defaults to the calling user"
    )

    model_config = {
        **REQUEST_CONFIG,
        "json_schema_extra": {
            "example": {
                "name": "cats",
                "description": "Cats versus dogs"
            }
        }
    }


class DatasetRenameRequest(BaseModel):
    """Request model for dataset rename."""
    name: str = Field(..., max_length=255, description="New dataset name")

    model_config = REQUEST_CONFIG


class LabelRequest(BaseModel):
    """Request model for labeling one image."""
    label: str = Field(..., description="Label to assign")
    labeled_by: Optional[str] = Field(None, description="Labeler, defaults to the calling user")
    bounding_box: Optional[Dict[str, Any]] = Field(
        None, description="Either {x, y, width, height} or {topLeft, bottomRight}"
    )

    model_config = {
        **REQUEST_CONFIG,
        "json_schema_extra": {
            "example": {
                "label": "cat",
                "labeledBy": "alice",
                "boundingBox": {"topLeft": {"x": 10, "y": 20}, "bottomRight": {"x": 40, "y": 60}}
            }
        }
    }


class LabeledPage(BaseModel):
    """One window of labeled images, newest label first."""
    images: List[ImageRecord] = Field(..., description="Images on this page")
    total: int = Field(..., ge=0, description="Labeled images before windowing")
    page: int = Field(..., ge=0, description="Zero-based page number")
    page_size: int = Field(..., ge=1, description="Images per page")


class DatasetStats(BaseModel):
    """Label progress counters for a dataset."""
    total: int = Field(..., ge=0)
    labeled: int = Field(..., ge=0)
    unlabeled: int = Field(..., ge=0)


class LabelCount(BaseModel):
    """Number of labelers whose latest vote is `label`."""
    label: str
    count: int = Field(..., ge=1)


class UploadResponse(BaseModel):
    """Response model for image upload."""
    message: str
    images: List[Dict[str, Any]]


class LabelResetResponse(BaseModel):
    """Response model for label reset."""
    message: str
    dataset_id: str
    image_id: str
    image: Dict[str, Any]


class DeleteAllResponse(BaseModel):
    """Response model for dataset wipe."""
    message: str
    deleted: int


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="API version")
    dependencies: Dict[str, str] = Field(..., description="Dependency health status")
    errors: Optional[List[str]] = Field(None, description="Error messages (if unhealthy)")

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": "healthy",
                "timestamp": "2026-10-19T10:00:00Z",
                "version": "1.0.0",
                "dependencies": {
                    "mongodb": "healthy",
                    "blob_store": "healthy"
                }
            }
        }
    }


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error kind")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(..., description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")
