"""
Data models for LabelHub.
Includes API request/response models, database models and bounding boxes.
"""

from .api import *
from .bounding_box import *
from .database import *

__all__ = [
    # API Models
    "DatasetCreateRequest",
    "DatasetRenameRequest",
    "LabelRequest",
    "LabeledPage",
    "DatasetStats",
    "LabelCount",
    "UploadResponse",
    "LabelResetResponse",
    "DeleteAllResponse",
    "HealthResponse",
    "ErrorResponse",

    # Database Models
    "PyObjectId",
    "Dataset",
    "ImageRecord",
    "LabelEvent",
    "utc_now",
    "parse_object_id",
    "DATASETS_COLLECTION",

    # Bounding Boxes
    "Point",
    "OriginExtent",
    "CornerPair",
    "BoundingBox",
    "BoundingBoxInput",
    "parse_bounding_box",
    "normalize_bounding_box",
    "format_bounding_box"
]
