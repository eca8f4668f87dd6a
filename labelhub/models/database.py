"""
Database models for MongoDB collections.
Defines the structure of dataset documents and their embedded image records.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, BeforeValidator, Field, field_validator, model_validator

from labelhub.models.bounding_box import BoundingBox, normalize_bounding_box


def _coerce_object_id(v: Any) -> str:
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, str) and ObjectId.is_valid(v):
        return v
    raise ValueError("Invalid ObjectId")


def as_utc(v: datetime) -> datetime:
    """Make timestamps timezone-aware UTC with BSON (millisecond) precision."""
    if v.tzinfo is None:
        v = v.replace(tzinfo=timezone.utc)
    else:
        v = v.astimezone(timezone.utc)
    return v.replace(microsecond=v.microsecond // 1000 * 1000)


def _stringify_owner(v: Any) -> Any:
    # owner_id may have been stored as an ObjectId by a direct insert
    if isinstance(v, ObjectId):
        return str(v)
    return v


PyObjectId = Annotated[str, BeforeValidator(_coerce_object_id)]
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
OwnerId = Annotated[Optional[str], BeforeValidator(_stringify_owner)]


def utc_now() -> datetime:
    """Current time as stored in the database."""
    return as_utc(datetime.now(timezone.utc))


def new_object_id() -> str:
    return str(ObjectId())


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """Return an ObjectId for valid ids, None otherwise."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class LabelEvent(BaseModel):
    """One immutable entry in an image's label history."""

    label: str = Field(..., min_length=1, description="Assigned label")
    labeled_by: str = Field("", description="Labeler identifier, empty for anonymous")
    labeled_at: UtcDatetime = Field(default_factory=utc_now, description="Labeling timestamp")

    model_config = {"frozen": True}


class ImageRecord(BaseModel):
    """Image metadata embedded in a dataset document."""

    id: PyObjectId = Field(default_factory=new_object_id, alias="_id")
    blob_ref: str = Field(..., description="Handle into the blob store")
    filename: str = Field(..., description="Stored blob filename")
    original_name: str = Field(..., description="Filename as uploaded")
    content_type: Optional[str] = Field(None, description="MIME type of the blob")
    upload_date: UtcDatetime = Field(default_factory=utc_now)

    # Current label, mirrors the last entry of label_history
    label: str = ""
    labeled_by: str = ""
    labeled_at: Optional[UtcDatetime] = None

    bounding_box: Optional[BoundingBox] = None
    label_history: List[LabelEvent] = Field(default_factory=list)
    is_cropped: bool = False

    @field_validator('bounding_box', mode='before')
    @classmethod
    def validate_bounding_box(cls, v):
        """Accept either rectangle shape and store the canonical one."""
        return normalize_bounding_box(v)

    @property
    def has_label(self) -> bool:
        return bool(self.label and self.label.strip())

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "id": "6530f1c2a1b2c3d4e5f60718",
                "blob_ref": "6530f1c2a1b2c3d4e5f60719",
                "filename": "9f86d081884c7d659a2feaa0c55ad015.jpg",
                "original_name": "cat_001.jpg",
                "content_type": "image/jpeg",
                "upload_date": "2026-10-19T10:00:00Z",
                "label": "cat",
                "labeled_by": "alice",
                "labeled_at": "2026-10-19T10:05:00Z",
                "bounding_box": {"x": 10, "y": 20, "width": 30, "height": 40},
                "label_history": [
                    {"label": "cat", "labeled_by": "alice", "labeled_at": "2026-10-19T10:05:00Z"}
                ],
                "is_cropped": False
            }
        }
    }


class Dataset(BaseModel):
    """Database model for datasets collection."""

    id: PyObjectId = Field(default_factory=new_object_id, alias="_id")
    name: str = Field(..., description="Dataset name, unique")
    description: Optional[str] = Field(None, description="Dataset description")
    owner_id: OwnerId = Field(None, description="Owning user, unset on datasets stored before owners were required")
    created_at: UtcDatetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: UtcDatetime = Field(default_factory=utc_now, description="Last modification timestamp")
    image_count: int = Field(0, ge=0, description="Number of images, always len(images)")
    version: int = Field(0, ge=0, description="Optimistic concurrency counter")
    images: List[ImageRecord] = Field(default_factory=list, description="Images in upload order")

    @model_validator(mode='after')
    def sync_image_count(self):
        self.image_count = len(self.images)
        return self

    def find_image(self, image_id: str) -> Optional[ImageRecord]:
        for image in self.images:
            if image.id == image_id:
                return image
        return None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Dataset":
        """Build a dataset from a raw MongoDB document."""
        return cls.model_validate(document)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a MongoDB document with native ObjectIds."""
        document = self.model_dump(by_alias=True)
        document["_id"] = ObjectId(document["_id"])
        for image in document["images"]:
            image["_id"] = ObjectId(image["_id"])
        return document

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "id": "6530f1c2a1b2c3d4e5f60710",
                "name": "cats",
                "description": "Cats versus dogs",
                "owner_id": "6530f1c2a1b2c3d4e5f60700",
                "created_at": "2026-10-19T09:00:00Z",
                "updated_at": "2026-10-19T10:05:00Z",
                "image_count": 1,
                "version": 3,
                "images": []
            }
        }
    }


# Collection names for database operations
DATASETS_COLLECTION = "datasets"
