"""
Bounding box models and conversions.

Clients send rectangles in one of two shapes:

- origin/extent: ``{"x": 10, "y": 20, "width": 30, "height": 40}``
- corner pair: ``{"topLeft": {"x": 10, "y": 20}, "bottomRight": {"x": 40, "y": 60}}``

Both are parsed once into a tagged union and normalized to the origin/extent
form, which is the only shape stored on image records and written to exports.
"""

import json
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from labelhub.utils.exceptions import ValidationError


class Point(BaseModel):
    """A single corner of a rectangle."""

    x: float
    y: float


class OriginExtent(BaseModel):
    """Rectangle given by its top-left origin and its size."""

    kind: Literal["origin_extent"] = "origin_extent"
    x: float = Field(..., description="Left edge")
    y: float = Field(..., description="Top edge")
    width: float = Field(..., description="Horizontal extent")
    height: float = Field(..., description="Vertical extent")

    def to_origin_extent(self) -> "OriginExtent":
        return self

    model_config = {
        "json_schema_extra": {
            "example": {"x": 10, "y": 20, "width": 30, "height": 40}
        }
    }


class CornerPair(BaseModel):
    """Rectangle given by its top-left and bottom-right corners."""

    kind: Literal["corner_pair"] = "corner_pair"
    top_left: Point = Field(..., alias="topLeft")
    bottom_right: Point = Field(..., alias="bottomRight")

    def to_origin_extent(self) -> OriginExtent:
        """Convert to origin/extent coordinates."""
        return OriginExtent(
            x=self.top_left.x,
            y=self.top_left.y,
            width=self.bottom_right.x - self.top_left.x,
            height=self.bottom_right.y - self.top_left.y
        )

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {"topLeft": {"x": 10, "y": 20}, "bottomRight": {"x": 40, "y": 60}}
        }
    }


BoundingBoxInput = Union[OriginExtent, CornerPair]

# Canonical stored representation
BoundingBox = OriginExtent

_ABSENT_MARKERS = {"", "undefined", "null", "none"}
_EXTENT_KEYS = ("x", "y", "width", "height")


def _has_keys(raw: dict, *keys: str) -> bool:
    return all(raw.get(key) is not None for key in keys)


def parse_bounding_box(value: Any) -> Optional[BoundingBoxInput]:
    """
    Parse a bounding box from a dict, a model or JSON text.

    Returns None when no box was supplied. When a dict carries both shapes the
    origin/extent fields win.
    """
    if value is None or isinstance(value, (OriginExtent, CornerPair)):
        return value

    if isinstance(value, str):
        if value.strip().lower() in _ABSENT_MARKERS:
            return None
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError("Bounding box is not valid JSON", field="bounding_box",
                                  reason=str(e), value=value)
        if value is None:
            return None

    if not isinstance(value, dict):
        raise ValidationError("Bounding box must be an object", field="bounding_box", value=value)

    try:
        if _has_keys(value, *_EXTENT_KEYS):
            return OriginExtent(**{key: value[key] for key in _EXTENT_KEYS})
        if _has_keys(value, "topLeft", "bottomRight"):
            return CornerPair(topLeft=value["topLeft"], bottomRight=value["bottomRight"])
        if _has_keys(value, "top_left", "bottom_right"):
            return CornerPair(top_left=value["top_left"], bottom_right=value["bottom_right"])
    except PydanticValidationError as e:
        raise ValidationError("Bounding box coordinates must be numbers", field="bounding_box",
                              reason=str(e), value=value)

    raise ValidationError(
        "Bounding box needs either x/y/width/height or topLeft/bottomRight",
        field="bounding_box",
        value=value
    )


def normalize_bounding_box(value: Any) -> Optional[BoundingBox]:
    """Parse any accepted shape and convert it to the canonical box."""
    box = parse_bounding_box(value)
    if box is None:
        return None
    return box.to_origin_extent()


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def format_bounding_box(value: Any) -> str:
    """Flatten a box to ``x,y,width,height``; empty string when there is none."""
    box = normalize_bounding_box(value)
    if box is None:
        return ""
    return ",".join(_format_number(v) for v in (box.x, box.y, box.width, box.height))
