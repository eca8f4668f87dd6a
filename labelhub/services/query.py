"""
Query and export service.
Read-only views over a dataset's images: windows, counters and CSV export.
"""

from datetime import datetime, timezone
from typing import Any, List
from urllib.parse import quote

from labelhub.models.api import DatasetStats, LabeledPage
from labelhub.models.bounding_box import format_bounding_box
from labelhub.models.database import Dataset, ImageRecord
from labelhub.services.database import DatasetStore
from labelhub.utils.exceptions import ValidationError
from labelhub.utils.logging import logger

LABELED_PAGE_SIZE = 6
CSV_HEADER = "imageUrl,label,labeledBy,labeledAt,boundingBox"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def escape_csv_field(value: Any) -> str:
    """Quote a field holding a comma, double quote or newline; double inner quotes."""
    if value is None:
        return ""
    text = str(value)
    if "," in text or '"' in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def format_timestamp(value: Any) -> str:
    """ISO-8601 UTC with milliseconds, e.g. 2026-10-19T05:21:00.123Z."""
    if value is None:
        return ""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class QueryEngine:
    """Read-only queries over datasets."""

    def __init__(self, store: DatasetStore, public_base_url: str = ""):
        self.store = store
        self.public_base_url = public_base_url.rstrip("/")

    def image_url(self, image: ImageRecord) -> str:
        """Link that streams the image's blob."""
        return f"{self.public_base_url}/api/dataset/file/{image.blob_ref}"

    async def list_images(self, dataset_id: str) -> List[ImageRecord]:
        """All images in upload order."""
        dataset = await self.store.get_dataset(dataset_id)
        return dataset.images

    async def list_labeled(self, dataset_id: str, page: int = 0) -> LabeledPage:
        """Labeled images, most recently labeled first, in windows of six."""
        if page < 0:
            raise ValidationError("Page must not be negative", field="page", reason="negative", value=page)

        dataset = await self.store.get_dataset(dataset_id)
        labeled = [image for image in dataset.images if image.has_label]
        labeled.sort(key=lambda image: image.labeled_at or _EPOCH, reverse=True)

        skip = page * LABELED_PAGE_SIZE
        window = labeled[skip:skip + LABELED_PAGE_SIZE]
        logger.debug(
            f"Labeled images for dataset {dataset_id}: total={len(labeled)}, "
            f"page={page}, returned={len(window)}"
        )
        return LabeledPage(images=window, total=len(labeled), page=page, page_size=LABELED_PAGE_SIZE)

    async def dataset_stats(self, dataset_id: str) -> DatasetStats:
        """Counts of labeled and unlabeled images."""
        dataset = await self.store.get_dataset(dataset_id)
        total = len(dataset.images)
        labeled = sum(1 for image in dataset.images if image.has_label)
        return DatasetStats(total=total, labeled=labeled, unlabeled=total - labeled)

    async def export_csv(self, dataset_id: str) -> str:
        """CSV of labeled images in upload order; no trailing newline."""
        dataset = await self.store.get_dataset(dataset_id)
        return self.render_csv(dataset)

    def render_csv(self, dataset: Dataset) -> str:
        rows = [CSV_HEADER]
        for image in dataset.images:
            if not image.has_label:
                continue
            rows.append(",".join([
                escape_csv_field(self.image_url(image)),
                escape_csv_field(image.label),
                escape_csv_field(image.labeled_by),
                escape_csv_field(format_timestamp(image.labeled_at)),
                escape_csv_field(format_bounding_box(image.bounding_box))
            ]))

        logger.info(f"Exported {len(rows) - 1} labeled images from dataset {dataset.id}")
        return "\n".join(rows)

    @staticmethod
    def export_filename(dataset: Dataset) -> str:
        return f"{dataset.name}_labeled_images.csv"

    @classmethod
    def content_disposition(cls, dataset: Dataset) -> str:
        """Attachment header naming the export file.

        Names may hold any Unicode, so the plain `filename` carries an ASCII
        fallback and `filename*` carries the UTF-8 name (RFC 6266, RFC 5987).
        """
        filename = cls.export_filename(dataset)
        fallback = "".join(
            char if " " <= char <= "~" and char not in '"\\' else "_"
            for char in filename
        )
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"
