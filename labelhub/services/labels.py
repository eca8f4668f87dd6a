"""
Label history engine.

Every label an image receives is appended to its history. The current label
fields always mirror the last appended event; append order is authoritative
even when clients submit timestamps out of order.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from labelhub.models.api import LabelCount
from labelhub.models.bounding_box import normalize_bounding_box
from labelhub.models.database import ImageRecord, LabelEvent, utc_now
from labelhub.services.database import DatasetStore
from labelhub.utils.exceptions import ValidationError
from labelhub.utils.logging import logger


def apply_label_event(image: ImageRecord, event: LabelEvent) -> None:
    """Append an event and point the current label fields at it."""
    image.label_history.append(event)
    image.label = event.label
    image.labeled_by = event.labeled_by
    image.labeled_at = event.labeled_at


def clear_label_state(image: ImageRecord) -> None:
    """Return an image to its just-uploaded, unlabeled state."""
    image.label_history = []
    image.label = ""
    image.labeled_by = ""
    image.labeled_at = None
    image.bounding_box = None


def latest_votes(history: Sequence[LabelEvent]) -> Dict[str, LabelEvent]:
    """Each labeler's most recent event; later appends win timestamp ties."""
    latest: Dict[str, LabelEvent] = {}
    for event in history:
        current = latest.get(event.labeled_by)
        if current is None or event.labeled_at >= current.labeled_at:
            latest[event.labeled_by] = event
    return latest


def tally_votes(history: Sequence[LabelEvent]) -> List[LabelCount]:
    """Count labels over one vote per labeler."""
    counts: Dict[str, int] = {}
    for event in latest_votes(history).values():
        if event.label:
            counts[event.label] = counts.get(event.label, 0) + 1
    return [LabelCount(label=label, count=count) for label, count in counts.items()]


class LabelHistoryEngine:
    """Records, resets and summarizes image labels."""

    def __init__(self, store: DatasetStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    async def append_label(self, dataset_id: str, image_id: str, label: str,
                           labeled_by: Optional[str] = "",
                           bounding_box: Optional[Any] = None) -> ImageRecord:
        """Record a new label for an image."""
        clean_label = (label or "").strip()
        if not clean_label:
            raise ValidationError("Label cannot be empty", field="label", reason="blank")

        box = normalize_bounding_box(bounding_box)
        labeler = labeled_by or ""

        def mutate(image: ImageRecord) -> None:
            event = LabelEvent(label=clean_label, labeled_by=labeler, labeled_at=self.clock())
            apply_label_event(image, event)
            if box is not None:
                image.bounding_box = box

        image = await self.store.update_image(dataset_id, image_id, mutate)
        logger.info(
            f"Labeled image {image_id} in dataset {dataset_id} as '{clean_label}' "
            f"by '{labeler}' ({len(image.label_history)} events)"
        )
        return image

    async def reset_label(self, dataset_id: str, image_id: str) -> ImageRecord:
        """Clear label history and bounding box; the record and blob stay."""
        image = await self.store.update_image(dataset_id, image_id, clear_label_state)
        logger.info(f"Reset labels of image {image_id} in dataset {dataset_id}")
        return image

    async def label_consensus(self, dataset_id: str, image_id: str) -> List[LabelCount]:
        """Per-labeler latest-vote tally for an image."""
        image = await self.store.get_image(dataset_id, image_id)
        return tally_votes(image.label_history)
