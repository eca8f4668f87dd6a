"""
API route handlers for LabelHub.
Implements REST endpoints for datasets, uploads and labels.
"""

from .datasets import router as datasets_router
from .uploads import router as uploads_router
from .labels import router as labels_router
from .health import router as health_router

__all__ = [
    "datasets_router",
    "uploads_router",
    "labels_router",
    "health_router"
]
