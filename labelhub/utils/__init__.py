"""
Utility modules for LabelHub.
Provides logging and exception handling.
"""

from .logging import logger, setup_logging
from .exceptions import (
    LabelHubError,
    ValidationError,
    NotFoundError,
    DuplicateNameError,
    ConcurrentUpdateError,
    BlobStoreError,
    DatabaseError,
    AuthenticationError
)

__all__ = [
    "logger",
    "setup_logging",
    "LabelHubError",
    "ValidationError",
    "NotFoundError",
    "DuplicateNameError",
    "ConcurrentUpdateError",
    "BlobStoreError",
    "DatabaseError",
    "AuthenticationError"
]
