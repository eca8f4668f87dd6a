"""
Service layer for LabelHub.
Contains the dataset store, label engine, ingestion, queries and blob storage.
"""

from .storage import BlobStore, GridFSBlobStore, LocalBlobStore, create_blob_store
from .database import DatasetStore, connect_database
from .labels import LabelHistoryEngine
from .ingestion import IngestionPipeline, IngestMetadata, UploadedFile
from .query import QueryEngine
from .container import Services, build_services, init_services

__all__ = [
    "BlobStore",
    "GridFSBlobStore",
    "LocalBlobStore",
    "create_blob_store",
    "DatasetStore",
    "connect_database",
    "LabelHistoryEngine",
    "IngestionPipeline",
    "IngestMetadata",
    "UploadedFile",
    "QueryEngine",
    "Services",
    "build_services",
    "init_services"
]
