"""
Service wiring.
Builds every component with its collaborators passed in explicitly.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from labelhub.config import Settings
from labelhub.models.database import DATASETS_COLLECTION
from labelhub.services.database import DatasetStore, connect_database, health_check_database
from labelhub.services.ingestion import IngestionPipeline
from labelhub.services.labels import LabelHistoryEngine
from labelhub.services.query import QueryEngine
from labelhub.services.storage import BlobStore, create_blob_store
from labelhub.utils.logging import logger

DEFAULT_DATABASE = "label_db"


@dataclass
class Services:
    """Everything a request handler needs."""
    store: DatasetStore
    blob_store: BlobStore
    labels: LabelHistoryEngine
    ingestion: IngestionPipeline
    query: QueryEngine
    client: Optional[AsyncIOMotorClient] = None

    async def health(self) -> Dict[str, Dict[str, Any]]:
        return {
            "mongodb": await health_check_database(self.client),
            "blob_store": await self.blob_store.health_check()
        }

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("Database connection closed")


def build_services(settings: Settings, database: AsyncIOMotorDatabase,
                   blob_store: Optional[BlobStore] = None,
                   client: Optional[AsyncIOMotorClient] = None) -> Services:
    """Wire the components around one database handle."""
    store = DatasetStore(database[DATASETS_COLLECTION], max_retries=settings.max_update_retries)
    blob_store = blob_store or create_blob_store(settings, database)

    return Services(
        store=store,
        blob_store=blob_store,
        labels=LabelHistoryEngine(store),
        ingestion=IngestionPipeline(store, blob_store),
        query=QueryEngine(store, settings.public_base_url),
        client=client
    )


async def init_services(settings: Settings) -> Services:
    """Connect to MongoDB, create indexes and build the services."""
    client = await connect_database(settings.mongodb_url)
    database = client.get_default_database(default=DEFAULT_DATABASE)

    services = build_services(settings, database, client=client)
    await services.store.ensure_indexes()

    logger.info(f"Services initialized (blob backend: {settings.blob_backend.value})")
    return services
