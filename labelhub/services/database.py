"""
Database service for MongoDB operations.

`DatasetStore` owns every write to the datasets collection. Dataset documents
embed their images, so all changes to the image collection go through a
versioned read-modify-write: the document is read, changed on a fresh model
and written back only if its `version` still matches what was read. A
mismatch means another writer committed in between, and the whole cycle is
retried.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from labelhub.models.database import Dataset, ImageRecord, DATASETS_COLLECTION, parse_object_id, utc_now
from labelhub.utils.logging import logger, log_database_operation
from labelhub.utils.exceptions import (
    ConcurrentUpdateError,
    DatabaseError,
    DuplicateNameError,
    NotFoundError,
    ValidationError
)

T = TypeVar("T")


def _clean_name(name: Optional[str]) -> str:
    """Trim a dataset name and reject blank or multi-line ones."""
    clean = (name or "").strip()
    if not clean:
        raise ValidationError("Dataset name cannot be empty", field="name", reason="blank")
    # Names end up in response headers
    if "\r" in clean or "\n" in clean:
        raise ValidationError("Dataset name cannot contain line breaks", field="name",
                              reason="line_break", value=clean)
    return clean


class DatasetStore:
    """MongoDB-backed store for datasets and their embedded images."""

    def __init__(self, collection: AsyncIOMotorCollection, max_retries: int = 5):
        """Initialize store with the datasets collection."""
        self.collection = collection
        self.max_retries = max_retries

    async def ensure_indexes(self) -> None:
        """Create database indexes."""
        try:
            await self.collection.create_index([("name", 1)], unique=True)
            await self.collection.create_index([("created_at", -1)])
            logger.info("Database indexes created successfully")
        except PyMongoError as e:
            logger.warning(f"Failed to create some indexes: {e}")

    async def _find_document(self, dataset_id: str) -> Tuple[ObjectId, Dict[str, Any]]:
        object_id = parse_object_id(dataset_id)
        if object_id is None:
            raise NotFoundError("dataset", dataset_id)

        try:
            document = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error(f"Failed to get dataset {dataset_id}: {e}")
            raise DatabaseError(f"Dataset retrieval failed: {e}", operation="find_one",
                                collection=DATASETS_COLLECTION)

        if document is None:
            raise NotFoundError("dataset", dataset_id)
        return object_id, document

    async def _name_taken(self, name: str, exclude: Optional[ObjectId] = None) -> bool:
        query: Dict[str, Any] = {"name": name}
        if exclude is not None:
            query["_id"] = {"$ne": exclude}
        return await self.collection.find_one(query, projection={"_id": 1}) is not None

    # Dataset operations
    async def create_dataset(self, name: str, owner_id: Optional[str],
                             description: Optional[str] = None) -> Dataset:
        """Create a new dataset with a unique name."""
        clean_name = _clean_name(name)
        if not owner_id or not str(owner_id).strip():
            raise ValidationError("Owner is required", field="owner_id", reason="missing")

        if await self._name_taken(clean_name):
            raise DuplicateNameError(clean_name)

        dataset = Dataset(
            name=clean_name,
            description=description.strip() if description else description,
            owner_id=str(owner_id)
        )

        try:
            await self.collection.insert_one(dataset.to_document())
        except DuplicateKeyError:
            raise DuplicateNameError(clean_name)
        except PyMongoError as e:
            logger.error(f"Failed to create dataset: {e}")
            raise DatabaseError(f"Dataset creation failed: {e}", operation="insert_one",
                                collection=DATASETS_COLLECTION)

        logger.info(f"Created dataset: {dataset.id} ({clean_name})")
        return dataset

    async def get_dataset(self, dataset_id: str) -> Dataset:
        """Get dataset by ID."""
        _, document = await self._find_document(dataset_id)
        return Dataset.from_document(document)

    async def list_datasets(self, newest_first: bool = True) -> List[Dataset]:
        """List all datasets, newest first unless asked otherwise."""
        try:
            cursor = self.collection.find({})
            if newest_first:
                cursor = cursor.sort([("created_at", -1)])
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Failed to list datasets: {e}")
            raise DatabaseError(f"Dataset listing failed: {e}", operation="find",
                                collection=DATASETS_COLLECTION)

        return [Dataset.from_document(document) for document in documents]

    async def rename_dataset(self, dataset_id: str, new_name: str) -> Dataset:
        """Rename a dataset, keeping names unique."""
        clean_name = _clean_name(new_name)
        object_id, _ = await self._find_document(dataset_id)

        if await self._name_taken(clean_name, exclude=object_id):
            raise DuplicateNameError(clean_name)

        try:
            document = await self.collection.find_one_and_update(
                {"_id": object_id},
                {"$set": {"name": clean_name, "updated_at": utc_now()}, "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise DuplicateNameError(clean_name)
        except PyMongoError as e:
            logger.error(f"Failed to rename dataset {dataset_id}: {e}")
            raise DatabaseError(f"Dataset rename failed: {e}", operation="find_one_and_update",
                                collection=DATASETS_COLLECTION)

        if document is None:
            raise NotFoundError("dataset", dataset_id)

        logger.info(f"Renamed dataset {dataset_id} to {clean_name}")
        return Dataset.from_document(document)

    async def repair_owner(self, dataset_id: str, owner_id: str) -> Dataset:
        """
        Assign an owner to a dataset that has none.

        Dataset documents this service stored without an owner_id get the first
        authenticated caller as owner. An existing owner is never replaced,
        so repeated calls are no-ops.
        """
        if not owner_id:
            raise ValidationError("Owner is required", field="owner_id", reason="missing")

        object_id = parse_object_id(dataset_id)
        if object_id is None:
            raise NotFoundError("dataset", dataset_id)

        try:
            document = await self.collection.find_one_and_update(
                {"_id": object_id, "owner_id": None},
                {"$set": {"owner_id": str(owner_id), "updated_at": utc_now()}, "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Failed to repair owner of dataset {dataset_id}: {e}")
            raise DatabaseError(f"Owner repair failed: {e}", operation="find_one_and_update",
                                collection=DATASETS_COLLECTION)

        if document is not None:
            logger.info(f"Assigned owner {owner_id} to dataset {dataset_id}")
            return Dataset.from_document(document)

        return await self.get_dataset(dataset_id)

    async def delete_all(self) -> int:
        """Delete every dataset and return how many were removed."""
        try:
            result = await self.collection.delete_many({})
        except PyMongoError as e:
            logger.error(f"Failed to delete datasets: {e}")
            raise DatabaseError(f"Dataset wipe failed: {e}", operation="delete_many",
                                collection=DATASETS_COLLECTION)

        logger.warning(f"Deleted all datasets ({result.deleted_count})")
        return result.deleted_count

    # Image operations
    async def get_image(self, dataset_id: str, image_id: str) -> ImageRecord:
        """Get a single image record."""
        dataset = await self.get_dataset(dataset_id)
        image = dataset.find_image(image_id)
        if image is None:
            raise NotFoundError("image", image_id)
        return image

    async def append_images(self, dataset_id: str, records: Sequence[ImageRecord]) -> Dataset:
        """Append image records to a dataset in one atomic write."""
        dataset, _ = await self._mutate(dataset_id, lambda d: d.images.extend(records))
        logger.info(f"Appended {len(records)} images to dataset {dataset_id} (now {dataset.image_count})")
        return dataset

    async def update_image(self, dataset_id: str, image_id: str,
                           mutate: Callable[[ImageRecord], None]) -> ImageRecord:
        """Apply `mutate` to one image record in one atomic write."""

        def apply(dataset: Dataset) -> ImageRecord:
            image = dataset.find_image(image_id)
            if image is None:
                raise NotFoundError("image", image_id)
            mutate(image)
            return image

        _, image = await self._mutate(dataset_id, apply)
        return image

    async def _mutate(self, dataset_id: str, mutate: Callable[[Dataset], T]) -> Tuple[Dataset, T]:
        """Versioned read-modify-write, retried on conflict."""
        for attempt in range(1, self.max_retries + 1):
            started = time.perf_counter()
            object_id, document = await self._find_document(dataset_id)

            dataset = Dataset.from_document(document)
            result = mutate(dataset)

            read_version = document.get("version")
            dataset.image_count = len(dataset.images)
            dataset.updated_at = utc_now()
            dataset.version = (read_version or 0) + 1

            if read_version is None:
                # Dataset documents stored without a version field carry no counter
                guard = {"_id": object_id, "version": {"$exists": False}}
            else:
                guard = {"_id": object_id, "version": read_version}

            try:
                outcome = await self.collection.replace_one(guard, dataset.to_document())
            except PyMongoError as e:
                logger.error(f"Failed to write dataset {dataset_id}: {e}")
                raise DatabaseError(f"Dataset update failed: {e}", operation="replace_one",
                                    collection=DATASETS_COLLECTION)

            if outcome.matched_count == 1:
                log_database_operation(
                    "replace_one", DATASETS_COLLECTION,
                    (time.perf_counter() - started) * 1000,
                    dataset_id=dataset_id, version=dataset.version, attempt=attempt
                )
                return dataset, result

            logger.warning(
                f"Version conflict on dataset {dataset_id} "
                f"(attempt {attempt}/{self.max_retries}), retrying"
            )

        raise ConcurrentUpdateError(dataset_id, attempts=self.max_retries)


async def connect_database(mongodb_url: str) -> AsyncIOMotorClient:
    """Open a MongoDB client and verify the connection."""
    try:
        logger.info(f"Connecting to MongoDB: {mongodb_url}")
        client = AsyncIOMotorClient(mongodb_url)
        await client.admin.command('ping')
        logger.info("Database connected successfully")
        return client

    except PyMongoError as e:
        logger.error(f"Failed to initialize database: {e}")
        raise DatabaseError(f"Database initialization failed: {e}", operation="connect")


async def health_check_database(client: Optional[AsyncIOMotorClient]) -> Dict[str, Any]:
    """Check database health for monitoring."""
    try:
        if client is None:
            return {"status": "unhealthy", "error": "Database not initialized"}

        await client.admin.command('ping')
        return {"status": "healthy"}

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e)
        }
