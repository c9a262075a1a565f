"""
Base Repository Pattern

Provides a generic base class for the collections the extraction pipeline
writes, plus the chunked insert helper the natural-key collections share.
"""

from typing import Any, Dict, Generic, Iterator, List, Optional, Sequence, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo.errors import BulkWriteError

# Type variable for the model class
T = TypeVar("T", bound=BaseModel)
S = TypeVar("S")

DUPLICATE_KEY_ERROR = 11000


def chunked(items: Sequence[S], size: int) -> Iterator[Sequence[S]]:
    """Yield consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


class BaseRepository(Generic[T]):
    """
    Generic base repository providing common CRUD operations.

    Usage:
        class DependencyRepository(BaseRepository[Dependency]):
            collection_name = "dependencies"
            model_class = Dependency
    """

    # Subclasses must define these
    collection_name: str
    model_class: Type[T]

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection: AsyncIOMotorCollection = db[self.collection_name]

    def _to_model(self, data: Optional[Dict[str, Any]]) -> Optional[T]:
        """Convert a raw document to a model instance."""
        if data is None:
            return None
        return self.model_class(**data)

    async def find_all_raw(
        self,
        query: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
    ) -> List[Dict[str, Any]]:
        """Find all raw documents matching query."""
        cursor = self.collection.find(query, projection)
        return await cursor.to_list(None)

    async def create(self, model: T) -> T:
        """Create a new document from a model instance."""
        await self.collection.insert_one(model.model_dump(by_alias=True))
        return model

    async def create_many_ignore_duplicates(self, docs: List[Dict[str, Any]]) -> int:
        """
        Insert raw documents with ordered=False.

        Documents rejected by a unique index are skipped; the number actually
        inserted is returned. Any other write error is re-raised.
        """
        if not docs:
            return 0
        try:
            result = await self.collection.insert_many(docs, ordered=False)
            return len(result.inserted_ids)
        except BulkWriteError as e:
            details = e.details or {}
            errors = details.get("writeErrors", [])
            if any(err.get("code") != DUPLICATE_KEY_ERROR for err in errors):
                raise
            if details.get("writeConcernErrors"):
                raise
            return details.get("nInserted", 0)

    async def delete_many(self, query: Dict[str, Any]) -> int:
        """Delete multiple documents matching query."""
        result = await self.collection.delete_many(query)
        return result.deleted_count
