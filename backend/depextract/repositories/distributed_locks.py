"""
Distributed Locks Repository

Manages locks shared by every worker machine. The worker holds one lock per
project while a job runs so that two runs never replace the same project's
dependency snapshot at once.
"""

from datetime import timedelta
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from depextract.core import utc_now


def project_lock_name(project_id: str) -> str:
    return f"extraction:project:{project_id}"


class DistributedLocksRepository:
    """Repository for distributed lock operations across worker machines."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.distributed_locks

    async def acquire_lock(self, lock_name: str, holder_id: str, ttl_seconds: int = 30) -> bool:
        """
        Try to acquire a distributed lock atomically.

        Args:
            lock_name: Name of the lock
            holder_id: Identifier of the job or machine acquiring the lock
            ttl_seconds: Lock TTL in seconds (auto-expires if holder crashes)

        Returns:
            True if the lock was acquired, False if another holder has it
        """
        now = utc_now()
        expires_at = now + timedelta(seconds=ttl_seconds)

        try:
            result = await self.collection.find_one_and_update(
                {
                    "_id": lock_name,
                    # Available if it was never taken or has expired
                    "$or": [
                        {"expires_at": {"$exists": False}},
                        {"expires_at": {"$lt": now}},
                    ],
                },
                {
                    "$set": {
                        "acquired_at": now,
                        "expires_at": expires_at,
                        "holder": holder_id,
                    }
                },
                upsert=True,
                return_document=True,
            )
        except DuplicateKeyError:
            # A live lock exists, so the upsert collided with it
            return False

        return result is not None

    async def release_lock(self, lock_name: str, holder_id: Optional[str] = None) -> bool:
        """
        Release a distributed lock.

        When ``holder_id`` is given, only that holder's lock is removed.
        """
        query = {"_id": lock_name}
        if holder_id is not None:
            query["holder"] = holder_id
        result = await self.collection.delete_one(query)
        return result.deleted_count > 0

    async def is_locked(self, lock_name: str) -> bool:
        """True if the lock is held and not expired."""
        lock = await self.collection.find_one({"_id": lock_name, "expires_at": {"$gt": utc_now()}})
        return lock is not None
