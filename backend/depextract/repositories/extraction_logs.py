"""
Extraction Log Repository

Step events shown to users while an extraction runs.
"""

from typing import Any, Dict

from motor.motor_asyncio import AsyncIOMotorDatabase


class ExtractionLogRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.extraction_logs

    async def insert(self, event: Dict[str, Any]) -> None:
        await self.collection.insert_one(event)
