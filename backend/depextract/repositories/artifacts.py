"""
Artifact Storage

Raw tool outputs (BOM, scan report, static and secret scan results) are kept
in a GridFS bucket under ``{project_id}/{run_id}/{name}``.
"""

import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket

from depextract.core.constants import ARTIFACT_BUCKET

logger = logging.getLogger(__name__)


def artifact_path(project_id: str, run_id: str, name: str) -> str:
    return f"{project_id}/{run_id}/{name}"


class ArtifactStore:
    def __init__(self, db: AsyncIOMotorDatabase, bucket_name: str = ARTIFACT_BUCKET):
        self.db = db
        self.fs = AsyncIOMotorGridFSBucket(db, bucket_name=bucket_name)

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/json",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Store ``content`` under ``path``, replacing an earlier file of the same
        name. Returns the GridFS file id.
        """
        async for existing in self.fs.find({"filename": path}):
            await self.fs.delete(existing._id)

        file_id = await self.fs.upload_from_stream(
            path,
            content,
            metadata={"contentType": content_type, **(metadata or {})},
        )
        logger.debug(f"Uploaded artifact {path} ({len(content)} bytes)")
        return str(file_id)
