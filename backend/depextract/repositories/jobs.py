"""
Extraction Job Queue

The ``extraction_jobs`` collection is the work queue shared by every worker
machine. Claiming is a single ``find_one_and_update`` so two concurrent
callers can never receive the same job.
"""

import logging
from typing import Any, Dict, Optional

from pymongo import ReturnDocument

from depextract.core import utc_now
from depextract.models.job import ExtractionJob, JobStatus
from depextract.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class JobQueue(BaseRepository[ExtractionJob]):
    """Repository for extraction job queue operations."""

    collection_name = "extraction_jobs"
    model_class = ExtractionJob

    async def enqueue(
        self,
        project_id: str,
        organization_id: str,
        payload: Optional[Dict[str, Any]] = None,
        max_attempts: int = 3,
    ) -> ExtractionJob:
        """Insert a new queued job."""
        job = ExtractionJob(
            project_id=project_id,
            organization_id=organization_id,
            payload=payload or {},
            max_attempts=max_attempts,
        )
        return await self.create(job)

    async def claim(self, machine_id: str) -> Optional[ExtractionJob]:
        """
        Atomically claim the oldest queued job.

        The matched document flips to processing in the same operation, so a
        concurrent claimer sees it as no longer queued.
        """
        now = utc_now()
        doc = await self.collection.find_one_and_update(
            {"status": JobStatus.QUEUED.value},
            {
                "$set": {
                    "status": JobStatus.PROCESSING.value,
                    "machine_id": machine_id,
                    "started_at": now,
                    "heartbeat_at": now,
                },
                "$inc": {"attempts": 1},
            },
            sort=[("created_at", 1)],
            return_document=ReturnDocument.AFTER,
        )
        job = self._to_model(doc)
        if job is not None:
            logger.info(
                f"Claimed job {job.id} for project {job.project_id} "
                f"(attempt {job.attempts}/{job.max_attempts})"
            )
        return job

    async def heartbeat(self, job_id: str) -> bool:
        """Refresh ``heartbeat_at`` on a processing job."""
        result = await self.collection.update_one(
            {"_id": job_id, "status": JobStatus.PROCESSING.value},
            {"$set": {"heartbeat_at": utc_now()}},
        )
        return result.matched_count > 0

    async def is_cancelled(self, job_id: str) -> bool:
        """Point-in-time check whether the job was cancelled externally."""
        doc = await self.collection.find_one({"_id": job_id}, {"status": 1})
        return doc is not None and doc.get("status") == JobStatus.CANCELLED.value

    async def cancel(self, job_id: str) -> bool:
        """Request cancellation of a queued or processing job."""
        result = await self.collection.update_one(
            {
                "_id": job_id,
                "status": {
                    "$in": [JobStatus.QUEUED.value, JobStatus.PROCESSING.value]
                },
            },
            {"$set": {"status": JobStatus.CANCELLED.value, "completed_at": utc_now()}},
        )
        return result.modified_count > 0

    async def set_terminal(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
    ) -> bool:
        """
        Move a processing job to completed or failed.

        A job that was cancelled while running keeps its cancelled status.
        """
        status = JobStatus(status)
        if status not in (JobStatus.COMPLETED, JobStatus.FAILED):
            raise ValueError(f"Not a terminal worker status: {status.value}")

        result = await self.collection.update_one(
            {"_id": job_id, "status": JobStatus.PROCESSING.value},
            {
                "$set": {
                    "status": status.value,
                    "completed_at": utc_now(),
                    "error": error,
                    "machine_id": None,
                    "heartbeat_at": None,
                }
            },
        )
        if result.matched_count == 0:
            logger.info(f"Job {job_id} was no longer processing; left {status.value} unset")
            return False
        return True

    async def requeue(self, job_id: str) -> bool:
        """
        Return a claimed job to the queue without counting the attempt.

        The job moves to the back of the queue so it does not starve others.
        """
        result = await self.collection.update_one(
            {"_id": job_id, "status": JobStatus.PROCESSING.value},
            {
                "$set": {
                    "status": JobStatus.QUEUED.value,
                    "machine_id": None,
                    "started_at": None,
                    "heartbeat_at": None,
                    "created_at": utc_now(),
                },
                "$inc": {"attempts": -1},
            },
        )
        return result.modified_count > 0
