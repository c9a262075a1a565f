import asyncio
import logging
import os
import socket
import time
from typing import List, Optional

from depextract.core.config import settings
from depextract.core.metrics import (
    worker_active_count,
    worker_job_duration_seconds,
    worker_jobs_claimed_total,
    worker_jobs_processed_total,
)
from depextract.db.mongodb import get_database
from depextract.models.job import ExtractionJob, JobStatus
from depextract.repositories.distributed_locks import DistributedLocksRepository, project_lock_name
from depextract.repositories.jobs import JobQueue
from depextract.services.pipeline.cancellation import CancellationToken
from depextract.services.pipeline.errors import classify_error
from depextract.services.pipeline.logger import sanitize
from depextract.services.pipeline.orchestrator import (
    PipelineOrchestrator,
    PipelineOutcome,
    PipelineResult,
)

logger = logging.getLogger(__name__)


def default_machine_id() -> str:
    return settings.MACHINE_ID or f"{socket.gethostname()}-{os.getpid()}"


class ExtractionWorkerManager:
    """
    Polls the shared job queue and runs claimed jobs through the pipeline.

    Every worker machine runs ``num_workers`` loops. A claimed job also takes
    a per-project lock; when another job for the same project is in flight
    the claimed job goes back to the queue.
    """

    def __init__(
        self,
        num_workers: int = 1,
        machine_id: Optional[str] = None,
        db=None,
        orchestrator: Optional[PipelineOrchestrator] = None,
    ):
        self.num_workers = num_workers
        self.machine_id = machine_id or default_machine_id()
        self.workers: List[asyncio.Task] = []
        self._db = db
        self._orchestrator = orchestrator
        self.queue: Optional[JobQueue] = None
        self.locks: Optional[DistributedLocksRepository] = None
        self.orchestrator: Optional[PipelineOrchestrator] = None

    async def setup(self) -> None:
        db = self._db if self._db is not None else await get_database()
        self.queue = JobQueue(db)
        self.locks = DistributedLocksRepository(db)
        self.orchestrator = self._orchestrator or PipelineOrchestrator.from_database(db)

    async def start(self):
        """Starts the worker tasks."""
        await self.setup()
        logger.info(f"Starting {self.num_workers} extraction workers on {self.machine_id}...")
        for i in range(self.num_workers):
            task = asyncio.create_task(self.worker(f"{self.machine_id}:worker-{i}"))
            self.workers.append(task)

    async def stop(self):
        """Stops all worker tasks and waits for them to exit."""
        logger.info("Stopping extraction workers...")
        for task in self.workers:
            task.cancel()
        await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers = []

    async def worker(self, name: str):
        """Worker loop that claims and processes jobs until cancelled."""
        logger.info(f"Worker {name} started")
        worker_active_count.inc()
        try:
            while True:
                try:
                    processed = await self.process_next(name)
                    if not processed:
                        await asyncio.sleep(settings.POLL_INTERVAL_SECONDS)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Worker {name} crashed: {e}")
                    # Prevent a tight loop if something is really broken
                    await asyncio.sleep(1)
        except asyncio.CancelledError:
            logger.info(f"Worker {name} stopped")
        finally:
            worker_active_count.dec()

    async def process_next(self, worker_id: str) -> bool:
        """
        Claim and run one job.

        Returns False when there was nothing to run, including when the
        claimed job had to be requeued because its project is busy.
        """
        job = await self.queue.claim(worker_id)
        if job is None:
            return False
        worker_jobs_claimed_total.inc()

        lock_name = project_lock_name(job.project_id)
        if not await self.locks.acquire_lock(lock_name, job.id, settings.PROJECT_LOCK_TTL_SECONDS):
            logger.info(f"Project {job.project_id} is already being extracted; requeueing job {job.id}")
            await self.queue.requeue(job.id)
            return False

        try:
            await self.run_job(job)
        finally:
            await self.locks.release_lock(lock_name, job.id)
        return True

    async def run_job(self, job: ExtractionJob) -> PipelineResult:
        heartbeat = asyncio.create_task(self._heartbeat_loop(job.id))
        start_time = time.time()
        try:
            result = await self.orchestrator.run(job, CancellationToken.for_job(self.queue, job.id))
        except Exception as e:
            logger.exception(f"Pipeline crashed for job {job.id}")
            result = PipelineResult(PipelineOutcome.FAILED, sanitize(classify_error(e).user_message))
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)

        worker_job_duration_seconds.observe(time.time() - start_time)
        worker_jobs_processed_total.labels(status=result.outcome.value).inc()

        if result.outcome == PipelineOutcome.CANCELLED:
            logger.info(f"Job {job.id} cancelled")
            return result

        status = JobStatus.COMPLETED if result.outcome == PipelineOutcome.COMPLETED else JobStatus.FAILED
        await self.queue.set_terminal(job.id, status, result.error)
        logger.info(f"Job {job.id} for project {job.project_id} finished: {status.value}")
        return result

    async def _heartbeat_loop(self, job_id: str) -> None:
        while True:
            await asyncio.sleep(settings.HEARTBEAT_INTERVAL_SECONDS)
            try:
                await self.queue.heartbeat(job_id)
            except Exception as e:
                logger.warning(f"Heartbeat for job {job_id} failed: {e}")


# Global instance
worker_manager = ExtractionWorkerManager(num_workers=settings.WORKER_COUNT)
