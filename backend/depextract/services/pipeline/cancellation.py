from typing import Awaitable, Callable

from depextract.services.pipeline.errors import JobCancelled


class CancellationToken:
    """
    Cooperative cancellation for one job.

    ``is_cancelled`` asks the job queue whether the job was cancelled. Once a
    cancellation has been observed the token stays cancelled without further
    reads.
    """

    def __init__(self, is_cancelled: Callable[[], Awaitable[bool]]):
        self._is_cancelled = is_cancelled
        self._cancelled = False

    @classmethod
    def for_job(cls, queue, job_id: str) -> "CancellationToken":
        return cls(lambda: queue.is_cancelled(job_id))

    @classmethod
    def never(cls) -> "CancellationToken":
        async def _never() -> bool:
            return False

        return cls(_never)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def check(self) -> bool:
        if not self._cancelled:
            self._cancelled = await self._is_cancelled()
        return self._cancelled

    async def raise_if_cancelled(self) -> None:
        if await self.check():
            raise JobCancelled()
