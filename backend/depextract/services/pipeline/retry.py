import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from depextract.core.config import settings
from depextract.core.metrics import pipeline_retries_total
from depextract.services.pipeline.errors import (
    ClassifiedPipelineError,
    JobCancelled,
    ToolNotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retrying cannot fix these
NON_RETRYABLE: Tuple[Type[BaseException], ...] = (
    ClassifiedPipelineError,
    JobCancelled,
    ToolNotFoundError,
)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    name: str,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    on_retry: Optional[Callable[[int, BaseException], Awaitable[None]]] = None,
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times with linear backoff.

    The delay before attempt ``n + 1`` is ``base_delay * n``. The last
    exception propagates once attempts are exhausted. ``on_retry`` is awaited
    with the failed attempt number and its error before each wait.
    """
    attempts = max_attempts if max_attempts is not None else settings.MAX_RETRIES
    delay = base_delay if base_delay is not None else settings.RETRY_DELAY_SECONDS
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except NON_RETRYABLE:
            raise
        except Exception as e:
            if attempt >= attempts:
                logger.warning(f"{name} failed after {attempts} attempts: {e}")
                raise
            pipeline_retries_total.labels(operation=name).inc()
            logger.info(f"{name} attempt {attempt}/{attempts} failed: {e}; retrying")
            if on_retry is not None:
                await on_retry(attempt, e)
            await asyncio.sleep(delay * attempt)

    raise RuntimeError("unreachable")  # pragma: no cover
