"""
Extraction pipeline building blocks.

The orchestrator itself lives in ``depextract.services.pipeline.orchestrator``
and is imported from there.
"""

from depextract.services.pipeline.cancellation import CancellationToken
from depextract.services.pipeline.errors import (
    ClassifiedPipelineError,
    ErrorCategory,
    JobCancelled,
    PipelineError,
    ReconciliationError,
    ToolError,
    ToolNotFoundError,
    ToolTimeoutError,
)
from depextract.services.pipeline.logger import ExtractionLogger, sanitize
from depextract.services.pipeline.retry import with_retry
from depextract.services.pipeline.stages import CRITICAL_STAGES, PipelineStage

__all__ = [
    "CRITICAL_STAGES",
    "CancellationToken",
    "ClassifiedPipelineError",
    "ErrorCategory",
    "ExtractionLogger",
    "JobCancelled",
    "PipelineError",
    "PipelineStage",
    "ReconciliationError",
    "ToolError",
    "ToolNotFoundError",
    "ToolTimeoutError",
    "sanitize",
    "with_retry",
]
