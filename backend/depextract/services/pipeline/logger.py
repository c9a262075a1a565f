"""
Step logger for extraction runs.

Events are written to ``extraction_logs`` so the project owner can follow a
run, and mirrored to the module logger. Credentials that tools echo in their
output are redacted before anything is written.
"""

import logging
import re
import traceback
from typing import Any, Dict, Optional

from depextract.core import utc_now
from depextract.repositories.extraction_logs import ExtractionLogRepository

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

SECRET_PATTERNS = [
    re.compile(r"ghp_[A-Za-z0-9]{36}"),
    re.compile(r"gho_[A-Za-z0-9]{36}"),
    re.compile(r"github_pat_[A-Za-z0-9_]{82}"),
    re.compile(r"glpat-[A-Za-z0-9_-]{20,}"),
    re.compile(r"Bearer [A-Za-z0-9._-]+"),
    re.compile(r"oauth2:[^@\s]+@"),
    re.compile(r"x-token-auth:[^@\s]+@"),
    re.compile(r"x-access-token:[^@\s]+@"),
    re.compile(r"eyJ[A-Za-z0-9_-]{20,}\.[A-Za-z0-9_-]{20,}\.[A-Za-z0-9_-]{20,}"),
]


def sanitize(message: str) -> str:
    """Replace known credential shapes with a placeholder."""
    for pattern in SECRET_PATTERNS:
        message = pattern.sub(REDACTED, message)
    return message


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize(value)
    if isinstance(value, dict):
        return {k: _sanitize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(v) for v in value]
    return value


class LogLevel:
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_PYTHON_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class ExtractionLogger:
    """Writes user-visible step events for one (project, run)."""

    def __init__(self, repository: ExtractionLogRepository, project_id: str, run_id: str):
        self.repository = repository
        self.project_id = project_id
        self.run_id = run_id

    async def info(self, step: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        await self._log(step, LogLevel.INFO, message, metadata=metadata)

    async def success(
        self,
        step: str,
        message: str,
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._log(step, LogLevel.SUCCESS, message, duration_ms, metadata)

    async def warn(self, step: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        await self._log(step, LogLevel.WARNING, message, metadata=metadata)

    async def error(
        self,
        step: str,
        message: str,
        error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        error_meta = dict(metadata or {})
        if error is not None:
            error_meta["error_message"] = str(error)
            error_meta["error_type"] = type(error).__name__
            error_meta["error_stack"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        await self._log(step, LogLevel.ERROR, message, metadata=error_meta or None)

    async def _log(
        self,
        step: str,
        level: str,
        message: str,
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        clean_message = sanitize(message)
        logger.log(
            _PYTHON_LEVELS.get(level, logging.INFO),
            f"[{self.project_id}] [{step}] [{level}] {clean_message}",
        )

        try:
            await self.repository.insert(
                {
                    "project_id": self.project_id,
                    "run_id": self.run_id,
                    "step": step,
                    "level": level,
                    "message": clean_message,
                    "duration_ms": duration_ms,
                    "metadata": _sanitize_value(metadata) if metadata else None,
                    "created_at": utc_now(),
                }
            )
        except Exception as e:
            # Step logs are best effort; the run itself must go on
            logger.warning(f"Failed to write extraction log for {self.project_id}: {e}")
