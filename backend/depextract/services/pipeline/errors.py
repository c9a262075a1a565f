"""
Pipeline error taxonomy.

Raw failures from external tools and the database are mapped onto a small
set of categories with a message that can be shown to the project owner.
Cancellation is signalled with ``JobCancelled``, which is control flow and
never reported as a failure.
"""

import re
from enum import Enum
from typing import Optional

from depextract.core.constants import ERROR_MESSAGE_MAX_LENGTH


class ErrorCategory(str, Enum):
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    BRANCH_NOT_FOUND = "branch_not_found"
    DISK_EXHAUSTED = "disk_exhausted"
    TIMEOUT = "timeout"
    OUT_OF_MEMORY = "out_of_memory"
    MANIFEST_MISSING = "manifest_missing"
    NO_DEPENDENCIES = "no_dependencies"
    GENERIC = "generic"


class PipelineError(Exception):
    """Base class for errors raised while processing an extraction job."""


class ClassifiedPipelineError(PipelineError):
    """A failure carrying a user-facing message and its category."""

    def __init__(self, category: ErrorCategory, user_message: str):
        super().__init__(user_message)
        self.category = category
        self.user_message = user_message


class JobCancelled(PipelineError):
    """The job was cancelled externally; raised at a stage boundary."""


class ReconciliationError(PipelineError):
    """A dependency sync write failed for a reason other than a duplicate key."""


class ToolError(Exception):
    """An external tool exited unsuccessfully."""

    def __init__(
        self,
        tool: str,
        message: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr


class ToolTimeoutError(ToolError):
    """An external tool exceeded its wall-clock timeout and was killed."""


class ToolNotFoundError(ToolError):
    """The external tool's executable is not installed."""


_AUTH_PATTERN = re.compile(r"401|403|authentication|authorization", re.IGNORECASE)
_NOT_FOUND_PATTERN = re.compile(r"404|not found", re.IGNORECASE)
_BRANCH_PATTERN = re.compile(
    r"could not find remote branch|remote branch \S+ not found|unknown revision",
    re.IGNORECASE,
)
_DISK_PATTERN = re.compile(r"ENOSPC|no space left", re.IGNORECASE)
_TIMEOUT_PATTERN = re.compile(r"timeout|timed out", re.IGNORECASE)


def truncate_message(message: str, limit: int = ERROR_MESSAGE_MAX_LENGTH) -> str:
    return message[:limit]


def _error_text(error: BaseException) -> str:
    text = str(error)
    if isinstance(error, ToolError) and error.stderr:
        text = f"{text}\n{error.stderr}"
    return text


def classify_clone_error(error: BaseException) -> ClassifiedPipelineError:
    """Map a clone failure onto a user-facing message."""
    if isinstance(error, ClassifiedPipelineError):
        return error
    text = _error_text(error)

    # Branch errors mention "not found" too, so they are checked first
    if _BRANCH_PATTERN.search(text):
        return ClassifiedPipelineError(
            ErrorCategory.BRANCH_NOT_FOUND, "Branch not found in repository"
        )
    if _AUTH_PATTERN.search(text):
        return ClassifiedPipelineError(
            ErrorCategory.AUTHENTICATION,
            "Authentication failed. Your source code integration may need to be "
            "reconnected in Organization Settings",
        )
    if _NOT_FOUND_PATTERN.search(text):
        return ClassifiedPipelineError(
            ErrorCategory.NOT_FOUND,
            "Repository not found. It may have been deleted or made private",
        )
    if _DISK_PATTERN.search(text):
        return ClassifiedPipelineError(
            ErrorCategory.DISK_EXHAUSTED, "Repository is too large to scan"
        )
    if isinstance(error, ToolTimeoutError):
        return ClassifiedPipelineError(
            ErrorCategory.TIMEOUT, "Clone timed out. The repository may be too large"
        )
    return ClassifiedPipelineError(
        ErrorCategory.GENERIC, f"Clone failed: {truncate_message(str(error))}"
    )


def classify_sbom_error(error: BaseException) -> ClassifiedPipelineError:
    """Map a BOM generation failure onto a user-facing message."""
    if isinstance(error, ClassifiedPipelineError):
        return error
    if isinstance(error, ToolTimeoutError) or _TIMEOUT_PATTERN.search(str(error)):
        return ClassifiedPipelineError(
            ErrorCategory.TIMEOUT,
            "SBOM generation timed out. The repository may be too large or complex",
        )
    if _DISK_PATTERN.search(_error_text(error)):
        return ClassifiedPipelineError(
            ErrorCategory.DISK_EXHAUSTED, "Repository is too large to scan"
        )
    return ClassifiedPipelineError(
        ErrorCategory.GENERIC, f"SBOM generation failed: {truncate_message(str(error))}"
    )


def classify_error(error: BaseException, prefix: str = "Extraction failed") -> ClassifiedPipelineError:
    """Generic classification for the remaining critical stages."""
    if isinstance(error, ClassifiedPipelineError):
        return error
    if isinstance(error, ToolTimeoutError):
        return ClassifiedPipelineError(
            ErrorCategory.TIMEOUT, f"{prefix}: operation timed out"
        )
    if _DISK_PATTERN.search(_error_text(error)):
        return ClassifiedPipelineError(
            ErrorCategory.DISK_EXHAUSTED, "Repository is too large to scan"
        )
    return ClassifiedPipelineError(
        ErrorCategory.GENERIC, f"{prefix}: {truncate_message(str(error))}"
    )


def manifest_missing_error(package_path: str) -> ClassifiedPipelineError:
    return ClassifiedPipelineError(
        ErrorCategory.MANIFEST_MISSING,
        f"No package manifest found at '{package_path}'. "
        "Check your project's package path setting",
    )


def no_dependencies_error() -> ClassifiedPipelineError:
    return ClassifiedPipelineError(
        ErrorCategory.NO_DEPENDENCIES,
        "No dependencies found. The package manifest may be empty or in an "
        "unsupported format",
    )
