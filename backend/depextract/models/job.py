from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from depextract.models.types import DocumentId, new_document_id


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExtractionPayload(BaseModel):
    """Repository descriptor carried by a job. Unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    repo_full_name: str = ""
    clone_url: Optional[str] = None
    default_branch: str = "main"
    package_json_path: str = ""
    ecosystem: Optional[str] = None
    provider: str = "github"
    installation_id: Optional[str] = None
    integration_id: Optional[str] = None


class ExtractionJob(BaseModel):
    """A unit of extraction work stored in the ``extraction_jobs`` collection."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: DocumentId = Field(default_factory=new_document_id, alias="_id")
    project_id: str
    organization_id: str
    status: JobStatus = JobStatus.QUEUED
    run_id: str = Field(default_factory=new_document_id)
    machine_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    max_attempts: int = 3
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    heartbeat_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def repository(self) -> ExtractionPayload:
        return ExtractionPayload(**(self.payload or {}))
