from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from depextract.models.types import DocumentId, new_document_id


class ProjectDependencyVulnerability(BaseModel):
    """
    A vulnerability affecting one project dependency.

    Unique on (project_id, project_dependency_id, osv_id); re-scans never
    duplicate rows.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: DocumentId = Field(default_factory=new_document_id, alias="_id")
    project_id: str
    project_dependency_id: str
    osv_id: str
    severity: Optional[str] = None
    summary: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    fixed_versions: List[str] = Field(default_factory=list)
    is_reachable: bool = True
    epss_score: Optional[float] = None
    cvss_score: Optional[float] = None
    cisa_kev: bool = False
    depscore: Optional[int] = None
    published_at: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
