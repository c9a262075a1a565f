from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from depextract.models.types import DocumentId, new_document_id


class Dependency(BaseModel):
    """
    A package in the global dependency catalog.

    Identity is the package name; a row is created on first sighting and is
    never deleted by the extraction pipeline.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: DocumentId = Field(default_factory=new_document_id, alias="_id")
    name: str = Field(..., description="Package name")
    ecosystem: str = Field(..., description="Package ecosystem (npm, pypi, maven, ...)")
    license: Optional[str] = Field(None, description="License from the first sighting")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DependencyVersion(BaseModel):
    """A concrete version of a catalog dependency. Unique on (dependency_id, version)."""

    model_config = ConfigDict(populate_by_name=True)

    id: DocumentId = Field(default_factory=new_document_id, alias="_id")
    dependency_id: DocumentId
    version: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DependencyVersionEdge(BaseModel):
    """Parent version depends on child version."""

    model_config = ConfigDict(populate_by_name=True)

    id: DocumentId = Field(default_factory=new_document_id, alias="_id")
    parent_version_id: str
    child_version_id: str


class ProjectDependency(BaseModel):
    """
    One row of a project's dependency snapshot.

    The snapshot is replaced wholesale on every extraction run.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: DocumentId = Field(default_factory=new_document_id, alias="_id")
    project_id: str
    dependency_id: Optional[str] = None
    dependency_version_id: Optional[str] = None
    name: str
    version: str
    is_direct: bool
    source: str = Field(..., description="dependencies | devDependencies | transitive")
    environment: Optional[str] = Field(None, description="prod | dev | None")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
