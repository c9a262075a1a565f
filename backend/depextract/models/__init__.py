from depextract.models.dependency import (
    Dependency,
    DependencyVersion,
    DependencyVersionEdge,
    ProjectDependency,
)
from depextract.models.job import ExtractionJob, ExtractionPayload, JobStatus
from depextract.models.project import AssetTier, ProjectContext
from depextract.models.vulnerability import ProjectDependencyVulnerability

__all__ = [
    "AssetTier",
    "Dependency",
    "DependencyVersion",
    "DependencyVersionEdge",
    "ExtractionJob",
    "ExtractionPayload",
    "JobStatus",
    "ProjectContext",
    "ProjectDependency",
    "ProjectDependencyVulnerability",
]
