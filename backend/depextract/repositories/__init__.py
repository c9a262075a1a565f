"""
Repository Pattern for Database Access

Provides a thin abstraction layer over the MongoDB collections the
extraction pipeline reads and writes.
"""

from depextract.repositories.artifacts import ArtifactStore
from depextract.repositories.base import BaseRepository
from depextract.repositories.dependencies import (
    DependencyEdgeRepository,
    DependencyRepository,
    DependencyVersionRepository,
    ProjectDependencyRepository,
)
from depextract.repositories.distributed_locks import DistributedLocksRepository
from depextract.repositories.extraction_logs import ExtractionLogRepository
from depextract.repositories.jobs import JobQueue
from depextract.repositories.projects import ProjectRepository
from depextract.repositories.vulnerabilities import VulnerabilityRepository

__all__ = [
    "ArtifactStore",
    "BaseRepository",
    "DependencyEdgeRepository",
    "DependencyRepository",
    "DependencyVersionRepository",
    "DistributedLocksRepository",
    "ExtractionLogRepository",
    "JobQueue",
    "ProjectDependencyRepository",
    "ProjectRepository",
    "VulnerabilityRepository",
]
