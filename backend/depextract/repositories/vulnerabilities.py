"""
Project Dependency Vulnerability Repository
"""

from typing import List

from depextract.core.constants import VULNERABILITY_BATCH_SIZE
from depextract.models.vulnerability import ProjectDependencyVulnerability
from depextract.repositories.base import BaseRepository, chunked


class VulnerabilityRepository(BaseRepository[ProjectDependencyVulnerability]):
    """Unique on (project_id, project_dependency_id, osv_id)."""

    collection_name = "project_dependency_vulnerabilities"
    model_class = ProjectDependencyVulnerability

    async def insert_records(self, records: List[ProjectDependencyVulnerability]) -> int:
        """Insert in chunks; records that already exist for the project are ignored."""
        inserted = 0
        docs = [r.model_dump(by_alias=True) for r in records]
        for chunk in chunked(docs, VULNERABILITY_BATCH_SIZE):
            inserted += await self.create_many_ignore_duplicates(list(chunk))
        return inserted
