"""
Dependency Repositories

Centralizes database operations for the global dependency catalog
(dependencies, dependency_versions, dependency_version_edges) and the
per-project dependency snapshot (project_dependencies).
"""

from typing import Any, Dict, Iterable, List

from depextract.core.constants import (
    DEPENDENCY_INSERT_BATCH_SIZE,
    DEPENDENCY_LOOKUP_BATCH_SIZE,
    EDGE_BATCH_SIZE,
    PROJECT_DEPENDENCY_BATCH_SIZE,
    VERSION_LOOKUP_BATCH_SIZE,
)
from depextract.models.dependency import (
    Dependency,
    DependencyVersion,
    DependencyVersionEdge,
    ProjectDependency,
)
from depextract.repositories.base import BaseRepository, chunked


class DependencyRepository(BaseRepository[Dependency]):
    """Global catalog of packages, unique on name."""

    collection_name = "dependencies"
    model_class = Dependency

    async def find_by_names(self, names: Iterable[str]) -> List[Dict[str, Any]]:
        """Look up catalog rows by name, in chunks."""
        names = list(names)
        found: List[Dict[str, Any]] = []
        for chunk in chunked(names, DEPENDENCY_LOOKUP_BATCH_SIZE):
            found.extend(
                await self.find_all_raw({"name": {"$in": list(chunk)}}, {"_id": 1, "name": 1})
            )
        return found

    async def insert_missing(self, dependencies: List[Dependency]) -> int:
        """Insert catalog rows, skipping names another job inserted first."""
        inserted = 0
        docs = [d.model_dump(by_alias=True) for d in dependencies]
        for chunk in chunked(docs, DEPENDENCY_INSERT_BATCH_SIZE):
            inserted += await self.create_many_ignore_duplicates(list(chunk))
        return inserted


class DependencyVersionRepository(BaseRepository[DependencyVersion]):
    """Concrete versions of catalog packages, unique on (dependency_id, version)."""

    collection_name = "dependency_versions"
    model_class = DependencyVersion

    async def find_by_dependency_ids(self, dependency_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = list(dependency_ids)
        found: List[Dict[str, Any]] = []
        for chunk in chunked(ids, VERSION_LOOKUP_BATCH_SIZE):
            found.extend(
                await self.find_all_raw(
                    {"dependency_id": {"$in": list(chunk)}},
                    {"_id": 1, "dependency_id": 1, "version": 1},
                )
            )
        return found

    async def insert_missing(self, versions: List[DependencyVersion]) -> int:
        inserted = 0
        docs = [v.model_dump(by_alias=True) for v in versions]
        for chunk in chunked(docs, DEPENDENCY_INSERT_BATCH_SIZE):
            inserted += await self.create_many_ignore_duplicates(list(chunk))
        return inserted


class DependencyEdgeRepository(BaseRepository[DependencyVersionEdge]):
    """Version-level graph edges, unique on (parent_version_id, child_version_id)."""

    collection_name = "dependency_version_edges"
    model_class = DependencyVersionEdge

    async def insert_edges(self, edges: List[DependencyVersionEdge]) -> int:
        """Insert edges; pairs that already exist are ignored."""
        inserted = 0
        docs = [e.model_dump(by_alias=True) for e in edges]
        for chunk in chunked(docs, EDGE_BATCH_SIZE):
            inserted += await self.create_many_ignore_duplicates(list(chunk))
        return inserted


class ProjectDependencyRepository(BaseRepository[ProjectDependency]):
    """The per-project dependency snapshot."""

    collection_name = "project_dependencies"
    model_class = ProjectDependency

    async def replace_snapshot(self, project_id: str, rows: List[ProjectDependency]) -> int:
        """
        Delete the project's previous snapshot and insert ``rows`` in chunks.

        Vulnerability rows point at snapshot rows, so they are removed with it.
        """
        await self.db["project_dependency_vulnerabilities"].delete_many({"project_id": project_id})
        await self.delete_many({"project_id": project_id})
        inserted = 0
        docs = [r.model_dump(by_alias=True) for r in rows]
        for chunk in chunked(docs, PROJECT_DEPENDENCY_BATCH_SIZE):
            result = await self.collection.insert_many(list(chunk), ordered=False)
            inserted += len(result.inserted_ids)
        return inserted
