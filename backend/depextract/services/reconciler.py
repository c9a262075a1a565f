"""
Dependency Reconciler

Merges one parsed BOM into the global dependency catalog and replaces the
project's dependency snapshot.

Steps, each consuming the maps produced by the previous one:

1. Deduplicate parsed records by ``name@version``.
2. Resolve catalog ids for every name, inserting the missing ones.
3. Resolve version ids for every ``name@version``, inserting the missing ones.
4. Replace the project snapshot.
5. Materialize version edges from the raw BOM relationships.

Dependency and version identity is global, so two jobs may race to insert the
same name. The unique indexes turn the loser's insert into a duplicate-key
error, after which the row is simply re-read. Any other write failure is
raised as ``ReconciliationError``.
"""

import logging
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from depextract.core.constants import SOURCE_DEV_DEPENDENCIES, SOURCE_TO_ENVIRONMENT
from depextract.core.metrics import dependencies_synced_total
from depextract.models.dependency import (
    Dependency,
    DependencyVersion,
    DependencyVersionEdge,
    ProjectDependency,
)
from depextract.repositories.dependencies import (
    DependencyEdgeRepository,
    DependencyRepository,
    DependencyVersionRepository,
    ProjectDependencyRepository,
)
from depextract.schemas.sbom import BomRelationship, NameVersion, ParsedSbomDependency
from depextract.services.pipeline.errors import ReconciliationError

logger = logging.getLogger(__name__)

__all__ = [
    "DependencyReconciler",
    "NewDependency",
    "ReconciliationError",
    "ReconciliationResult",
    "TrackedDependency",
]


class NewDependency(NamedTuple):
    """A catalog dependency first created by this run."""

    dependency_id: str
    name: str


class TrackedDependency(NamedTuple):
    """A snapshot row, as the vulnerability stage needs it."""

    project_dependency_id: str
    is_direct: bool
    is_dev_dependency: bool


class ReconciliationResult(BaseModel):
    name_to_dependency_id: Dict[str, str] = Field(default_factory=dict)
    key_to_version_id: Dict[str, str] = Field(default_factory=dict)
    # name@version -> snapshot row; the first (direct-first) row wins
    tracked: Dict[str, TrackedDependency] = Field(default_factory=dict)
    new_direct_dependencies: List[NewDependency] = Field(default_factory=list)

    project_dependency_count: int = 0
    direct_count: int = 0
    transitive_count: int = 0
    edge_count: int = 0

    @property
    def has_new_dependencies(self) -> bool:
        return bool(self.new_direct_dependencies)


def dedupe_by_key(dependencies: Iterable[ParsedSbomDependency]) -> Dict[str, ParsedSbomDependency]:
    """First sighting of every ``name@version``, in input order."""
    unique: Dict[str, ParsedSbomDependency] = {}
    for dep in dependencies:
        unique.setdefault(dep.key, dep)
    return unique


class DependencyReconciler:
    def __init__(
        self,
        dependencies: DependencyRepository,
        versions: DependencyVersionRepository,
        edges: DependencyEdgeRepository,
        project_dependencies: ProjectDependencyRepository,
    ):
        self.dependencies = dependencies
        self.versions = versions
        self.edges = edges
        self.project_dependencies = project_dependencies

    @classmethod
    def from_database(cls, db) -> "DependencyReconciler":
        return cls(
            DependencyRepository(db),
            DependencyVersionRepository(db),
            DependencyEdgeRepository(db),
            ProjectDependencyRepository(db),
        )

    async def reconcile(
        self,
        project_id: str,
        ecosystem: str,
        dependencies: List[ParsedSbomDependency],
        relationships: List[BomRelationship],
        ref_lookup: Dict[str, NameVersion],
    ) -> ReconciliationResult:
        try:
            return await self._reconcile(
                project_id, ecosystem, dependencies, relationships, ref_lookup
            )
        except ReconciliationError:
            raise
        except PyMongoError as e:
            raise ReconciliationError(f"Dependency sync failed: {e}") from e

    async def _reconcile(
        self,
        project_id: str,
        ecosystem: str,
        dependencies: List[ParsedSbomDependency],
        relationships: List[BomRelationship],
        ref_lookup: Dict[str, NameVersion],
    ) -> ReconciliationResult:
        unique = dedupe_by_key(dependencies)

        name_to_id, created_names = await self.resolve_dependency_ids(unique.values(), ecosystem)
        key_to_version_id = await self.resolve_version_ids(unique, name_to_id)

        direct_names = {d.name for d in dependencies if d.is_direct}
        new_direct = [
            NewDependency(name_to_id[name], name)
            for name in sorted(created_names)
            if name in direct_names
        ]

        rows = self.build_snapshot(project_id, dependencies, name_to_id, key_to_version_id)
        await self.project_dependencies.replace_snapshot(project_id, rows)

        tracked: Dict[str, TrackedDependency] = {}
        for row in rows:
            tracked.setdefault(
                f"{row.name}@{row.version}",
                TrackedDependency(
                    row.id, row.is_direct, row.source == SOURCE_DEV_DEPENDENCIES
                ),
            )

        edges = self.build_edges(relationships, ref_lookup, key_to_version_id)
        await self.edges.insert_edges(edges)

        direct_count = sum(1 for r in rows if r.is_direct)
        result = ReconciliationResult(
            name_to_dependency_id=name_to_id,
            key_to_version_id=key_to_version_id,
            tracked=tracked,
            new_direct_dependencies=new_direct,
            project_dependency_count=len(rows),
            direct_count=direct_count,
            transitive_count=len(rows) - direct_count,
            edge_count=len(edges),
        )

        dependencies_synced_total.labels(kind="direct").inc(result.direct_count)
        dependencies_synced_total.labels(kind="transitive").inc(result.transitive_count)
        logger.info(
            f"Reconciled project {project_id}: {len(rows)} rows, "
            f"{len(created_names)} new catalog entries, {len(edges)} edges"
        )
        return result

    async def resolve_dependency_ids(
        self,
        unique: Iterable[ParsedSbomDependency],
        ecosystem: str,
    ) -> Tuple[Dict[str, str], Set[str]]:
        """
        Map every name to its catalog id.

        Returns the map and the set of names whose catalog row this call
        created. The license stored on a new row comes from the first record
        seen for that name.
        """
        name_to_license: Dict[str, Optional[str]] = {}
        for dep in unique:
            name_to_license.setdefault(dep.name, dep.license)
        names = list(name_to_license)

        name_to_id = {
            doc["name"]: doc["_id"] for doc in await self.dependencies.find_by_names(names)
        }
        missing = [n for n in names if n not in name_to_id]
        if not missing:
            return name_to_id, set()

        candidates = [
            Dependency(name=name, ecosystem=ecosystem, license=name_to_license[name])
            for name in missing
        ]
        await self.dependencies.insert_missing(candidates)

        # Re-read: rows that lost a race carry the winner's id
        stored = {doc["name"]: doc["_id"] for doc in await self.dependencies.find_by_names(missing)}
        created: Set[str] = set()
        for candidate in candidates:
            stored_id = stored.get(candidate.name)
            if stored_id is None:
                raise ReconciliationError(
                    f"Dependency '{candidate.name}' missing after insert"
                )
            name_to_id[candidate.name] = stored_id
            if stored_id == candidate.id:
                created.add(candidate.name)

        if len(created) < len(candidates):
            logger.debug(
                f"{len(candidates) - len(created)} dependencies were inserted concurrently by another job"
            )
        return name_to_id, created

    async def resolve_version_ids(
        self,
        unique: Dict[str, ParsedSbomDependency],
        name_to_id: Dict[str, str],
    ) -> Dict[str, str]:
        """Map every ``name@version`` to its version id, inserting missing versions."""
        entries: List[Tuple[str, str, str]] = []  # (key, dependency_id, version)
        for key, dep in unique.items():
            dependency_id = name_to_id.get(dep.name)
            if dependency_id:
                entries.append((key, dependency_id, dep.version))

        dependency_ids = list(dict.fromkeys(e[1] for e in entries))
        existing = await self._version_index(dependency_ids)

        to_insert: List[DependencyVersion] = []
        pending: Set[Tuple[str, str]] = set()
        for _, dependency_id, version in entries:
            pair = (dependency_id, version)
            if pair not in existing and pair not in pending:
                pending.add(pair)
                to_insert.append(DependencyVersion(dependency_id=dependency_id, version=version))

        if to_insert:
            await self.versions.insert_missing(to_insert)
            existing = await self._version_index(
                list(dict.fromkeys(v.dependency_id for v in to_insert))
            ) | existing

        key_to_version_id: Dict[str, str] = {}
        for key, dependency_id, version in entries:
            version_id = existing.get((dependency_id, version))
            if version_id is None:
                raise ReconciliationError(f"Version '{key}' missing after insert")
            key_to_version_id[key] = version_id
        return key_to_version_id

    async def _version_index(self, dependency_ids: List[str]) -> Dict[Tuple[str, str], str]:
        if not dependency_ids:
            return {}
        docs = await self.versions.find_by_dependency_ids(dependency_ids)
        return {(doc["dependency_id"], doc["version"]): doc["_id"] for doc in docs}

    @staticmethod
    def build_snapshot(
        project_id: str,
        dependencies: List[ParsedSbomDependency],
        name_to_id: Dict[str, str],
        key_to_version_id: Dict[str, str],
    ) -> List[ProjectDependency]:
        """Snapshot rows, unique on (name, version, is_direct, source)."""
        seen: Set[Tuple[str, str, bool, str]] = set()
        rows: List[ProjectDependency] = []
        for dep in dependencies:
            identity = (dep.name, dep.version, dep.is_direct, dep.source)
            if identity in seen:
                continue
            seen.add(identity)
            rows.append(
                ProjectDependency(
                    project_id=project_id,
                    dependency_id=name_to_id.get(dep.name),
                    dependency_version_id=key_to_version_id.get(dep.key),
                    name=dep.name,
                    version=dep.version,
                    is_direct=dep.is_direct,
                    source=dep.source,
                    environment=SOURCE_TO_ENVIRONMENT.get(dep.source),
                )
            )
        return rows

    @staticmethod
    def build_edges(
        relationships: List[BomRelationship],
        ref_lookup: Dict[str, NameVersion],
        key_to_version_id: Dict[str, str],
    ) -> List[DependencyVersionEdge]:
        """Edges whose both endpoints resolve to a tracked version; self-loops dropped."""
        seen: Set[Tuple[str, str]] = set()
        edges: List[DependencyVersionEdge] = []
        for rel in relationships:
            parent = ref_lookup.get(rel.parent_ref)
            child = ref_lookup.get(rel.child_ref)
            if parent is None or child is None:
                continue
            parent_id = key_to_version_id.get(parent.key)
            child_id = key_to_version_id.get(child.key)
            if not parent_id or not child_id or parent_id == child_id:
                continue
            if (parent_id, child_id) in seen:
                continue
            seen.add((parent_id, child_id))
            edges.append(
                DependencyVersionEdge(parent_version_id=parent_id, child_version_id=child_id)
            )
        return edges
