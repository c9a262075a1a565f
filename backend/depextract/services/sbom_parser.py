"""
SBOM Parser Module

Parses a CycloneDX bill of materials into the dependency records and raw
edges the reconciler persists.

Only components reachable from the root component's direct dependencies are
emitted; the raw ``dependsOn`` edge list is returned unfiltered so that edges
can be materialized for every resolvable pair. Parsing is a pure function of
its input.
"""

import logging
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from depextract.core.constants import SOURCE_DEPENDENCIES, SOURCE_TRANSITIVE
from depextract.schemas.sbom import (
    BomDependency,
    BomRelationship,
    Component,
    NameVersion,
    ParsedSBOM,
    ParsedSbomDependency,
)
from depextract.services.purl import parse_purl

logger = logging.getLogger(__name__)


def extract_license(licenses: Any) -> Optional[str]:
    """
    Extract a single license identifier.

    Supports a plain string, an array of ``{license: {id|name}}`` entries
    (the first entry wins) and a single nested ``{license: {...}}`` object.
    """
    if not licenses:
        return None
    if isinstance(licenses, str):
        return licenses
    if isinstance(licenses, list):
        first = licenses[0]
        if isinstance(first, dict):
            inner = first.get("license")
            if isinstance(inner, dict):
                return inner.get("id") or inner.get("name") or None
        return None
    if isinstance(licenses, dict):
        inner = licenses.get("license")
        if isinstance(inner, dict):
            return inner.get("id") or inner.get("name") or None
    return None


def resolve_name_version(component: Component) -> NameVersion | None:
    """Resolve (name, version), preferring explicit fields over the PURL."""
    name = component.name or None
    version = component.version or None
    if component.purl and (not name or not version):
        parsed = parse_purl(component.purl)
        if parsed is not None:
            name = name or parsed.full_name
            version = version or parsed.version
    if not name or not version:
        return None
    return NameVersion(name, version)


class BillOfMaterialsParser:
    """
    CycloneDX dependency-graph parser.

    Usage:
        parsed = BillOfMaterialsParser().parse(bom)
        parsed.dependencies   # reachable records with is_direct/source
        parsed.relationships  # raw parent -> child refs
        parsed.ref_lookup     # bom-ref -> NameVersion
    """

    def parse(self, bom: Dict[str, Any]) -> ParsedSBOM:
        components = self._index_components(bom.get("components") or [])
        adjacency = self._build_adjacency(bom.get("dependencies") or [])
        root_ref = self._root_ref(bom)

        direct_refs: List[str] = []
        if root_ref is None:
            logger.warning("SBOM has no root component bom-ref; no direct dependencies")
        elif root_ref not in adjacency:
            logger.warning(f"Root component {root_ref} has no dependency entry")
        else:
            direct_refs = list(dict.fromkeys(adjacency[root_ref]))

        reachable = self.collect_reachable(direct_refs, adjacency)
        direct_set = set(direct_refs)

        result = ParsedSBOM(
            root_ref=root_ref,
            direct_refs=direct_refs,
            total_components=len(components),
            reachable_refs=len(reachable),
        )
        result.ref_lookup = self.build_ref_lookup(components)
        result.relationships = [
            BomRelationship(parent, child)
            for parent, children in adjacency.items()
            for child in children
        ]

        for ref in reachable:
            component = components.get(ref)
            if component is None:
                result.skipped_components += 1
                continue

            coordinates = resolve_name_version(component)
            if coordinates is None:
                logger.info(f"Skipping component {ref}: no resolvable name/version")
                result.skipped_components += 1
                continue

            is_direct = ref in direct_set
            result.dependencies.append(
                ParsedSbomDependency(
                    name=coordinates.name,
                    version=coordinates.version,
                    license=extract_license(component.licenses),
                    is_direct=is_direct,
                    source=SOURCE_DEPENDENCIES if is_direct else SOURCE_TRANSITIVE,
                    bom_ref=ref,
                )
            )

        logger.debug(
            f"Parsed SBOM: {len(result.dependencies)} dependencies "
            f"({result.direct_count} direct), {len(result.relationships)} edges, "
            f"{result.skipped_components} skipped"
        )
        return result

    @staticmethod
    def collect_reachable(
        start_refs: Iterable[str], adjacency: Dict[str, List[str]]
    ) -> List[str]:
        """
        Breadth-first walk over dependsOn edges.

        Returns every ref reachable from ``start_refs`` (inclusive) in
        discovery order. The visited set bounds the walk on cyclic graphs.
        """
        visited: Set[str] = set()
        order: List[str] = []
        queue = deque()
        for ref in start_refs:
            if ref not in visited:
                visited.add(ref)
                queue.append(ref)

        while queue:
            ref = queue.popleft()
            order.append(ref)
            for child in adjacency.get(ref, ()):
                if child not in visited:
                    visited.add(child)
                    queue.append(child)
        return order

    @staticmethod
    def build_ref_lookup(components: Dict[str, Component]) -> Dict[str, NameVersion]:
        """Map every resolvable bom-ref to its (name, version)."""
        lookup: Dict[str, NameVersion] = {}
        for ref, component in components.items():
            coordinates = resolve_name_version(component)
            if coordinates is not None:
                lookup[ref] = coordinates
        return lookup

    @staticmethod
    def _index_components(raw_components: List[Any]) -> Dict[str, Component]:
        components: Dict[str, Component] = {}
        for raw in raw_components:
            if not isinstance(raw, dict):
                continue
            try:
                component = Component.model_validate(raw)
            except ValidationError as e:
                logger.debug(f"Ignoring malformed component: {e}")
                continue
            if component.bom_ref and component.bom_ref not in components:
                components[component.bom_ref] = component
        return components

    @staticmethod
    def _build_adjacency(raw_dependencies: List[Any]) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {}
        for raw in raw_dependencies:
            if not isinstance(raw, dict):
                continue
            try:
                entry = BomDependency.model_validate(raw)
            except ValidationError as e:
                logger.debug(f"Ignoring malformed dependency entry: {e}")
                continue
            # Repeated refs merge; the first occurrence fixes ordering.
            children = adjacency.setdefault(entry.ref, [])
            children.extend(c for c in entry.depends_on if c not in children)
        return adjacency

    @staticmethod
    def _root_ref(bom: Dict[str, Any]) -> Optional[str]:
        metadata = bom.get("metadata") or {}
        component = metadata.get("component") or {}
        if not isinstance(component, dict):
            return None
        return component.get("bom-ref") or component.get("bomRef")


# Singleton instance for easy import
sbom_parser = BillOfMaterialsParser()


def parse_sbom(bom: Dict[str, Any]) -> ParsedSBOM:
    """Convenience function to parse a CycloneDX SBOM."""
    return sbom_parser.parse(bom)
