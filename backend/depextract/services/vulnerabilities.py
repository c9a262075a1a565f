"""
Vulnerability Normalizer

Turns either dep-scan report shape into canonical per-dependency records,
enriches them, scores them and persists them.

Only records that resolve to a dependency tracked in this run's snapshot are
kept; structured records name their packages by package URL and fan out to
one record per resolving ``affects`` entry.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, assert_never

from pydantic import BaseModel, Field

from depextract.core.constants import (
    EPSS_PROPERTIES,
    REACHABILITY_PREFIX,
    REACHABILITY_PROPERTY,
    severity_to_cvss,
)
from depextract.core.metrics import vulnerabilities_persisted_total
from depextract.models.project import ProjectContext
from depextract.models.vulnerability import ProjectDependencyVulnerability
from depextract.repositories.vulnerabilities import VulnerabilityRepository
from depextract.schemas.vulnerability import (
    LegacyReport,
    LegacyVulnerability,
    ScanReport,
    StructuredReport,
    StructuredVulnerability,
    classify_report,
    finite_float,
)
from depextract.services.enrichment.service import VulnerabilityEnrichmentService
from depextract.services.purl import parse_purl
from depextract.services.reconciler import TrackedDependency
from depextract.services.scoring import DepscoreContext, calculate_depscore

logger = logging.getLogger(__name__)

UNKNOWN_ID = "unknown"


class NormalizedVulnerability(BaseModel):
    """A report record resolved to one tracked ``name@version``."""

    key: str
    osv_id: str
    severity: Optional[str] = None
    summary: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    fixed_versions: List[str] = Field(default_factory=list)
    is_reachable: bool = True
    epss_score: Optional[float] = None
    cvss_score: Optional[float] = None
    published_at: Optional[str] = None


class NormalizationResult(BaseModel):
    kind: str
    records: List[NormalizedVulnerability] = Field(default_factory=list)
    unresolved: int = 0
    skipped: int = 0


class VulnerabilitySummary(BaseModel):
    total: int = 0
    critical: int = 0
    high: int = 0
    inserted: int = 0
    unresolved: int = 0

    @property
    def message(self) -> str:
        if not self.total:
            return "Vulnerability scan complete. Found 0 vulnerabilities"
        return (
            f"Vulnerability scan complete. Found {self.total} vulnerabilities "
            f"({self.critical} critical, {self.high} high)"
        )


def _normalize_severity(value: Optional[str]) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    return value.strip().lower() or None


def resolve_affected_key(ref: Optional[str], is_tracked: Callable[[str], bool]) -> Optional[str]:
    """
    Resolve an ``affects[].ref`` package URL to a tracked ``name@version``.

    The namespaced name is tried first, then the bare name, since BOM
    generators name some ecosystems (maven) without their group.
    """
    if not ref or not isinstance(ref, str):
        return None
    parsed = parse_purl(ref)
    if parsed is None or not parsed.version:
        return None
    for name in dict.fromkeys((parsed.full_name, parsed.name)):
        key = f"{name}@{parsed.version}"
        if is_tracked(key):
            return key
    return None


class VulnerabilityNormalizer:
    def __init__(self, tracked_keys: Set[str]):
        self.tracked_keys = tracked_keys

    def _is_tracked(self, key: str) -> bool:
        return key in self.tracked_keys

    def normalize(self, report: ScanReport) -> NormalizationResult:
        if isinstance(report, StructuredReport):
            result = NormalizationResult(kind=report.kind, skipped=report.skipped)
            for vuln in report.vulnerabilities:
                records, unresolved = self.normalize_structured(vuln)
                result.records.extend(records)
                result.unresolved += unresolved
        elif isinstance(report, LegacyReport):
            result = NormalizationResult(kind=report.kind, skipped=report.skipped)
            for vuln in report.vulnerabilities:
                record = self.normalize_legacy(vuln)
                if record is None:
                    result.unresolved += 1
                else:
                    result.records.append(record)
        else:
            assert_never(report)

        if result.unresolved:
            logger.debug(
                f"{result.unresolved} {result.kind} vulnerability references did not "
                "resolve to a tracked dependency"
            )
        return result

    def normalize_structured(self, vuln: StructuredVulnerability) -> tuple[List[NormalizedVulnerability], int]:
        """One record per ``affects`` entry that resolves; returns (records, unresolved)."""
        rating = vuln.ratings[0] if vuln.ratings else None
        severity = _normalize_severity(rating.severity if rating else None)
        cvss = rating.score if rating and rating.score is not None else severity_to_cvss(severity)

        insights = vuln.property_value(REACHABILITY_PROPERTY)
        is_reachable = isinstance(insights, str) and insights.startswith(REACHABILITY_PREFIX)

        fixed: List[str] = []
        for affect in vuln.affects:
            for version in affect.versions:
                if version.status == "unaffected" and version.version and version.version not in fixed:
                    fixed.append(version.version)

        records: List[NormalizedVulnerability] = []
        unresolved = 0
        seen: Set[str] = set()
        for affect in vuln.affects:
            key = resolve_affected_key(affect.ref, self._is_tracked)
            if key is None:
                unresolved += 1
                continue
            if key in seen:
                continue
            seen.add(key)
            records.append(
                NormalizedVulnerability(
                    key=key,
                    osv_id=vuln.id or UNKNOWN_ID,
                    severity=severity,
                    summary=vuln.description or vuln.detail,
                    fixed_versions=fixed,
                    is_reachable=is_reachable,
                    epss_score=finite_float(vuln.property_value(*EPSS_PROPERTIES)),
                    cvss_score=cvss,
                    published_at=vuln.published,
                )
            )
        return records, unresolved

    def normalize_legacy(self, vuln: LegacyVulnerability) -> Optional[NormalizedVulnerability]:
        key = f"{(vuln.component or '').strip()}@{(vuln.version or '').strip()}"
        if not self._is_tracked(key):
            return None

        severity = _normalize_severity(
            vuln.severity or (vuln.ratings[0].severity if vuln.ratings else None)
        )
        fixed = list(vuln.fixed_versions)
        if vuln.fixed_version and vuln.fixed_version not in fixed:
            fixed.insert(0, vuln.fixed_version)

        return NormalizedVulnerability(
            key=key,
            osv_id=vuln.vuln_id or vuln.id or UNKNOWN_ID,
            severity=severity,
            summary=vuln.summary,
            aliases=vuln.aliases,
            fixed_versions=fixed,
            # Legacy reports carry no reachability analysis
            is_reachable=True,
            epss_score=vuln.epss,
            cvss_score=severity_to_cvss(severity),
        )


class VulnerabilityProcessor:
    """Normalize, enrich, score and persist one scan report for a project."""

    def __init__(
        self,
        repository: VulnerabilityRepository,
        enrichment: VulnerabilityEnrichmentService,
    ):
        self.repository = repository
        self.enrichment = enrichment

    async def process(
        self,
        report: Dict[str, Any],
        project: ProjectContext,
        tracked: Mapping[str, TrackedDependency],
    ) -> VulnerabilitySummary:
        normalized = VulnerabilityNormalizer(set(tracked)).normalize(classify_report(report))

        pairs = []
        seen = set()
        for item in normalized.records:
            dependency = tracked[item.key]
            identity = (dependency.project_dependency_id, item.osv_id)
            if identity in seen:
                continue
            seen.add(identity)
            pairs.append((self.to_record(project.id, item, dependency), dependency))
        records = [record for record, _ in pairs]

        await self.enrichment.enrich(records)
        for record, dependency in pairs:
            record.depscore = calculate_depscore(self.scoring_context(record, project, dependency))

        inserted = await self.repository.insert_records(records)
        vulnerabilities_persisted_total.inc(len(records))

        return VulnerabilitySummary(
            total=len(records),
            critical=sum(1 for r in records if r.severity == "critical"),
            high=sum(1 for r in records if r.severity == "high"),
            inserted=inserted,
            unresolved=normalized.unresolved,
        )

    @staticmethod
    def to_record(
        project_id: str,
        item: NormalizedVulnerability,
        dependency: TrackedDependency,
    ) -> ProjectDependencyVulnerability:
        return ProjectDependencyVulnerability(
            project_id=project_id,
            project_dependency_id=dependency.project_dependency_id,
            osv_id=item.osv_id,
            severity=item.severity,
            summary=item.summary,
            aliases=item.aliases,
            fixed_versions=item.fixed_versions,
            is_reachable=item.is_reachable,
            epss_score=item.epss_score,
            cvss_score=item.cvss_score,
            published_at=item.published_at,
        )

    @staticmethod
    def scoring_context(
        record: ProjectDependencyVulnerability,
        project: ProjectContext,
        dependency: Optional[TrackedDependency] = None,
    ) -> DepscoreContext:
        cvss = record.cvss_score
        if cvss is None:
            cvss = severity_to_cvss(record.severity) or 0.0
        return DepscoreContext(
            cvss=cvss,
            epss=record.epss_score or 0.0,
            cisa_kev=record.cisa_kev,
            is_reachable=record.is_reachable,
            asset_tier=project.asset_tier,
            tier_multiplier=project.tier_multiplier,
            is_direct=dependency.is_direct if dependency else None,
            is_dev_dependency=dependency.is_dev_dependency if dependency else None,
        )
