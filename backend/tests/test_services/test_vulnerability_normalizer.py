"""Tests for scan report classification, normalization and persistence."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from depextract.models.project import AssetTier, ProjectContext
from depextract.repositories.vulnerabilities import VulnerabilityRepository
from depextract.schemas.vulnerability import (
    LegacyReport,
    StructuredReport,
    classify_report,
    finite_float,
)
from depextract.services.reconciler import TrackedDependency
from depextract.services.vulnerabilities import (
    VulnerabilityNormalizer,
    VulnerabilityProcessor,
    resolve_affected_key,
)


def _structured_report():
    return {
        "vulnerabilities": [
            {
                "id": "CVE-2024-0001",
                "description": "Prototype pollution",
                "ratings": [{"severity": "HIGH", "score": 7.5}],
                "affects": [
                    {
                        "ref": "pkg:npm/express@4.18.2",
                        "versions": [
                            {"version": "4.18.2", "status": "affected"},
                            {"version": "4.19.0", "status": "unaffected"},
                        ],
                    },
                    {"ref": "pkg:npm/accepts@1.3.8"},
                    {"ref": "pkg:npm/not-tracked@1.0.0"},
                ],
                "properties": [
                    {"name": "depscan:insights", "value": "Used in 3 locations"},
                    {"name": "depscan:epss", "value": "0.42"},
                ],
                "published": "2024-01-01T00:00:00Z",
            }
        ]
    }


def _legacy_report():
    return {
        "vulnerabilities": [
            {
                "vuln_id": "GHSA-35jh-r3h4-6jhm",
                "component": "lodash",
                "version": "4.17.20",
                "severity": "CRITICAL",
                "summary": "Command injection",
                "aliases": "CVE-2021-23337",
                "fixed_version": "4.17.21",
                "fixedVersions": ["4.17.21", "5.0.0"],
                "epss": "0.1",
            }
        ]
    }


class TestClassifyReport:
    def test_structured_when_first_record_has_affects(self):
        assert isinstance(classify_report(_structured_report()), StructuredReport)

    def test_legacy_otherwise(self):
        assert isinstance(classify_report(_legacy_report()), LegacyReport)

    def test_empty_and_missing_reports_are_legacy(self):
        assert classify_report({"vulnerabilities": []}).vulnerabilities == []
        assert classify_report({}).kind == "legacy"
        assert classify_report({"vulnerabilities": "nope"}).kind == "legacy"

    def test_non_object_records_are_skipped(self):
        report = classify_report({"vulnerabilities": [{"component": "a", "version": "1"}, 42]})
        assert len(report.vulnerabilities) == 1
        assert report.skipped == 1


class TestFiniteFloat:
    def test_numbers_and_numeric_strings(self):
        assert finite_float(0.5) == 0.5
        assert finite_float("0.25") == 0.25

    def test_rejects_nan_and_garbage(self):
        assert finite_float("NaN") is None
        assert finite_float("inf") is None
        assert finite_float("high") is None
        assert finite_float(True) is None
        assert finite_float(None) is None


class TestResolveAffectedKey:
    def test_namespaced_name_first(self):
        tracked = {"@angular/core@16.0.0", "core@16.0.0"}
        key = resolve_affected_key("pkg:npm/%40angular/core@16.0.0", tracked.__contains__)
        assert key == "@angular/core@16.0.0"

    def test_falls_back_to_bare_name(self):
        tracked = {"commons-lang3@3.12.0"}
        key = resolve_affected_key(
            "pkg:maven/org.apache.commons/commons-lang3@3.12.0", tracked.__contains__
        )
        assert key == "commons-lang3@3.12.0"

    def test_unresolvable(self):
        assert resolve_affected_key("pkg:npm/x@1.0.0", lambda k: False) is None
        assert resolve_affected_key("pkg:npm/x", lambda k: True) is None
        assert resolve_affected_key(None, lambda k: True) is None


class TestNormalizeStructured:
    def test_fans_out_per_tracked_affect(self):
        normalizer = VulnerabilityNormalizer({"express@4.18.2", "accepts@1.3.8"})

        result = normalizer.normalize(classify_report(_structured_report()))

        assert [r.key for r in result.records] == ["express@4.18.2", "accepts@1.3.8"]
        assert result.unresolved == 1
        record = result.records[0]
        assert record.osv_id == "CVE-2024-0001"
        assert record.severity == "high"
        assert record.cvss_score == 7.5
        assert record.epss_score == 0.42
        assert record.fixed_versions == ["4.19.0"]
        assert record.is_reachable is True
        assert record.summary == "Prototype pollution"

    def test_reachability_requires_used_in_prefix(self):
        report = _structured_report()
        report["vulnerabilities"][0]["properties"] = [
            {"name": "depscan:insights", "value": "Not used"}
        ]
        result = VulnerabilityNormalizer({"express@4.18.2"}).normalize(classify_report(report))
        assert result.records[0].is_reachable is False

    def test_severity_fallback_cvss(self):
        report = _structured_report()
        report["vulnerabilities"][0]["ratings"] = [{"severity": "medium"}]
        result = VulnerabilityNormalizer({"express@4.18.2"}).normalize(classify_report(report))
        assert result.records[0].cvss_score == 4.0

    def test_missing_id_is_unknown(self):
        report = _structured_report()
        del report["vulnerabilities"][0]["id"]
        result = VulnerabilityNormalizer({"express@4.18.2"}).normalize(classify_report(report))
        assert result.records[0].osv_id == "unknown"

    def test_nothing_tracked(self):
        result = VulnerabilityNormalizer(set()).normalize(classify_report(_structured_report()))
        assert result.records == []
        assert result.unresolved == 3


class TestNormalizeLegacy:
    def test_fields(self):
        result = VulnerabilityNormalizer({"lodash@4.17.20"}).normalize(
            classify_report(_legacy_report())
        )

        record = result.records[0]
        assert record.osv_id == "GHSA-35jh-r3h4-6jhm"
        assert record.severity == "critical"
        assert record.cvss_score == 9.0
        assert record.aliases == ["CVE-2021-23337"]
        assert record.fixed_versions == ["4.17.21", "5.0.0"]
        assert record.epss_score == 0.1
        assert record.is_reachable is True

    def test_fixed_version_is_prepended_when_new(self):
        report = _legacy_report()
        report["vulnerabilities"][0]["fixedVersions"] = ["5.0.0"]
        result = VulnerabilityNormalizer({"lodash@4.17.20"}).normalize(classify_report(report))
        assert result.records[0].fixed_versions == ["4.17.21", "5.0.0"]

    def test_untracked_component_is_unresolved(self):
        result = VulnerabilityNormalizer({"lodash@4.17.21"}).normalize(
            classify_report(_legacy_report())
        )
        assert result.records == []
        assert result.unresolved == 1


class TestShapeEquivalence:
    def test_same_finding_normalizes_identically(self):
        structured = {
            "vulnerabilities": [
                {
                    "id": "CVE-2021-23337",
                    "ratings": [{"severity": "HIGH"}],
                    "affects": [
                        {
                            "ref": "pkg:npm/lodash@4.17.20",
                            "versions": [{"version": "4.17.21", "status": "unaffected"}],
                        }
                    ],
                    "properties": [
                        {"name": "depscan:insights", "value": "Used in 1 location"},
                        {"name": "depscan:epss", "value": "0.3"},
                    ],
                }
            ]
        }
        legacy = {
            "vulnerabilities": [
                {
                    "id": "CVE-2021-23337",
                    "component": "lodash",
                    "version": "4.17.20",
                    "severity": "HIGH",
                    "fixed_version": "4.17.21",
                    "epss": 0.3,
                }
            ]
        }
        normalizer = VulnerabilityNormalizer({"lodash@4.17.20"})
        fields = {"key", "osv_id", "severity", "cvss_score", "epss_score", "fixed_versions", "is_reachable"}

        (from_structured,) = normalizer.normalize(classify_report(structured)).records
        (from_legacy,) = normalizer.normalize(classify_report(legacy)).records

        assert from_structured.model_dump(include=fields) == from_legacy.model_dump(include=fields)
        assert from_legacy.severity == "high"
        assert from_legacy.cvss_score == 7.0


class TestVulnerabilityProcessor:
    def _processor(self, db):
        enrichment = MagicMock()
        enrichment.enrich = AsyncMock()
        return VulnerabilityProcessor(VulnerabilityRepository(db), enrichment), enrichment

    def test_persists_scored_records(self, db):
        processor, enrichment = self._processor(db)
        project = ProjectContext(id="proj-1", asset_tier=AssetTier.EXTERNAL)
        tracked = {"lodash@4.17.20": TrackedDependency("pd-1", True, False)}

        summary = asyncio.run(processor.process(_legacy_report(), project, tracked))

        assert summary.total == 1
        assert summary.critical == 1
        assert summary.inserted == 1
        enrichment.enrich.assert_awaited_once()
        doc = db.project_dependency_vulnerabilities.docs[0]
        assert doc["project_id"] == "proj-1"
        assert doc["project_dependency_id"] == "pd-1"
        # 90 * (0.6 + 0.6 * sqrt(0.1)) * 1.1
        assert doc["depscore"] == 78

    def test_rescan_does_not_duplicate(self, db):
        processor, _ = self._processor(db)
        project = ProjectContext(id="proj-1")
        tracked = {"lodash@4.17.20": TrackedDependency("pd-1", True, False)}

        asyncio.run(processor.process(_legacy_report(), project, tracked))
        summary = asyncio.run(processor.process(_legacy_report(), project, tracked))

        assert summary.inserted == 0
        assert len(db.project_dependency_vulnerabilities.docs) == 1

    def test_dependency_context_lowers_score(self, db):
        processor, _ = self._processor(db)
        project = ProjectContext(id="proj-1")
        direct = {"lodash@4.17.20": TrackedDependency("pd-1", True, False)}
        dev_transitive = {"lodash@4.17.20": TrackedDependency("pd-2", False, True)}

        asyncio.run(processor.process(_legacy_report(), project, direct))
        asyncio.run(processor.process(_legacy_report(), project, dev_transitive))

        scores = {d["project_dependency_id"]: d["depscore"] for d in db.project_dependency_vulnerabilities.docs}
        assert scores["pd-2"] < scores["pd-1"]

    def test_summary_message(self, db):
        processor, _ = self._processor(db)
        tracked = {
            "express@4.18.2": TrackedDependency("pd-1", True, False),
            "accepts@1.3.8": TrackedDependency("pd-2", False, False),
        }

        summary = asyncio.run(
            processor.process(_structured_report(), ProjectContext(id="proj-1"), tracked)
        )

        assert summary.total == 2
        assert summary.unresolved == 1
        assert summary.message == "Vulnerability scan complete. Found 2 vulnerabilities (0 critical, 2 high)"

    def test_empty_report(self, db):
        processor, _ = self._processor(db)
        summary = asyncio.run(processor.process({}, ProjectContext(id="proj-1"), {}))
        assert summary.total == 0
        assert summary.message == "Vulnerability scan complete. Found 0 vulnerabilities"
