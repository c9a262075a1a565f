"""Tests for shared pipeline constants."""

from depextract.core.constants import (
    DEPENDENCY_INSERT_BATCH_SIZE,
    DEPENDENCY_LOOKUP_BATCH_SIZE,
    EPSS_BATCH_SIZE,
    PROJECT_DEPENDENCY_BATCH_SIZE,
    SEVERITY_TO_CVSS,
    SOURCE_DEPENDENCIES,
    SOURCE_DEV_DEPENDENCIES,
    SOURCE_TO_ENVIRONMENT,
    SOURCE_TRANSITIVE,
    VULNERABILITY_BATCH_SIZE,
    severity_to_cvss,
)


class TestBatchSizes:
    def test_dependency_lookup_chunks_are_at_most_50(self):
        assert 0 < DEPENDENCY_LOOKUP_BATCH_SIZE <= 50

    def test_dependency_insert_chunks_are_at_most_100(self):
        assert 0 < DEPENDENCY_INSERT_BATCH_SIZE <= 100

    def test_project_dependency_chunks_are_at_most_500(self):
        assert 0 < PROJECT_DEPENDENCY_BATCH_SIZE <= 500

    def test_vulnerability_chunks_are_at_most_100(self):
        assert 0 < VULNERABILITY_BATCH_SIZE <= 100

    def test_epss_batches_are_at_most_80(self):
        assert 0 < EPSS_BATCH_SIZE <= 80


class TestSeverityToCvss:
    def test_table_values(self):
        assert SEVERITY_TO_CVSS == {"critical": 9.0, "high": 7.0, "medium": 4.0, "low": 2.0}

    def test_lookup_is_case_insensitive(self):
        assert severity_to_cvss("HIGH") == 7.0
        assert severity_to_cvss("Critical") == 9.0

    def test_unknown_severity(self):
        assert severity_to_cvss("info") is None

    def test_missing_severity(self):
        assert severity_to_cvss(None) is None
        assert severity_to_cvss("") is None


class TestSourceToEnvironment:
    def test_mapping(self):
        assert SOURCE_TO_ENVIRONMENT[SOURCE_DEPENDENCIES] == "prod"
        assert SOURCE_TO_ENVIRONMENT[SOURCE_DEV_DEPENDENCIES] == "dev"
        assert SOURCE_TO_ENVIRONMENT[SOURCE_TRANSITIVE] is None
