"""
Shared test fixtures and configuration.

Environment variables are set BEFORE any package imports to prevent
accidental connections to real databases, caches and backends.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Override settings before any code imports the settings singleton
os.environ["MONGODB_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "test_dependency_extraction"
os.environ["ENRICHMENT_CACHE_ENABLED"] = "false"
os.environ["BACKEND_URL"] = "http://backend.test"
os.environ["EXTRACTION_WORKER_SECRET"] = "test-worker-secret"
os.environ["RETRY_DELAY_SECONDS"] = "0"
os.environ["METRICS_PORT"] = "0"

import pytest  # noqa: E402

from tests.mocks.mongodb import InMemoryDatabase  # noqa: E402


@pytest.fixture
def db():
    """A fresh in-memory database with the worker's unique indexes."""
    return InMemoryDatabase()


@pytest.fixture
def sample_purls():
    """Common PURL strings for testing."""
    return {
        "pypi": "pkg:pypi/requests@2.31.0",
        "npm": "pkg:npm/express@4.18.2",
        "npm_scoped": "pkg:npm/%40angular/core@16.0.0",
        "maven": "pkg:maven/org.apache.commons/commons-lang3@3.12.0",
        "go": "pkg:golang/github.com/gin-gonic/gin@1.9.1",
        "with_qualifiers": "pkg:pypi/requests@2.31.0?repository_url=https://pypi.org",
        "with_subpath": "pkg:npm/lodash@4.17.21#dist/lodash.min.js",
    }


@pytest.fixture
def cyclonedx_bom():
    """CycloneDX BOM: app -> express -> (accepts -> mime-types), app -> jest (dev)."""
    return {
        "bomFormat": "CycloneDX",
        "specVersion": "1.5",
        "metadata": {
            "component": {"type": "application", "name": "my-app", "bom-ref": "root"},
        },
        "components": [
            {
                "type": "library",
                "name": "express",
                "version": "4.18.2",
                "purl": "pkg:npm/express@4.18.2",
                "bom-ref": "pkg:npm/express@4.18.2",
                "licenses": [{"license": {"id": "MIT"}}],
            },
            {
                "type": "library",
                "name": "accepts",
                "version": "1.3.8",
                "purl": "pkg:npm/accepts@1.3.8",
                "bom-ref": "pkg:npm/accepts@1.3.8",
            },
            {
                "type": "library",
                "bom-ref": "pkg:npm/mime-types@2.1.35",
                "purl": "pkg:npm/mime-types@2.1.35",
            },
            {
                "type": "library",
                "name": "jest",
                "version": "29.7.0",
                "purl": "pkg:npm/jest@29.7.0",
                "bom-ref": "pkg:npm/jest@29.7.0",
                "licenses": "MIT",
            },
            {
                "type": "library",
                "name": "orphan",
                "version": "1.0.0",
                "bom-ref": "pkg:npm/orphan@1.0.0",
            },
        ],
        "dependencies": [
            {"ref": "root", "dependsOn": ["pkg:npm/express@4.18.2", "pkg:npm/jest@29.7.0"]},
            {"ref": "pkg:npm/express@4.18.2", "dependsOn": ["pkg:npm/accepts@1.3.8"]},
            {"ref": "pkg:npm/accepts@1.3.8", "dependsOn": ["pkg:npm/mime-types@2.1.35"]},
            {"ref": "pkg:npm/mime-types@2.1.35", "dependsOn": []},
        ],
    }
