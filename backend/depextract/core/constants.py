"""
Shared Constants

Centralized constants used across the extraction pipeline.
"""

from typing import Dict, Optional

# External feeds
KEV_CATALOG_URL = (
    "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"
)
EPSS_API_URL = "https://api.first.org/data/v1/epss"

# Timeouts for enrichment HTTP calls (seconds)
ENRICHMENT_TIMEOUTS: Dict[str, float] = {
    "kev": 60.0,
    "epss": 30.0,
    "populate": 30.0,
    "default": 30.0,
}

# Batch sizes for database and API round trips
DEPENDENCY_LOOKUP_BATCH_SIZE = 50
DEPENDENCY_INSERT_BATCH_SIZE = 100
VERSION_LOOKUP_BATCH_SIZE = 200
PROJECT_DEPENDENCY_BATCH_SIZE = 500
EDGE_BATCH_SIZE = 500
VULNERABILITY_BATCH_SIZE = 100
EPSS_BATCH_SIZE = 80

# Severity -> CVSS fallback when a report carries no numeric score
SEVERITY_TO_CVSS: Dict[str, float] = {
    "critical": 9.0,
    "high": 7.0,
    "medium": 4.0,
    "low": 2.0,
}


def severity_to_cvss(severity: Optional[str]) -> Optional[float]:
    """Map a severity label to its fallback CVSS score (case-insensitive)."""
    if not severity:
        return None
    return SEVERITY_TO_CVSS.get(severity.lower())


# Dependency sources on project_dependencies
SOURCE_DEPENDENCIES = "dependencies"
SOURCE_DEV_DEPENDENCIES = "devDependencies"
SOURCE_TRANSITIVE = "transitive"

SOURCE_TO_ENVIRONMENT: Dict[str, Optional[str]] = {
    SOURCE_DEPENDENCIES: "prod",
    SOURCE_DEV_DEPENDENCIES: "dev",
    SOURCE_TRANSITIVE: None,
}

# Property names emitted by dep-scan in VDR reports
REACHABILITY_PROPERTY = "depscan:insights"
REACHABILITY_PREFIX = "Used in"
EPSS_PROPERTIES = ("depscan:epss", "epss")

# Scan report file names
VDR_SUFFIX = ".vdr.json"
DEPSCAN_REPORT_NAME = "dep-scan.json"
REPORT_SEARCH_MAX_DIRS = 5000

# Artifact bucket (GridFS)
ARTIFACT_BUCKET = "project_imports"

# Generic error messages are truncated to this many characters
ERROR_MESSAGE_MAX_LENGTH = 200
