"""
Vulnerability Enrichment Package

EPSS scores from the FIRST API and membership in the CISA Known Exploited
Vulnerabilities catalog, both cached in Redis across worker machines.
"""

from depextract.services.enrichment.epss import EPSSProvider
from depextract.services.enrichment.kev import KEVProvider
from depextract.services.enrichment.service import (
    CVE_PATTERN,
    VulnerabilityEnrichmentService,
    is_cve,
)

__all__ = [
    "CVE_PATTERN",
    "EPSSProvider",
    "KEVProvider",
    "VulnerabilityEnrichmentService",
    "is_cve",
]
