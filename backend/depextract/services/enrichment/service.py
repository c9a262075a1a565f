import asyncio
import logging
import re
from typing import Dict, Iterable, List, Optional, Set

import httpx

from depextract.core.constants import ENRICHMENT_TIMEOUTS
from depextract.models.vulnerability import ProjectDependencyVulnerability
from depextract.services.enrichment.epss import EPSSProvider
from depextract.services.enrichment.kev import KEVProvider

logger = logging.getLogger(__name__)

CVE_PATTERN = re.compile(r"^CVE-\d{4}-\d+$", re.IGNORECASE)


def is_cve(identifier: Optional[str]) -> bool:
    return bool(identifier) and CVE_PATTERN.match(identifier) is not None


class VulnerabilityEnrichmentService:
    """
    Best-effort EPSS and CISA KEV enrichment for one extraction run.

    The KEV catalog is loaded at most once per instance. Feed failures leave
    records unenriched and are never raised to the caller.
    """

    def __init__(
        self,
        epss_provider: Optional[EPSSProvider] = None,
        kev_provider: Optional[KEVProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._epss_provider = epss_provider or EPSSProvider()
        self._kev_provider = kev_provider or KEVProvider()
        self._http_client = http_client
        self._owns_client = http_client is None
        self._client_lock = asyncio.Lock()
        self._kev_ids: Optional[Set[str]] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None and not self._http_client.is_closed:
            return self._http_client

        async with self._client_lock:
            if self._http_client is not None and not self._http_client.is_closed:
                return self._http_client
            self._http_client = httpx.AsyncClient(timeout=ENRICHMENT_TIMEOUTS["default"])
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def get_kev_ids(self) -> Set[str]:
        if self._kev_ids is None:
            try:
                client = await self._get_client()
                self._kev_ids = await self._kev_provider.load_kev_ids(client)
            except Exception as e:
                logger.warning(f"KEV catalog unavailable: {e}")
                self._kev_ids = set()
        return self._kev_ids

    async def get_epss_scores(self, cve_ids: Iterable[str]) -> Dict[str, float]:
        cves = [c for c in cve_ids if is_cve(c)]
        if not cves:
            return {}
        try:
            client = await self._get_client()
            return await self._epss_provider.load_epss_scores(client, cves)
        except Exception as e:
            logger.warning(f"EPSS scores unavailable: {e}")
            return {}

    async def enrich(self, records: List[ProjectDependencyVulnerability]) -> None:
        """
        Fill ``epss_score`` where the report had none and set ``cisa_kev``.

        Only CVE-shaped ids are looked up. Scores taken from the report are
        never overwritten.
        """
        if not records:
            return

        missing = {r.osv_id.upper() for r in records if r.epss_score is None and is_cve(r.osv_id)}
        scores = await self.get_epss_scores(sorted(missing))
        backfilled = 0
        for record in records:
            if record.epss_score is not None:
                continue
            score = scores.get(record.osv_id.upper())
            if score is not None:
                record.epss_score = score
                backfilled += 1

        kev_ids = await self.get_kev_ids()
        for record in records:
            record.cisa_kev = any(
                is_cve(identifier) and identifier.upper() in kev_ids
                for identifier in [record.osv_id, *record.aliases]
            )

        logger.debug(
            f"Enriched {len(records)} vulnerabilities: {backfilled} EPSS backfills, "
            f"{sum(1 for r in records if r.cisa_kev)} in KEV"
        )
