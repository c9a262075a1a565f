import asyncio
import logging
from typing import Any, Dict, Optional, Set

import httpx

from depextract.core.cache import CacheKeys, CacheTTL, cache_service
from depextract.core.config import settings
from depextract.core.constants import ENRICHMENT_TIMEOUTS, KEV_CATALOG_URL
from depextract.schemas.enrichment import KEVEntry

logger = logging.getLogger(__name__)


class KEVProvider:
    """Provider for the CISA Known Exploited Vulnerabilities (KEV) catalog."""

    def __init__(
        self,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self._max_retries = (
            max_retries if max_retries is not None else settings.ENRICHMENT_MAX_RETRIES
        )
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.ENRICHMENT_RETRY_DELAY
        )

    async def fetch_kev_catalog(self, client: httpx.AsyncClient) -> Optional[Dict[str, Any]]:
        """Fetch the KEV catalog from CISA with retry logic. None on failure."""
        timeout = ENRICHMENT_TIMEOUTS.get("kev", ENRICHMENT_TIMEOUTS["default"])
        last_error = None

        for attempt in range(self._max_retries):
            try:
                response = await client.get(KEV_CATALOG_URL, timeout=timeout)
                response.raise_for_status()

                kev_dict: Dict[str, Any] = {}
                for vuln in response.json().get("vulnerabilities") or []:
                    cve = (vuln.get("cveID") or "").upper()
                    if not cve:
                        continue
                    ransomware_value = vuln.get("knownRansomwareCampaignUse") or ""
                    kev_dict[cve] = KEVEntry(
                        cve=cve,
                        vendor_project=vuln.get("vendorProject") or "",
                        product=vuln.get("product") or "",
                        date_added=vuln.get("dateAdded") or "",
                        known_ransomware_use=ransomware_value.lower() == "known",
                    ).model_dump()

                logger.info(f"Fetched {len(kev_dict)} entries from CISA KEV catalog")
                # KEV catalog has 1000+ entries, empty is suspicious
                if not kev_dict:
                    logger.warning("KEV catalog returned empty - not caching")
                    return None
                return kev_dict

            except httpx.TimeoutException:
                last_error = "Timeout"
                logger.warning(
                    f"KEV catalog fetch timeout (attempt {attempt + 1}/{self._max_retries})"
                )
            except httpx.ConnectError:
                last_error = "Connection error"
                logger.warning(
                    f"KEV catalog connection error (attempt {attempt + 1}/{self._max_retries})"
                )
            except httpx.HTTPStatusError as e:
                last_error = f"HTTP {e.response.status_code}"
                if e.response.status_code >= 500:
                    logger.warning(
                        f"KEV catalog server error {e.response.status_code} "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                else:
                    # Client error (4xx) - don't retry
                    logger.warning(f"KEV catalog client error: {e}")
                    return None
            except Exception as e:
                last_error = str(e)
                logger.warning(
                    f"Failed to fetch CISA KEV catalog "
                    f"(attempt {attempt + 1}/{self._max_retries}): {e}"
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay * (attempt + 1))

        logger.error(f"KEV catalog fetch failed after {self._max_retries} attempts: {last_error}")
        return None

    async def load_kev_ids(self, client: httpx.AsyncClient) -> Set[str]:
        """Upper-cased CVE ids in the catalog; empty when it cannot be loaded."""
        cached = await cache_service.get_or_fetch(
            CacheKeys.kev_catalog(),
            lambda: self.fetch_kev_catalog(client),
            ttl_seconds=CacheTTL.KEV_CATALOG,
        )
        if not cached:
            return set()
        return {cve.upper() for cve in cached}
