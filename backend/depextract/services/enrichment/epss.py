import asyncio
import logging
import math
from typing import Dict, List, Optional

import httpx

from depextract.core.cache import CacheKeys, CacheTTL, cache_service
from depextract.core.config import settings
from depextract.core.constants import ENRICHMENT_TIMEOUTS, EPSS_API_URL, EPSS_BATCH_SIZE
from depextract.schemas.enrichment import EPSSData

logger = logging.getLogger(__name__)


class EPSSProvider:
    """Provider for Exploit Prediction Scoring System (EPSS) data."""

    BATCH_SIZE = EPSS_BATCH_SIZE  # Max CVEs per EPSS API request

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

    @staticmethod
    def _parse_entry(entry: dict) -> Optional[EPSSData]:
        cve = entry.get("cve") or ""
        try:
            score = float(entry.get("epss"))
        except (TypeError, ValueError):
            return None
        if not cve or not math.isfinite(score):
            return None
        try:
            percentile = float(entry.get("percentile") or 0)
        except (TypeError, ValueError):
            percentile = 0.0
        return EPSSData(cve=cve, epss_score=score, percentile=percentile, date=entry.get("date") or "")

    async def fetch_epss_batch(
        self, client: httpx.AsyncClient, cves: List[str]
    ) -> Dict[str, EPSSData]:
        """Fetch EPSS scores for a batch of CVEs with retry logic."""
        if not cves:
            return {}

        timeout = ENRICHMENT_TIMEOUTS.get("epss", ENRICHMENT_TIMEOUTS["default"])
        last_error = None
        for attempt in range(self._max_retries):
            try:
                response = await client.get(
                    EPSS_API_URL, params={"cve": ",".join(cves)}, timeout=timeout
                )
                response.raise_for_status()

                results: Dict[str, EPSSData] = {}
                for entry in response.json().get("data") or []:
                    data = self._parse_entry(entry) if isinstance(entry, dict) else None
                    if data is not None:
                        results[data.cve.upper()] = data

                if len(results) < len(cves):
                    logger.debug(
                        f"EPSS: No data for {len(cves) - len(results)} CVEs (may be too new or invalid)"
                    )
                return results

            except httpx.TimeoutException:
                last_error = "Timeout"
                logger.warning(f"EPSS API timeout (attempt {attempt + 1}/{self._max_retries})")
            except httpx.ConnectError:
                last_error = "Connection error"
                logger.warning(
                    f"EPSS API connection error (attempt {attempt + 1}/{self._max_retries})"
                )
            except httpx.HTTPStatusError as e:
                last_error = f"HTTP {e.response.status_code}"
                if e.response.status_code == 429:
                    wait_time = self._retry_delay * (2**attempt)
                    logger.warning(f"EPSS API rate limited, waiting {wait_time}s")
                    await asyncio.sleep(wait_time)
                elif e.response.status_code >= 500:
                    logger.warning(
                        f"EPSS API server error {e.response.status_code} (attempt {attempt + 1})"
                    )
                else:
                    # Client error (4xx except 429) - don't retry
                    logger.warning(f"EPSS API client error: {e}")
                    return {}
            except Exception as e:
                last_error = str(e)
                logger.warning(f"Failed to fetch EPSS data (attempt {attempt + 1}): {e}")

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay)

        logger.error(f"EPSS API failed after {self._max_retries} attempts: {last_error}")
        return {}

    async def load_epss_scores(
        self, client: httpx.AsyncClient, cves: List[str]
    ) -> Dict[str, float]:
        """
        EPSS score per CVE id (upper-cased), using the Redis cache where
        available. CVEs the API has no data for are absent from the result.
        """
        cves = list(dict.fromkeys(c.upper() for c in cves))
        result: Dict[str, float] = {}
        missing_cves: List[str] = []

        cached_data = await cache_service.mget([CacheKeys.epss(cve) for cve in cves])
        for cve in cves:
            cached = cached_data.get(CacheKeys.epss(cve))
            if cached:
                result[cve] = EPSSData(**cached).epss_score
            else:
                missing_cves.append(cve)

        if missing_cves:
            logger.debug(
                f"Fetching EPSS data for {len(missing_cves)} CVEs ({len(cves) - len(missing_cves)} from cache)"
            )

            for i in range(0, len(missing_cves), self.BATCH_SIZE):
                batch = missing_cves[i : i + self.BATCH_SIZE]
                batch_results = await self.fetch_epss_batch(client, batch)

                cache_mapping = {}
                for cve, data in batch_results.items():
                    cache_mapping[CacheKeys.epss(cve)] = data.model_dump()
                    result[cve] = data.epss_score

                if cache_mapping:
                    await cache_service.mset(cache_mapping, CacheTTL.EPSS_SCORE)

        return result
