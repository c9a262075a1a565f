"""
Dependency population callback.

Newly discovered direct dependencies are handed to the backend, which queues
metadata population for them.
"""

import logging
from typing import List, Optional

import httpx

from depextract.core.config import settings
from depextract.core.constants import ENRICHMENT_TIMEOUTS
from depextract.core.http_utils import HTTPRequestError, InstrumentedAsyncClient
from depextract.services.reconciler import NewDependency

logger = logging.getLogger(__name__)

QUEUE_POPULATE_PATH = "/api/workers/queue-populate"


class PopulateClient:
    def __init__(
        self,
        backend_url: Optional[str] = None,
        worker_secret: Optional[str] = None,
        timeout: float = ENRICHMENT_TIMEOUTS["populate"],
    ):
        self.backend_url = (backend_url if backend_url is not None else settings.BACKEND_URL).rstrip("/")
        self.worker_secret = worker_secret if worker_secret is not None else settings.EXTRACTION_WORKER_SECRET
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{self.backend_url}{QUEUE_POPULATE_PATH}"

    def build_payload(
        self,
        project_id: str,
        organization_id: str,
        ecosystem: str,
        dependencies: List[NewDependency],
    ) -> dict:
        return {
            "projectId": project_id,
            "organizationId": organization_id,
            "ecosystem": ecosystem,
            "dependencies": [
                {"dependencyId": d.dependency_id, "name": d.name, "ecosystem": ecosystem}
                for d in dependencies
            ],
        }

    async def queue_populate(
        self,
        project_id: str,
        organization_id: str,
        ecosystem: str,
        dependencies: List[NewDependency],
    ) -> None:
        """
        POST the new dependencies to the backend.

        Raises HTTPRequestError on a non-2xx answer or a transport failure.
        """
        if not dependencies:
            return

        headers = {"Content-Type": "application/json"}
        if self.worker_secret:
            headers["X-Worker-Secret"] = self.worker_secret
        payload = self.build_payload(project_id, organization_id, ecosystem, dependencies)

        try:
            async with InstrumentedAsyncClient("Backend queue-populate", timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise HTTPRequestError(f"Timeout calling {self.endpoint}") from e
        except httpx.ConnectError as e:
            raise HTTPRequestError(f"Connection error calling {self.endpoint}: {e}") from e

        if not response.is_success:
            raise HTTPRequestError(
                f"Populate request failed with {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        logger.debug(f"Queued population for {len(dependencies)} dependencies of project {project_id}")
