"""
HTTP Utilities

Shared httpx client wrapper that records external API metrics, plus the
exception raised when a call must not be silently dropped.
"""

import time
from typing import Optional

import httpx

from depextract.core.metrics import (
    external_api_duration_seconds,
    external_api_errors_total,
    external_api_requests_total,
)


class HTTPRequestError(Exception):
    """Base exception for HTTP request failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InstrumentedAsyncClient:
    """
    A wrapper around httpx.AsyncClient that automatically records metrics.

    Usage:
        async with InstrumentedAsyncClient("EPSS API", timeout=30.0) as client:
            response = await client.get(url)
    """

    def __init__(
        self,
        service_name: str,
        timeout: float = 30.0,
        **kwargs,
    ):
        self.service_name = service_name
        self._client: Optional[httpx.AsyncClient] = None
        self._timeout = timeout
        self._kwargs = kwargs

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, **self._kwargs)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "InstrumentedAsyncClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Make an HTTP request with metrics."""
        if self._client is None:
            raise RuntimeError("Client not started. Use 'async with' or call start().")

        start_time = time.time()
        external_api_requests_total.labels(service=self.service_name).inc()
        try:
            response = await self._client.request(method, url, **kwargs)
        except Exception:
            external_api_errors_total.labels(service=self.service_name).inc()
            raise
        external_api_duration_seconds.labels(service=self.service_name).observe(
            time.time() - start_time
        )
        return response

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)
