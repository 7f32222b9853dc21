"""HTTP adapter for backend API operations."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import APIError, TransportError

logger = logging.getLogger(__name__)


class HTTPAPIClient:
    """
    HTTP client adapter for API calls.

    Retries connection errors and 5xx responses a few times, then raises
    TransportError. Any other 4xx raises APIError with the status code, so
    callers can map specific codes without looking at messages.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def post(self, endpoint: str, json: Dict) -> httpx.Response:
        return await self._request("POST", endpoint, json=json)

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        return await self._request("GET", endpoint, params=params)

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")

        last_exception: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                response = await self._client.request(method, endpoint, **kwargs)
            except (httpx.RequestError, httpx.TimeoutException) as exc:
                last_exception = exc
                logger.debug(f"{method} {endpoint} attempt {attempt + 1} failed: {exc}")
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay * (attempt + 1))
                    continue
                raise TransportError(f"{method} {endpoint} failed: {exc}") from exc

            if response.status_code >= 500:
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay * (attempt + 1))
                    continue
                raise TransportError(
                    f"Server error {response.status_code} on {method} {endpoint}",
                    status_code=response.status_code,
                )

            if response.status_code >= 400:
                raise APIError(response.status_code, method, endpoint, _error_detail(response))

            return response

        raise TransportError(
            f"Failed to {method} {endpoint} after {self._max_retries} attempts: {last_exception}"
        )


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
