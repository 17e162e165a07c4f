"""
Service-to-service HTTP client

Thin wrapper over httpx.AsyncClient used by the orders service (and the
products service for token verification) to reach its peers.

- Every call is bounded by a timeout; httpx timeouts become
  CollaboratorTimeoutError
- Connection failures and unexpected 5xx become ServiceUnavailableError
- The transport is injectable (httpx.ASGITransport / httpx.MockTransport)
- X-Internal-Token is sent when configured
- The X-Request-ID of the request being served, if any, is forwarded
"""
import logging
from typing import Any, Dict, Optional

import httpx

from storefront.core.exceptions import CollaboratorTimeoutError, ServiceUnavailableError
from storefront.core.request_logging import current_request_id

logger = logging.getLogger(__name__)


class ServiceClient:
    """
    Usage:
        async with ServiceClient("http://localhost:8080", timeout=5.0) as client:
            response = await client.get("/products/1")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        internal_token: Optional[str] = None,
        service_name: str = "service",
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.service_name = service_name
        self._transport = transport
        self._headers = {"Accept": "application/json"}
        if internal_token:
            self._headers["X-Internal-Token"] = internal_token
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def init(self):
        """Initialize client without context manager. Must call close() when done."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers,
                transport=self._transport,
            )
        return self

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        if self._client is None:
            await self.init()
        operation = f"{self.service_name} {method} {path}"
        request_id = current_request_id.get()
        if request_id and not (headers and "X-Request-ID" in headers):
            headers = {**(headers or {}), "X-Request-ID": request_id}
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.warning("Timeout calling %s after %.1fs", operation, self.timeout)
            raise CollaboratorTimeoutError(operation, self.timeout) from e
        except httpx.TransportError as e:
            logger.error("Transport error calling %s: %s", operation, e)
            raise ServiceUnavailableError(
                f"{self.service_name} service is unreachable",
                details={"operation": operation},
            ) from e

        if response.status_code >= 500:
            logger.error("%s answered %d", operation, response.status_code)
            raise ServiceUnavailableError(
                f"{self.service_name} service failed",
                details={"operation": operation, "status": response.status_code},
            )
        return response

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("POST", path, **kwargs)


def error_payload(response: httpx.Response) -> Dict[str, Any]:
    """Parse an error envelope from a peer, tolerating non-JSON bodies."""
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    return body if isinstance(body, dict) else {"message": str(body)}
