"""HTTP client for a running Command Center server.

Used by the CLI to list and sync operations without a browser.
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class CommandCenterClient:
    """Thin async wrapper around the operations API."""

    def __init__(
        self,
        server_url: str,
        api_key: Optional[str] = None,
        connect_timeout: float = 10.0,
        request_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.api_key = api_key or os.environ.get("COMMAND_CENTER_API_KEY")

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        # Syncing probes every running operation, so reads get a generous budget
        timeout = httpx.Timeout(
            connect=connect_timeout,
            read=request_timeout,
            write=request_timeout,
            pool=request_timeout,
        )
        self.http_client = httpx.AsyncClient(
            base_url=self.server_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        await self.http_client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self.http_client.request(method, path, **kwargs)
        if response.status_code >= 400:
            logger.warning(f"{method} {path} failed: {response.status_code} {response.text}")
        response.raise_for_status()
        return response.json()

    async def list_operations(
        self,
        connection_id: str,
        sync_status: bool = True,
        op_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> Dict[str, Any]:
        """List a connection's operations (re-checked unless ``sync_status`` is off)."""
        params: Dict[str, Any] = {
            "connection_id": connection_id,
            "sync_status": str(sync_status).lower(),
            "limit": limit,
        }
        if op_type:
            params["type"] = op_type
        if status:
            params["status"] = status
        return await self._request("GET", "/api/dgx/operations", params=params)

    async def sync_operations(self, connection_id: str) -> Dict[str, Any]:
        """Run a status sync. Returns the checked/synced/errors summary."""
        body = await self._request(
            "POST", "/api/dgx/operations/sync", json={"connection_id": connection_id}
        )
        return body["data"]

    async def check_operation(self, operation_id: str) -> Dict[str, Any]:
        body = await self._request("POST", f"/api/dgx/operations/{operation_id}/check")
        return body["data"]

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/health")
