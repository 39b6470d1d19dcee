"""
JSON-RPC 2.0 client for the provider's MCP tool endpoint.

Each call is an independent POST carrying one request envelope; there is no
batching, session or retry. Failures surface as ``ToolClientError``
subclasses so callers can normalize them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

import httpx
from pydantic import ValidationError

from mcp_bridge.clients.tenant_config import TenantConfigStore
from mcp_bridge.core.config import MCPSettings, ProviderSettings
from mcp_bridge.schemas.tools import ToolDescriptor

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PARSE_ERROR = -32700
INTERNAL_ERROR = -32603


class ToolClientError(Exception):
    """Base class for transport and protocol failures of the tool endpoint."""

    kind = "tool_error"


class ToolHTTPError(ToolClientError):
    """Non-2xx response, or no response at all (``status_code`` is ``None``)."""

    kind = "tool_http_error"

    def __init__(self, status_code: Optional[int], body: str) -> None:
        detail = f"HTTP {status_code}" if status_code is not None else "connection failed"
        super().__init__(f"Tool endpoint error: {detail} {body}".strip())
        self.status_code = status_code
        self.body = body


class ToolTimeoutError(ToolClientError):
    kind = "tool_timeout"

    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(f"{method} timed out after {timeout:g} seconds")
        self.method = method
        self.timeout = timeout


class ToolRPCError(ToolClientError):
    """The response carried a JSON-RPC ``error`` member."""

    kind = "tool_rpc_error"

    def __init__(self, code: Optional[int], message: str, data: Any = None) -> None:
        super().__init__(f"{message} (code: {code})")
        self.code = code
        self.message = message
        self.data = data


class MCPToolClient:
    """Issues ``tools/list`` and ``tools/call`` against a tenant's MCP endpoint."""

    def __init__(
        self,
        provider_settings: ProviderSettings,
        mcp_settings: MCPSettings,
        tenant_configs: TenantConfigStore,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._provider = provider_settings
        self._mcp = mcp_settings
        self._tenants = tenant_configs
        self._transport = transport

    def endpoint_for(self, user_id: str) -> str:
        config = self._tenants.require(user_id)
        return self._provider.mcp_url_template.format(account_id=config.account_id)

    async def list_tools(self, user_id: str, access_token: str) -> List[ToolDescriptor]:
        """Fetch the tenant's current tool set.

        Both ``{"tools": [...]}`` and a bare list are accepted. Any other
        result shape yields an empty list.
        """
        result = await self._rpc(
            user_id=user_id,
            access_token=access_token,
            method="tools/list",
            params={},
            timeout=self._mcp.list_timeout_seconds,
        )

        if isinstance(result, dict) and isinstance(result.get("tools"), list):
            raw_tools = result["tools"]
        elif isinstance(result, list):
            raw_tools = result
        else:
            logger.warning(
                "Unexpected tools/list result structure: %s",
                type(result).__name__,
                extra={"user_id": user_id},
            )
            return []

        descriptors: List[ToolDescriptor] = []
        for item in raw_tools:
            try:
                descriptors.append(ToolDescriptor.model_validate(item))
            except ValidationError:
                logger.warning(
                    "Skipping malformed tool descriptor", extra={"user_id": user_id}
                )
        logger.info(
            "Fetched %d provider tools", len(descriptors), extra={"user_id": user_id}
        )
        return descriptors

    async def call_tool(
        self,
        user_id: str,
        access_token: str,
        name: str,
        arguments: Dict[str, Any],
    ) -> Any:
        """Invoke ``name`` with ``arguments`` and return the JSON-RPC result."""
        logger.info("Calling provider tool %s", name, extra={"user_id": user_id})
        return await self._rpc(
            user_id=user_id,
            access_token=access_token,
            method="tools/call",
            params={"name": name, "arguments": arguments},
            timeout=self._mcp.call_timeout_seconds,
        )

    async def _rpc(
        self,
        *,
        user_id: str,
        access_token: str,
        method: str,
        params: Dict[str, Any],
        timeout: float,
    ) -> Any:
        url = self.endpoint_for(user_id)
        request_id = uuid4().hex
        envelope = {
            "jsonrpc": JSONRPC_VERSION,
            "id": request_id,
            "method": method,
            "params": params,
        }

        try:
            response = await asyncio.wait_for(
                self._post(url, access_token, envelope, timeout), timeout=timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("%s timed out", method, extra={"user_id": user_id})
            raise ToolTimeoutError(method, timeout) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("%s request failed: %s", method, exc, extra={"user_id": user_id})
            raise ToolHTTPError(None, str(exc)) from exc

        if not response.is_success:
            logger.error(
                "%s failed with HTTP %s",
                method,
                response.status_code,
                extra={"user_id": user_id},
            )
            raise ToolHTTPError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ToolRPCError(PARSE_ERROR, "Parse error: response is not JSON") from exc
        if not isinstance(payload, dict):
            raise ToolRPCError(INTERNAL_ERROR, "Response is not a JSON-RPC object")

        if payload.get("id") not in (None, request_id):
            logger.warning("JSON-RPC response id does not match request id for %s", method)

        error = payload.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise ToolRPCError(
                    error.get("code"),
                    str(error.get("message") or "Unknown JSON-RPC error"),
                    error.get("data"),
                )
            raise ToolRPCError(INTERNAL_ERROR, str(error))

        return payload.get("result")

    async def _post(
        self, url: str, access_token: str, envelope: Dict[str, Any], timeout: float
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            return await client.post(
                url,
                json=envelope,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )


__all__ = [
    "MCPToolClient",
    "ToolClientError",
    "ToolHTTPError",
    "ToolRPCError",
    "ToolTimeoutError",
]
