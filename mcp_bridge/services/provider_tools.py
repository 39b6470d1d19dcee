"""Collaborator-facing API consumed by the chat orchestration layer."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from mcp_bridge.schemas.auth import ConnectionStatus
from mcp_bridge.schemas.tools import ToolDescriptor, ToolInvocationResult, ToolSummary
from mcp_bridge.services.provider_tokens import ProviderTokenService
from mcp_bridge.services.tool_registry import (
    DynamicToolRegistry,
    InvocableTool,
    sanitize_tool_name,
)


class ProviderToolService:
    """Entry point for orchestration: tokens, discovery, invocation, disconnect."""

    def __init__(
        self, token_service: ProviderTokenService, registry: DynamicToolRegistry
    ) -> None:
        self._tokens = token_service
        self._registry = registry

    async def get_valid_access_token(self, user_id: str) -> Optional[str]:
        return await self._tokens.get_valid_access_token(user_id)

    async def discover_tools(self, user_id: str) -> List[ToolDescriptor]:
        return await self._registry.discover_tools(user_id)

    async def list_tool_summaries(self, user_id: str) -> List[ToolSummary]:
        return [
            ToolSummary(
                key=sanitize_tool_name(descriptor.name),
                name=descriptor.name,
                description=descriptor.description,
                input_schema=descriptor.input_schema,
            )
            for descriptor in await self.discover_tools(user_id)
        ]

    async def build_tools(self, user_id: str) -> Dict[str, InvocableTool]:
        return await self._registry.build_tools(user_id)

    async def invoke(
        self,
        user_id: str,
        tool_name: str,
        arguments: Optional[Mapping[str, Any]] = None,
    ) -> ToolInvocationResult:
        return await self._registry.invoke(user_id, tool_name, arguments)

    def disconnect(self, user_id: str) -> bool:
        return self._tokens.disconnect(user_id)

    async def status(self, user_id: str) -> ConnectionStatus:
        """Connection flag, current tool count and token expiry."""
        access_token = await self._tokens.get_valid_access_token(user_id)
        if access_token is None:
            return ConnectionStatus(connected=False)
        tools = await self._registry.discover_tools(user_id)
        return ConnectionStatus(
            connected=True,
            tool_count=len(tools),
            expires_at=self._tokens.describe(user_id).get("expires_at"),
        )


__all__ = ["ProviderToolService"]
