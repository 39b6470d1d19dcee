"""
Dynamic registry turning provider tool descriptors into invocable tools.

Tool schemas are only known at runtime, so every declared property becomes a
tagged ``ParameterSpec`` and a generic validator checks arguments against the
tag set. The registry is rebuilt on every discovery call; nothing is cached
between calls because the provider can change its tool set at any time.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from mcp_bridge.clients.mcp_rpc import (
    MCPToolClient,
    ToolClientError,
    ToolHTTPError,
    ToolRPCError,
)
from mcp_bridge.clients.tenant_config import ConfigurationMissingError
from mcp_bridge.schemas.tools import ToolDescriptor, ToolInvocationResult
from mcp_bridge.services.provider_tokens import ProviderTokenService

logger = logging.getLogger(__name__)

_INVALID_KEY_CHARS = re.compile(r"[^A-Za-z0-9_]")


def sanitize_tool_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_]`` with ``_``."""
    return _INVALID_KEY_CHARS.sub("_", name)


class AuthenticationRequiredError(Exception):
    """No valid provider token is available for the user."""

    kind = "authentication_required"

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "Provider authentication required. Connect your provider account first."
        )
        self.user_id = user_id


class ToolArgumentsError(ValueError):
    """Arguments failed local validation against the tool's schema."""

    kind = "invalid_arguments"

    def __init__(self, problems: List[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


class ParameterKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    ANY = "any"

    @classmethod
    def from_declared(cls, declared: Any) -> "ParameterKind":
        """Map a schema ``type``; unknown or absent types become ``ANY``."""
        if isinstance(declared, str):
            try:
                return cls(declared.lower())
            except ValueError:
                return cls.ANY
        return cls.ANY


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


_KIND_CHECKS: Dict[ParameterKind, Callable[[Any], bool]] = {
    ParameterKind.STRING: lambda value: isinstance(value, str),
    ParameterKind.NUMBER: _is_number,
    ParameterKind.INTEGER: _is_integer,
    ParameterKind.BOOLEAN: lambda value: isinstance(value, bool),
    ParameterKind.ARRAY: lambda value: isinstance(value, list),
    ParameterKind.OBJECT: lambda value: isinstance(value, dict),
    ParameterKind.ANY: lambda value: True,
}


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    kind: ParameterKind
    required: bool = False
    description: str = ""

    def accepts(self, value: Any) -> bool:
        return _KIND_CHECKS[self.kind](value)


class ParameterValidator:
    """Validates an argument mapping against a list of ``ParameterSpec``."""

    def __init__(self, specs: List[ParameterSpec]) -> None:
        self.specs = specs

    @classmethod
    def from_schema(cls, input_schema: Mapping[str, Any]) -> "ParameterValidator":
        """Build specs from either a JSON-Schema object or a bare property map.

        Required-ness comes from the schema-level ``required`` list or a
        per-property ``required: true`` flag.
        """
        properties = input_schema.get("properties")
        if not isinstance(properties, Mapping):
            properties = {
                name: prop
                for name, prop in input_schema.items()
                if isinstance(prop, Mapping)
            }

        required_list = input_schema.get("required")
        required_names = (
            {str(name) for name in required_list}
            if isinstance(required_list, list)
            else set()
        )

        specs = []
        for name, prop in properties.items():
            prop = prop if isinstance(prop, Mapping) else {}
            specs.append(
                ParameterSpec(
                    name=str(name),
                    kind=ParameterKind.from_declared(prop.get("type")),
                    required=str(name) in required_names or prop.get("required") is True,
                    description=str(prop.get("description") or ""),
                )
            )
        return cls(specs)

    def validate(self, arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Return the declared arguments or raise ``ToolArgumentsError``.

        Arguments not declared by the schema are dropped. Optional arguments
        passed as ``None`` are treated as omitted.
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise ToolArgumentsError(["arguments must be an object"])

        problems: List[str] = []
        cleaned: Dict[str, Any] = {}
        for spec in self.specs:
            value = arguments.get(spec.name)
            if value is None:
                if spec.required:
                    problems.append(f"missing required argument '{spec.name}'")
                continue
            if not spec.accepts(value):
                problems.append(
                    f"argument '{spec.name}' must be of type {spec.kind.value}, "
                    f"got {type(value).__name__}"
                )
                continue
            cleaned[spec.name] = value

        if problems:
            raise ToolArgumentsError(problems)
        return cleaned


@dataclass
class InvocableTool:
    """A discovered tool bound to one user's credentials."""

    key: str
    descriptor: ToolDescriptor
    validator: ParameterValidator
    _invoke: Callable[[Optional[Mapping[str, Any]]], Awaitable[ToolInvocationResult]] = field(
        repr=False
    )

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def description(self) -> str:
        return self.descriptor.description

    async def invoke(self, arguments: Optional[Mapping[str, Any]] = None) -> ToolInvocationResult:
        return await self._invoke(arguments)


class DynamicToolRegistry:
    """Discovers provider tools and builds invocables for a user."""

    def __init__(
        self, token_service: ProviderTokenService, tool_client: MCPToolClient
    ) -> None:
        self._tokens = token_service
        self._client = tool_client

    async def discover_tools(self, user_id: str) -> List[ToolDescriptor]:
        """Return the user's current tool descriptors; ``[]`` when unavailable."""
        access_token = await self._tokens.get_valid_access_token(user_id)
        if access_token is None:
            logger.info("No provider token; skipping tool discovery", extra={"user_id": user_id})
            return []
        try:
            return await self._client.list_tools(user_id, access_token)
        except (ToolClientError, ConfigurationMissingError) as exc:
            logger.error("Tool discovery failed: %s", exc, extra={"user_id": user_id})
            return []

    async def build_tools(self, user_id: str) -> Dict[str, InvocableTool]:
        descriptors = await self.discover_tools(user_id)
        return self.build_invocables(user_id, descriptors)

    def build_invocables(
        self, user_id: str, descriptors: List[ToolDescriptor]
    ) -> Dict[str, InvocableTool]:
        """Key each descriptor by its sanitized name.

        When two names sanitize to the same key the first descriptor wins and
        later ones are dropped with a warning. This is the reverse of a plain
        dict merge, where the last descriptor would win.
        """
        tools: Dict[str, InvocableTool] = {}
        for descriptor in descriptors:
            key = sanitize_tool_name(descriptor.name)
            if key in tools:
                logger.warning(
                    "Tool %s collides with %s on key %s; keeping the first",
                    descriptor.name,
                    tools[key].name,
                    key,
                )
                continue
            tools[key] = self._bind(user_id, key, descriptor)
        return tools

    def _bind(self, user_id: str, key: str, descriptor: ToolDescriptor) -> InvocableTool:
        validator = ParameterValidator.from_schema(descriptor.input_schema)

        async def invoke(arguments: Optional[Mapping[str, Any]]) -> ToolInvocationResult:
            return await self._invoke(user_id, descriptor.name, validator, arguments)

        return InvocableTool(
            key=key, descriptor=descriptor, validator=validator, _invoke=invoke
        )

    async def invoke(
        self,
        user_id: str,
        tool_name: str,
        arguments: Optional[Mapping[str, Any]] = None,
    ) -> ToolInvocationResult:
        """Discover the user's tools and invoke one by original name or key.

        A failed ``tools/list`` is reported with its own failure kind, so
        ``unknown_tool`` only means the provider really lacks the tool.
        """
        listing = await self._with_token(
            user_id,
            "tools/list",
            lambda access_token: self._client.list_tools(user_id, access_token),
        )
        if not listing.success:
            return listing

        tools = self.build_invocables(user_id, listing.result)
        tool = next(
            (item for item in tools.values() if item.name == tool_name),
            tools.get(tool_name),
        )
        if tool is None:
            return ToolInvocationResult.failed(
                "unknown_tool", f"Tool '{tool_name}' is not offered by the provider."
            )
        return await tool.invoke(arguments)

    async def _invoke(
        self,
        user_id: str,
        tool_name: str,
        validator: ParameterValidator,
        arguments: Optional[Mapping[str, Any]],
    ) -> ToolInvocationResult:
        try:
            cleaned = validator.validate(arguments)
        except ToolArgumentsError as exc:
            return ToolInvocationResult.failed(exc.kind, str(exc), details=exc.problems)

        outcome = await self._with_token(
            user_id,
            tool_name,
            lambda access_token: self._client.call_tool(
                user_id, access_token, tool_name, cleaned
            ),
        )
        if outcome.success:
            logger.info("Provider tool %s succeeded", tool_name, extra={"user_id": user_id})
        return outcome

    async def _with_token(
        self,
        user_id: str,
        operation: str,
        call: Callable[[str], Awaitable[Any]],
    ) -> ToolInvocationResult:
        """Run ``call`` with a valid access token and normalize its failures."""
        try:
            access_token = await self._tokens.get_valid_access_token(user_id)
            if access_token is None:
                raise AuthenticationRequiredError(user_id)
            result = await call(access_token)
        except AuthenticationRequiredError as exc:
            return ToolInvocationResult.failed(exc.kind, str(exc))
        except ConfigurationMissingError as exc:
            return ToolInvocationResult.failed(exc.error_code, str(exc))
        except ToolHTTPError as exc:
            return ToolInvocationResult.failed(exc.kind, str(exc), status_code=exc.status_code)
        except ToolRPCError as exc:
            return ToolInvocationResult.failed(exc.kind, exc.message, code=exc.code)
        except ToolClientError as exc:
            return ToolInvocationResult.failed(exc.kind, str(exc))
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected failure in %s", operation, extra={"user_id": user_id})
            return ToolInvocationResult.failed("unexpected_error", str(exc))
        return ToolInvocationResult.ok(result)


__all__ = [
    "AuthenticationRequiredError",
    "DynamicToolRegistry",
    "InvocableTool",
    "ParameterKind",
    "ParameterSpec",
    "ParameterValidator",
    "ToolArgumentsError",
    "sanitize_tool_name",
]
