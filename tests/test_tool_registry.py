from __future__ import annotations

import pytest

from mcp_bridge.clients.mcp_rpc import ToolHTTPError, ToolRPCError, ToolTimeoutError
from mcp_bridge.clients.tenant_config import ConfigurationMissingError
from mcp_bridge.schemas.tools import ToolDescriptor
from mcp_bridge.services.tool_registry import (
    DynamicToolRegistry,
    ParameterKind,
    ParameterValidator,
    ToolArgumentsError,
    sanitize_tool_name,
)


class StubTokenService:
    def __init__(self, token: str | None = "access-1") -> None:
        self.token = token

    async def get_valid_access_token(self, user_id: str) -> str | None:
        return self.token


class FakeToolClient:
    def __init__(self, tools: list[dict], *, outcome=None, list_error: Exception | None = None) -> None:
        self.tools = [ToolDescriptor.model_validate(tool) for tool in tools]
        self.outcome = outcome if outcome is not None else {"rows": []}
        self.list_error = list_error
        self.list_calls = 0
        self.calls: list[tuple[str, dict]] = []

    async def list_tools(self, user_id: str, access_token: str) -> list[ToolDescriptor]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.tools)

    async def call_tool(self, user_id: str, access_token: str, name: str, arguments: dict):
        self.calls.append((name, arguments))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


SUITEQL = {
    "name": "ns.run Custom-SuiteQL",
    "description": "Run a SuiteQL query",
    "inputSchema": {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "SuiteQL text"},
            "limit": {"type": "integer"},
            "dry_run": {"type": "boolean"},
        },
        "required": ["query"],
    },
}


def _registry(client: FakeToolClient, token: str | None = "access-1") -> DynamicToolRegistry:
    return DynamicToolRegistry(StubTokenService(token), client)


def test_sanitize_tool_name() -> None:
    assert sanitize_tool_name("ns.run Custom-SuiteQL") == "ns_run_Custom_SuiteQL"
    assert sanitize_tool_name("already_safe_1") == "already_safe_1"


@pytest.mark.asyncio
async def test_tools_are_keyed_by_sanitized_name_but_called_by_original() -> None:
    client = FakeToolClient([SUITEQL])
    registry = _registry(client)

    tools = await registry.build_tools("user-1")

    assert list(tools) == ["ns_run_Custom_SuiteQL"]
    tool = tools["ns_run_Custom_SuiteQL"]
    assert tool.name == "ns.run Custom-SuiteQL"
    assert tool.description == "Run a SuiteQL query"

    result = await tool.invoke({"query": "SELECT id FROM customer"})

    assert result.success is True
    assert result.result == {"rows": []}
    assert client.calls == [("ns.run Custom-SuiteQL", {"query": "SELECT id FROM customer"})]


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["ns.run Custom-SuiteQL", "ns_run_Custom_SuiteQL"])
async def test_invoke_by_original_name_or_key(name: str) -> None:
    client = FakeToolClient([SUITEQL])

    result = await _registry(client).invoke("user-1", name, {"query": "SELECT 1"})

    assert result.success is True
    assert client.calls[0][0] == "ns.run Custom-SuiteQL"


@pytest.mark.asyncio
async def test_invoke_unknown_tool() -> None:
    result = await _registry(FakeToolClient([SUITEQL])).invoke("user-1", "missing", {})

    assert result.success is False
    assert result.error.kind == "unknown_tool"


@pytest.mark.asyncio
async def test_invoke_without_token_requires_authentication() -> None:
    client = FakeToolClient([SUITEQL])

    result = await _registry(client, token=None).invoke("user-1", "ns_run_Custom_SuiteQL", {})

    assert result.success is False
    assert result.error.kind == "authentication_required"
    assert client.list_calls == 0
    assert client.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "arguments",
    [
        {},
        {"query": None},
        {"query": 42},
        {"query": "SELECT 1", "limit": "10"},
        {"query": "SELECT 1", "limit": True},
        {"query": "SELECT 1", "limit": 2.5},
        {"query": "SELECT 1", "dry_run": "yes"},
    ],
)
async def test_invalid_arguments_are_rejected_locally(arguments: dict) -> None:
    client = FakeToolClient([SUITEQL])
    tools = await _registry(client).build_tools("user-1")

    result = await tools["ns_run_Custom_SuiteQL"].invoke(arguments)

    assert result.success is False
    assert result.error.kind == "invalid_arguments"
    assert result.error.details
    assert client.calls == []


@pytest.mark.asyncio
async def test_undeclared_arguments_are_dropped_and_integral_floats_accepted() -> None:
    client = FakeToolClient([SUITEQL])
    tools = await _registry(client).build_tools("user-1")

    result = await tools["ns_run_Custom_SuiteQL"].invoke(
        {"query": "SELECT 1", "limit": 10.0, "dry_run": None, "extra": "ignored"}
    )

    assert result.success is True
    assert client.calls == [("ns.run Custom-SuiteQL", {"query": "SELECT 1", "limit": 10.0})]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("outcome", "kind"),
    [
        (ToolTimeoutError("tools/call", 30), "tool_timeout"),
        (ToolHTTPError(503, "unavailable"), "tool_http_error"),
        (ToolRPCError(-32602, "Invalid params"), "tool_rpc_error"),
        (ConfigurationMissingError("user-1"), "configuration_missing"),
        (RuntimeError("boom"), "unexpected_error"),
    ],
)
async def test_client_failures_become_failed_results(outcome: Exception, kind: str) -> None:
    client = FakeToolClient([SUITEQL], outcome=outcome)

    result = await _registry(client).invoke("user-1", "ns_run_Custom_SuiteQL", {"query": "q"})

    assert result.success is False
    assert result.error.kind == kind


@pytest.mark.asyncio
async def test_failed_result_carries_status_and_rpc_code() -> None:
    http_result = await _registry(
        FakeToolClient([SUITEQL], outcome=ToolHTTPError(401, "expired"))
    ).invoke("user-1", "ns_run_Custom_SuiteQL", {"query": "q"})
    rpc_result = await _registry(
        FakeToolClient([SUITEQL], outcome=ToolRPCError(-32000, "Record not found"))
    ).invoke("user-1", "ns_run_Custom_SuiteQL", {"query": "q"})

    assert http_result.error.status_code == 401
    assert rpc_result.error.code == -32000
    assert rpc_result.error.message == "Record not found"


@pytest.mark.asyncio
async def test_discovery_failure_yields_no_tools() -> None:
    client = FakeToolClient([SUITEQL], list_error=ToolHTTPError(500, "down"))

    assert await _registry(client).discover_tools("user-1") == []
    assert await _registry(client).build_tools("user-1") == {}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("list_error", "kind"),
    [
        (ToolTimeoutError("tools/list", 15), "tool_timeout"),
        (ToolHTTPError(401, "expired"), "tool_http_error"),
        (ToolRPCError(-32603, "Internal error"), "tool_rpc_error"),
        (ConfigurationMissingError("user-1"), "configuration_missing"),
    ],
)
async def test_invoke_reports_discovery_failure_instead_of_unknown_tool(
    list_error: Exception, kind: str
) -> None:
    client = FakeToolClient([SUITEQL], list_error=list_error)

    result = await _registry(client).invoke("user-1", "ns.run Custom-SuiteQL", {"query": "q"})

    assert result.success is False
    assert result.error.kind == kind
    assert client.calls == []


class FailingTokenService:
    async def get_valid_access_token(self, user_id: str) -> str | None:
        raise RuntimeError("token store unavailable")


@pytest.mark.asyncio
async def test_invoke_normalizes_token_lookup_failure() -> None:
    client = FakeToolClient([SUITEQL])
    registry = DynamicToolRegistry(FailingTokenService(), client)

    result = await registry.invoke("user-1", "ns.run Custom-SuiteQL", {"query": "q"})

    assert result.success is False
    assert result.error.kind == "unexpected_error"
    assert client.list_calls == 0


@pytest.mark.asyncio
async def test_key_collision_keeps_first_tool() -> None:
    client = FakeToolClient(
        [{"name": "ns.lookup", "description": "first"}, {"name": "ns-lookup", "description": "second"}]
    )

    tools = await _registry(client).build_tools("user-1")

    assert list(tools) == ["ns_lookup"]
    assert tools["ns_lookup"].description == "first"


def test_validator_reads_bare_property_map_with_required_flags() -> None:
    validator = ParameterValidator.from_schema(
        {
            "recordType": {"type": "string", "required": True},
            "id": {"type": "number"},
            "payload": {"type": "object"},
            "tags": {"type": "array"},
            "anything": {},
        }
    )

    kinds = {spec.name: spec.kind for spec in validator.specs}
    assert kinds == {
        "recordType": ParameterKind.STRING,
        "id": ParameterKind.NUMBER,
        "payload": ParameterKind.OBJECT,
        "tags": ParameterKind.ARRAY,
        "anything": ParameterKind.ANY,
    }
    assert validator.validate({"recordType": "customer", "anything": [1]}) == {
        "recordType": "customer",
        "anything": [1],
    }
    with pytest.raises(ToolArgumentsError):
        validator.validate({"id": 1})


def test_validator_rejects_non_mapping_arguments() -> None:
    validator = ParameterValidator.from_schema({})

    with pytest.raises(ToolArgumentsError):
        validator.validate(["not", "a", "mapping"])  # type: ignore[arg-type]
    assert validator.validate(None) == {}
