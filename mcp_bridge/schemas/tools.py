"""Schemas for provider tool discovery and invocation."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ToolDescriptor(BaseModel):
    """A server-advertised tool as returned by ``tools/list``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> Any:
        return value or ""

    @field_validator("input_schema", mode="before")
    @classmethod
    def _coerce_schema(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class ToolSummary(BaseModel):
    """Descriptor plus the identifier-safe key used by orchestration."""

    key: str
    name: str
    description: str
    input_schema: Dict[str, Any]


class ToolInvocationError(BaseModel):
    kind: str = Field(..., description="Stable failure category, e.g. 'tool_timeout'.")
    message: str
    status_code: Optional[int] = None
    code: Optional[Union[int, str]] = None
    details: Optional[List[str]] = None


class ToolInvocationResult(BaseModel):
    """Uniform outcome of a tool invocation; failures never raise."""

    success: bool
    result: Any = None
    error: Optional[ToolInvocationError] = None

    @classmethod
    def ok(cls, result: Any) -> "ToolInvocationResult":
        return cls(success=True, result=result)

    @classmethod
    def failed(cls, kind: str, message: str, **extra: Any) -> "ToolInvocationResult":
        return cls(success=False, error=ToolInvocationError(kind=kind, message=message, **extra))


class ToolInvocationRequest(BaseModel):
    arguments: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "ToolDescriptor",
    "ToolInvocationError",
    "ToolInvocationRequest",
    "ToolInvocationResult",
    "ToolSummary",
]
