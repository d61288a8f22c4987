from typing import Any, Literal

from pydantic import BaseModel, Field


class ToolInvocation(BaseModel):
    """A request from the model to run a tool."""

    call_id: str = Field(description="The identifier the provider uses to correlate the result with the call.")
    tool_name: str = Field(description="The name of the tool to run.")
    arguments: dict[str, Any] = Field(default_factory=dict, description="The arguments for the tool, as sent by the model.")

    @staticmethod
    def fallback_call_id(tool_name: str, index: int) -> str:
        """A stable identifier for providers that do not assign one to each call."""
        return f"{tool_name}-{index}"


class ToolResult(BaseModel):
    """The outcome of running a tool: any JSON value, or an object with an `error` key."""

    invocation: ToolInvocation
    payload: Any  # pyright: ignore[reportAny]

    @property
    def is_error(self) -> bool:
        return isinstance(self.payload, dict) and "error" in self.payload

    def as_struct(self) -> dict[str, Any]:
        """The payload as an object, for providers that only accept objects as tool results."""

        if isinstance(self.payload, dict):
            return self.payload  # pyright: ignore[reportUnknownVariableType]

        if isinstance(self.payload, list):
            return {"items": self.payload}

        return {"value": self.payload}


class AuditEntry(BaseModel):
    """A record of a tool call made during an analysis."""

    name: str
    args: dict[str, Any]
    result: Literal["success"] | dict[str, Any] = Field(description="`success`, or the error payload of the tool.")

    @classmethod
    def from_tool_result(cls, tool_result: ToolResult) -> "AuditEntry":
        return cls(
            name=tool_result.invocation.tool_name,
            args=tool_result.invocation.arguments,
            result=tool_result.payload if tool_result.is_error else "success",  # pyright: ignore[reportAny]
        )
