"""Client-side tools the peer can call back into during a turn.

A tool handler receives ``(arguments, invocation)`` and may return a string,
any JSON-serializable value, a ``ToolResult``, or a dict already in the wire
shape (recognised by its ``textResultForLlm`` key). ``normalize_tool_result``
turns any of those into a ``ToolResult``.
"""

from __future__ import annotations

import enum
import inspect
import json
import typing as t
from dataclasses import dataclass, field

ToolHandler = t.Callable[[t.Any, "ToolInvocation"], t.Any]

NO_RESULT_TEXT = "Tool returned no result"
TOOL_ERROR_TEXT = "Invoking this tool produced an error. Detailed information is not available."


class ToolResultType(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    REJECTED = "rejected"
    DENIED = "denied"


@dataclass
class ToolInvocation:
    session_id: str
    tool_call_id: str
    tool_name: str
    arguments: t.Any = None


@dataclass
class Tool:
    name: str
    description: t.Optional[str] = None
    parameters: t.Optional[t.Dict[str, t.Any]] = None
    handler: t.Optional[ToolHandler] = None

    def to_wire(self) -> t.Dict[str, t.Any]:
        out: t.Dict[str, t.Any] = {"name": self.name}
        if self.description:
            out["description"] = self.description
        if self.parameters is not None:
            out["parameters"] = self.parameters
        return out


@dataclass
class ToolResult:
    text_result_for_llm: str
    result_type: t.Union[ToolResultType, str] = ToolResultType.SUCCESS
    error: t.Optional[str] = None
    binary_results_for_llm: t.Optional[t.List[t.Dict[str, t.Any]]] = None
    session_log: t.Optional[str] = None
    tool_telemetry: t.Dict[str, t.Any] = field(default_factory=dict)
    # set when built from a wire dict, which is then re-emitted as received
    _wire: t.Optional[t.Dict[str, t.Any]] = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def success(cls, text: str, telemetry: t.Optional[t.Dict[str, t.Any]] = None) -> "ToolResult":
        return cls(text, ToolResultType.SUCCESS, tool_telemetry=telemetry or {})

    @classmethod
    def failure(
        cls, text: str, error: t.Optional[str] = None, telemetry: t.Optional[t.Dict[str, t.Any]] = None
    ) -> "ToolResult":
        return cls(text, ToolResultType.FAILURE, error=error, tool_telemetry=telemetry or {})

    @classmethod
    def rejected(cls, text: str = "The tool call was rejected.") -> "ToolResult":
        return cls(text, ToolResultType.REJECTED)

    @classmethod
    def denied(cls, text: str = "Permission to run the tool was denied.") -> "ToolResult":
        return cls(text, ToolResultType.DENIED)

    @property
    def is_success(self) -> bool:
        return self.result_type == ToolResultType.SUCCESS

    def to_wire(self) -> t.Dict[str, t.Any]:
        if self._wire is not None:
            return dict(self._wire)
        result_type = self.result_type.value if isinstance(self.result_type, ToolResultType) else self.result_type
        out: t.Dict[str, t.Any] = {"textResultForLlm": self.text_result_for_llm, "resultType": result_type}
        if self.binary_results_for_llm is not None:
            out["binaryResultsForLlm"] = self.binary_results_for_llm
        if self.error is not None:
            out["error"] = self.error
        if self.session_log is not None:
            out["sessionLog"] = self.session_log
        out["toolTelemetry"] = self.tool_telemetry
        return out

    @classmethod
    def from_wire(cls, data: t.Dict[str, t.Any]) -> "ToolResult":
        raw_type = data.get("resultType", ToolResultType.SUCCESS.value)
        try:
            result_type: t.Union[ToolResultType, str] = ToolResultType(raw_type)
        except ValueError:
            result_type = raw_type
        result = cls(
            text_result_for_llm=data.get("textResultForLlm", ""),
            result_type=result_type,
            error=data.get("error"),
            binary_results_for_llm=data.get("binaryResultsForLlm"),
            session_log=data.get("sessionLog"),
            tool_telemetry=data.get("toolTelemetry") or {},
        )
        result._wire = dict(data)
        return result


def normalize_tool_result(value: t.Any) -> ToolResult:
    if value is None:
        return ToolResult.failure(NO_RESULT_TEXT, error="tool returned no result")
    if isinstance(value, ToolResult):
        return value
    if isinstance(value, dict) and "textResultForLlm" in value:
        return ToolResult.from_wire(value)
    if isinstance(value, str):
        return ToolResult.success(value)
    return ToolResult.success(json.dumps(value))


def unsupported_tool_result(tool_name: str) -> ToolResult:
    return ToolResult.failure(
        f"Tool '{tool_name}' is not supported by this client instance.",
        error=f"tool '{tool_name}' not supported",
    )


def tool_error_result(exc: BaseException) -> ToolResult:
    return ToolResult.failure(TOOL_ERROR_TEXT, error=str(exc))


def define_tool(
    name: t.Optional[str] = None,
    *,
    description: t.Optional[str] = None,
    parameters: t.Optional[t.Dict[str, t.Any]] = None,
    handler: t.Optional[ToolHandler] = None,
) -> t.Any:
    """Build a Tool, directly or as a decorator.

    ``define_tool("echo", handler=fn)`` returns a Tool. Used as
    ``@define_tool(description=...)`` on a function, the function name and
    docstring fill in a missing name and description.
    """
    if handler is not None:
        if not name:
            raise ValueError("Tool name is required")
        return Tool(name=name, description=description, parameters=parameters, handler=handler)

    def decorator(fn: ToolHandler) -> Tool:
        return Tool(
            name=name or fn.__name__,
            description=description or inspect.getdoc(fn),
            parameters=parameters,
            handler=fn,
        )

    return decorator
