"""
Tools System
============

Tools are capabilities the model can call. They follow the Model Context
Protocol (MCP) shape: a name, a description and a JSON Schema for the
parameters, plus an async function that runs the tool.

Two kinds of tools exist:
1. Plain tools (search_web) receive only their parameters.
2. Contextual tools (filesystem, todo, shell, task) also receive the
   ToolCallRequest, which gives them the RunState of the calling run.
   They are contributed by interceptors, hooks and the sub-agent dispatcher.

How a tool call flows:
1. The model requests a tool call
2. Hooks gate it (limit, sandbox, approval)
3. The interceptor chain wraps the execution
4. The tool runs and returns a ToolResult
5. The result becomes a tool message in the conversation

This module provides:
- MCPTool for defining tools
- ToolResult for standardized results
- ToolRegistry for looking tools up by name
"""

import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from deepresearch.utils.logger import Logger

logger = Logger("Tools")


# Result kinds recorded on tool messages for auditability
RESULT_OK = "ok"
RESULT_FAILURE = "failure"
RESULT_SCHEMA = "schema_error"
RESULT_POLICY = "policy_violation"
RESULT_DENIED = "denied"
RESULT_LIMIT = "limit_reached"
RESULT_CANCELLED = "cancelled"


@dataclass
class ToolResult:
    """
    Standardized result from tool execution.

    Attributes:
        success: Whether the tool executed successfully
        data: The result data (varies by tool)
        error: Error message if success is False
        kind: One of the RESULT_* constants
        metadata: Extra facts about the result (eviction path, attempts)
    """
    success: bool
    data: Any = None
    error: str | None = None
    kind: str = RESULT_OK
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any, **metadata: Any) -> "ToolResult":
        return cls(success=True, data=data, metadata=dict(metadata))

    @classmethod
    def failure(cls, error: str, **metadata: Any) -> "ToolResult":
        return cls(success=False, error=error, kind=RESULT_FAILURE, metadata=dict(metadata))

    @classmethod
    def schema_error(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error, kind=RESULT_SCHEMA)

    @classmethod
    def policy_violation(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error, kind=RESULT_POLICY)

    @classmethod
    def denied(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error, kind=RESULT_DENIED)

    @classmethod
    def limit_reached(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error, kind=RESULT_LIMIT)

    @classmethod
    def cancelled(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error, kind=RESULT_CANCELLED)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "kind": self.kind,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolResult":
        return cls(
            success=data["success"],
            data=data.get("data"),
            error=data.get("error"),
            kind=data.get("kind", RESULT_OK),
            metadata=data.get("metadata") or {},
        )

    def to_message(self) -> str:
        """Format as a message for the LLM."""
        if self.success:
            if isinstance(self.data, str):
                return self.data
            return json.dumps(self.data, default=str, ensure_ascii=False)
        return f"Error: {self.error}"


@dataclass(frozen=True)
class MCPTool:
    """
    Definition of a tool following the MCP pattern.

    Attributes:
        name: Unique identifier for the tool
        description: What the tool does (shown to the model)
        parameters: JSON Schema for the parameters
        execute: Async function that runs the tool. Plain tools are called
            as execute(params); contextual tools as execute(params, request).
        contextual: Whether execute expects the ToolCallRequest
        tags: Free-form labels, e.g. "filesystem" or "shell"

    Example:
        async def _search(params: dict) -> ToolResult:
            return ToolResult.ok([{"title": "...", "url": "..."}])

        tool = MCPTool(
            name="search_web",
            description="Search the web",
            parameters={
                "type": "object",
                "properties": {"query": {"type": "string"}},
                "required": ["query"]
            },
            execute=_search
        )
    """
    name: str
    description: str
    parameters: dict
    execute: Callable[..., Awaitable[ToolResult]]
    contextual: bool = False
    tags: frozenset[str] = frozenset()

    def to_openai_function(self) -> dict:
        """Convert to the OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters
            }
        }


class ToolRegistry:
    """
    Registry of available tools, keyed by name.

    A registry is built once at startup and then only read, so the same
    instance can be shared by concurrent runs. Sub-agents get a subset()
    and orchestrators add their own contributed tools with extended().

    Example:
        registry = ToolRegistry([search_tool])
        registry.get("search_web")
        registry.get_openai_functions()
    """

    def __init__(self, tools: list[MCPTool] | None = None):
        self._tools: dict[str, MCPTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: MCPTool) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If a tool with this name already exists
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")

        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> MCPTool | None:
        return self._tools.get(name)

    def get_all(self) -> list[MCPTool]:
        return list(self._tools.values())

    def get_openai_functions(self) -> list[dict]:
        """All tools in OpenAI function format, in registration order."""
        return [tool.to_openai_function() for tool in self._tools.values()]

    def list_names(self) -> list[str]:
        return list(self._tools.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def subset(self, names: list[str] | tuple[str, ...]) -> "ToolRegistry":
        """
        A new registry with only the named tools.

        Raises:
            KeyError: If a name is not registered
        """
        missing = [name for name in names if name not in self._tools]
        if missing:
            raise KeyError(f"Unknown tool(s): {', '.join(missing)}")
        return ToolRegistry([self._tools[name] for name in names])

    def extended(self, tools: list[MCPTool]) -> "ToolRegistry":
        """A new registry with these tools followed by the given ones."""
        return ToolRegistry(self.get_all() + list(tools))


__all__ = [
    "MCPTool",
    "ToolResult",
    "ToolRegistry",
    "RESULT_OK",
    "RESULT_FAILURE",
    "RESULT_SCHEMA",
    "RESULT_POLICY",
    "RESULT_DENIED",
    "RESULT_LIMIT",
    "RESULT_CANCELLED",
]
