"""
Interceptor base class.

An interceptor can:
1. Contribute tools (write_todos, read_file, ...)
2. Contribute a section to the system prompt
3. Rewrite the run's context before each model turn (before_model)
4. Wrap every tool call (wrap_tool_call)

Interceptors keep no per-run data on themselves: everything lives in the
RunState, so one instance can serve concurrent runs.
"""

from deepresearch.agent.state import RunState
from deepresearch.agent.tools_executor import ToolCallRequest, ToolHandler
from deepresearch.tools import MCPTool, ToolResult


class Interceptor:
    """
    Base class: every hook is a pass-through.

    Example:
        class Timing(Interceptor):
            name = "timing"

            async def wrap_tool_call(self, request, handler):
                started = time.monotonic()
                result = await handler(request)
                result.metadata["seconds"] = time.monotonic() - started
                return result
    """

    name = "interceptor"

    def tools(self) -> list[MCPTool]:
        return []

    def system_prompt(self) -> str | None:
        return None

    async def before_model(self, state: RunState) -> None:
        return None

    async def wrap_tool_call(self, request: ToolCallRequest, handler: ToolHandler) -> ToolResult:
        return await handler(request)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
