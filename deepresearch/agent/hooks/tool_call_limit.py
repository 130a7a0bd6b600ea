"""
Tool Call Limit
===============

Hard cap on tool calls per run.

- before_tool_call: once run_limit calls were admitted, further calls are
  rejected with a limit_reached tool message
- after_tool_call: the call that reaches the limit ends the run, so no
  further model turn happens
- before_model: a resumed run that is already at the limit ends at once

Reaching the limit is a normal outcome (RunResult with termination reason
limit_reached), not an error.
"""

from deepresearch.agent.hooks.base import Hook, HookOutcome
from deepresearch.agent.state import RunState
from deepresearch.agent.tools_executor import ToolCallRequest
from deepresearch.tools import ToolResult
from deepresearch.utils.config import ToolCallLimitConfig


class ToolCallLimitHook(Hook):

    name = "tool_call_limit"

    def __init__(self, config: ToolCallLimitConfig):
        self.run_limit = config.run_limit

    def _message(self) -> str:
        return f"Tool call limit of {self.run_limit} per run reached"

    async def before_model(self, state: RunState) -> HookOutcome:
        if state.tool_call_count >= self.run_limit:
            return HookOutcome.abort(self._message())
        return HookOutcome.proceed()

    async def before_tool_call(self, request: ToolCallRequest) -> HookOutcome:
        if request.state.tool_call_count >= self.run_limit:
            message = self._message()
            return HookOutcome.abort(message, ToolResult.limit_reached(f"{message}; this call was not run."))
        return HookOutcome.proceed()

    async def after_tool_call(self, request: ToolCallRequest, result: ToolResult) -> HookOutcome:
        if request.state.tool_call_count >= self.run_limit:
            return HookOutcome.abort(self._message())
        return HookOutcome.proceed()
