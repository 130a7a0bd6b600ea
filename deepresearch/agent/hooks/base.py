"""
Hook base class and outcomes.

Hooks subscribe to lifecycle events of the reasoning loop:

    before_model      before each model turn (may ask for SUMMARIZE or ABORT)
    before_tool_call  before a call is admitted (may DENY, ABORT or ask
                      for APPROVAL_REQUIRED)
    await_approval    only for hooks that asked for approval
    after_tool_call   after the result message is recorded (may ABORT)

ABORT ends the run with a limit_reached result; DENY rejects one call with a
recorded tool message. Neither is an exception.
"""

from dataclasses import dataclass
from enum import Enum

from deepresearch.agent.state import RunState
from deepresearch.agent.tools_executor import ToolCallRequest
from deepresearch.tools import MCPTool, ToolResult


class HookAction(str, Enum):
    CONTINUE = "continue"
    SUMMARIZE = "summarize"
    APPROVAL_REQUIRED = "approval_required"
    DENY = "deny"
    ABORT = "abort"


@dataclass
class HookOutcome:
    """
    What a hook wants the orchestrator to do.

    Attributes:
        action: The requested action
        reason: Human readable explanation (logged, and shown to the model
            when a call is denied)
        result: Tool result to record for DENY/ABORT instead of a generic one
    """
    action: HookAction = HookAction.CONTINUE
    reason: str = ""
    result: ToolResult | None = None

    @classmethod
    def proceed(cls) -> "HookOutcome":
        return cls()

    @classmethod
    def deny(cls, reason: str, result: ToolResult | None = None) -> "HookOutcome":
        return cls(HookAction.DENY, reason, result)

    @classmethod
    def abort(cls, reason: str, result: ToolResult | None = None) -> "HookOutcome":
        return cls(HookAction.ABORT, reason, result)


class Hook:
    """Base class: subscribes to nothing."""

    name = "hook"

    def tools(self) -> list[MCPTool]:
        return []

    async def before_model(self, state: RunState) -> HookOutcome:
        return HookOutcome.proceed()

    async def summarize(self, state: RunState) -> None:
        """Called when this hook's before_model asked for SUMMARIZE."""
        return None

    async def before_tool_call(self, request: ToolCallRequest) -> HookOutcome:
        return HookOutcome.proceed()

    async def await_approval(self, request: ToolCallRequest) -> HookOutcome:
        return HookOutcome.proceed()

    async def after_tool_call(self, request: ToolCallRequest, result: ToolResult) -> HookOutcome:
        return HookOutcome.proceed()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
