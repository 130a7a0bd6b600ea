"""
Human In The Loop
=================

Gates named tools behind an explicit approval.

    approval_on = {"search_web": "Please approve the search_web tool."}

A gated call waits on the approval channel for a decision about its own
call id. Approve lets it run; deny records a "denied" tool message and the
model carries on. The tool never runs before an approve is seen.
"""

from deepresearch.agent.approval import ApprovalChannel, ApprovalRequest
from deepresearch.agent.hooks.base import Hook, HookAction, HookOutcome
from deepresearch.agent.tools_executor import ToolCallRequest
from deepresearch.tools import ToolResult
from deepresearch.utils.logger import Logger

logger = Logger("HumanInTheLoop")


class HumanInTheLoopHook(Hook):
    """Asks an ApprovalChannel before gated tools run."""

    name = "human_in_the_loop"

    def __init__(self, approval_on: dict[str, str], channel: ApprovalChannel):
        self.approval_on = dict(approval_on)
        self.channel = channel

    def requires_approval(self, tool_name: str) -> bool:
        return tool_name in self.approval_on

    async def before_tool_call(self, request: ToolCallRequest) -> HookOutcome:
        if self.requires_approval(request.name):
            return HookOutcome(HookAction.APPROVAL_REQUIRED, self.approval_on[request.name])
        return HookOutcome.proceed()

    async def await_approval(self, request: ToolCallRequest) -> HookOutcome:
        decision = await self.channel.request(ApprovalRequest(
            run_id=request.state.run_id,
            call_id=request.call.id,
            tool_name=request.name,
            arguments=dict(request.arguments),
            description=self.approval_on.get(request.name, ""),
        ))

        if decision.call_id != request.call.id:
            # A decision for another call must never release this one
            logger.error(f"Approval channel answered {decision.call_id} for {request.call.id}")
            reason = "Approval answered for a different tool call"
            return HookOutcome.deny(reason, ToolResult.denied(f"Tool call {request.name} was not approved: {reason}"))

        if decision.approved:
            logger.info(f"Approved {request.name} ({request.call.id})")
            return HookOutcome.proceed()

        reason = decision.reason or "The user denied this tool call."
        logger.info(f"Denied {request.name} ({request.call.id}): {reason}")
        return HookOutcome.deny(
            reason,
            ToolResult.denied(f"Tool call {request.name} was not approved: {reason}")
        )
