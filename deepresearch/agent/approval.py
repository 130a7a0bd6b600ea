"""
Approval Channels
=================

Where human-in-the-loop decisions come from.

A channel receives an ApprovalRequest for one tool call and eventually
answers with an ApprovalDecision for that same call id. Waiting on a channel
suspends only the run that asked; other runs and sub-agents keep going.

Channels:
- QueueApprovalChannel: decisions are delivered from outside with
  resolve(call_id, approved). Requests can be consumed from `requests`.
  A decision that arrives before the request is kept and used when the
  request comes in; only the most recent `max_early` of those are kept.
- AutoApprovalChannel: a policy function decides (tests, unattended runs)
- ConsoleApprovalChannel: asks the operator on stdin
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable

from deepresearch.utils.logger import Logger

logger = Logger("Approval")


@dataclass(frozen=True)
class ApprovalRequest:
    """A tool call waiting for a decision."""
    run_id: str
    call_id: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    description: str = ""


@dataclass(frozen=True)
class ApprovalDecision:
    call_id: str
    approved: bool
    reason: str = ""


class ApprovalChannel:
    """Base class for approval channels."""

    async def request(self, request: ApprovalRequest) -> ApprovalDecision:
        raise NotImplementedError


class QueueApprovalChannel(ApprovalChannel):
    """
    Decisions delivered by an external party.

    Example:
        channel = QueueApprovalChannel()

        # Somewhere else (a web handler, a test, ...)
        pending = await channel.requests.get()
        channel.resolve(pending.call_id, approved=True)
    """

    def __init__(self, max_early: int = 100):
        self.requests: asyncio.Queue[ApprovalRequest] = asyncio.Queue()
        self.max_early = max_early
        self._waiting: dict[str, asyncio.Future] = {}
        self._early: dict[str, ApprovalDecision] = {}

    async def request(self, request: ApprovalRequest) -> ApprovalDecision:
        early = self._early.pop(request.call_id, None)
        if early is not None:
            logger.debug(f"Using decision delivered early for {request.call_id}")
            return early

        future = asyncio.get_running_loop().create_future()
        self._waiting[request.call_id] = future
        await self.requests.put(request)

        logger.info(f"Waiting for approval of {request.tool_name} ({request.call_id})")
        try:
            return await future
        finally:
            self._waiting.pop(request.call_id, None)

    def resolve(self, call_id: str, approved: bool, reason: str = "") -> None:
        """Deliver the decision for call_id."""
        decision = ApprovalDecision(call_id=call_id, approved=approved, reason=reason)
        future = self._waiting.get(call_id)
        if future is None:
            self._keep_early(decision)
            return
        if not future.done():
            future.set_result(decision)

    def _keep_early(self, decision: ApprovalDecision) -> None:
        self._early.pop(decision.call_id, None)
        self._early[decision.call_id] = decision
        while len(self._early) > self.max_early:
            dropped = next(iter(self._early))
            del self._early[dropped]
            logger.warning(f"Dropping unclaimed approval decision for {dropped}")

    def pending(self) -> list[str]:
        """Call ids currently waiting for a decision."""
        return list(self._waiting)

    def cancel_all(self, reason: str = "Approval channel closed") -> None:
        """Deny every waiting request."""
        for call_id in list(self._waiting):
            self.resolve(call_id, approved=False, reason=reason)


class AutoApprovalChannel(ApprovalChannel):
    """
    A policy function decides.

    Example:
        channel = AutoApprovalChannel()                              # approve all
        channel = AutoApprovalChannel(lambda r: r.tool_name != "shell")
    """

    def __init__(self, policy: Callable[[ApprovalRequest], bool] | None = None):
        self.policy = policy or (lambda request: True)

    async def request(self, request: ApprovalRequest) -> ApprovalDecision:
        approved = bool(self.policy(request))
        reason = "" if approved else "Rejected by automatic approval policy"
        return ApprovalDecision(call_id=request.call_id, approved=approved, reason=reason)


class ConsoleApprovalChannel(ApprovalChannel):
    """
    Asks the operator in the terminal.

    Prompts are serialized so concurrent sub-agents never interleave their
    questions. input() runs in a worker thread to keep the event loop free.
    """

    def __init__(self, input_func: Callable[[str], str] = input):
        self._input = input_func
        self._lock = asyncio.Lock()

    async def request(self, request: ApprovalRequest) -> ApprovalDecision:
        arguments = json.dumps(request.arguments, ensure_ascii=False)
        prompt = (
            f"\n{request.description}\n"
            f"  tool: {request.tool_name}\n"
            f"  arguments: {arguments}\n"
            "Approve? [y/N] "
        )

        async with self._lock:
            answer = await asyncio.to_thread(self._input, prompt)

        approved = answer.strip().lower() in ("y", "yes")
        reason = "" if approved else "Denied by operator"
        return ApprovalDecision(call_id=request.call_id, approved=approved, reason=reason)
