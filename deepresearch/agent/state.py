"""
Run State
=========

Everything one run of the reasoning loop owns:

    RunState
    ├── messages        MessageStore (ordered, token accounted)
    ├── tool_calls      every ToolCall the model requested, with status
    ├── todos           the todo list kept by the TodoList interceptor
    ├── files           workspace (shared with sub-agents of this run)
    ├── tool_call_count only increases
    ├── active_subagents
    └── state / terminated / termination_reason / final_answer

Tool call lifecycle:

    pending ──► approved ──► executed ──► done
       │                       ▲   │
       ▼                       │   ▼
    rejected                   └─ retried

Transitions only move forward along these arrows; anything else raises
InvalidTransitionError.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from deepresearch.errors import InvalidTransitionError
from deepresearch.memory.short_term import MessageStore
from deepresearch.memory.working import VirtualFilesystem
from deepresearch.tools import ToolResult
from deepresearch.utils.tokens import TokenCounter


class AgentState(str, Enum):
    """States of the reasoning loop."""
    AWAIT_MODEL = "await_model"
    AWAIT_APPROVAL = "await_approval"
    EXECUTE_TOOL = "execute_tool"
    SUMMARIZE = "summarize"
    TERMINATED = "terminated"


class TerminationReason(str, Enum):
    """Why a run ended."""
    COMPLETED = "completed"
    LIMIT_REACHED = "limit_reached"
    ABORTED = "aborted"
    FAILED = "failed"


class ToolCallStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"
    RETRIED = "retried"
    DONE = "done"


_ALLOWED_TRANSITIONS: dict[ToolCallStatus, frozenset[ToolCallStatus]] = {
    ToolCallStatus.PENDING: frozenset({ToolCallStatus.APPROVED, ToolCallStatus.REJECTED}),
    ToolCallStatus.APPROVED: frozenset({ToolCallStatus.EXECUTED}),
    ToolCallStatus.EXECUTED: frozenset({ToolCallStatus.DONE, ToolCallStatus.RETRIED}),
    ToolCallStatus.RETRIED: frozenset({ToolCallStatus.EXECUTED}),
    ToolCallStatus.REJECTED: frozenset(),
    ToolCallStatus.DONE: frozenset(),
}


@dataclass
class ToolCall:
    """
    A tool call requested by the model.

    Attributes:
        id: The call id from the model (matches the tool message)
        name: The tool name
        arguments: Parsed arguments (possibly repaired later)
        raw_arguments: The argument string exactly as the model sent it
        message_position: Position of the assistant message that asked
        status: Current ToolCallStatus
        result: Final ToolResult once the call is settled
        retries: How many times the call was retried
    """
    id: str
    name: str
    arguments: dict[str, Any]
    raw_arguments: str = ""
    message_position: int | None = None
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: ToolResult | None = None
    retries: int = 0

    def transition(self, status: ToolCallStatus) -> None:
        """
        Move to a new status.

        Raises:
            InvalidTransitionError: If the move is not allowed
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Tool call {self.id} ({self.name}) cannot go from {self.status.value} to {status.value}"
            )
        self.status = status

    def mark_retried(self, max_retries: int) -> None:
        """
        Record a retry (executed -> retried).

        Raises:
            InvalidTransitionError: If the retry budget is already spent
        """
        if self.retries >= max_retries:
            raise InvalidTransitionError(
                f"Tool call {self.id} already retried {self.retries} time(s), max is {max_retries}"
            )
        self.transition(ToolCallStatus.RETRIED)
        self.retries += 1

    def settle(self, result: ToolResult) -> None:
        """
        Record the final result and move forward to a terminal status.

        A call that was never admitted ends rejected; anything else walks
        the remaining forward edges to done.
        """
        if self.status is ToolCallStatus.PENDING:
            self.transition(ToolCallStatus.REJECTED)
        elif not self.settled:
            if self.status in (ToolCallStatus.APPROVED, ToolCallStatus.RETRIED):
                self.transition(ToolCallStatus.EXECUTED)
            self.transition(ToolCallStatus.DONE)
        self.result = result

    @property
    def settled(self) -> bool:
        return self.status in (ToolCallStatus.DONE, ToolCallStatus.REJECTED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "raw_arguments": self.raw_arguments,
            "message_position": self.message_position,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "retries": self.retries,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        return cls(
            id=data["id"],
            name=data["name"],
            arguments=data.get("arguments") or {},
            raw_arguments=data.get("raw_arguments", ""),
            message_position=data.get("message_position"),
            status=ToolCallStatus(data["status"]),
            result=ToolResult.from_dict(data["result"]) if data.get("result") else None,
            retries=data.get("retries", 0),
        )


@dataclass
class RunState:
    """
    Mutable state of one run.

    Owned by a single Orchestrator run; only the orchestrator and the
    interceptors and hooks it calls mutate it.
    """
    run_id: str
    agent_name: str
    messages: MessageStore
    files: VirtualFilesystem = field(default_factory=VirtualFilesystem)
    tool_calls: list[ToolCall] = field(default_factory=list)
    todos: list[dict] = field(default_factory=list)
    tool_call_count: int = 0
    active_subagents: set[str] = field(default_factory=set)
    state: AgentState = AgentState.AWAIT_MODEL
    terminated: bool = False
    termination_reason: TerminationReason | None = None
    final_answer: str | None = None
    abort_requested: bool = False
    parent_run_id: str | None = None
    model_calls: int = 0
    # Set together with abort_requested; wakes anything waiting on the run
    abort_signal: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    def __post_init__(self):
        if self.abort_requested:
            self.abort_signal.set()

    @property
    def total_tokens(self) -> int:
        return self.messages.total_tokens

    def request_abort(self) -> None:
        """Ask the run to stop at its next step."""
        self.abort_requested = True
        self.abort_signal.set()

    def record_tool_call(self) -> int:
        """Count one more admitted tool call and return the new count."""
        self.tool_call_count += 1
        return self.tool_call_count

    def terminate(self, reason: TerminationReason, final_answer: str | None = None) -> None:
        """Mark the run finished. The first termination wins."""
        if self.terminated:
            return
        self.terminated = True
        self.termination_reason = reason
        self.state = AgentState.TERMINATED
        if final_answer is not None:
            self.final_answer = final_answer

    def add_tool_message(self, call_id: str, name: str, result: ToolResult, status: ToolCallStatus | None = None):
        """Append the tool message answering call_id."""
        metadata: dict[str, Any] = {"kind": result.kind}
        if status is not None:
            metadata["status"] = status.value
        if "evicted_to" in result.metadata:
            metadata["evicted_to"] = result.metadata["evicted_to"]
        return self.messages.append(
            "tool", result.to_message(), tool_call_id=call_id, name=name, metadata=metadata
        )

    def find_tool_call(self, call_id: str) -> ToolCall | None:
        for call in reversed(self.tool_calls):
            if call.id == call_id:
                return call
        return None

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict (checkpoint snapshot)."""
        return {
            "run_id": self.run_id,
            "agent_name": self.agent_name,
            "messages": self.messages.to_dicts(),
            "next_position": self.messages.next_position,
            "files": self.files.to_dict(),
            "tool_calls": [call.to_dict() for call in self.tool_calls],
            "todos": [dict(todo) for todo in self.todos],
            "tool_call_count": self.tool_call_count,
            "active_subagents": sorted(self.active_subagents),
            "state": self.state.value,
            "terminated": self.terminated,
            "termination_reason": self.termination_reason.value if self.termination_reason else None,
            "final_answer": self.final_answer,
            "abort_requested": self.abort_requested,
            "parent_run_id": self.parent_run_id,
            "model_calls": self.model_calls,
        }

    @classmethod
    def from_dict(cls, data: dict, token_counter: TokenCounter) -> "RunState":
        reason = data.get("termination_reason")
        return cls(
            run_id=data["run_id"],
            agent_name=data["agent_name"],
            messages=MessageStore.from_dicts(data["messages"], token_counter, data.get("next_position")),
            files=VirtualFilesystem.from_dict(data.get("files") or {}),
            tool_calls=[ToolCall.from_dict(item) for item in data.get("tool_calls") or []],
            todos=[dict(todo) for todo in data.get("todos") or []],
            tool_call_count=data.get("tool_call_count", 0),
            active_subagents=set(data.get("active_subagents") or []),
            state=AgentState(data.get("state", AgentState.AWAIT_MODEL.value)),
            terminated=data.get("terminated", False),
            termination_reason=TerminationReason(reason) if reason else None,
            final_answer=data.get("final_answer"),
            abort_requested=data.get("abort_requested", False),
            parent_run_id=data.get("parent_run_id"),
            model_calls=data.get("model_calls", 0),
        )
