"""
Unit tests for ToolCall status transitions and RunState.
"""

from __future__ import annotations

import pytest

from deepresearch.agent.state import AgentState, RunState, TerminationReason, ToolCall, ToolCallStatus
from deepresearch.errors import InvalidTransitionError
from deepresearch.tools import ToolResult
from tests.helpers import make_state, word_count


def _call(status: ToolCallStatus = ToolCallStatus.PENDING) -> ToolCall:
    return ToolCall(id="c1", name="search_web", arguments={"query": "x"}, status=status)


class TestToolCallTransitions:

    def test_happy_path(self) -> None:
        call = _call()
        call.transition(ToolCallStatus.APPROVED)
        call.transition(ToolCallStatus.EXECUTED)
        call.mark_retried(max_retries=1)
        call.transition(ToolCallStatus.EXECUTED)
        call.transition(ToolCallStatus.DONE)

        assert call.retries == 1
        assert call.settled

    @pytest.mark.parametrize(
        ("start", "target"),
        [
            (ToolCallStatus.PENDING, ToolCallStatus.EXECUTED),
            (ToolCallStatus.APPROVED, ToolCallStatus.PENDING),
            (ToolCallStatus.DONE, ToolCallStatus.EXECUTED),
            (ToolCallStatus.REJECTED, ToolCallStatus.APPROVED),
            (ToolCallStatus.RETRIED, ToolCallStatus.DONE),
        ],
    )
    def test_illegal_moves(self, start: ToolCallStatus, target: ToolCallStatus) -> None:
        with pytest.raises(InvalidTransitionError):
            _call(start).transition(target)

    def test_retry_budget(self) -> None:
        call = _call(ToolCallStatus.EXECUTED)
        call.mark_retried(max_retries=1)
        call.transition(ToolCallStatus.EXECUTED)

        with pytest.raises(InvalidTransitionError, match="max is 1"):
            call.mark_retried(max_retries=1)

    def test_settle_pending_rejects(self) -> None:
        call = _call()
        call.settle(ToolResult.denied("no"))

        assert call.status is ToolCallStatus.REJECTED
        assert call.result.kind == "denied"

    def test_settle_approved_walks_to_done(self) -> None:
        call = _call(ToolCallStatus.APPROVED)
        call.settle(ToolResult.ok("x"))
        assert call.status is ToolCallStatus.DONE

    def test_round_trip(self) -> None:
        call = _call(ToolCallStatus.DONE)
        call.result = ToolResult.ok({"results": []})
        call.retries = 1
        assert ToolCall.from_dict(call.to_dict()) == call


class TestRunState:

    def test_counter_only_increases(self) -> None:
        state = make_state()
        counts = [state.record_tool_call() for _ in range(3)]
        assert counts == [1, 2, 3]

    def test_first_termination_wins(self) -> None:
        state = make_state()
        state.terminate(TerminationReason.LIMIT_REACHED, "limit")
        state.terminate(TerminationReason.COMPLETED, "answer")

        assert state.termination_reason is TerminationReason.LIMIT_REACHED
        assert state.final_answer == "limit"
        assert state.state is AgentState.TERMINATED

    def test_tool_message_metadata(self) -> None:
        state = make_state()
        result = ToolResult.ok("placeholder", evicted_to="/large_tool_results/c1-abc")
        message = state.add_tool_message("c1", "search_web", result, status=ToolCallStatus.DONE)

        assert message.metadata == {"kind": "ok", "status": "done", "evicted_to": "/large_tool_results/c1-abc"}
        assert state.total_tokens == message.tokens

    def test_snapshot_round_trip(self) -> None:
        state = make_state()
        state.messages.append("user", "What is RISC-V?")
        state.files.write("/question.txt", "What is RISC-V?")
        state.todos = [{"content": "search", "status": "in_progress"}]
        state.tool_calls.append(_call(ToolCallStatus.APPROVED))
        state.record_tool_call()
        state.active_subagents.add("run-1/research-agent-0000")

        restored = RunState.from_dict(state.to_dict(), word_count)

        assert restored.to_dict() == state.to_dict()
        assert restored.total_tokens == state.total_tokens
