"""Unit tests for tool argument repair and dangling tool call patching."""

from __future__ import annotations

import pytest

from deepresearch.agent.interceptors import PatchToolCallsInterceptor
from deepresearch.agent.interceptors.patch import decode_arguments, repair_arguments
from deepresearch.agent.state import ToolCall, ToolCallStatus
from deepresearch.agent.tools_executor import ToolCallRequest, ToolExecutor
from deepresearch.errors import SchemaError
from deepresearch.tools import MCPTool, ToolRegistry, ToolResult
from tests.helpers import make_state

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string"},
        "max_results": {"type": "integer", "default": 5},
        "include_raw": {"type": "boolean", "default": False},
    },
    "required": ["query"],
}

TASK_SCHEMA = {
    "type": "object",
    "properties": {
        "description": {"type": "string"},
        "subagent_type": {"type": "string", "enum": ["research-agent", "critique-agent"]},
        "topics": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["description", "subagent_type"],
}


class TestDecodeArguments:

    @pytest.mark.parametrize(
        "raw",
        [
            '```json\n{"query": "risc-v"}\n```',
            '{"query": "risc-v",}',
            'Sure! {"query": "risc-v"} hope that helps',
            "{'query': 'risc-v'}",
        ],
    )
    def test_malformed_objects_decode(self, raw: str) -> None:
        assert decode_arguments(raw) == {"query": "risc-v"}

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError):
            decode_arguments("not json at all")


class TestRepairArguments:

    def test_defaults_filled(self) -> None:
        assert repair_arguments({"query": "arm"}, "", SEARCH_SCHEMA) == {
            "query": "arm",
            "max_results": 5,
            "include_raw": False,
        }

    def test_fenced_raw_string(self) -> None:
        repaired = repair_arguments({}, '```json\n{"query": "arm", "max_results": 2,}\n```', SEARCH_SCHEMA)
        assert repaired["query"] == "arm"
        assert repaired["max_results"] == 2

    def test_bare_value_wrapped_into_single_required_parameter(self) -> None:
        assert repair_arguments({}, "quantum computing", SEARCH_SCHEMA)["query"] == "quantum computing"

    def test_double_encoded_json(self) -> None:
        assert repair_arguments({}, '"{\\"query\\": \\"arm\\"}"', SEARCH_SCHEMA)["query"] == "arm"

    def test_wrapper_envelope_unwrapped(self) -> None:
        assert repair_arguments({"arguments": {"query": "arm"}}, "", SEARCH_SCHEMA)["query"] == "arm"

    def test_types_coerced(self) -> None:
        repaired = repair_arguments({"query": 42, "max_results": "3", "include_raw": "yes"}, "", SEARCH_SCHEMA)
        assert repaired == {"query": "42", "max_results": 3, "include_raw": True}

    def test_array_and_enum_coerced(self) -> None:
        repaired = repair_arguments(
            {"description": "find sources", "subagent_type": "Research-Agent", "topics": "market share"},
            "",
            TASK_SCHEMA,
        )
        assert repaired["subagent_type"] == "research-agent"
        assert repaired["topics"] == ["market share"]

    def test_unknown_enum_value(self) -> None:
        with pytest.raises(SchemaError, match="must be one of"):
            repair_arguments({"description": "x", "subagent_type": "poet"}, "", TASK_SCHEMA)

    def test_fractional_integer(self) -> None:
        with pytest.raises(SchemaError, match="max_results"):
            repair_arguments({"query": "x", "max_results": "2.5"}, "", SEARCH_SCHEMA)

    def test_missing_required(self) -> None:
        with pytest.raises(SchemaError, match="Missing required argument"):
            repair_arguments({"max_results": 3}, "", SEARCH_SCHEMA)


class TestPatchInterceptor:

    @staticmethod
    def _registry(seen: list[dict]) -> ToolRegistry:
        async def search(params: dict) -> ToolResult:
            seen.append(params)
            return ToolResult.ok("results")

        return ToolRegistry([MCPTool(name="search_web", description="search", parameters=SEARCH_SCHEMA, execute=search)])

    @pytest.mark.asyncio
    async def test_repairs_before_tool_runs(self) -> None:
        seen: list[dict] = []
        registry = self._registry(seen)
        call = ToolCall(
            id="c1",
            name="search_web",
            arguments={},
            raw_arguments='```json\n{"query": "arm",}\n```',
            status=ToolCallStatus.APPROVED,
        )

        result = await ToolExecutor(registry, [PatchToolCallsInterceptor()]).execute(
            ToolCallRequest(call, make_state(), registry.get("search_web"))
        )

        assert result.success
        assert seen == [{"query": "arm", "max_results": 5, "include_raw": False}]
        assert call.arguments == seen[0]

    @pytest.mark.asyncio
    async def test_unrepairable_call_is_schema_error(self) -> None:
        seen: list[dict] = []
        registry = self._registry(seen)
        call = ToolCall(id="c1", name="search_web", arguments={"max_results": 1}, status=ToolCallStatus.APPROVED)

        result = await ToolExecutor(registry, [PatchToolCallsInterceptor()]).execute(
            ToolCallRequest(call, make_state(), registry.get("search_web"))
        )

        assert result.kind == "schema_error"
        assert seen == []
        assert call.status is ToolCallStatus.DONE

    @pytest.mark.asyncio
    async def test_dangling_tool_calls_get_cancelled_messages(self) -> None:
        state = make_state()
        state.messages.append("user", "compare risc-v and arm")
        state.messages.append(
            "assistant",
            "",
            tool_calls=[
                {"id": "c1", "name": "search_web", "arguments": '{"query": "risc-v"}'},
                {"id": "c2", "name": "search_web", "arguments": '{"query": "arm"}'},
            ],
        )
        state.messages.append("tool", "results", tool_call_id="c1", name="search_web")
        dangling = ToolCall(id="c2", name="search_web", arguments={"query": "arm"}, status=ToolCallStatus.APPROVED)
        state.tool_calls.append(dangling)

        patch = PatchToolCallsInterceptor()
        await patch.before_model(state)
        await patch.before_model(state)

        tool_messages = [m for m in state.messages if m.role == "tool"]
        assert [m.tool_call_id for m in tool_messages] == ["c1", "c2"]
        assert tool_messages[1].metadata["kind"] == "cancelled"
        assert "was cancelled" in tool_messages[1].content
        assert dangling.status is ToolCallStatus.DONE
        assert dangling.result.kind == "cancelled"
