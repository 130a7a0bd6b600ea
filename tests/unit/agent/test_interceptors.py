"""
Unit tests for the interceptors: todo list, filesystem, eviction, retry.

Each test drives the interceptor through a real ToolExecutor so the chain
behaves as it does inside the orchestrator.
"""

from __future__ import annotations

import pytest

from deepresearch.agent.interceptors import (
    FilesystemInterceptor,
    LargeResultEvictionInterceptor,
    OnFailure,
    TodoListInterceptor,
    ToolRetryInterceptor,
)
from deepresearch.agent.interceptors.todo import MAX_TODOS, validate_todos
from deepresearch.agent.state import RunState, ToolCall, ToolCallStatus
from deepresearch.agent.tools_executor import ToolCallRequest, ToolExecutor
from deepresearch.errors import SchemaError, ToolRetryExhaustedError
from deepresearch.tools import MCPTool, ToolRegistry, ToolResult
from deepresearch.utils.config import EvictionConfig, FilesystemConfig
from tests.helpers import make_state, word_count


async def run_tool(
    interceptors: list,
    state: RunState,
    name: str,
    arguments: dict,
    extra_tools: list[MCPTool] | None = None,
) -> tuple[ToolResult, ToolCall]:
    contributed = [tool for interceptor in interceptors for tool in interceptor.tools()]
    registry = ToolRegistry(contributed + list(extra_tools or []))
    call = ToolCall(id=f"call-{name}", name=name, arguments=arguments, status=ToolCallStatus.APPROVED)
    result = await ToolExecutor(registry, interceptors).execute(ToolCallRequest(call, state, registry.get(name)))
    return result, call


class TestTodoList:

    def test_validation(self) -> None:
        assert validate_todos([{"content": " search ", "status": "pending"}]) == [
            {"content": "search", "status": "pending"}
        ]

        with pytest.raises(SchemaError, match="non-empty content"):
            validate_todos([{"content": "", "status": "pending"}])
        with pytest.raises(SchemaError, match="unknown status"):
            validate_todos([{"content": "x", "status": "blocked"}])
        with pytest.raises(SchemaError, match="Only one todo may be in_progress"):
            validate_todos([{"content": "a", "status": "in_progress"}, {"content": "b", "status": "in_progress"}])
        with pytest.raises(SchemaError, match="At most"):
            validate_todos([{"content": str(i), "status": "pending"} for i in range(MAX_TODOS + 1)])

    @pytest.mark.asyncio
    async def test_write_then_read(self) -> None:
        state = make_state()
        todo = TodoListInterceptor()
        todos = [{"content": "search", "status": "completed"}, {"content": "write report", "status": "in_progress"}]

        written, _ = await run_tool([todo], state, "write_todos", {"todos": todos})
        read, _ = await run_tool([todo], state, "read_todos", {})

        assert written.success
        assert "1/2 completed" in written.data
        assert read.data == {"todos": todos}
        assert state.todos == todos

    @pytest.mark.asyncio
    async def test_invalid_list_is_schema_error(self) -> None:
        state = make_state()
        result, _ = await run_tool([TodoListInterceptor()], state, "write_todos", {"todos": "do stuff"})

        assert result.kind == "schema_error"
        assert state.todos == []


class TestFilesystem:

    @pytest.mark.asyncio
    async def test_write_read_edit_ls(self) -> None:
        state = make_state()
        fs = FilesystemInterceptor()

        await run_tool([fs], state, "write_file", {"file_path": "final_report.md", "content": "# Draft\nRISC-V"})
        edited, _ = await run_tool(
            [fs], state, "edit_file", {"file_path": "/final_report.md", "old_string": "Draft", "new_string": "Report"}
        )
        read, _ = await run_tool([fs], state, "read_file", {"file_path": "/final_report.md"})
        listed, _ = await run_tool([fs], state, "ls", {})

        assert edited.success
        assert "# Report" in read.data
        assert listed.data == ["/final_report.md"]

    @pytest.mark.asyncio
    async def test_read_only_refuses_writes(self) -> None:
        state = make_state()
        state.files.write("/final_report.md", "original")
        fs = FilesystemInterceptor(FilesystemConfig(read_only=True))

        written, _ = await run_tool([fs], state, "write_file", {"file_path": "/final_report.md", "content": "x"})
        edited, _ = await run_tool(
            [fs], state, "edit_file", {"file_path": "/final_report.md", "old_string": "original", "new_string": "x"}
        )
        read, _ = await run_tool([fs], state, "read_file", {"file_path": "/final_report.md"})

        assert written.kind == "policy_violation"
        assert edited.kind == "policy_violation"
        assert read.success
        assert state.files.read_raw("/final_report.md") == "original"

    @pytest.mark.asyncio
    async def test_escaping_path_is_policy_violation(self) -> None:
        result, _ = await run_tool(
            [FilesystemInterceptor()], make_state(), "write_file", {"file_path": "../etc/passwd", "content": "x"}
        )
        assert result.kind == "policy_violation"

    @pytest.mark.asyncio
    async def test_missing_file_is_failure(self) -> None:
        result, _ = await run_tool([FilesystemInterceptor()], make_state(), "read_file", {"file_path": "/nope.md"})
        assert result.kind == "failure"


def _big_tool(words: int) -> MCPTool:
    async def big(params: dict) -> ToolResult:
        return ToolResult.ok(" ".join(f"w{i}" for i in range(words)))

    return MCPTool(name="search_web", description="big", parameters={"type": "object", "properties": {}}, execute=big)


class TestLargeResultEviction:

    @pytest.mark.asyncio
    async def test_8000_token_result_is_evicted(self) -> None:
        state = make_state()
        eviction = LargeResultEvictionInterceptor(EvictionConfig(tool_token_limit_before_evict=5000), word_count)

        result, call = await run_tool([eviction], state, "search_web", {}, extra_tools=[_big_tool(8000)])

        path = result.metadata["evicted_to"]
        assert path.startswith("/large_tool_results/call-search_web-")
        assert path in result.data
        assert result.metadata["original_tokens"] == 8000
        assert word_count(result.to_message()) <= 5000
        assert len(state.files.read_raw(path).split()) == 8000

        message = state.add_tool_message(call.id, call.name, result)
        assert message.tokens <= 5000
        assert message.metadata["evicted_to"] == path

    @pytest.mark.asyncio
    async def test_small_result_untouched(self) -> None:
        state = make_state()
        eviction = LargeResultEvictionInterceptor(EvictionConfig(tool_token_limit_before_evict=5000), word_count)

        result, _ = await run_tool([eviction], state, "search_web", {}, extra_tools=[_big_tool(10)])

        assert "evicted_to" not in result.metadata
        assert len(state.files) == 0

    @pytest.mark.asyncio
    async def test_placeholder_shrinks_to_fit_tight_limit(self) -> None:
        state = make_state()
        eviction = LargeResultEvictionInterceptor(EvictionConfig(tool_token_limit_before_evict=60), word_count)

        result, _ = await run_tool([eviction], state, "search_web", {}, extra_tools=[_big_tool(500)])

        assert word_count(result.to_message()) <= 60

    @pytest.mark.asyncio
    async def test_filesystem_tools_are_exempt(self) -> None:
        state = make_state()
        state.files.write("/big.txt", " ".join(["word"] * 300))
        interceptors = [
            FilesystemInterceptor(),
            LargeResultEvictionInterceptor(EvictionConfig(tool_token_limit_before_evict=50), word_count),
        ]

        result, _ = await run_tool(interceptors, state, "read_file", {"file_path": "/big.txt"})

        assert "evicted_to" not in result.metadata
        assert state.files.ls("/large_tool_results") == []


def _flaky_tool(failures: int, attempts: list[int]) -> MCPTool:
    async def flaky(params: dict) -> ToolResult:
        attempts.append(1)
        if len(attempts) <= failures:
            raise ConnectionError("connection reset")
        return ToolResult.ok("fine")

    return MCPTool(name="search_web", description="flaky", parameters={"type": "object", "properties": {}}, execute=flaky)


class TestToolRetry:

    @pytest.mark.parametrize("max_retries", [0, 1, 3])
    @pytest.mark.asyncio
    async def test_deterministic_failure_attempted_max_plus_one(self, max_retries: int) -> None:
        attempts: list[int] = []
        retry = ToolRetryInterceptor(max_retries=max_retries, on_failure=OnFailure.RETURN_MESSAGE)

        result, call = await run_tool([retry], make_state(), "search_web", {}, extra_tools=[_flaky_tool(99, attempts)])

        assert len(attempts) == max_retries + 1
        assert result.kind == "failure"
        assert result.metadata["attempts"] == max_retries + 1
        assert call.retries == max_retries
        assert call.status is ToolCallStatus.DONE

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self) -> None:
        attempts: list[int] = []
        retry = ToolRetryInterceptor(max_retries=2, on_failure=OnFailure.RETURN_MESSAGE)

        result, call = await run_tool([retry], make_state(), "search_web", {}, extra_tools=[_flaky_tool(1, attempts)])

        assert result.success
        assert result.metadata["attempts"] == 2
        assert call.retries == 1

    @pytest.mark.asyncio
    async def test_raise_policy_is_fatal(self) -> None:
        attempts: list[int] = []
        retry = ToolRetryInterceptor(max_retries=1, on_failure=OnFailure.RAISE)

        with pytest.raises(ToolRetryExhaustedError):
            await run_tool([retry], make_state(), "search_web", {}, extra_tools=[_flaky_tool(99, attempts)])
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_excluded_tools_are_not_retried(self) -> None:
        attempts: list[int] = []
        retry = ToolRetryInterceptor(max_retries=3, on_failure=OnFailure.RETURN_MESSAGE, exclude_tools=("search_web",))

        result, _ = await run_tool([retry], make_state(), "search_web", {}, extra_tools=[_flaky_tool(99, attempts)])

        assert len(attempts) == 1
        assert result.kind == "failure"

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValueError):
            ToolRetryInterceptor(max_retries=-1, on_failure=OnFailure.RAISE)
