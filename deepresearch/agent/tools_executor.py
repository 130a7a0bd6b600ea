"""
Tool Executor
=============

Runs one tool call through the interceptor chain.

The executor:
1. Parses tool calls from model responses into ToolCall records
2. Builds the interceptor chain around the actual tool invocation
3. Turns tool exceptions into typed results or retryable errors

Chain order:
    Interceptors are applied in configuration order, the first one being
    the outermost wrapper:

        interceptors = [todo, filesystem, eviction, patch, retry]

        todo( filesystem( eviction( patch( retry( invoke ) ) ) ) )

    So eviction sees the result after retries, and patch repairs the
    arguments once before any attempt.

Failure mapping inside invoke:
    PolicyViolation     -> policy_violation result (not retried)
    SchemaError         -> schema_error result (not retried)
    FatalRunError       -> propagates, ends the run
    anything else       -> ToolExecutionError (retry interceptor's business)
"""

import asyncio
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from deepresearch.agent.model import ModelResponse
from deepresearch.agent.state import RunState, ToolCall, ToolCallStatus
from deepresearch.errors import FatalRunError, PolicyViolation, SchemaError, ToolExecutionError
from deepresearch.tools import MCPTool, ToolRegistry, ToolResult
from deepresearch.utils.logger import Logger

if TYPE_CHECKING:
    from deepresearch.agent.interceptors import Interceptor

logger = Logger("ToolExecutor")


@dataclass
class ToolCallRequest:
    """
    What an interceptor or contextual tool sees for one call.

    Attributes:
        call: The ToolCall being executed (arguments may be rewritten)
        state: The RunState of the calling run
        tool: The registered tool, or None if the model named an unknown tool
    """
    call: ToolCall
    state: RunState
    tool: MCPTool | None

    @property
    def name(self) -> str:
        return self.call.name

    @property
    def arguments(self) -> dict[str, Any]:
        return self.call.arguments

    def has_tag(self, tag: str) -> bool:
        return self.tool is not None and tag in self.tool.tags


ToolHandler = Callable[[ToolCallRequest], Awaitable[ToolResult]]


def _parse_arguments(raw: str) -> dict[str, Any]:
    """Arguments as a dict if the raw string is a JSON object, else {}."""
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ToolExecutor:
    """
    Executes tool calls through an interceptor chain.

    Example:
        executor = ToolExecutor(registry, interceptors)

        calls = ToolExecutor.parse_tool_calls(response, message_position=3)
        for call in calls:
            call.transition(ToolCallStatus.APPROVED)
            result = await executor.execute(ToolCallRequest(call, state, registry.get(call.name)))
    """

    def __init__(self, registry: ToolRegistry, interceptors: list["Interceptor"] | None = None):
        self.registry = registry
        self.interceptors = list(interceptors or [])
        self._chain = self._build_chain()

    @staticmethod
    def parse_tool_calls(response: ModelResponse, message_position: int | None = None) -> list[ToolCall]:
        """
        Turn the model's requested calls into ToolCall records.

        Malformed argument strings are kept verbatim in raw_arguments with
        empty parsed arguments; the patch interceptor repairs them later.
        """
        tool_calls = []

        for tc in response.tool_calls:
            arguments = _parse_arguments(tc.arguments)
            if tc.arguments and not arguments and tc.arguments.strip() not in ("{}", ""):
                logger.debug(f"Could not parse arguments for {tc.name}, leaving them for repair")

            tool_calls.append(ToolCall(
                id=tc.id,
                name=tc.name,
                arguments=arguments,
                raw_arguments=tc.arguments,
                message_position=message_position,
            ))

        logger.debug(f"Parsed {len(tool_calls)} tool calls")
        return tool_calls

    def _build_chain(self) -> ToolHandler:
        handler: ToolHandler = self._invoke
        for interceptor in reversed(self.interceptors):
            handler = self._wrap(interceptor, handler)
        return handler

    @staticmethod
    def _wrap(interceptor: "Interceptor", handler: ToolHandler) -> ToolHandler:
        async def wrapped(request: ToolCallRequest) -> ToolResult:
            return await interceptor.wrap_tool_call(request, handler)
        return wrapped

    async def execute(self, request: ToolCallRequest) -> ToolResult:
        """
        Execute one admitted (approved) call.

        The call ends in status done with its result recorded. FatalRunError
        propagates with the call left in status executed.
        """
        call = request.call
        call.transition(ToolCallStatus.EXECUTED)
        logger.info(f"Executing tool: {call.name}")

        try:
            result = await self._chain(request)
        except ToolExecutionError as e:
            # No retry interceptor in the chain
            result = ToolResult.failure(str(e))

        if result.success:
            logger.debug(f"Tool {call.name} succeeded")
        else:
            logger.warning(f"Tool {call.name} returned {result.kind}: {result.error}")

        call.settle(result)
        return result

    async def _invoke(self, request: ToolCallRequest) -> ToolResult:
        """The innermost handler: run the tool itself."""
        call = request.call
        if call.status is ToolCallStatus.RETRIED:
            call.transition(ToolCallStatus.EXECUTED)

        tool = request.tool
        if tool is None:
            available = ", ".join(self.registry.list_names())
            return ToolResult.schema_error(f"Unknown tool: {call.name}. Available tools: {available}")

        try:
            if tool.contextual:
                return await tool.execute(call.arguments, request)
            return await tool.execute(call.arguments)

        except PolicyViolation as e:
            return ToolResult.policy_violation(str(e))
        except SchemaError as e:
            return ToolResult.schema_error(str(e))
        except (FatalRunError, asyncio.CancelledError):
            raise
        except Exception as e:
            raise ToolExecutionError(call.name, e) from e
