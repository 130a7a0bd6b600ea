"""
Tool Retry
==========

Retries a failing tool, then either gives up quietly or ends the run.

Only exceptions count as failures: a tool that returns a failed ToolResult
has already decided what the model should see. Policy and schema problems
are not retried either; they come back as results, not exceptions.

With max_retries=1 a tool that always fails runs exactly twice.

What happens when retries run out is an explicit choice:
    OnFailure.RETURN_MESSAGE  the model gets a failure result and carries on
    OnFailure.RAISE           ToolRetryExhaustedError ends the run
"""

import asyncio
from enum import Enum

from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.tools_executor import ToolCallRequest, ToolHandler
from deepresearch.errors import ToolExecutionError, ToolRetryExhaustedError
from deepresearch.tools import ToolResult
from deepresearch.utils.config import RetryConfig
from deepresearch.utils.logger import Logger

logger = Logger("ToolRetry")


class OnFailure(str, Enum):
    RAISE = "raise"
    RETURN_MESSAGE = "return_message"


class ToolRetryInterceptor(Interceptor):
    """
    Retries tools that raise.

    Example:
        retry = ToolRetryInterceptor(max_retries=1, on_failure=OnFailure.RETURN_MESSAGE)
        retry = ToolRetryInterceptor.from_config(config.retry)
    """

    name = "tool_retry"

    def __init__(
        self,
        max_retries: int,
        on_failure: OnFailure,
        backoff_seconds: float = 0.0,
        exclude_tools: tuple[str, ...] = ()
    ):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.max_retries = max_retries
        self.on_failure = OnFailure(on_failure)
        self.backoff_seconds = backoff_seconds
        self.exclude_tools = frozenset(exclude_tools)

    @classmethod
    def from_config(cls, config: RetryConfig) -> "ToolRetryInterceptor":
        return cls(max_retries=config.max_retries, on_failure=OnFailure(config.on_failure))

    async def wrap_tool_call(self, request: ToolCallRequest, handler: ToolHandler) -> ToolResult:
        if request.name in self.exclude_tools:
            return await handler(request)

        attempts = 0
        while True:
            attempts += 1
            try:
                result = await handler(request)
            except ToolExecutionError as e:
                if attempts > self.max_retries:
                    return self._give_up(request, attempts, e)

                request.call.mark_retried(self.max_retries)
                logger.warning(
                    f"Tool {request.name} failed, retrying ({attempts}/{self.max_retries})",
                    {"error": str(e.cause)}
                )
                if self.backoff_seconds:
                    await asyncio.sleep(self.backoff_seconds * attempts)
                continue

            if attempts > 1:
                result.metadata["attempts"] = attempts
            return result

    def _give_up(self, request: ToolCallRequest, attempts: int, error: ToolExecutionError) -> ToolResult:
        logger.error(f"Tool {request.name} failed after {attempts} attempt(s)", error.cause)

        if self.on_failure is OnFailure.RAISE:
            raise ToolRetryExhaustedError(request.name, attempts, error.cause) from error

        return ToolResult.failure(
            f"Tool '{request.name}' failed after {attempts} attempt(s): {error.cause}",
            attempts=attempts
        )
