"""
Error Types
===========

Exceptions raised by the agent runtime.

Fatal vs. non-fatal:
    Exceptions deriving from FatalRunError end the run. Everything else is
    turned into a tool-result message at the tool executor boundary so the
    model can reason about it.

    AgentError
    ├── ConfigError                 invalid configuration at startup
    ├── InvalidTransitionError      tool call status moved backwards
    ├── SchemaError                 unrepairable tool arguments
    ├── PolicyViolation             read-only write, sandbox breach
    ├── ToolExecutionError          a tool raised (retryable)
    └── FatalRunError
        ├── ModelCallError          model failed after backoff retries
        └── ToolRetryExhaustedError retries exhausted with on_failure=RAISE
"""


class AgentError(Exception):
    """Base class for all runtime errors."""


class ConfigError(AgentError):
    """Configuration is missing or invalid."""


class InvalidTransitionError(AgentError):
    """A tool call status transition is not allowed."""


class SchemaError(AgentError):
    """Tool arguments could not be matched to the tool's schema."""


class PolicyViolation(AgentError):
    """A tool call was refused by a sandbox or access policy."""


class ToolExecutionError(AgentError):
    """
    A tool raised while executing.

    Attributes:
        tool_name: The tool that failed
        cause: The original exception
    """

    def __init__(self, tool_name: str, cause: BaseException):
        super().__init__(f"{tool_name}: {type(cause).__name__}: {cause}")
        self.tool_name = tool_name
        self.cause = cause


class FatalRunError(AgentError):
    """An error that terminates the whole run."""


class ModelCallError(FatalRunError):
    """The model call kept failing after all retry attempts."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ToolRetryExhaustedError(FatalRunError):
    """A tool kept failing and the retry policy is configured to raise."""

    def __init__(self, tool_name: str, attempts: int, cause: BaseException | None = None):
        super().__init__(f"Tool '{tool_name}' failed after {attempts} attempt(s): {cause}")
        self.tool_name = tool_name
        self.attempts = attempts
        self.cause = cause
