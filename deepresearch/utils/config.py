"""
Configuration Management
========================

Typed configuration for the research agent, loaded once from the
environment (and a .env file) at startup.

The Config object is created by load_config() and handed to every
component that needs it by the composition root in deepresearch.main.
Nothing in the package reads os.environ on its own.

Sections and their environment variables:

    model            AI_DASHSCOPE_API_KEY (required), MODEL_NAME,
                     MODEL_BASE_URL, MODEL_MAX_ATTEMPTS
    summarization    SUMMARIZATION_MODEL, SUMMARY_MAX_TOKENS,
                     SUMMARY_MESSAGES_TO_KEEP
    search           JINA_API_KEY, SEARCH_ENDPOINT, SEARCH_TIMEOUT_SECONDS
    eviction         TOOL_TOKEN_LIMIT_BEFORE_EVICT
    context_editing  CONTEXT_EDIT_TRIGGER, CONTEXT_EDIT_CLEAR_AT_LEAST,
                     CONTEXT_EDIT_KEEP, CONTEXT_EDIT_EXCLUDE_TOOLS
    retry            TOOL_MAX_RETRIES, TOOL_RETRY_ON_FAILURE
    filesystem       FILESYSTEM_READ_ONLY
    approval         APPROVAL_TOOLS ("name:description,name2")
    tool_call_limit  TOOL_CALL_RUN_LIMIT
    shell            SHELL_WORKDIR, SHELL_TIMEOUT_SECONDS, SHELL_ALLOW_NETWORK,
                     SHELL_ALLOWED_COMMANDS, SHELL_GRANTED_ENV
    checkpoint       CHECKPOINT_DIR (empty keeps checkpoints in memory)

Usage:
    from deepresearch.utils.config import load_config

    config = load_config()
    print(config.model.name)
    print(config.eviction.tool_token_limit_before_evict)
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from deepresearch.errors import ConfigError


def _required(name: str) -> str:
    """
    Get a required environment variable.

    Raises:
        ConfigError: If the variable is not set
    """
    value = os.getenv(name)
    if not value:
        raise ConfigError(
            f"Missing required environment variable: {name}\n"
            f"Please ensure {name} is set in your .env file."
        )
    return value


def _optional(name: str, default: str) -> str:
    """Get an optional environment variable with a default."""
    return os.getenv(name, default)


def _optional_int(name: str, default: int) -> int:
    """
    Get an optional integer environment variable.

    Raises:
        ConfigError: If the variable is set but is not an integer
    """
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _optional_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _optional_bool(name: str, default: bool) -> bool:
    """True if the value is 'true', '1' or 'yes' (case-insensitive)."""
    value = os.getenv(name)
    if not value:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _optional_list(name: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    """Comma separated list; blank entries are ignored."""
    value = os.getenv(name)
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _parse_approval_tools(entries: tuple[str, ...]) -> dict[str, str]:
    """
    Parse "tool" or "tool:description" entries.

    A tool listed without a description gets a generic approval prompt.
    """
    approvals: dict[str, str] = {}
    for entry in entries:
        name, _, description = entry.partition(":")
        name = name.strip()
        if not name:
            raise ConfigError(f"APPROVAL_TOOLS entry has no tool name: {entry!r}")
        approvals[name] = description.strip() or f"Please approve the {name} tool."
    return approvals


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

RETRY_ON_FAILURE_CHOICES = ("raise", "return_message")


@dataclass(frozen=True)
class ModelConfig:
    """Chat model endpoint (any OpenAI compatible API)."""
    api_key: str
    name: str
    base_url: str | None
    max_attempts: int = 3      # model call attempts before the run fails
    initial_backoff_seconds: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigError("MODEL_MAX_ATTEMPTS must be at least 1")


@dataclass(frozen=True)
class SummarizationConfig:
    """Conversation summarization thresholds."""
    model: str | None          # None means: reuse the main model
    max_tokens_before_summary: int = 120000
    messages_to_keep: int = 6

    def __post_init__(self):
        if self.max_tokens_before_summary <= 0:
            raise ConfigError("SUMMARY_MAX_TOKENS must be positive")
        if self.messages_to_keep < 0:
            raise ConfigError("SUMMARY_MESSAGES_TO_KEEP must not be negative")


@dataclass(frozen=True)
class SearchConfig:
    """Jina search API access."""
    api_key: str | None
    endpoint: str = "https://s.jina.ai/"
    timeout_seconds: float = 120.0
    max_results: int = 5


@dataclass(frozen=True)
class EvictionConfig:
    """Large tool result eviction."""
    tool_token_limit_before_evict: int = 5000
    exclude_filesystem_tools: bool = True

    def __post_init__(self):
        if self.tool_token_limit_before_evict <= 0:
            raise ConfigError("TOOL_TOKEN_LIMIT_BEFORE_EVICT must be positive")


@dataclass(frozen=True)
class ContextEditingConfig:
    """Token budget guard that drops old messages before a model turn."""
    trigger: int = 10000
    clear_at_least: int = 6000
    keep: int = 4
    exclude_tools: tuple[str, ...] = ("write_todos",)

    def __post_init__(self):
        if self.trigger <= 0 or self.clear_at_least <= 0:
            raise ConfigError("CONTEXT_EDIT_TRIGGER and CONTEXT_EDIT_CLEAR_AT_LEAST must be positive")
        if self.keep < 0:
            raise ConfigError("CONTEXT_EDIT_KEEP must not be negative")


@dataclass(frozen=True)
class RetryConfig:
    """
    Tool retry policy.

    on_failure has no default and must be one of RETRY_ON_FAILURE_CHOICES.
    """
    max_retries: int
    on_failure: str

    def __post_init__(self):
        if self.max_retries < 0:
            raise ConfigError("TOOL_MAX_RETRIES must not be negative")
        if self.on_failure not in RETRY_ON_FAILURE_CHOICES:
            raise ConfigError(
                f"TOOL_RETRY_ON_FAILURE must be one of {RETRY_ON_FAILURE_CHOICES}, "
                f"got {self.on_failure!r}"
            )


@dataclass(frozen=True)
class FilesystemConfig:
    """Virtual workspace access."""
    read_only: bool = False


@dataclass(frozen=True)
class ApprovalConfig:
    """Tools gated behind human approval, mapped to the prompt shown."""
    tools: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallLimitConfig:
    """Hard cap on tool calls per run."""
    run_limit: int = 25

    def __post_init__(self):
        if self.run_limit < 1:
            raise ConfigError("TOOL_CALL_RUN_LIMIT must be at least 1")


@dataclass(frozen=True)
class ShellConfig:
    """Sandbox for the shell tool."""
    workdir: Path
    timeout_seconds: float = 30.0
    allow_network: bool = False
    allowed_commands: tuple[str, ...] = ()   # empty allows any non-denied command
    granted_env: tuple[str, ...] = ()        # variables copied into the sandbox
    max_output_chars: int = 20000

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ConfigError("SHELL_TIMEOUT_SECONDS must be positive")


@dataclass(frozen=True)
class CheckpointConfig:
    """Where run checkpoints go; None keeps them in memory."""
    directory: Path | None = None


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

    Access via:
        config = load_config()
        config.model.name
        config.tool_call_limit.run_limit
    """
    model: ModelConfig
    summarization: SummarizationConfig
    search: SearchConfig
    eviction: EvictionConfig
    context_editing: ContextEditingConfig
    retry: RetryConfig
    filesystem: FilesystemConfig
    approval: ApprovalConfig
    tool_call_limit: ToolCallLimitConfig
    shell: ShellConfig
    checkpoint: CheckpointConfig
    log_level: str = "info"


def load_config(env_file: str | Path | None = None) -> Config:
    """
    Load and validate all configuration from the environment.

    Args:
        env_file: Optional explicit .env path; by default python-dotenv
            searches up from the working directory

    Returns:
        Config: The validated configuration

    Raises:
        ConfigError: If required configuration is missing or invalid
    """
    load_dotenv(env_file)

    checkpoint_dir = _optional("CHECKPOINT_DIR", "")
    shell_workdir = _optional("SHELL_WORKDIR", "") or os.path.join(
        tempfile.gettempdir(), "deepresearch-shell"
    )

    return Config(
        model=ModelConfig(
            api_key=_required("AI_DASHSCOPE_API_KEY"),
            name=_optional("MODEL_NAME", "qwen-plus"),
            base_url=_optional("MODEL_BASE_URL", "https://dashscope.aliyuncs.com/compatible-mode/v1") or None,
            max_attempts=_optional_int("MODEL_MAX_ATTEMPTS", 3),
            initial_backoff_seconds=_optional_float("MODEL_BACKOFF_SECONDS", 1.0),
        ),
        summarization=SummarizationConfig(
            model=os.getenv("SUMMARIZATION_MODEL") or None,
            max_tokens_before_summary=_optional_int("SUMMARY_MAX_TOKENS", 120000),
            messages_to_keep=_optional_int("SUMMARY_MESSAGES_TO_KEEP", 6),
        ),
        search=SearchConfig(
            api_key=os.getenv("JINA_API_KEY") or None,
            endpoint=_optional("SEARCH_ENDPOINT", "https://s.jina.ai/"),
            timeout_seconds=_optional_float("SEARCH_TIMEOUT_SECONDS", 120.0),
            max_results=_optional_int("SEARCH_MAX_RESULTS", 5),
        ),
        eviction=EvictionConfig(
            tool_token_limit_before_evict=_optional_int("TOOL_TOKEN_LIMIT_BEFORE_EVICT", 5000),
        ),
        context_editing=ContextEditingConfig(
            trigger=_optional_int("CONTEXT_EDIT_TRIGGER", 10000),
            clear_at_least=_optional_int("CONTEXT_EDIT_CLEAR_AT_LEAST", 6000),
            keep=_optional_int("CONTEXT_EDIT_KEEP", 4),
            exclude_tools=_optional_list("CONTEXT_EDIT_EXCLUDE_TOOLS", ("write_todos",)),
        ),
        retry=RetryConfig(
            max_retries=_optional_int("TOOL_MAX_RETRIES", 1),
            on_failure=_optional("TOOL_RETRY_ON_FAILURE", "return_message").strip().lower(),
        ),
        filesystem=FilesystemConfig(
            read_only=_optional_bool("FILESYSTEM_READ_ONLY", False),
        ),
        approval=ApprovalConfig(
            tools=_parse_approval_tools(
                _optional_list("APPROVAL_TOOLS", ("search_web:Please approve the search_web tool.",))
            ),
        ),
        tool_call_limit=ToolCallLimitConfig(
            run_limit=_optional_int("TOOL_CALL_RUN_LIMIT", 25),
        ),
        shell=ShellConfig(
            workdir=Path(shell_workdir),
            timeout_seconds=_optional_float("SHELL_TIMEOUT_SECONDS", 30.0),
            allow_network=_optional_bool("SHELL_ALLOW_NETWORK", False),
            allowed_commands=_optional_list("SHELL_ALLOWED_COMMANDS"),
            granted_env=_optional_list("SHELL_GRANTED_ENV"),
        ),
        checkpoint=CheckpointConfig(
            directory=Path(checkpoint_dir) if checkpoint_dir else None,
        ),
        log_level=_optional("LOG_LEVEL", "info"),
    )
