"""Test doubles and builders shared by the unit tests."""

from __future__ import annotations

import json

from collections.abc import Callable
from pathlib import Path
from typing import Any

from deepresearch.agent.model import ModelResponse, ModelToolCall
from deepresearch.agent.state import RunState
from deepresearch.memory.short_term import MessageStore
from deepresearch.utils.config import (
    ApprovalConfig,
    CheckpointConfig,
    Config,
    ContextEditingConfig,
    EvictionConfig,
    FilesystemConfig,
    ModelConfig,
    RetryConfig,
    SearchConfig,
    ShellConfig,
    SummarizationConfig,
    ToolCallLimitConfig,
)


def word_count(text: str) -> int:
    """Deterministic token counter: one token per whitespace separated word."""
    return len(text.split())


def tool_call(call_id: str, name: str, **arguments: Any) -> ModelToolCall:
    return ModelToolCall(id=call_id, name=name, arguments=json.dumps(arguments))


def final(text: str) -> ModelResponse:
    return ModelResponse(text=text)


def calls(*tool_calls: ModelToolCall, text: str = "") -> ModelResponse:
    return ModelResponse(text=text, tool_calls=list(tool_calls))


class ScriptedModel:
    """Model client double that replays queued responses.

    Each entry is either a ModelResponse or a callable taking the request
    messages and returning one. Every request is recorded for assertions.
    """

    def __init__(
        self,
        responses: list[ModelResponse | Callable[[list[dict]], ModelResponse]] | None = None,
        name: str = "scripted-model",
    ) -> None:
        self.name = name
        self.responses = list(responses or [])
        self.requests: list[dict[str, Any]] = []

    def with_model(self, model_name: str) -> ScriptedModel:
        return ScriptedModel(self.responses, name=model_name)

    async def complete(self, messages: list[dict], tools: list[dict] | None = None) -> ModelResponse:
        self.requests.append({"messages": messages, "tools": tools or []})
        if not self.responses:
            raise AssertionError(f"{self.name} received an unexpected request")
        response = self.responses.pop(0)
        if callable(response):
            return response(messages)
        return response


def make_state(run_id: str = "run-1", counter: Callable[[str], int] = word_count) -> RunState:
    return RunState(run_id=run_id, agent_name="test-agent", messages=MessageStore(counter))


def make_config(tmp_path: Path, **overrides: Any) -> Config:
    """Config for tests; keyword arguments replace whole sections."""
    sections: dict[str, Any] = {
        "model": ModelConfig(api_key="test-key", name="test-model", base_url=None, initial_backoff_seconds=0.0),
        "summarization": SummarizationConfig(model=None),
        "search": SearchConfig(api_key="jina-key"),
        "eviction": EvictionConfig(),
        "context_editing": ContextEditingConfig(),
        "retry": RetryConfig(max_retries=1, on_failure="return_message"),
        "filesystem": FilesystemConfig(),
        "approval": ApprovalConfig(tools={}),
        "tool_call_limit": ToolCallLimitConfig(),
        "shell": ShellConfig(workdir=tmp_path / "shell"),
        "checkpoint": CheckpointConfig(),
    }
    sections.update(overrides)
    return Config(**sections)
