"""
Model Client
============

Thin wrapper around openai.AsyncOpenAI for chat completions with tools.

Any OpenAI compatible endpoint works; the default configuration points at
DashScope's compatible mode so Qwen models can be used.

Failure handling:
    Connection errors, timeouts, rate limits and 5xx responses are retried
    with exponential backoff (initial_backoff_seconds * 2^n) up to
    max_attempts. Anything else, or running out of attempts, raises
    ModelCallError, which is fatal to the run.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import openai
from openai import AsyncOpenAI

from deepresearch.errors import ModelCallError
from deepresearch.utils.config import ModelConfig
from deepresearch.utils.logger import Logger

logger = Logger("Model")

# HTTP statuses worth another attempt
RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})


@dataclass
class ModelToolCall:
    """A tool call as requested by the model (arguments not yet parsed)."""
    id: str
    name: str
    arguments: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class ModelResponse:
    """
    One model turn.

    Attributes:
        text: Assistant text (may be empty when only tools are requested)
        tool_calls: Requested tool calls, in the order the model listed them
        usage: Token usage reported by the provider, if any
    """
    text: str
    tool_calls: list[ModelToolCall] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, (openai.APIConnectionError, openai.APITimeoutError)):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code in RETRYABLE_STATUS_CODES
    return False


class ModelClient:
    """
    Chat completion client with retry and backoff.

    Example:
        model = ModelClient(config.model)
        response = await model.complete(
            messages=[{"role": "user", "content": "hi"}],
            tools=registry.get_openai_functions()
        )
        if response.is_final:
            print(response.text)

        # Same connection, different model (e.g. for summaries)
        summarizer = model.with_model("qwen-turbo")
    """

    def __init__(
        self,
        config: ModelConfig,
        client: AsyncOpenAI | None = None,
        model_name: str | None = None
    ):
        self.config = config
        self.client = client or AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)
        self.name = model_name or config.name

    def with_model(self, model_name: str) -> "ModelClient":
        """A client for another model sharing this connection."""
        return ModelClient(self.config, client=self.client, model_name=model_name)

    async def complete(
        self,
        messages: list[dict],
        tools: list[dict] | None = None
    ) -> ModelResponse:
        """
        Run one chat completion.

        Raises:
            ModelCallError: When the call fails permanently
        """
        kwargs: dict[str, Any] = {"model": self.name, "messages": messages}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self.client.chat.completions.create(**kwargs)
                return self._parse(response)

            except openai.OpenAIError as e:
                if not _is_retryable(e):
                    raise ModelCallError(f"Model call failed: {e}", attempts=attempt) from e
                if attempt >= self.config.max_attempts:
                    raise ModelCallError(
                        f"Model call failed after {attempt} attempt(s): {e}", attempts=attempt
                    ) from e

                delay = self.config.initial_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    f"Model call failed ({type(e).__name__}), retrying in {delay:.1f}s",
                    {"attempt": attempt, "model": self.name}
                )
                await asyncio.sleep(delay)

    def _parse(self, response: Any) -> ModelResponse:
        if not response.choices:
            raise ModelCallError("Model returned no choices", attempts=1)

        message = response.choices[0].message
        tool_calls = [
            ModelToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "",
            )
            for tc in (message.tool_calls or [])
        ]

        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens or 0,
                "completion_tokens": response.usage.completion_tokens or 0,
            }

        return ModelResponse(text=message.content or "", tool_calls=tool_calls, usage=usage)
