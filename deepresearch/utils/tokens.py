"""
Token counting with tiktoken.

Encoders are created once per model name and cached. Models tiktoken does
not know (Qwen, DeepSeek, ...) use the cl100k_base encoding, which is close
enough for budgeting purposes.

Components that need token counts take a TokenCounter callable so tests and
alternative tokenizers can be plugged in.
"""

from typing import Any, Callable

import tiktoken

TokenCounter = Callable[[str], int]

DEFAULT_ENCODING = "cl100k_base"

_encoder_cache: dict[str, Any] = {}


def _get_encoder(model: str) -> Any:
    if model not in _encoder_cache:
        try:
            _encoder_cache[model] = tiktoken.encoding_for_model(model)
        except KeyError:
            _encoder_cache[model] = tiktoken.get_encoding(DEFAULT_ENCODING)
    return _encoder_cache[model]


def count_tokens(text: str, model: str = "gpt-4o") -> int:
    """Count tokens in text for the given model's encoding."""
    if not text:
        return 0
    return len(_get_encoder(model).encode(text, disallowed_special=()))


def make_token_counter(model: str) -> TokenCounter:
    """Return a TokenCounter bound to a model's encoding."""

    def counter(text: str) -> int:
        return count_tokens(text, model)

    return counter
