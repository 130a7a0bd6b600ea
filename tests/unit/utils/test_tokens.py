"""
Unit tests for tiktoken based token counting.
"""

from __future__ import annotations

from deepresearch.utils.tokens import count_tokens, make_token_counter


def test_empty_text_is_free() -> None:
    assert count_tokens("") == 0


def test_unknown_model_falls_back() -> None:
    counter = make_token_counter("qwen-plus")
    assert counter("hello world") == count_tokens("hello world", "gpt-4")


def test_special_tokens_are_plain_text() -> None:
    assert count_tokens("<|endoftext|>") > 0


def test_longer_text_counts_more() -> None:
    counter = make_token_counter("gpt-4o")
    assert counter("word " * 100) > counter("word " * 10)
