"""
Utilities Module
================

Common utilities shared across the application:
- logger: Context-prefixed logging with levels
- config: Typed configuration loaded from the environment
- tokens: tiktoken based token counting
"""

from deepresearch.utils.logger import Logger, logger, set_log_level
from deepresearch.utils.config import Config, load_config
from deepresearch.utils.tokens import TokenCounter, count_tokens, make_token_counter

__all__ = [
    "Logger",
    "logger",
    "set_log_level",
    "Config",
    "load_config",
    "TokenCounter",
    "count_tokens",
    "make_token_counter",
]
