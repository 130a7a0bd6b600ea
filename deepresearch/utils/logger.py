"""
Logger Utility
==============

Context-prefixed logging for the agent runtime.

Every component logs through its own Logger so that a line can be traced
back to the run that produced it:

    [2025-12-19T10:30:00] [INFO] [Orchestrator:research-agent] Calling model

Features:
1. Log levels (DEBUG, INFO, WARNING, ERROR) filtered by LOG_LEVEL
2. Child loggers that append context (agent name, sub-agent run)
3. Optional structured data printed as JSON below the line
4. Color-coded terminal output

The minimum level is process-wide. It is read from LOG_LEVEL on import and
can be changed once configuration is loaded with set_log_level().

Usage:
    from deepresearch.utils.logger import Logger

    logger = Logger("Orchestrator")
    logger.info("Run started", {"run_id": "abc"})

    sub_logger = logger.child("research-agent")
    sub_logger.debug("Loop step 3")
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    """Numeric log levels; higher is more severe."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for colored terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


_LEVEL_NAMES = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARNING": LogLevel.WARNING,
    "WARN": LogLevel.WARNING,
    "ERROR": LogLevel.ERROR,
}


def parse_log_level(value: str | None, default: LogLevel = LogLevel.INFO) -> LogLevel:
    """
    Parse a level name such as "debug" or "WARN".

    Unknown or empty values fall back to the default.
    """
    if not value:
        return default
    return _LEVEL_NAMES.get(value.strip().upper(), default)


_min_level: LogLevel = parse_log_level(os.getenv("LOG_LEVEL"))


def set_log_level(level: str | LogLevel) -> None:
    """Set the process-wide minimum level."""
    global _min_level
    if isinstance(level, LogLevel):
        _min_level = level
    else:
        _min_level = parse_log_level(level)


def get_log_level() -> LogLevel:
    """Return the current process-wide minimum level."""
    return _min_level


class Logger:
    """
    A context-aware logger with colored output.

    Example:
        logger = Logger("SubAgents")
        run_logger = logger.child("research-agent#1a2b")
        run_logger.info("Started", {"task": "history of RISC-V"})
    """

    def __init__(self, context: str = "", stream: TextIO | None = None):
        """
        Args:
            context: Prefix shown in brackets on every line
            stream: Output stream; defaults to stdout (stderr for errors)
        """
        self.context = context
        self._stream = stream

    def child(self, child_context: str) -> "Logger":
        """
        Create a logger whose context is this context plus child_context.

        Logger("Orchestrator").child("critique-agent") prints
        [Orchestrator:critique-agent].
        """
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context, stream=self._stream)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= _min_level

    def _format_message(self, level: str, message: str, color: str) -> str:
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if not self.is_enabled_for(level):
            return

        if self._stream is not None:
            stream = self._stream
        else:
            stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout

        print(self._format_message(level_name, message, color), file=stream)

        if data:
            data_str = json.dumps(data, indent=2, default=str, ensure_ascii=False)
            print(f"{Colors.DIM}{data_str}{Colors.RESET}", file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log loop-level detail (state transitions, arguments)."""
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log run-level progress."""
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a recoverable problem (retry, denial, dropped context)."""
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(self, message: str, error: BaseException | None = None) -> None:
        """
        Log an error, optionally with the exception that caused it.

        Args:
            message: The error message
            error: Exception whose type and text are printed as data
        """
        data = None
        if error:
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)


logger = Logger("DeepResearch")
