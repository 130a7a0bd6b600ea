"""
Interceptors
============

Composable transforms around tool execution and model turns.

Order is the configuration list; the first interceptor is the outermost
wrapper around a tool call and the first to see the context before a model
turn.

Available interceptors:
- TodoListInterceptor: per-run todo list
- FilesystemInterceptor: ls / read_file / write_file / edit_file
- LargeResultEvictionInterceptor: moves big results into the workspace
- PatchToolCallsInterceptor: repairs malformed tool arguments
- ContextEditingInterceptor: drops old messages over a token budget
- ToolRetryInterceptor: retries failing tools
"""

from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.interceptors.todo import TodoListInterceptor
from deepresearch.agent.interceptors.filesystem import FilesystemInterceptor
from deepresearch.agent.interceptors.eviction import LargeResultEvictionInterceptor
from deepresearch.agent.interceptors.patch import PatchToolCallsInterceptor
from deepresearch.agent.interceptors.context_editing import ContextEditingInterceptor
from deepresearch.agent.interceptors.retry import OnFailure, ToolRetryInterceptor

__all__ = [
    "Interceptor",
    "TodoListInterceptor",
    "FilesystemInterceptor",
    "LargeResultEvictionInterceptor",
    "PatchToolCallsInterceptor",
    "ContextEditingInterceptor",
    "ToolRetryInterceptor",
    "OnFailure",
]
