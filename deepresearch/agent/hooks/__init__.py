"""
Hooks
=====

Lifecycle policies of the reasoning loop.

Available hooks:
- HumanInTheLoopHook: gates named tools behind an approval channel
- SummarizationHook: compacts the conversation over a token threshold
- ToolCallLimitHook: hard cap on tool calls per run
- ShellToolHook: sandboxed shell tool

Hooks are consulted in configuration order. For a tool call, every hook is
asked first; a DENY or ABORT from any of them wins, and only then are the
approvals some of them asked for awaited, so nobody is asked to approve a
call another policy would refuse anyway.
"""

from deepresearch.agent.hooks.base import Hook, HookAction, HookOutcome
from deepresearch.agent.hooks.human_in_the_loop import HumanInTheLoopHook
from deepresearch.agent.hooks.summarization import SummarizationHook
from deepresearch.agent.hooks.tool_call_limit import ToolCallLimitHook
from deepresearch.agent.hooks.shell import ShellSandbox, ShellToolHook

__all__ = [
    "Hook",
    "HookAction",
    "HookOutcome",
    "HumanInTheLoopHook",
    "SummarizationHook",
    "ToolCallLimitHook",
    "ShellSandbox",
    "ShellToolHook",
]
