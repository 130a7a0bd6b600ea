"""
Agent System
============

The orchestration core of the research agent. It:
1. Assembles context (prompt sections, conversation, workspace files)
2. Calls the model and decides what to do with its answer
3. Runs tool calls through hooks and the interceptor chain
4. Delegates isolated sub-tasks to sub-agents
5. Checkpoints every step so runs can be resumed

This module provides:
- Orchestrator: The reasoning loop for one configured agent
- SubAgentDispatcher / SubAgentSpec: The `task` tool and its child agents
- ModelClient: Chat completions with retry and backoff
- ContextAssembler: Builds what the model sees each turn
- ToolExecutor: Runs a tool call through the interceptor chain
- AgentLoader: Named registry of ready-built agents
"""

from deepresearch.agent.core import Orchestrator, RunResult
from deepresearch.agent.context import ContextAssembler
from deepresearch.agent.loader import AgentLoader
from deepresearch.agent.model import ModelClient, ModelResponse, ModelToolCall
from deepresearch.agent.state import AgentState, RunState, TerminationReason, ToolCall, ToolCallStatus
from deepresearch.agent.subagents import SubAgentDispatcher, SubAgentSpec
from deepresearch.agent.tools_executor import ToolCallRequest, ToolExecutor

__all__ = [
    "Orchestrator",
    "RunResult",
    "ContextAssembler",
    "AgentLoader",
    "ModelClient",
    "ModelResponse",
    "ModelToolCall",
    "AgentState",
    "RunState",
    "TerminationReason",
    "ToolCall",
    "ToolCallStatus",
    "SubAgentDispatcher",
    "SubAgentSpec",
    "ToolCallRequest",
    "ToolExecutor",
]
