"""
Sub-Agent Dispatcher
====================

Lets an agent delegate work to isolated child agents through a `task` tool.

    parent run                          child run (fresh RunState)
    ──────────                          ──────────────────────────
    task(description, subagent_type) ─► user: description
                                        ... its own model calls and tools ...
    tool message: final answer       ◄─ final answer

Isolation:
- The child has its own MessageStore; none of its messages reach the
  parent, only the final answer does, as the `task` tool result
- The child shares the parent's workspace files, so the critique agent can
  read the report the main agent wrote
- Specs and the tool registry are read-only and shared

Concurrency:
    Several `task` calls in one model response run concurrently (the
    orchestrator gathers calls tagged "subagent"). Each has its own run id:
    <parent run id>/<agent name>-<8 hex chars>.

Cancellation:
    cancel(parent_run_id) asks every running child of that parent to stop
    at its next step.
"""

import uuid
from dataclasses import dataclass

from deepresearch.agent.core import SUBAGENT_TAG, Orchestrator
from deepresearch.agent.hooks.base import Hook
from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.model import ModelClient
from deepresearch.agent.state import TerminationReason
from deepresearch.agent.tools_executor import ToolCallRequest
from deepresearch.errors import FatalRunError, SchemaError
from deepresearch.memory.checkpoint import CheckpointStore, MemoryCheckpointStore
from deepresearch.tools import MCPTool, ToolRegistry, ToolResult
from deepresearch.utils.logger import Logger
from deepresearch.utils.tokens import TokenCounter

logger = Logger("SubAgents")

GENERAL_PURPOSE_NAME = "general-purpose"

GENERAL_PURPOSE_DESCRIPTION = (
    "General-purpose agent for researching complex questions, searching for files and content, "
    "and executing multi-step tasks. It has access to all the tools of the main agent."
)

GENERAL_PURPOSE_PROMPT = (
    "In order to complete the objective that the user asks of you, "
    "you have access to a number of standard tools."
)

TASK_TOOL_DESCRIPTION = """Launch an ephemeral sub-agent to handle a complex, multi-step task in isolation.

Available agent types:
{agents}

Usage notes:
1. Launch several agents at once when the sub-tasks are independent: put
   multiple task calls in a single message.
2. The agent returns a single message when it is done. It is not shown to
   the user; summarize what matters in your own reply.
3. Each invocation starts from scratch and cannot ask you follow-up
   questions, so give a detailed, self-contained description of the task
   and say exactly what the agent should return.
4. The agent shares your workspace files."""

TASK_SYSTEM_PROMPT = """## `task` (sub-agent spawner)

You can launch short-lived sub-agents with the `task` tool. Use them for
complex, independent pieces of work so your own context stays small. Only
their final answer comes back to you."""


@dataclass(frozen=True)
class SubAgentSpec:
    """
    Template for a sub-agent; instantiated per invocation.

    Attributes:
        name: The subagent_type the model uses to pick it
        description: Shown to the model in the task tool description
        system_prompt: The child agent's prompt
        tools: Names of base tools it may use; None inherits all of them
        interceptors: Own interceptor chain; None uses the dispatcher default
        hooks: Own hooks; None uses the dispatcher default
        model: Own model; None uses the dispatcher default
        enable_looping_log: Log every loop step of the child at INFO
    """
    name: str
    description: str
    system_prompt: str
    tools: tuple[str, ...] | None = None
    interceptors: tuple[Interceptor, ...] | None = None
    hooks: tuple[Hook, ...] | None = None
    model: ModelClient | None = None
    enable_looping_log: bool = False


class SubAgentDispatcher:
    """
    Exposes SubAgentSpecs as the `task` tool.

    Example:
        dispatcher = SubAgentDispatcher(
            specs=[research_spec, critique_spec],
            model=model,
            tools=ToolRegistry([search_tool]),
            default_interceptors=[todo, filesystem, context_editing, patch, eviction],
            default_hooks=[human_in_the_loop, summarization, limit, shell],
        )
        agent = Orchestrator(..., subagents=dispatcher)
    """

    def __init__(
        self,
        specs: list[SubAgentSpec],
        model: ModelClient,
        tools: ToolRegistry,
        default_interceptors: list[Interceptor] | None = None,
        default_hooks: list[Hook] | None = None,
        checkpointer: CheckpointStore | None = None,
        token_counter: TokenCounter | None = None,
        include_general_purpose: bool = True
    ):
        self.model = model
        self.tools = tools
        self.default_interceptors = list(default_interceptors or [])
        self.default_hooks = list(default_hooks or [])
        self.checkpointer = checkpointer or MemoryCheckpointStore()
        self.token_counter = token_counter

        self._specs: dict[str, SubAgentSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Sub-agent '{spec.name}' is defined twice")
            if spec.tools is not None:
                # Fail at startup rather than on first use
                tools.subset(spec.tools)
            self._specs[spec.name] = spec

        if include_general_purpose and GENERAL_PURPOSE_NAME not in self._specs:
            self._specs[GENERAL_PURPOSE_NAME] = SubAgentSpec(
                name=GENERAL_PURPOSE_NAME,
                description=GENERAL_PURPOSE_DESCRIPTION,
                system_prompt=GENERAL_PURPOSE_PROMPT,
            )

        self._orchestrators: dict[str, Orchestrator] = {}
        self._running: dict[str, dict[str, Orchestrator]] = {}

    def names(self) -> list[str]:
        return list(self._specs)

    def spec(self, name: str) -> SubAgentSpec:
        return self._specs[name]

    def system_prompt(self) -> str:
        return TASK_SYSTEM_PROMPT

    def running(self, parent_run_id: str) -> list[str]:
        """Child run ids currently running for a parent run."""
        return list(self._running.get(parent_run_id, {}))

    def orchestrator_for(self, name: str) -> Orchestrator:
        """The (cached) orchestrator that runs this sub-agent."""
        if name not in self._orchestrators:
            spec = self._specs[name]
            tools = self.tools if spec.tools is None else self.tools.subset(spec.tools)
            interceptors = self.default_interceptors if spec.interceptors is None else spec.interceptors
            hooks = self.default_hooks if spec.hooks is None else spec.hooks

            self._orchestrators[name] = Orchestrator(
                name=spec.name,
                model=spec.model or self.model,
                system_prompt=spec.system_prompt,
                tools=tools,
                interceptors=list(interceptors),
                hooks=list(hooks),
                checkpointer=self.checkpointer,
                token_counter=self.token_counter,
                enable_logging=spec.enable_looping_log,
            )
        return self._orchestrators[name]

    def cancel(self, parent_run_id: str) -> int:
        """
        Ask every running child of a parent run to stop.

        Returns:
            How many child runs were asked
        """
        children = self._running.get(parent_run_id, {})
        for child_run_id, orchestrator in list(children.items()):
            orchestrator.abort(child_run_id)
        if children:
            logger.info(f"Cancelling {len(children)} sub-agent run(s) of {parent_run_id}")
        return len(children)

    def tool(self) -> MCPTool:
        agents = "\n".join(f"- {spec.name}: {spec.description}" for spec in self._specs.values())
        return MCPTool(
            name="task",
            description=TASK_TOOL_DESCRIPTION.format(agents=agents),
            parameters={
                "type": "object",
                "properties": {
                    "description": {
                        "type": "string",
                        "description": "A detailed description of the task for the sub-agent"
                    },
                    "subagent_type": {
                        "type": "string",
                        "description": "Which agent to use",
                        "enum": self.names()
                    }
                },
                "required": ["description", "subagent_type"]
            },
            execute=self._task,
            contextual=True,
            tags=frozenset({SUBAGENT_TAG}),
        )

    async def _task(self, params: dict, request: ToolCallRequest) -> ToolResult:
        description = params.get("description")
        subagent_type = params.get("subagent_type")

        if not isinstance(description, str) or not description.strip():
            raise SchemaError("description must be a non-empty string")
        if subagent_type not in self._specs:
            return ToolResult.schema_error(
                f"Unknown subagent_type {subagent_type!r}. Allowed types: {', '.join(self.names())}"
            )

        parent = request.state
        # cancel() may already have walked the running children
        if parent.abort_requested:
            return ToolResult.cancelled(f"Sub-agent {subagent_type} was not started: the run was aborted")

        child_run_id = f"{parent.run_id}/{subagent_type}-{uuid.uuid4().hex[:8]}"
        orchestrator = self.orchestrator_for(subagent_type)

        children = self._running.setdefault(parent.run_id, {})
        children[child_run_id] = orchestrator
        parent.active_subagents.add(child_run_id)
        logger.info(f"Launching {subagent_type} as {child_run_id}")

        try:
            result = await orchestrator.run(
                description,
                run_id=child_run_id,
                files=parent.files,
                parent_run_id=parent.run_id,
            )
        except FatalRunError as e:
            logger.error(f"Sub-agent run {child_run_id} failed", e)
            return ToolResult.failure(f"Sub-agent {subagent_type} failed: {e}", run_id=child_run_id)
        finally:
            children.pop(child_run_id, None)
            if not children:
                self._running.pop(parent.run_id, None)
            parent.active_subagents.discard(child_run_id)

        if result.termination_reason is TerminationReason.ABORTED:
            return ToolResult.cancelled(f"Sub-agent {subagent_type} was cancelled before it finished")

        return ToolResult.ok(
            result.final_answer or "(the sub-agent returned no answer)",
            subagent=subagent_type,
            run_id=child_run_id,
            termination=result.termination_reason.value,
        )
