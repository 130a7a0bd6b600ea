"""
Agent Core
==========

The Orchestrator drives one agent's reasoning loop.

Agent Loop:
    Task
     │
     ▼
    AWAIT_MODEL ◄──────────────────────────────────────┐
     │  interceptors.before_model (patch, context edit) │
     │  hooks.before_model ──► SUMMARIZE ──┐            │
     │                         ◄───────────┘            │
     │  model call                                      │
     ▼                                                  │
    ┌─── Has Tool Calls? ───┐                           │
    │                       │                           │
    Yes                     No ──► TERMINATED (final)   │
    │                                                   │
    ▼  for each call, in order:                         │
    hooks.before_tool_call ── deny/limit ──► tool msg ──┤
    │                                                   │
    AWAIT_APPROVAL (gated tools only) ── deny ► tool msg┤
    │                                                   │
    EXECUTE_TOOL: interceptor chain ► tool ► tool msg ──┘
                  hooks.after_tool_call ── limit ──► TERMINATED

A single run is strictly sequential: one model call or one tool call at a
time. The exception is several `task` calls in one model response: those
sub-agent runs execute concurrently and their results are recorded in call
order.

Every requested tool call ends with exactly one tool message, whatever
happens to it (executed, denied, rejected by the limit, cancelled, failed).

Checkpoints are saved after each model response, after each batch of tool
results, and when the run ends.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from deepresearch.agent.context import ContextAssembler
from deepresearch.agent.hooks.base import Hook, HookAction, HookOutcome
from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.model import ModelClient
from deepresearch.agent.state import AgentState, RunState, TerminationReason, ToolCall, ToolCallStatus
from deepresearch.agent.tools_executor import ToolCallRequest, ToolExecutor
from deepresearch.errors import FatalRunError
from deepresearch.memory.checkpoint import CheckpointStore, MemoryCheckpointStore
from deepresearch.memory.short_term import MessageStore
from deepresearch.memory.working import VirtualFilesystem
from deepresearch.tools import RESULT_LIMIT, ToolRegistry, ToolResult
from deepresearch.utils.logger import Logger
from deepresearch.utils.tokens import TokenCounter, make_token_counter

if TYPE_CHECKING:
    from deepresearch.agent.subagents import SubAgentDispatcher

logger = Logger("Orchestrator")

# Tools with this tag run concurrently when requested back to back
SUBAGENT_TAG = "subagent"

STATE_TRANSITIONS: dict[AgentState, tuple[AgentState, ...]] = {
    AgentState.AWAIT_MODEL: (
        AgentState.SUMMARIZE, AgentState.AWAIT_APPROVAL, AgentState.EXECUTE_TOOL, AgentState.TERMINATED,
    ),
    AgentState.SUMMARIZE: (AgentState.AWAIT_MODEL,),
    AgentState.AWAIT_APPROVAL: (AgentState.EXECUTE_TOOL, AgentState.AWAIT_MODEL, AgentState.TERMINATED),
    AgentState.EXECUTE_TOOL: (
        AgentState.AWAIT_APPROVAL, AgentState.EXECUTE_TOOL, AgentState.AWAIT_MODEL, AgentState.TERMINATED,
    ),
    AgentState.TERMINATED: (),
}


@dataclass
class RunResult:
    """
    Outcome of a finished run.

    Attributes:
        run_id: The run
        agent_name: The agent that ran it
        termination_reason: completed, limit_reached or aborted
        final_answer: The model's final message, or why the run stopped
        tool_call_count: Tool calls admitted during the run
        state: The final RunState
    """
    run_id: str
    agent_name: str
    termination_reason: TerminationReason
    final_answer: str
    tool_call_count: int
    state: RunState

    @property
    def completed(self) -> bool:
        return self.termination_reason is TerminationReason.COMPLETED

    @property
    def limit_reached(self) -> bool:
        return self.termination_reason is TerminationReason.LIMIT_REACHED

    @classmethod
    def from_state(cls, state: RunState) -> "RunResult":
        return cls(
            run_id=state.run_id,
            agent_name=state.agent_name,
            termination_reason=state.termination_reason or TerminationReason.COMPLETED,
            final_answer=state.final_answer or "",
            tool_call_count=state.tool_call_count,
            state=state,
        )


class Orchestrator:
    """
    Runs the reasoning loop for one configured agent.

    One Orchestrator can serve many runs, concurrently; everything per-run
    lives in the RunState.

    Example:
        agent = Orchestrator(
            name="research_agent",
            model=ModelClient(config.model),
            system_prompt=research_system_prompt(),
            tools=ToolRegistry([search_tool]),
            interceptors=[todo, filesystem, eviction, patch, context_editing, retry],
            hooks=[human_in_the_loop, summarization, limit, shell],
            subagents=dispatcher,
        )

        result = await agent.run("Compare RISC-V and ARM for embedded products")
        print(result.final_answer)
    """

    def __init__(
        self,
        name: str,
        model: ModelClient,
        system_prompt: str,
        tools: ToolRegistry | None = None,
        interceptors: list[Interceptor] | None = None,
        hooks: list[Hook] | None = None,
        checkpointer: CheckpointStore | None = None,
        token_counter: TokenCounter | None = None,
        subagents: "SubAgentDispatcher | None" = None,
        enable_logging: bool = False
    ):
        """
        Args:
            name: Agent name (used in logs and run snapshots)
            model: The reasoning model
            system_prompt: The agent's base prompt
            tools: Externally registered tools (search_web, ...)
            interceptors: Interceptor chain, outermost first
            hooks: Lifecycle hooks, in consultation order
            checkpointer: Where run snapshots go (in memory by default)
            token_counter: Token counting function for the message store
            subagents: Dispatcher exposing the `task` tool, if any
            enable_logging: Log every loop step at INFO instead of DEBUG
        """
        self.name = name
        self.model = model
        self.interceptors = list(interceptors or [])
        self.hooks = list(hooks or [])
        self.checkpointer = checkpointer or MemoryCheckpointStore()
        self.token_counter = token_counter or make_token_counter(model.name)
        self.subagents = subagents
        self.enable_logging = enable_logging
        self.logger = logger.child(name)

        contributed = [tool for interceptor in self.interceptors for tool in interceptor.tools()]
        contributed += [tool for hook in self.hooks for tool in hook.tools()]
        sections = [interceptor.system_prompt() for interceptor in self.interceptors]
        if subagents is not None:
            contributed.append(subagents.tool())
            sections.append(subagents.system_prompt())

        self.base_tools = tools or ToolRegistry()
        self.tools = self.base_tools.extended(contributed)
        self.assembler = ContextAssembler(system_prompt, self.tools, sections)
        self.executor = ToolExecutor(self.tools, self.interceptors)

        self._live: dict[str, RunState] = {}

        self.logger.debug(
            f"Agent {name} ready",
            {"tools": self.tools.list_names(), "interceptors": [i.name for i in self.interceptors]}
        )

    # ==========================================================================
    # Public API
    # ==========================================================================

    async def run(
        self,
        task: str,
        run_id: str | None = None,
        files: VirtualFilesystem | None = None,
        parent_run_id: str | None = None
    ) -> RunResult:
        """
        Run the agent on a task until it terminates.

        Args:
            task: The user's request (first user message)
            run_id: Id for the run; a new one is generated if omitted
            files: Workspace to use (sub-agents get their parent's)
            parent_run_id: Set for sub-agent runs

        Returns:
            RunResult with the final answer or the limit that stopped it

        Raises:
            FatalRunError: When the model keeps failing or a tool exhausts
                retries under the RAISE policy
        """
        state = RunState(
            run_id=run_id or uuid.uuid4().hex,
            agent_name=self.name,
            messages=MessageStore(self.token_counter),
            files=files if files is not None else VirtualFilesystem(),
            parent_run_id=parent_run_id,
        )
        state.messages.append("user", task)

        self.logger.info(f"Starting run {state.run_id}: {task[:80]}")
        return await self._drive(state)

    async def resume(self, run_id: str) -> RunResult:
        """
        Continue a run from its latest checkpoint.

        Raises:
            KeyError: If there is no checkpoint for run_id
        """
        record = await self.checkpointer.load_latest(run_id)
        if record is None:
            raise KeyError(f"No checkpoint for run {run_id}")

        state = RunState.from_dict(record.snapshot, self.token_counter)
        if state.terminated:
            self.logger.info(f"Run {run_id} already finished ({state.termination_reason.value})")
            return RunResult.from_state(state)

        self.logger.info(f"Resuming run {run_id} from checkpoint #{record.sequence}")
        return await self._drive(state)

    def abort(self, run_id: str) -> bool:
        """
        Ask a live run to stop.

        The run stops at its next step; tool calls already running finish.
        A pending approval wait is abandoned and its call is cancelled.
        Sub-agent runs it spawned are asked to stop too.

        Returns:
            False if no such run is active
        """
        state = self._live.get(run_id)
        if state is None:
            return False

        state.request_abort()
        self.logger.info(f"Abort requested for run {run_id}")
        if self.subagents is not None:
            self.subagents.cancel(run_id)
        return True

    def active_runs(self) -> list[str]:
        return list(self._live)

    def describe(self) -> str:
        """Text dump of the agent graph for diagnostics."""
        lines = [f"Agent: {self.name}", f"Model: {self.model.name}", "", "States:"]
        for source, targets in STATE_TRANSITIONS.items():
            arrow = " | ".join(target.name for target in targets) or "(end)"
            lines.append(f"  {source.name} -> {arrow}")

        lines += ["", "Interceptors (outermost first):"]
        lines += [f"  {i}. {interceptor.name}" for i, interceptor in enumerate(self.interceptors, start=1)] or ["  (none)"]

        lines += ["", "Hooks:"]
        lines += [f"  {i}. {hook.name}" for i, hook in enumerate(self.hooks, start=1)] or ["  (none)"]

        lines += ["", "Tools:"]
        lines += [f"  - {name}" for name in self.tools.list_names()] or ["  (none)"]

        if self.subagents is not None:
            lines += ["", "Sub-agents:"]
            lines += [f"  - {name}" for name in self.subagents.names()]

        return "\n".join(lines)

    # ==========================================================================
    # Loop
    # ==========================================================================

    def _step(self, message: str, data: dict | None = None) -> None:
        if self.enable_logging:
            self.logger.info(message, data)
        else:
            self.logger.debug(message, data)

    def _enter(self, state: RunState, new_state: AgentState) -> None:
        if state.state is not new_state:
            self._step(f"[{state.run_id}] {state.state.name} -> {new_state.name}")
            state.state = new_state

    async def _checkpoint(self, state: RunState) -> None:
        await self.checkpointer.save(state.run_id, state.to_dict())

    async def _drive(self, state: RunState) -> RunResult:
        if state.run_id in self._live:
            raise ValueError(f"Run {state.run_id} is already active")

        self._live[state.run_id] = state
        try:
            await self._loop(state)
        except FatalRunError as e:
            self.logger.error(f"Run {state.run_id} failed", e)
            state.terminate(TerminationReason.FAILED)
            await self._checkpoint(state)
            raise
        finally:
            self._live.pop(state.run_id, None)
            self.checkpointer.release(state.run_id)

        self.logger.info(
            f"Run {state.run_id} finished: {state.termination_reason.value}",
            {"tool_calls": state.tool_call_count, "model_calls": state.model_calls, "tokens": state.total_tokens}
        )
        return RunResult.from_state(state)

    async def _loop(self, state: RunState) -> None:
        pending = [
            call for call in state.tool_calls
            if call.status in (ToolCallStatus.PENDING, ToolCallStatus.APPROVED)
        ]
        if pending and not state.terminated:
            self._step(f"[{state.run_id}] Resuming {len(pending)} pending tool call(s)")
            await self._process_calls(state, pending)
            await self._checkpoint(state)

        while not state.terminated:
            if state.abort_requested:
                state.terminate(TerminationReason.ABORTED, "The run was aborted")
                break

            self._enter(state, AgentState.AWAIT_MODEL)
            for interceptor in self.interceptors:
                await interceptor.before_model(state)

            if not await self._before_model_hooks(state):
                break

            context = self.assembler.assemble(state)
            response = await self.model.complete(context.to_openai_messages(), context.tools)
            state.model_calls += 1

            if response.is_final:
                state.messages.append("assistant", response.text)
                state.terminate(TerminationReason.COMPLETED, response.text)
                break

            message = state.messages.append(
                "assistant", response.text, tool_calls=[tc.to_dict() for tc in response.tool_calls]
            )
            calls = ToolExecutor.parse_tool_calls(response, message.position)
            state.tool_calls.extend(calls)
            self._step(
                f"[{state.run_id}] Model requested {len(calls)} tool call(s)",
                {"tools": [call.name for call in calls]}
            )
            await self._checkpoint(state)

            await self._process_calls(state, calls)
            if not state.terminated:
                await self._checkpoint(state)

        await self._checkpoint(state)

    async def _before_model_hooks(self, state: RunState) -> bool:
        """Run before_model hooks; False if one of them ended the run."""
        for hook in self.hooks:
            outcome = await hook.before_model(state)

            if outcome.action is HookAction.SUMMARIZE:
                self._enter(state, AgentState.SUMMARIZE)
                await hook.summarize(state)
                self._enter(state, AgentState.AWAIT_MODEL)

            elif outcome.action is HookAction.ABORT:
                self.logger.info(f"Run {state.run_id} stopped by {hook.name}: {outcome.reason}")
                state.terminate(TerminationReason.LIMIT_REACHED, outcome.reason)
                return False

        return True

    # ==========================================================================
    # Tool calls
    # ==========================================================================

    def _segments(self, calls: list[ToolCall]) -> list[list[ToolCall]]:
        """Split calls into sequential singles and runs of back-to-back sub-agent calls."""
        segments: list[tuple[bool, list[ToolCall]]] = []
        for call in calls:
            tool = self.tools.get(call.name)
            fan_out = tool is not None and SUBAGENT_TAG in tool.tags
            if fan_out and segments and segments[-1][0]:
                segments[-1][1].append(call)
            else:
                segments.append((fan_out, [call]))
        return [segment for _, segment in segments]

    def _record(self, state: RunState, call: ToolCall, result: ToolResult) -> None:
        if not call.settled:
            call.settle(result)
        state.add_tool_message(call.id, call.name, result, status=call.status)

    async def _process_calls(self, state: RunState, calls: list[ToolCall]) -> None:
        try:
            await self._process_segments(state, calls)
        except FatalRunError:
            for call in calls:
                if not call.settled:
                    self._record(state, call, ToolResult.cancelled("The run failed before this tool call ran"))
            raise

    async def _process_segments(self, state: RunState, calls: list[ToolCall]) -> None:
        limit_reason: str | None = None

        for segment in self._segments(calls):
            admitted: list[ToolCallRequest] = []

            for call in segment:
                request = ToolCallRequest(call, state, self.tools.get(call.name))

                if limit_reason:
                    self._record(state, call, ToolResult.limit_reached(f"{limit_reason}; this call was not run."))
                    continue

                if not state.abort_requested and call.status is ToolCallStatus.PENDING:
                    rejection, abort_reason = await self._gate(request)
                    if rejection is not None:
                        self._record(state, call, rejection)
                        if abort_reason or rejection.kind == RESULT_LIMIT:
                            limit_reason = abort_reason or rejection.error
                        continue

                # Checked after the gate too: approvals can take a while
                if state.abort_requested:
                    self._record(state, call, ToolResult.cancelled("The run was aborted before this tool call ran"))
                    continue

                if call.status is ToolCallStatus.PENDING:
                    call.transition(ToolCallStatus.APPROVED)
                    state.record_tool_call()
                admitted.append(request)

            if admitted:
                abort_reason = await self._execute(state, admitted)
                limit_reason = limit_reason or abort_reason

        if limit_reason:
            self.logger.info(f"Run {state.run_id} reached its limit: {limit_reason}")
            state.terminate(TerminationReason.LIMIT_REACHED, limit_reason)

    async def _gate(self, request: ToolCallRequest) -> tuple[ToolResult | None, str | None]:
        """
        Ask every hook about a call, then await the approvals they asked for.

        Returns:
            (None, None) if the call may run, otherwise the result to record
            and, for limit aborts, the reason the run must stop
        """
        approvals: list[Hook] = []
        for hook in self.hooks:
            outcome = await hook.before_tool_call(request)

            if outcome.action is HookAction.DENY:
                return outcome.result or ToolResult.policy_violation(outcome.reason), None
            if outcome.action is HookAction.ABORT:
                return outcome.result or ToolResult.limit_reached(outcome.reason), outcome.reason
            if outcome.action is HookAction.APPROVAL_REQUIRED:
                approvals.append(hook)

        for hook in approvals:
            self._enter(request.state, AgentState.AWAIT_APPROVAL)
            outcome = await self._await_approval(hook, request)
            if outcome is None:
                return ToolResult.cancelled("The run was aborted while this tool call waited for approval"), None
            if outcome.action is not HookAction.CONTINUE:
                return outcome.result or ToolResult.denied(outcome.reason), None

        return None, None

    async def _await_approval(self, hook: Hook, request: ToolCallRequest) -> HookOutcome | None:
        """Wait for a hook's approval decision; None if the run is aborted first."""
        signal = request.state.abort_signal
        if signal.is_set():
            return None

        approval = asyncio.ensure_future(hook.await_approval(request))
        aborted = asyncio.ensure_future(signal.wait())
        try:
            await asyncio.wait({approval, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in (approval, aborted):
                if not waiter.done():
                    waiter.cancel()

        if not approval.done() or approval.cancelled():
            # Let the channel drop its pending entry before the call is recorded
            await asyncio.wait({approval})
            self._step(f"[{request.state.run_id}] Approval for {request.call.id} abandoned, run aborted")
            return None
        return approval.result()

    async def _execute(self, state: RunState, admitted: list[ToolCallRequest]) -> str | None:
        """
        Execute admitted calls and record their results in call order.

        Returns:
            The reason to stop the run if an after_tool_call hook asked to

        Raises:
            The first exception a call raised, after every result is recorded
        """
        self._enter(state, AgentState.EXECUTE_TOOL)

        outcomes = await asyncio.gather(
            *(self.executor.execute(request) for request in admitted),
            return_exceptions=True
        )

        failure: BaseException | None = None
        abort_reason: str | None = None

        for request, outcome in zip(admitted, outcomes):
            if isinstance(outcome, BaseException):
                self._record(state, request.call, ToolResult.failure(f"{type(outcome).__name__}: {outcome}"))
                failure = failure or outcome
                continue

            self._record(state, request.call, outcome)
            for hook in self.hooks:
                after = await hook.after_tool_call(request, outcome)
                if after.action is HookAction.ABORT:
                    abort_reason = abort_reason or after.reason

        if failure is not None:
            raise failure
        return abort_reason
