"""
Deep Research Agent - Main Entry Point
======================================

This is the composition root. It:
1. Loads configuration
2. Builds the model client, tools, interceptors and hooks
3. Builds the sub-agents (research, critique, general purpose)
4. Builds the main research agent and registers it with the loader
5. Runs one research question from the command line

Run with:
    python -m deepresearch.main "What are the trade-offs of RISC-V vs ARM?"

Or after installing:
    deepresearch "What are the trade-offs of RISC-V vs ARM?"
"""

import argparse
import asyncio
import sys

import httpx

from deepresearch import __version__
from deepresearch.agent.approval import ApprovalChannel, ConsoleApprovalChannel
from deepresearch.agent.core import Orchestrator
from deepresearch.agent.hooks import (
    HumanInTheLoopHook,
    ShellToolHook,
    SummarizationHook,
    ToolCallLimitHook,
)
from deepresearch.agent.interceptors import (
    ContextEditingInterceptor,
    FilesystemInterceptor,
    LargeResultEvictionInterceptor,
    PatchToolCallsInterceptor,
    TodoListInterceptor,
    ToolRetryInterceptor,
)
from deepresearch.agent.loader import AgentLoader
from deepresearch.agent.model import ModelClient
from deepresearch.agent.prompts import (
    CRITIQUE_AGENT_DESCRIPTION,
    RESEARCH_AGENT_DESCRIPTION,
    SUB_CRITIQUE_PROMPT,
    SUB_RESEARCH_PROMPT,
    research_system_prompt,
)
from deepresearch.agent.subagents import SubAgentDispatcher, SubAgentSpec
from deepresearch.errors import AgentError, ConfigError
from deepresearch.memory.checkpoint import CheckpointStore, FileCheckpointStore, MemoryCheckpointStore
from deepresearch.tools import ToolRegistry
from deepresearch.tools.search import create_search_tool
from deepresearch.utils.config import Config, load_config
from deepresearch.utils.logger import Logger, set_log_level
from deepresearch.utils.tokens import TokenCounter, make_token_counter

main_logger = Logger("Main")

RESEARCH_AGENT_NAME = "research_agent"


def build_research_agent(
    config: Config,
    model: ModelClient | None = None,
    approval_channel: ApprovalChannel | None = None,
    search_client: httpx.AsyncClient | None = None,
    checkpointer: CheckpointStore | None = None,
    token_counter: TokenCounter | None = None
) -> Orchestrator:
    """
    Wire the deep research agent.

    Interceptor order (outermost first):
        main agent: todo, filesystem, eviction, patch, context editing, retry
        sub-agents: todo, filesystem, context editing, patch, eviction

    Hooks (both): human in the loop, summarization, tool call limit, shell

    Args:
        config: Loaded configuration
        model: Model client to use (built from config.model if omitted)
        approval_channel: Where approval requests go (console by default)
        search_client: Optional httpx client for the search tool
        checkpointer: Checkpoint store (from config.checkpoint if omitted)
        token_counter: Token counter (tiktoken for the model if omitted)

    Returns:
        The main research Orchestrator
    """
    model = model or ModelClient(config.model)
    token_counter = token_counter or make_token_counter(model.name)
    approval_channel = approval_channel or ConsoleApprovalChannel()

    if checkpointer is None:
        if config.checkpoint.directory is not None:
            checkpointer = FileCheckpointStore(config.checkpoint.directory)
        else:
            checkpointer = MemoryCheckpointStore()

    if config.summarization.model:
        summarization_model = model.with_model(config.summarization.model)
    else:
        main_logger.info(f"SUMMARIZATION_MODEL not set, summarizing with {model.name}")
        summarization_model = model

    tools = ToolRegistry([create_search_tool(config.search, client=search_client)])

    # Interceptors
    todo = TodoListInterceptor()
    filesystem = FilesystemInterceptor(config.filesystem)
    eviction = LargeResultEvictionInterceptor(config.eviction, token_counter)
    patch = PatchToolCallsInterceptor()
    context_editing = ContextEditingInterceptor(config.context_editing)
    retry = ToolRetryInterceptor.from_config(config.retry)

    # Hooks
    hooks = [
        HumanInTheLoopHook(config.approval.tools, approval_channel),
        SummarizationHook(config.summarization, summarization_model),
        ToolCallLimitHook(config.tool_call_limit),
        ShellToolHook(config.shell),
    ]

    subagents = SubAgentDispatcher(
        specs=[
            SubAgentSpec(
                name="research-agent",
                description=RESEARCH_AGENT_DESCRIPTION,
                system_prompt=SUB_RESEARCH_PROMPT,
                tools=("search_web",),
                enable_looping_log=True,
            ),
            SubAgentSpec(
                name="critique-agent",
                description=CRITIQUE_AGENT_DESCRIPTION,
                system_prompt=SUB_CRITIQUE_PROMPT,
                enable_looping_log=True,
            ),
        ],
        model=model,
        tools=tools,
        default_interceptors=[todo, filesystem, context_editing, patch, eviction],
        default_hooks=hooks,
        checkpointer=checkpointer,
        token_counter=token_counter,
        include_general_purpose=True,
    )

    return Orchestrator(
        name="DeepResearchAgent",
        model=model,
        system_prompt=research_system_prompt(),
        tools=tools,
        interceptors=[todo, filesystem, eviction, patch, context_editing, retry],
        hooks=hooks,
        checkpointer=checkpointer,
        token_counter=token_counter,
        subagents=subagents,
        enable_logging=True,
    )


def build_loader(config: Config, **kwargs) -> AgentLoader:
    """
    Build every agent and register it by name.

    Keyword arguments are passed on to build_research_agent.
    """
    agent = build_research_agent(config, **kwargs)
    main_logger.info(f"DeepResearchAgent graph:\n{agent.describe()}")

    loader = AgentLoader()
    loader.register(RESEARCH_AGENT_NAME, agent)
    return loader


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="deepresearch",
        description="Research a question and write a cited report."
    )
    parser.add_argument("question", nargs="?", help="The research question")
    parser.add_argument("--resume", metavar="RUN_ID", help="Resume a checkpointed run instead of starting one")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)
    if not args.question and not args.resume:
        parser.error("a question is required unless --resume is given")
    return args


async def main(argv: list[str] | None = None) -> int:
    """
    Main async entry point.

    Builds the agents and runs one research question.

    Returns:
        Process exit code
    """
    args = _parse_args(argv)

    try:
        # 1. Load configuration
        # This validates that all required env vars are set
        config = load_config(args.env_file)
        set_log_level(config.log_level)

        # 2. Build the agents
        main_logger.info("Building agents...")
        loader = build_loader(config, approval_channel=ConsoleApprovalChannel())
        agent = loader.load_agent(RESEARCH_AGENT_NAME)
        main_logger.info(f"Deep research agent is ready! Agents: {', '.join(loader.list_agents())}")

        # 3. Run
        if args.resume:
            result = await agent.resume(args.resume)
        else:
            result = await agent.run(args.question)

    except ConfigError as e:
        main_logger.error("Invalid configuration", e)
        return 2
    except KeyError as e:
        main_logger.error("Nothing to resume", e)
        return 1
    except AgentError as e:
        main_logger.error("Research run failed", e)
        return 1

    files = result.state.files
    if files.exists("/final_report.md"):
        print(files.read_raw("/final_report.md"))
    else:
        print(result.final_answer)

    if not result.completed:
        main_logger.warning(f"Run {result.run_id} ended early: {result.termination_reason.value}")
        return 1
    return 0


def run():
    """
    Synchronous entry point.

    This is called when running with `deepresearch` command.
    """
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
