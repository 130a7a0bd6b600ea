"""
Context Assembly
================

Builds what the model sees on each turn:

    system message
    ├── the agent's own prompt (research / critique / ...)
    ├── sections contributed by interceptors (todo, filesystem, ...)
    ├── the sub-agent task prompt, if the agent can delegate
    └── a listing of the workspace files, if there are any
    messages        the run's MessageStore, in order
    tools           every tool the agent can call, OpenAI function format

Token Budget:
    The system message and tool schemas are rebuilt every turn and are not
    part of RunState.total_tokens. Only conversation messages count toward
    the summarization and context editing thresholds.
"""

from dataclasses import dataclass, field

from deepresearch.agent.state import RunState
from deepresearch.tools import ToolRegistry
from deepresearch.utils.logger import Logger

logger = Logger("Context")


@dataclass
class AssembledContext:
    """
    The fully assembled context for one model turn.

    Attributes:
        system_message: The system prompt with all sections
        messages: Conversation history in OpenAI format
        tools: Available tools in OpenAI function format
    """
    system_message: str
    messages: list[dict]
    tools: list[dict] = field(default_factory=list)

    def to_openai_messages(self) -> list[dict]:
        """
        Format as messages for the chat completions API.

        Returns:
            List of message dicts ready for the API
        """
        result = [{"role": "system", "content": self.system_message}]
        result.extend(self.messages)
        return result


class ContextAssembler:
    """
    Assembles context for model requests.

    Example:
        assembler = ContextAssembler(RESEARCH_PROMPT, registry, [todo.system_prompt()])
        context = assembler.assemble(state)

        response = await model.complete(context.to_openai_messages(), context.tools)
    """

    def __init__(
        self,
        system_prompt: str,
        registry: ToolRegistry,
        sections: list[str | None] | None = None
    ):
        """
        Args:
            system_prompt: The agent's base prompt
            registry: Every tool the agent can call
            sections: Extra prompt sections (None entries are skipped)
        """
        self.system_prompt = system_prompt
        self.registry = registry
        self.sections = [section for section in (sections or []) if section]

    def build_system_message(self, state: RunState) -> str:
        parts = [self.system_prompt, *self.sections]
        if len(state.files):
            parts.append("## Workspace files\n" + state.files.to_context_string())
        return "\n\n".join(part.strip() for part in parts if part and part.strip())

    def assemble(self, state: RunState) -> AssembledContext:
        """Build the context for the next model turn of this run."""
        context = AssembledContext(
            system_message=self.build_system_message(state),
            messages=state.messages.to_openai_messages(),
            tools=self.registry.get_openai_functions(),
        )
        logger.debug(
            f"Assembled context for {state.run_id}",
            {"messages": len(context.messages), "tools": len(context.tools), "tokens": state.total_tokens}
        )
        return context
