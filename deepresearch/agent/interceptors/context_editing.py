"""
Context Editing
===============

A token budget guard that runs before every model turn, separate from
summarization: it never calls a model, it only drops messages.

When the run's context is above `trigger` tokens:

    1. Split everything older than the last `keep` messages into exchange
       groups: an assistant message with tool calls plus the tool messages
       answering it, or a single message
    2. Skip groups that touch an excluded tool (write_todos by default)
       or that reach into the kept tail
    3. Drop groups oldest first until at least `clear_at_least` tokens are
       freed, and not one group more

Dropping whole groups keeps every remaining tool message paired with the
assistant message that requested it.

If every droppable group together frees less than clear_at_least, all of
them are dropped and a warning is logged.
"""

from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.state import RunState
from deepresearch.memory.short_term import Message
from deepresearch.utils.config import ContextEditingConfig
from deepresearch.utils.logger import Logger

logger = Logger("ContextEditing")


def exchange_groups(messages: tuple[Message, ...]) -> list[list[int]]:
    """Group message indexes into assistant+tool exchanges and singles."""
    groups: list[list[int]] = []
    index = 0
    while index < len(messages):
        message = messages[index]
        group = [index]
        if message.role == "assistant" and message.tool_calls:
            call_ids = {call["id"] for call in message.tool_calls}
            following = index + 1
            while (
                following < len(messages)
                and messages[following].role == "tool"
                and messages[following].tool_call_id in call_ids
            ):
                group.append(following)
                following += 1
        groups.append(group)
        index = group[-1] + 1
    return groups


class ContextEditingInterceptor(Interceptor):
    """
    Drops the oldest messages when the context grows past a trigger.

    Example:
        editing = ContextEditingInterceptor(ContextEditingConfig(
            trigger=10000, clear_at_least=6000, keep=4, exclude_tools=("write_todos",)
        ))
    """

    name = "context_editing"

    def __init__(self, config: ContextEditingConfig | None = None):
        self.config = config or ContextEditingConfig()

    def _touches_excluded(self, message: Message) -> bool:
        excluded = self.config.exclude_tools
        if message.role == "tool":
            return message.name in excluded
        return any(call["name"] in excluded for call in message.tool_calls)

    async def before_model(self, state: RunState) -> None:
        total = state.total_tokens
        if total <= self.config.trigger:
            return

        messages = state.messages.messages
        protected_from = max(0, len(messages) - self.config.keep)

        doomed: list[int] = []
        freed = 0
        for group in exchange_groups(messages):
            if freed >= self.config.clear_at_least:
                break
            if group[-1] >= protected_from:
                break
            if any(self._touches_excluded(messages[i]) for i in group):
                continue
            doomed.extend(messages[i].position for i in group)
            freed += sum(messages[i].tokens for i in group)

        if doomed:
            state.messages.remove(doomed)

        data = {
            "before": total,
            "after": state.total_tokens,
            "freed": freed,
            "dropped_messages": len(doomed),
        }
        if freed < self.config.clear_at_least:
            logger.warning(
                f"Context over {self.config.trigger} tokens but only {freed} could be freed "
                f"(wanted {self.config.clear_at_least})",
                data
            )
        else:
            logger.info(f"Dropped {len(doomed)} old messages to free {freed} tokens", data)
