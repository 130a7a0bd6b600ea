"""
Summarization Hook
==================

Compacts the conversation when it grows past max_tokens_before_summary.

    [m0 m1 m2 ... m(n-k-1)] [m(n-k) ... m(n-1)]
     summarized into one      kept untouched
     summary message          (messages_to_keep)

The cut moves earlier when the kept tail would start with tool messages,
so an assistant tool-call message is never separated from its results.

The summary is written by a model call. That model can be a different,
cheaper one than the main reasoning model; which one is a configuration
choice (SUMMARIZATION_MODEL).
"""

from deepresearch.agent.hooks.base import Hook, HookAction, HookOutcome
from deepresearch.agent.model import ModelClient
from deepresearch.agent.state import RunState
from deepresearch.memory.short_term import format_transcript
from deepresearch.utils.config import SummarizationConfig
from deepresearch.utils.logger import Logger

logger = Logger("Summarization")

SUMMARY_PREFIX = "Here is a summary of the conversation to date:"

SUMMARY_SYSTEM_PROMPT = """You are compacting the history of a research assistant's working session.

Write a concise summary that preserves everything needed to continue the work:
- the user's original question and any constraints
- research findings so far, with the source URLs they came from
- files written to the workspace and what they contain
- what remains to be done

Do not add new information. Output only the summary."""


class SummarizationHook(Hook):
    """
    Replaces old messages with a model-written summary.

    Example:
        hook = SummarizationHook(
            SummarizationConfig(model="qwen-turbo", max_tokens_before_summary=120000, messages_to_keep=6),
            model=summary_model
        )
    """

    name = "summarization"

    def __init__(self, config: SummarizationConfig, model: ModelClient):
        self.config = config
        self.model = model

    async def before_model(self, state: RunState) -> HookOutcome:
        if state.total_tokens > self.config.max_tokens_before_summary:
            return HookOutcome(
                HookAction.SUMMARIZE,
                f"{state.total_tokens} tokens over {self.config.max_tokens_before_summary}"
            )
        return HookOutcome.proceed()

    def find_cut(self, state: RunState) -> int:
        """Index of the first kept message; 0 means nothing to summarize."""
        messages = state.messages.messages
        cut = len(messages) - self.config.messages_to_keep
        if cut <= 0:
            return 0

        while 0 < cut < len(messages) and messages[cut].role == "tool":
            cut -= 1
        return cut

    async def summarize(self, state: RunState) -> None:
        cut = self.find_cut(state)
        if cut == 0:
            logger.warning("Over the summary threshold but nothing is old enough to summarize")
            return

        messages = state.messages.messages
        before = state.total_tokens

        response = await self.model.complete([
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": format_transcript(messages[:cut])},
        ])

        state.messages.replace_range(
            0, cut, "user", f"{SUMMARY_PREFIX}\n\n{response.text}",
            metadata={"summary": True, "summarized_messages": cut}
        )

        logger.info(
            f"Summarized {cut} messages with {self.model.name}",
            {"before": before, "after": state.total_tokens}
        )
