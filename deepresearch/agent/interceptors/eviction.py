"""
Large Result Eviction
=====================

Keeps huge tool results out of the conversation.

After a tool returns, the result text is counted. Above the limit:

    1. The full text is stored in the workspace at
       /large_tool_results/<call id>-<uuid>
    2. The model sees a short placeholder naming that path, with a preview
    3. The model can page through the full text with read_file

Filesystem tools are exempt when exclude_filesystem_tools is set: their
output already comes from an addressable file.

The placeholder is trimmed until it fits under the limit itself, so an
evicted message never costs more tokens than the limit.
"""

from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.interceptors.filesystem import FILESYSTEM_TAG
from deepresearch.agent.tools_executor import ToolCallRequest, ToolHandler
from deepresearch.tools import ToolResult
from deepresearch.utils.config import EvictionConfig
from deepresearch.utils.logger import Logger
from deepresearch.utils.tokens import TokenCounter

logger = Logger("Eviction")

EVICTION_DIRECTORY = "/large_tool_results"
PREVIEW_CHARS = 2000

PLACEHOLDER_TEMPLATE = """Tool result too large ({tokens} tokens), the full result was saved to {path}
Read it with read_file(file_path="{path}", offset=..., limit=...) to see more.

Preview:
{preview}"""


class LargeResultEvictionInterceptor(Interceptor):
    """
    Moves oversized tool results into the workspace side-store.

    Example:
        eviction = LargeResultEvictionInterceptor(EvictionConfig(5000), count_tokens)
    """

    name = "large_result_eviction"

    def __init__(self, config: EvictionConfig, token_counter: TokenCounter):
        self.config = config
        self.count_tokens = token_counter

    async def wrap_tool_call(self, request: ToolCallRequest, handler: ToolHandler) -> ToolResult:
        result = await handler(request)

        if self.config.exclude_filesystem_tools and request.has_tag(FILESYSTEM_TAG):
            return result

        text = result.to_message()
        tokens = self.count_tokens(text)
        limit = self.config.tool_token_limit_before_evict
        if tokens <= limit:
            return result

        path = request.state.files.store_unique(EVICTION_DIRECTORY, text, hint=request.call.id)
        placeholder = self._placeholder(text, tokens, path, prefix="" if result.success else "Error: ")

        logger.info(
            f"Evicted {request.name} result ({tokens} tokens) to {path}",
            {"call_id": request.call.id, "limit": limit}
        )

        metadata = {**result.metadata, "evicted_to": path, "original_tokens": tokens}
        if result.success:
            return ToolResult(success=True, data=placeholder, kind=result.kind, metadata=metadata)
        return ToolResult(success=False, error=placeholder, kind=result.kind, metadata=metadata)

    def _placeholder(self, text: str, tokens: int, path: str, prefix: str = "") -> str:
        limit = self.config.tool_token_limit_before_evict
        preview_chars = PREVIEW_CHARS

        while True:
            preview = text[:preview_chars]
            if preview_chars < len(text):
                preview += "\n..."
            placeholder = PLACEHOLDER_TEMPLATE.format(tokens=tokens, path=path, preview=preview)
            if self.count_tokens(prefix + placeholder) <= limit or preview_chars == 0:
                return placeholder
            preview_chars //= 2
