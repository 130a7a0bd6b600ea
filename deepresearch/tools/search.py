"""
Web Search Tool
===============

The search_web tool the research agents use to gather sources.

Searches go to the Jina search API (https://s.jina.ai). Each request is
authenticated with the JINA_API_KEY bearer token and may take up to the
configured timeout (120 seconds by default): Jina fetches and reads the
result pages before answering.

Error Handling:
    - Missing API key: returned as a failed ToolResult, nothing to retry
    - Transport errors and HTTP error statuses: raised, so the tool retry
      interceptor can try again
"""

import httpx

from deepresearch.tools import MCPTool, ToolResult
from deepresearch.utils.config import SearchConfig
from deepresearch.utils.logger import Logger

logger = Logger("SearchTool")

# Page content is cut to this many characters per result
MAX_CONTENT_CHARS = 3000


def _format_results(payload: dict, max_results: int) -> list[dict]:
    """Reduce a Jina response to title/url/content entries."""
    items = payload.get("data") or []
    formatted = []

    for item in items[:max_results]:
        content = item.get("content") or item.get("description") or ""
        if len(content) > MAX_CONTENT_CHARS:
            content = content[:MAX_CONTENT_CHARS] + "..."
        formatted.append({
            "title": item.get("title", ""),
            "url": item.get("url", ""),
            "content": content,
        })

    return formatted


def create_search_tool(
    config: SearchConfig,
    client: httpx.AsyncClient | None = None
) -> MCPTool:
    """
    Build the search_web tool.

    Args:
        config: Search endpoint, key and limits
        client: Optional shared client (tests pass one with a mock transport)

    Returns:
        The search_web MCPTool
    """

    async def _search_web(params: dict) -> ToolResult:
        if not config.api_key:
            return ToolResult.failure("Web search is not configured. Set JINA_API_KEY in .env")

        query = (params.get("query") or "").strip()
        if not query:
            return ToolResult.schema_error("query is required")

        max_results = params.get("max_results") or config.max_results
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Accept": "application/json",
        }

        logger.info(f"Searching: {query[:80]}")

        if client is not None:
            response = await client.get(
                config.endpoint, params={"q": query}, headers=headers, timeout=config.timeout_seconds
            )
        else:
            async with httpx.AsyncClient(timeout=config.timeout_seconds) as session:
                response = await session.get(config.endpoint, params={"q": query}, headers=headers)

        response.raise_for_status()

        results = _format_results(response.json(), int(max_results))
        logger.debug(f"Search returned {len(results)} results")

        return ToolResult.ok({"query": query, "results": results})

    return MCPTool(
        name="search_web",
        description=(
            "Search the web for up-to-date information. Returns the title, URL and "
            "page content of the top results. Use specific queries, one topic at a time."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query"
                },
                "max_results": {
                    "type": "integer",
                    "description": "Maximum number of results (default: 5)",
                    "default": config.max_results
                }
            },
            "required": ["query"]
        },
        execute=_search_web,
        tags=frozenset({"web"}),
    )
