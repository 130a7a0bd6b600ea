"""
Filesystem Interceptor
======================

Exposes the run's virtual workspace to the model:

    ls          list files under a directory
    read_file   numbered lines, with offset/limit paging
    write_file  create or overwrite a file
    edit_file   exact string replacement

The workspace (RunState.files) is shared between a run and the sub-agents
it spawns, which is how the critique agent reads final_report.md.

Read-only mode:
    With read_only set, write_file and edit_file never reach the tool: the
    interceptor answers them with a policy_violation result.
"""

from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.tools_executor import ToolCallRequest, ToolHandler
from deepresearch.memory.working import DEFAULT_READ_LIMIT
from deepresearch.tools import MCPTool, ToolResult
from deepresearch.utils.config import FilesystemConfig
from deepresearch.utils.logger import Logger

logger = Logger("Filesystem")

FILESYSTEM_TAG = "filesystem"
WRITE_TOOLS = frozenset({"write_file", "edit_file"})

FILESYSTEM_SYSTEM_PROMPT = """## Filesystem Tools `ls`, `read_file`, `write_file`, `edit_file`

You have access to a shared workspace through these tools. All paths are
absolute and start with "/".
- ls: list files in the workspace
- read_file: read a file (use offset and limit for long files)
- write_file: create or overwrite a file
- edit_file: replace an exact string in a file"""


async def _ls(params: dict, request: ToolCallRequest) -> ToolResult:
    paths = request.state.files.ls(params.get("path") or "/")
    return ToolResult.ok(paths)


async def _read_file(params: dict, request: ToolCallRequest) -> ToolResult:
    try:
        text = request.state.files.read(
            params["file_path"],
            offset=int(params.get("offset") or 0),
            limit=int(params.get("limit") or DEFAULT_READ_LIMIT),
        )
    except FileNotFoundError as e:
        return ToolResult.failure(str(e))
    return ToolResult.ok(text)


async def _write_file(params: dict, request: ToolCallRequest) -> ToolResult:
    path = request.state.files.write(params["file_path"], params.get("content") or "")
    return ToolResult.ok(f"Wrote {path}")


async def _edit_file(params: dict, request: ToolCallRequest) -> ToolResult:
    try:
        count = request.state.files.edit(
            params["file_path"],
            params["old_string"],
            params.get("new_string", ""),
            replace_all=bool(params.get("replace_all", False)),
        )
    except (FileNotFoundError, ValueError) as e:
        return ToolResult.failure(str(e))
    return ToolResult.ok(f"Replaced {count} occurrence(s) in {params['file_path']}")


class FilesystemInterceptor(Interceptor):
    """
    Contributes the workspace tools and enforces read-only mode.

    Example:
        fs = FilesystemInterceptor(FilesystemConfig(read_only=True))
        # write_file / edit_file now return policy_violation results
    """

    name = "filesystem"

    def __init__(self, config: FilesystemConfig | None = None):
        self.config = config or FilesystemConfig()

    def system_prompt(self) -> str | None:
        return FILESYSTEM_SYSTEM_PROMPT

    async def wrap_tool_call(self, request: ToolCallRequest, handler: ToolHandler) -> ToolResult:
        if self.config.read_only and request.has_tag(FILESYSTEM_TAG) and request.name in WRITE_TOOLS:
            logger.warning(f"Refused {request.name} in read-only workspace")
            return ToolResult.policy_violation(
                f"The workspace is read-only; {request.name} is not allowed"
            )
        return await handler(request)

    def tools(self) -> list[MCPTool]:
        tags = frozenset({FILESYSTEM_TAG})
        path_schema = {"type": "string", "description": "Absolute file path, e.g. /final_report.md"}

        return [
            MCPTool(
                name="ls",
                description="List all files in the workspace, optionally under a directory.",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "Directory to list", "default": "/"}
                    }
                },
                execute=_ls,
                contextual=True,
                tags=tags,
            ),
            MCPTool(
                name="read_file",
                description="Read a file from the workspace. Lines are numbered starting at 1.",
                parameters={
                    "type": "object",
                    "properties": {
                        "file_path": path_schema,
                        "offset": {"type": "integer", "description": "First line to read (0-based)", "default": 0},
                        "limit": {"type": "integer", "description": "Number of lines", "default": DEFAULT_READ_LIMIT}
                    },
                    "required": ["file_path"]
                },
                execute=_read_file,
                contextual=True,
                tags=tags,
            ),
            MCPTool(
                name="write_file",
                description="Write content to a file in the workspace, replacing it if it exists.",
                parameters={
                    "type": "object",
                    "properties": {
                        "file_path": path_schema,
                        "content": {"type": "string", "description": "The full file content"}
                    },
                    "required": ["file_path", "content"]
                },
                execute=_write_file,
                contextual=True,
                tags=tags,
            ),
            MCPTool(
                name="edit_file",
                description=(
                    "Replace an exact string in a workspace file. old_string must be unique "
                    "unless replace_all is true."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "file_path": path_schema,
                        "old_string": {"type": "string", "description": "Text to replace"},
                        "new_string": {"type": "string", "description": "Replacement text"},
                        "replace_all": {"type": "boolean", "default": False}
                    },
                    "required": ["file_path", "old_string", "new_string"]
                },
                execute=_edit_file,
                contextual=True,
                tags=tags,
            ),
        ]
