"""
Todo List Interceptor
=====================

Gives the model a scratch task list for multi-step research.

The list lives in RunState.todos, so each run (and each sub-agent run) has
its own. write_todos replaces the whole list; read_todos returns it.

Item format:
    {"content": "Research RISC-V market share", "status": "in_progress"}

Rules enforced on write:
- content must be a non-empty string
- status must be pending, in_progress or completed
- at most one item may be in_progress at a time
"""

from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.tools_executor import ToolCallRequest
from deepresearch.errors import SchemaError
from deepresearch.tools import MCPTool, ToolResult

TODO_STATUSES = ("pending", "in_progress", "completed")
MAX_TODOS = 20

WRITE_TODOS_DESCRIPTION = """Create and manage a structured task list for the current research session.

Use it for complex, multi-step work: plan the steps up front, mark one step
in_progress before starting it and completed as soon as it is done. Each call
replaces the whole list, so always send every item."""

TODO_SYSTEM_PROMPT = """## `write_todos`

You have access to the `write_todos` tool to plan and track multi-step tasks.
Use it often for complex objectives so progress stays visible, and mark todos
completed as soon as each one is done. Do not use it for simple requests that
take only a few steps."""


def validate_todos(todos: object) -> list[dict]:
    """
    Validate and normalize a todo list.

    Raises:
        SchemaError: If the list or any item is invalid
    """
    if not isinstance(todos, list):
        raise SchemaError("todos must be a list of {content, status} items")
    if len(todos) > MAX_TODOS:
        raise SchemaError(f"At most {MAX_TODOS} todos are allowed, got {len(todos)}")

    normalized = []
    for index, item in enumerate(todos):
        if not isinstance(item, dict):
            raise SchemaError(f"Todo #{index + 1} must be an object")

        content = item.get("content")
        if not isinstance(content, str) or not content.strip():
            raise SchemaError(f"Todo #{index + 1} needs non-empty content")

        status = item.get("status", "pending")
        if status not in TODO_STATUSES:
            raise SchemaError(f"Todo #{index + 1} has unknown status {status!r}; use one of {TODO_STATUSES}")

        normalized.append({"content": content.strip(), "status": status})

    in_progress = sum(1 for item in normalized if item["status"] == "in_progress")
    if in_progress > 1:
        raise SchemaError(f"Only one todo may be in_progress at a time, got {in_progress}")

    return normalized


async def _write_todos(params: dict, request: ToolCallRequest) -> ToolResult:
    todos = validate_todos(params.get("todos"))
    request.state.todos = todos

    done = sum(1 for item in todos if item["status"] == "completed")
    return ToolResult.ok(f"Updated todo list ({done}/{len(todos)} completed): {todos}")


async def _read_todos(params: dict, request: ToolCallRequest) -> ToolResult:
    return ToolResult.ok({"todos": list(request.state.todos)})


class TodoListInterceptor(Interceptor):
    """
    Contributes write_todos and read_todos.

    Tool calls for other tools pass through untouched.
    """

    name = "todo_list"

    def __init__(self, system_prompt: str = TODO_SYSTEM_PROMPT):
        self._system_prompt = system_prompt

    def system_prompt(self) -> str | None:
        return self._system_prompt

    def tools(self) -> list[MCPTool]:
        return [
            MCPTool(
                name="write_todos",
                description=WRITE_TODOS_DESCRIPTION,
                parameters={
                    "type": "object",
                    "properties": {
                        "todos": {
                            "type": "array",
                            "description": "The complete, updated todo list",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "content": {"type": "string"},
                                    "status": {"type": "string", "enum": list(TODO_STATUSES)}
                                },
                                "required": ["content", "status"]
                            }
                        }
                    },
                    "required": ["todos"]
                },
                execute=_write_todos,
                contextual=True,
                tags=frozenset({"todo"}),
            ),
            MCPTool(
                name="read_todos",
                description="Read the current todo list.",
                parameters={"type": "object", "properties": {}},
                execute=_read_todos,
                contextual=True,
                tags=frozenset({"todo"}),
            ),
        ]
