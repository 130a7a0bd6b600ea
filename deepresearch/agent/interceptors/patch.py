"""
Patch Tool Calls
================

Models do not always send clean arguments. This interceptor repairs what it
can before the tool runs, and reports what it cannot as a schema_error
result (never a crash).

Repairs, in order:
1. Decode the raw argument string: code fences, text around the JSON
   object, trailing commas, Python-style dicts ('single quotes', True)
2. Decode double-encoded JSON ("{\\"query\\": ...}" as a string)
3. Wrap a bare value for a tool with a single parameter
   ("quantum computing" -> {"query": "quantum computing"})
4. Unwrap {"arguments": {...}} style envelopes
5. Coerce types to the schema: "5" -> 5, "true" -> True, "x" -> ["x"]
6. Match enum values case-insensitively
7. Fill defaults for missing optional parameters

Missing required parameters are a schema_error.

Before each model turn it also patches dangling tool calls: an assistant
message whose tool call never got a result (for example after a crash)
gets a "cancelled" tool message, so the history stays valid for the model.
"""

import ast
import copy
import json
import re
from typing import Any

from deepresearch.agent.interceptors.base import Interceptor
from deepresearch.agent.state import RunState
from deepresearch.agent.tools_executor import ToolCallRequest, ToolHandler
from deepresearch.errors import SchemaError
from deepresearch.tools import ToolResult
from deepresearch.utils.logger import Logger

logger = Logger("PatchToolCalls")

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

# Envelope keys models sometimes wrap real arguments in
WRAPPER_KEYS = ("arguments", "args", "parameters", "params", "input", "kwargs")

_TRUE = ("true", "yes", "1", "on")
_FALSE = ("false", "no", "0", "off")


def decode_arguments(raw: str) -> Any:
    """
    Decode a possibly malformed argument string.

    Raises:
        ValueError: If nothing decodable is found
    """
    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1).strip()

    candidates = [text]
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start and (start, end) != (0, len(text) - 1):
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        for variant in (candidate, _TRAILING_COMMA_RE.sub(r"\1", candidate)):
            try:
                return json.loads(variant)
            except json.JSONDecodeError:
                pass
            try:
                return ast.literal_eval(variant)
            except (ValueError, SyntaxError, TypeError, RecursionError):
                pass

    raise ValueError(f"Could not decode arguments: {raw[:200]}")


def _single_parameter(properties: dict, required: list[str]) -> str | None:
    if len(properties) == 1:
        return next(iter(properties))
    if len(required) == 1:
        return required[0]
    return None


def _coerce(name: str, value: Any, prop: dict) -> Any:
    """
    Coerce value to the JSON schema type of prop.

    Raises:
        SchemaError: If the value cannot be converted
    """
    expected = prop.get("type")
    if value is None or expected is None or isinstance(expected, list):
        return value

    try:
        if expected == "string":
            if isinstance(value, str):
                coerced = value
            elif isinstance(value, bool):
                coerced = "true" if value else "false"
            elif isinstance(value, (int, float)):
                coerced = str(value)
            else:
                coerced = json.dumps(value, ensure_ascii=False)

        elif expected == "integer":
            if isinstance(value, bool):
                raise ValueError("boolean is not an integer")
            if isinstance(value, int):
                coerced = value
            else:
                number = float(value.strip() if isinstance(value, str) else value)
                if not number.is_integer():
                    raise ValueError(f"{value!r} is not a whole number")
                coerced = int(number)

        elif expected == "number":
            if isinstance(value, bool):
                raise ValueError("boolean is not a number")
            if isinstance(value, (int, float)):
                coerced = value
            else:
                coerced = float(str(value).strip())

        elif expected == "boolean":
            if isinstance(value, bool):
                coerced = value
            elif str(value).strip().lower() in _TRUE:
                coerced = True
            elif str(value).strip().lower() in _FALSE:
                coerced = False
            else:
                raise ValueError(f"{value!r} is not a boolean")

        elif expected == "array":
            if isinstance(value, list):
                coerced = value
            elif isinstance(value, str):
                try:
                    decoded = decode_arguments(value)
                except ValueError:
                    decoded = None
                coerced = decoded if isinstance(decoded, list) else [value]
            else:
                coerced = [value]
            items = prop.get("items") or {}
            if items.get("type") in ("string", "integer", "number", "boolean"):
                coerced = [_coerce(name, item, items) for item in coerced]

        elif expected == "object":
            if isinstance(value, dict):
                coerced = value
            else:
                coerced = decode_arguments(str(value))
                if not isinstance(coerced, dict):
                    raise ValueError(f"{value!r} is not an object")

        else:
            coerced = value

    except (ValueError, TypeError) as e:
        raise SchemaError(f"Argument '{name}' should be of type {expected}: {e}") from None

    enum = prop.get("enum")
    if enum and coerced not in enum:
        if isinstance(coerced, str):
            for option in enum:
                if isinstance(option, str) and option.lower() == coerced.strip().lower():
                    return option
        raise SchemaError(f"Argument '{name}' must be one of {enum}, got {coerced!r}")

    return coerced


def repair_arguments(arguments: dict, raw: str, schema: dict) -> dict:
    """
    Return arguments that match schema, repairing where possible.

    Args:
        arguments: Arguments already parsed from the model response
        raw: The raw argument string from the model
        schema: The tool's JSON schema

    Raises:
        SchemaError: If the arguments cannot be repaired
    """
    properties: dict = schema.get("properties") or {}
    required: list[str] = list(schema.get("required") or [])
    single = _single_parameter(properties, required)

    if arguments:
        value: Any = dict(arguments)
    elif raw and raw.strip() not in ("", "{}"):
        try:
            value = decode_arguments(raw)
        except ValueError:
            if single and properties.get(single, {}).get("type") == "string":
                value = raw.strip()
            else:
                raise SchemaError(f"Arguments are not valid JSON: {raw[:200]}") from None
    else:
        value = {}

    if isinstance(value, str):
        try:
            value = decode_arguments(value)
        except ValueError:
            pass

    if not isinstance(value, dict):
        if single is None:
            raise SchemaError(f"Expected an object of arguments, got {type(value).__name__}")
        value = {single: value}

    if len(value) == 1:
        (key, inner), = value.items()
        if key in WRAPPER_KEYS and key not in properties:
            if isinstance(inner, str):
                try:
                    inner = decode_arguments(inner)
                except ValueError:
                    pass
            if isinstance(inner, dict):
                value = dict(inner)

    for name, prop in properties.items():
        if name in value:
            value[name] = _coerce(name, value[name], prop)
        elif "default" in prop:
            value[name] = copy.deepcopy(prop["default"])

    missing = [name for name in required if value.get(name) is None]
    if missing:
        raise SchemaError(f"Missing required argument(s): {', '.join(missing)}")

    if schema.get("additionalProperties") is False:
        value = {k: v for k, v in value.items() if k in properties}

    return value


class PatchToolCallsInterceptor(Interceptor):
    """
    Repairs tool arguments and dangling tool calls.

    Example:
        patch = PatchToolCallsInterceptor()
        # '```json\\n{"query": "x",}\\n```' reaches search_web as {"query": "x", "max_results": 5}
    """

    name = "patch_tool_calls"

    async def wrap_tool_call(self, request: ToolCallRequest, handler: ToolHandler) -> ToolResult:
        if request.tool is None:
            return await handler(request)

        call = request.call
        try:
            repaired = repair_arguments(call.arguments, call.raw_arguments, request.tool.parameters)
        except SchemaError as e:
            logger.warning(f"Unrepairable arguments for {call.name}: {e}")
            return ToolResult.schema_error(str(e))

        if repaired != call.arguments:
            logger.debug(f"Patched arguments for {call.name}", {"before": call.arguments, "after": repaired})
            call.arguments = repaired

        return await handler(request)

    async def before_model(self, state: RunState) -> None:
        messages = state.messages.messages
        answered = {m.tool_call_id for m in messages if m.role == "tool"}

        for message in messages:
            if message.role != "assistant":
                continue
            for requested in message.tool_calls:
                if requested["id"] in answered:
                    continue

                result = ToolResult.cancelled(
                    f"Tool call {requested['name']} with id {requested['id']} was cancelled: "
                    "another message came in before it could be completed."
                )
                call = state.find_tool_call(requested["id"])
                if call is not None and not call.settled:
                    call.settle(result)

                state.add_tool_message(
                    requested["id"], requested["name"], result,
                    status=call.status if call is not None else None
                )
                answered.add(requested["id"])
                logger.warning(f"Patched dangling tool call {requested['id']} ({requested['name']})")
