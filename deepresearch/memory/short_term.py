"""
Short-Term Memory
=================

The ordered conversation of one run, with token accounting.

Each run owns exactly one MessageStore. Sub-agent runs get their own store;
only their final answer travels back to the parent as a tool message.

Design Notes:
- Messages are immutable once appended
- Every message carries its token count, computed once on append
- total_tokens is kept equal to the sum of the message token counts
  through every mutation (append, summarize, drop)
- position is a sequence number assigned on append and never reused, so
  ordering survives removals
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from deepresearch.utils.tokens import TokenCounter

ROLES = ("system", "user", "assistant", "tool")


@dataclass(frozen=True)
class Message:
    """
    A single message in the conversation.

    Attributes:
        role: "system", "user", "assistant" or "tool"
        content: The message text
        tokens: Token count of content plus any tool call payload
        position: Append sequence number within the run
        tool_calls: Tool calls requested by an assistant message, each a
            dict with "id", "name" and "arguments" (raw JSON string)
        tool_call_id: For tool messages, the call this result answers
        name: For tool messages, the tool that produced the result
        timestamp: When the message was appended (ISO format)
        metadata: Extra facts (result kind, call status, summary marker)
    """
    role: str
    content: str
    tokens: int
    position: int
    tool_calls: tuple[dict, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_openai_message(self) -> dict:
        """Convert to the chat-completions message format."""
        message: dict[str, Any] = {"role": self.role, "content": self.content}

        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call["id"],
                    "type": "function",
                    "function": {"name": call["name"], "arguments": call["arguments"]},
                }
                for call in self.tool_calls
            ]
        if self.role == "tool":
            message["tool_call_id"] = self.tool_call_id
        return message

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "content": self.content,
            "tokens": self.tokens,
            "position": self.position,
            "tool_calls": [dict(call) for call in self.tool_calls],
            "tool_call_id": self.tool_call_id,
            "name": self.name,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            role=data["role"],
            content=data["content"],
            tokens=data["tokens"],
            position=data["position"],
            tool_calls=tuple(dict(call) for call in data.get("tool_calls") or ()),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            timestamp=data["timestamp"],
            metadata=data.get("metadata") or {},
        )


class MessageStore:
    """
    Ordered, token-accounted message history of one run.

    Example:
        store = MessageStore(token_counter=count_tokens)

        store.append("user", "Compare RISC-V and ARM")
        store.append("assistant", "", tool_calls=[...])
        store.append("tool", "{...}", tool_call_id="call_1", name="search_web")

        store.total_tokens           # sum of message tokens
        store.to_openai_messages()   # for the model call
    """

    def __init__(self, token_counter: TokenCounter):
        self._count = token_counter
        self._messages: list[Message] = []
        self._total_tokens = 0
        self._next_position = 0

    def count_tokens(self, content: str, tool_calls: Iterable[dict] = ()) -> int:
        """Tokens for a message body plus its tool call names and arguments."""
        tokens = self._count(content or "")
        for call in tool_calls:
            tokens += self._count(call.get("name", "")) + self._count(call.get("arguments", ""))
        return tokens

    def append(
        self,
        role: str,
        content: str,
        tool_calls: Iterable[dict] = (),
        tool_call_id: str | None = None,
        name: str | None = None,
        metadata: dict | None = None
    ) -> Message:
        """
        Append a message and return it.

        Raises:
            ValueError: On an unknown role or a tool message without call id
        """
        if role not in ROLES:
            raise ValueError(f"Unknown message role: {role}")
        if role == "tool" and not tool_call_id:
            raise ValueError("Tool messages need a tool_call_id")

        calls = tuple(
            {"id": call["id"], "name": call["name"], "arguments": call.get("arguments") or "{}"}
            for call in tool_calls
        )
        message = Message(
            role=role,
            content=content or "",
            tokens=self.count_tokens(content, calls),
            position=self._next_position,
            tool_calls=calls,
            tool_call_id=tool_call_id,
            name=name,
            metadata=metadata or {},
        )
        self._next_position += 1
        self._messages.append(message)
        self._total_tokens += message.tokens
        return message

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def total_tokens(self) -> int:
        return self._total_tokens

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))

    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def replace_range(
        self,
        start: int,
        end: int,
        role: str,
        content: str,
        metadata: dict | None = None
    ) -> Message:
        """
        Replace messages[start:end] with one message.

        The new message takes the position of the first replaced message,
        so it sorts where the replaced block was. Used by summarization.

        Raises:
            ValueError: If the range is empty or out of bounds
        """
        if not 0 <= start < end <= len(self._messages):
            raise ValueError(f"Invalid replace range {start}:{end} for {len(self._messages)} messages")

        removed = self._messages[start:end]
        replacement = Message(
            role=role,
            content=content,
            tokens=self.count_tokens(content),
            position=removed[0].position,
            metadata=metadata or {},
        )
        self._messages[start:end] = [replacement]
        self._total_tokens += replacement.tokens - sum(m.tokens for m in removed)
        return replacement

    def remove(self, positions: Iterable[int]) -> int:
        """
        Remove the messages with the given positions.

        Returns:
            The number of tokens freed
        """
        doomed = set(positions)
        kept = [m for m in self._messages if m.position not in doomed]
        freed = sum(m.tokens for m in self._messages if m.position in doomed)
        self._messages = kept
        self._total_tokens -= freed
        return freed

    def to_openai_messages(self) -> list[dict]:
        return [message.to_openai_message() for message in self._messages]

    def to_dicts(self) -> list[dict]:
        return [message.to_dict() for message in self._messages]

    def to_transcript(self) -> str:
        """Plain text rendering used as summarization input."""
        return format_transcript(self._messages)

    @classmethod
    def from_dicts(cls, data: list[dict], token_counter: TokenCounter, next_position: int | None = None) -> "MessageStore":
        """
        Restore a store from to_dicts() output.

        Token counts are taken from the snapshot, not recounted.
        """
        store = cls(token_counter)
        store._messages = [Message.from_dict(item) for item in data]
        store._total_tokens = sum(m.tokens for m in store._messages)
        if next_position is None:
            next_position = max((m.position for m in store._messages), default=-1) + 1
        store._next_position = next_position
        return store

    @property
    def next_position(self) -> int:
        return self._next_position


def format_transcript(messages: Iterable[Message]) -> str:
    """Render messages as plain text, one block per message."""
    lines = []
    for message in messages:
        if message.tool_calls:
            calls = ", ".join(f"{call['name']}({call['arguments']})" for call in message.tool_calls)
            lines.append(f"[{message.role}] {message.content}\n  tool calls: {calls}".rstrip())
        elif message.role == "tool":
            lines.append(f"[tool:{message.name}] {message.content}")
        else:
            lines.append(f"[{message.role}] {message.content}")
    return "\n\n".join(lines)
