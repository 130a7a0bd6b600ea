"""
Working Memory
==============

The virtual file workspace a research run writes into.

The workspace is where the agent keeps:
- question.txt: the original question
- final_report.md: the report being written and revised
- /large_tool_results/...: full tool results moved out of the context

It lives in RAM and is shared by a top-level run and the sub-agents it
spawns. That is how the critique agent reads the report the main agent
wrote. Conversation messages are never shared; only files are.

Paths:
    Paths are absolute, "/"-separated and normalized. "question.txt" and
    "/question.txt" are the same file. ".." segments are rejected so no
    path can address anything outside the namespace.

Concurrency:
    All methods are synchronous and run on the event loop thread, so each
    call is atomic with respect to other runs. Side-store entries use a
    fresh uuid, so concurrent writers never collide.
"""

import posixpath
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from deepresearch.errors import PolicyViolation

# Default number of lines returned by read()
DEFAULT_READ_LIMIT = 2000


def normalize_path(path: str) -> str:
    """
    Normalize a workspace path.

    Raises:
        PolicyViolation: For empty paths or paths containing ".."
    """
    if not path or not path.strip():
        raise PolicyViolation("Path must not be empty")

    raw = path.strip().replace("\\", "/")
    if ".." in raw.split("/"):
        raise PolicyViolation(f"Path escapes the workspace: {path}")
    if not raw.startswith("/"):
        raw = "/" + raw

    return posixpath.normpath(raw)


@dataclass
class VirtualFile:
    """
    A single file in the workspace.

    Attributes:
        path: Normalized absolute path
        content: File text
        created_at: When the file was first written
        modified_at: When the file was last written
    """
    path: str
    content: str
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    modified_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "content": self.content,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
        }


class VirtualFilesystem:
    """
    In-memory file namespace for one research session.

    Example:
        fs = VirtualFilesystem()

        fs.write("question.txt", "What drove the 2008 crisis?")
        fs.read("/question.txt")          # numbered lines
        fs.edit("/final_report.md", "Draft", "Final")
        fs.ls("/")                        # ["/question.txt", ...]

        # Side-store for evicted tool results
        path = fs.store_unique("/large_tool_results", big_text, hint="call_1")
        fs.read_raw(path) == big_text
    """

    def __init__(self):
        self._files: dict[str, VirtualFile] = {}

    def write(self, path: str, content: str) -> str:
        """
        Create or overwrite a file.

        Returns:
            The normalized path
        """
        key = normalize_path(path)
        existing = self._files.get(key)
        if existing:
            existing.content = content
            existing.modified_at = datetime.now().isoformat()
        else:
            self._files[key] = VirtualFile(path=key, content=content)
        return key

    def read_raw(self, path: str) -> str:
        """
        Return the full text of a file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        key = normalize_path(path)
        if key not in self._files:
            raise FileNotFoundError(f"File not found: {key}")
        return self._files[key].content

    def read(self, path: str, offset: int = 0, limit: int = DEFAULT_READ_LIMIT) -> str:
        """
        Read a file as numbered lines, like `cat -n`.

        Args:
            path: File path
            offset: Zero-based first line
            limit: Maximum number of lines

        Raises:
            FileNotFoundError: If the file does not exist
        """
        content = self.read_raw(path)
        if not content:
            return "(empty file)"

        lines = content.splitlines()
        if offset >= len(lines):
            return f"(offset {offset} is past the end of the file: {len(lines)} lines)"

        selected = lines[offset:offset + limit]
        numbered = [f"{offset + i + 1:6d}\t{line}" for i, line in enumerate(selected)]
        remaining = len(lines) - offset - len(selected)
        if remaining > 0:
            numbered.append(f"... ({remaining} more lines)")
        return "\n".join(numbered)

    def edit(self, path: str, old_string: str, new_string: str, replace_all: bool = False) -> int:
        """
        Replace text in a file.

        Returns:
            The number of replacements made

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If old_string is missing, or ambiguous without replace_all
        """
        content = self.read_raw(path)
        occurrences = content.count(old_string) if old_string else 0

        if occurrences == 0:
            raise ValueError(f"String not found in {normalize_path(path)}")
        if occurrences > 1 and not replace_all:
            raise ValueError(
                f"String appears {occurrences} times in {normalize_path(path)}; "
                "pass replace_all or include more context"
            )

        if replace_all:
            updated = content.replace(old_string, new_string)
        else:
            updated = content.replace(old_string, new_string, 1)
        self.write(path, updated)
        return occurrences if replace_all else 1

    def ls(self, prefix: str = "/") -> list[str]:
        """List file paths under a directory prefix, sorted."""
        directory = normalize_path(prefix)
        if directory != "/":
            directory += "/"
        return sorted(p for p in self._files if directory == "/" or p.startswith(directory))

    def exists(self, path: str) -> bool:
        return normalize_path(path) in self._files

    def delete(self, path: str) -> bool:
        return self._files.pop(normalize_path(path), None) is not None

    def store_unique(self, directory: str, content: str, hint: str = "") -> str:
        """
        Write content to a new, never reused path under directory.

        Returns:
            The path the content was stored at
        """
        hint = hint.replace("/", "_")
        stem = f"{hint}-{uuid.uuid4().hex}" if hint else uuid.uuid4().hex
        return self.write(f"{normalize_path(directory)}/{stem}", content)

    def __len__(self) -> int:
        return len(self._files)

    def to_dict(self) -> dict:
        return {path: f.to_dict() for path, f in sorted(self._files.items())}

    @classmethod
    def from_dict(cls, data: dict) -> "VirtualFilesystem":
        fs = cls()
        for path, item in data.items():
            fs._files[path] = VirtualFile(
                path=item["path"],
                content=item["content"],
                created_at=item["created_at"],
                modified_at=item["modified_at"],
            )
        return fs

    def to_context_string(self) -> str:
        """Short listing used in prompts and logs."""
        if not self._files:
            return "(workspace is empty)"
        return "\n".join(f"- {path} ({len(f.content)} chars)" for path, f in sorted(self._files.items()))
