"""
Unit tests for the virtual workspace filesystem.
"""

from __future__ import annotations

import pytest

from deepresearch.errors import PolicyViolation
from deepresearch.memory.working import VirtualFilesystem, normalize_path


class TestNormalizePath:

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("final_report.md", "/final_report.md"),
            ("/notes//a.txt", "/notes/a.txt"),
            ("notes/./b.txt", "/notes/b.txt"),
        ],
    )
    def test_normalizes(self, raw: str, expected: str) -> None:
        assert normalize_path(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "../etc/passwd", "/notes/../../x"])
    def test_rejects(self, raw: str) -> None:
        with pytest.raises(PolicyViolation):
            normalize_path(raw)


class TestFiles:

    def test_write_read_and_overwrite(self) -> None:
        fs = VirtualFilesystem()
        assert fs.write("question.txt", "What is RISC-V?") == "/question.txt"
        assert fs.read_raw("/question.txt") == "What is RISC-V?"

        fs.write("/question.txt", "Updated")
        assert fs.read_raw("question.txt") == "Updated"
        assert len(fs) == 1

    def test_read_numbers_lines_and_pages(self) -> None:
        fs = VirtualFilesystem()
        fs.write("/report.md", "\n".join(f"line {i}" for i in range(1, 11)))

        page = fs.read("/report.md", offset=2, limit=3)
        assert page.splitlines()[0].strip() == "3\tline 3"
        assert "(5 more lines)" in page

    def test_missing_file(self) -> None:
        with pytest.raises(FileNotFoundError):
            VirtualFilesystem().read_raw("/nope.md")

    def test_edit_requires_unique_match(self) -> None:
        fs = VirtualFilesystem()
        fs.write("/r.md", "alpha beta alpha")

        with pytest.raises(ValueError, match="2 times"):
            fs.edit("/r.md", "alpha", "gamma")
        with pytest.raises(ValueError, match="not found"):
            fs.edit("/r.md", "delta", "gamma")

        assert fs.edit("/r.md", "alpha", "gamma", replace_all=True) == 2
        assert fs.read_raw("/r.md") == "gamma beta gamma"

    def test_ls_by_prefix(self) -> None:
        fs = VirtualFilesystem()
        fs.write("/final_report.md", "r")
        fs.write("/large_tool_results/a", "x")
        fs.write("/large_tool_results/b", "y")

        assert fs.ls("/large_tool_results") == ["/large_tool_results/a", "/large_tool_results/b"]
        assert len(fs.ls()) == 3

    def test_delete(self) -> None:
        fs = VirtualFilesystem()
        fs.write("/question.txt", "q")

        assert fs.delete("question.txt")
        assert not fs.exists("/question.txt")
        assert not fs.delete("/question.txt")


class TestStoreUnique:

    def test_never_collides(self) -> None:
        fs = VirtualFilesystem()
        paths = {fs.store_unique("/large_tool_results", "same", hint="call_1") for _ in range(50)}

        assert len(paths) == 50
        assert all(p.startswith("/large_tool_results/call_1-") for p in paths)

    def test_hint_cannot_escape_directory(self) -> None:
        fs = VirtualFilesystem()
        path = fs.store_unique("/large_tool_results", "x", hint="a/b")
        assert path.count("/") == 2


def test_round_trip() -> None:
    fs = VirtualFilesystem()
    fs.write("/question.txt", "q")
    fs.write("/final_report.md", "# Report")

    restored = VirtualFilesystem.from_dict(fs.to_dict())

    assert restored.to_dict() == fs.to_dict()
    assert "/final_report.md" in restored.to_context_string()
