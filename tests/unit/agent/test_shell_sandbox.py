"""Unit tests for the shell tool sandbox."""

from __future__ import annotations

from pathlib import Path

import pytest

from deepresearch.agent.hooks import ShellToolHook
from deepresearch.agent.hooks.base import HookAction
from deepresearch.agent.hooks.shell import ShellSandbox, command_words, split_command
from deepresearch.agent.state import ToolCall
from deepresearch.agent.tools_executor import ToolCallRequest
from deepresearch.errors import PolicyViolation
from deepresearch.utils.config import ShellConfig
from tests.helpers import make_state


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    return tmp_path / "sandbox"


def test_command_words() -> None:
    tokens = split_command("FOO=1 ls -la | wc -l && (echo done; /usr/bin/true)")
    assert command_words(tokens) == ["ls", "wc", "echo", "true"]


@pytest.mark.parametrize(
    "command, reason",
    [
        ("sudo ls", "not allowed"),
        ("ls && curl https://example.com", "network access"),
        ("cat /etc/passwd", "outside the sandbox"),
        ("cat ../secret", "Parent directory"),
        ("cat ~/notes", "Home directory"),
        ("", "Empty command"),
        ("echo 'unterminated", "Could not parse"),
    ],
)
def test_refusals(workdir: Path, command: str, reason: str) -> None:
    with pytest.raises(PolicyViolation, match=reason):
        ShellSandbox(ShellConfig(workdir=workdir)).check(command)


def test_allow_list_and_network_grant(workdir: Path) -> None:
    restricted = ShellSandbox(ShellConfig(workdir=workdir, allowed_commands=("ls", "wc")))
    restricted.check("ls | wc -l")
    with pytest.raises(PolicyViolation, match="allowed commands"):
        restricted.check("ls; rm notes.txt")

    ShellSandbox(ShellConfig(workdir=workdir, allow_network=True)).check("curl https://example.com")


def test_paths_inside_workdir_allowed(workdir: Path) -> None:
    sandbox = ShellSandbox(ShellConfig(workdir=workdir))
    sandbox.check(f"cat {sandbox.workdir}/notes.txt > /dev/null")


def test_environment_is_scrubbed(workdir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECRET_TOKEN", "s3cret")
    monkeypatch.setenv("GRANTED_VAR", "visible")
    env = ShellSandbox(ShellConfig(workdir=workdir, granted_env=("GRANTED_VAR",))).environment()

    assert env["GRANTED_VAR"] == "visible"
    assert "SECRET_TOKEN" not in env
    assert env["HOME"] == str(workdir.resolve())


@pytest.mark.asyncio
async def test_runs_in_workdir(workdir: Path) -> None:
    sandbox = ShellSandbox(ShellConfig(workdir=workdir))

    result = await sandbox.run("echo hello > out.txt && cat out.txt && pwd")

    assert result.success
    assert result.data["output"].splitlines() == ["hello", str(workdir.resolve())]
    assert (workdir / "out.txt").read_text() == "hello\n"


@pytest.mark.asyncio
async def test_nonzero_exit_is_failure(workdir: Path) -> None:
    result = await ShellSandbox(ShellConfig(workdir=workdir)).run("exit 3")

    assert result.kind == "failure"
    assert result.metadata["exit_code"] == 3


@pytest.mark.asyncio
async def test_timeout_kills_command(workdir: Path) -> None:
    result = await ShellSandbox(ShellConfig(workdir=workdir, timeout_seconds=0.2)).run("sleep 5")

    assert result.kind == "failure"
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_output_truncated(workdir: Path) -> None:
    result = await ShellSandbox(ShellConfig(workdir=workdir, max_output_chars=10)).run("echo " + "a" * 50)

    assert result.data["output"].startswith("a" * 10)
    assert result.data["output"].endswith("(output truncated)")


@pytest.mark.asyncio
async def test_hook_denies_before_the_tool_runs(workdir: Path) -> None:
    hook = ShellToolHook(ShellConfig(workdir=workdir))
    shell_tool = hook.tools()[0]
    state = make_state()

    refused = await hook.before_tool_call(
        ToolCallRequest(ToolCall(id="s1", name="shell", arguments={"command": "sudo reboot"}), state, shell_tool)
    )
    allowed = await hook.before_tool_call(
        ToolCallRequest(ToolCall(id="s2", name="shell", arguments={"command": "ls"}), state, shell_tool)
    )

    assert refused.action is HookAction.DENY
    assert refused.result.kind == "policy_violation"
    assert allowed.action is HookAction.CONTINUE
    assert not workdir.exists()
