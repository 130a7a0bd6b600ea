"""
Shell Tool Sandbox
==================

Contributes a `shell` tool and keeps it on a short leash.

Every command:
- runs with /bin/sh -c in a dedicated working directory
- gets a scrubbed environment: PATH, HOME (the working directory), LANG,
  plus only the variables listed in granted_env
- is killed after timeout_seconds
- has its output cut to max_output_chars

Before a command runs, each command word (the first word of every piece
between ; && || | and parentheses) is checked:
- network tools (curl, ssh, ...) are refused unless allow_network is set
- privilege tools (sudo, su, mount, ...) are always refused
- with an allow-list configured, anything not on it is refused
- absolute paths outside the working directory and ".." are refused

Refusals are policy_violation results, never crashes.

Note that this is a guard against an overeager model, not a security
boundary against a hostile one: it does not isolate the process.
"""

import asyncio
import os
import posixpath
import shlex
from pathlib import Path

from deepresearch.agent.hooks.base import Hook, HookOutcome
from deepresearch.agent.tools_executor import ToolCallRequest
from deepresearch.errors import PolicyViolation, SchemaError
from deepresearch.tools import MCPTool, ToolResult
from deepresearch.utils.config import ShellConfig
from deepresearch.utils.logger import Logger

logger = Logger("ShellSandbox")

SHELL_TAG = "shell"

NETWORK_COMMANDS = frozenset({
    "curl", "wget", "nc", "ncat", "netcat", "ssh", "scp", "sftp", "ftp",
    "telnet", "rsync", "ping", "dig", "nslookup", "host", "socat",
})
PRIVILEGE_COMMANDS = frozenset({
    "sudo", "su", "doas", "chroot", "mount", "umount", "systemctl",
    "shutdown", "reboot", "mkfs", "chown", "setcap",
})
_SEPARATORS = frozenset({";", "&&", "||", "|", "&", "(", ")", ";;", "|&"})
_ALLOWED_SYSTEM_PATHS = ("/dev/null",)

SANDBOX_PATH = "/usr/local/bin:/usr/bin:/bin"


def split_command(command: str) -> list[str]:
    """
    Tokenize a shell command, keeping separators as their own tokens.

    Raises:
        PolicyViolation: If the command cannot be tokenized
    """
    lexer = shlex.shlex(command, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    try:
        return list(lexer)
    except ValueError as e:
        raise PolicyViolation(f"Could not parse command: {e}") from None


def command_positions(tokens: list[str]) -> list[int]:
    """Indexes of the program name at the start of each command."""
    positions = []
    expect_command = True
    for index, token in enumerate(tokens):
        if token in _SEPARATORS:
            expect_command = True
            continue
        if expect_command:
            if "=" in token and not token.startswith("="):
                # FOO=bar cmd
                continue
            positions.append(index)
            expect_command = False
    return positions


def command_words(tokens: list[str]) -> list[str]:
    """Program names at the start of each command in the token list."""
    return [posixpath.basename(tokens[index]) for index in command_positions(tokens)]


class ShellSandbox:
    """Validates and runs commands under a ShellConfig."""

    def __init__(self, config: ShellConfig):
        self.config = config
        self.workdir = Path(config.workdir).resolve()

    def check(self, command: str) -> None:
        """
        Refuse commands outside the sandbox policy.

        Raises:
            PolicyViolation: With the reason the command was refused
        """
        if not command or not command.strip():
            raise PolicyViolation("Empty command")

        tokens = split_command(command)
        for word in command_words(tokens):
            if word in PRIVILEGE_COMMANDS:
                raise PolicyViolation(f"'{word}' is not allowed in the sandbox")
            if word in NETWORK_COMMANDS and not self.config.allow_network:
                raise PolicyViolation(f"'{word}' needs network access, which is not granted")
            if self.config.allowed_commands and word not in self.config.allowed_commands:
                raise PolicyViolation(
                    f"'{word}' is not in the allowed commands: {', '.join(self.config.allowed_commands)}"
                )

        programs = set(command_positions(tokens))
        for index, token in enumerate(tokens):
            if token in _SEPARATORS:
                continue
            if ".." in token.split("/"):
                raise PolicyViolation(f"Parent directory references are not allowed: {token}")
            if token.startswith("~"):
                raise PolicyViolation(f"Home directory references are not allowed: {token}")
            if token.startswith("/") and index not in programs and not self._inside_workdir(token):
                raise PolicyViolation(f"Path outside the sandbox: {token}")

    def _inside_workdir(self, token: str) -> bool:
        if token in _ALLOWED_SYSTEM_PATHS:
            return True
        workdir = str(self.workdir)
        return token == workdir or token.startswith(workdir + "/")

    def environment(self) -> dict[str, str]:
        env = {"PATH": SANDBOX_PATH, "HOME": str(self.workdir), "LANG": "C.UTF-8"}
        for name in self.config.granted_env:
            if name in os.environ:
                env[name] = os.environ[name]
        return env

    async def run(self, command: str) -> ToolResult:
        self.check(command)
        self.workdir.mkdir(parents=True, exist_ok=True)

        process = await asyncio.create_subprocess_exec(
            "/bin/sh", "-c", command,
            cwd=str(self.workdir),
            env=self.environment(),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"Command timed out after {self.config.timeout_seconds}s: {command[:80]}")
            return ToolResult.failure(f"Command timed out after {self.config.timeout_seconds} seconds")

        output = stdout.decode("utf-8", errors="replace")
        if len(output) > self.config.max_output_chars:
            output = output[:self.config.max_output_chars] + "\n... (output truncated)"

        if process.returncode != 0:
            return ToolResult.failure(
                f"Command exited with code {process.returncode}\n{output}",
                exit_code=process.returncode
            )
        return ToolResult.ok({"exit_code": 0, "output": output})


class ShellToolHook(Hook):
    """
    Contributes the shell tool and refuses out-of-policy commands early.

    Example:
        hook = ShellToolHook(ShellConfig(workdir=Path("/tmp/sandbox"), allowed_commands=("ls", "wc")))
    """

    name = "shell_sandbox"

    def __init__(self, config: ShellConfig):
        self.sandbox = ShellSandbox(config)

    async def before_tool_call(self, request: ToolCallRequest) -> HookOutcome:
        if not request.has_tag(SHELL_TAG):
            return HookOutcome.proceed()

        command = request.arguments.get("command")
        if not isinstance(command, str):
            # Left to argument repair; the tool checks again before running
            return HookOutcome.proceed()

        try:
            self.sandbox.check(command)
        except PolicyViolation as e:
            logger.warning(f"Refused shell command: {e}")
            return HookOutcome.deny(str(e), ToolResult.policy_violation(str(e)))
        return HookOutcome.proceed()

    def tools(self) -> list[MCPTool]:
        async def _shell(params: dict) -> ToolResult:
            command = params.get("command")
            if not isinstance(command, str):
                raise SchemaError("command must be a string")
            return await self.sandbox.run(command)

        return [
            MCPTool(
                name="shell",
                description=(
                    "Run a shell command in a sandboxed working directory. No network access "
                    "and no access outside the working directory unless granted."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "command": {"type": "string", "description": "The command to run"}
                    },
                    "required": ["command"]
                },
                execute=_shell,
                tags=frozenset({SHELL_TAG}),
            )
        ]
