"""Tests for the composition root and the command line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from deepresearch import main as main_module
from deepresearch.agent.approval import AutoApprovalChannel
from deepresearch.errors import ConfigError
from deepresearch.utils.config import CheckpointConfig, Config, ToolCallLimitConfig
from tests.helpers import ScriptedModel, calls, final, make_config, tool_call, word_count


def test_research_agent_wiring(config: Config) -> None:
    agent = main_module.build_research_agent(
        config, model=ScriptedModel(), approval_channel=AutoApprovalChannel(), token_counter=word_count
    )

    assert agent.name == "DeepResearchAgent"
    assert {"search_web", "write_todos", "ls", "read_file", "write_file", "edit_file", "shell", "task"} <= set(
        agent.tools.list_names()
    )
    assert [i.name for i in agent.interceptors] == [
        "todo_list", "filesystem", "large_result_eviction", "patch_tool_calls", "context_editing", "tool_retry",
    ]
    assert [h.name for h in agent.hooks] == ["human_in_the_loop", "summarization", "tool_call_limit", "shell_sandbox"]
    assert agent.subagents.names() == ["research-agent", "critique-agent", "general-purpose"]

    research = agent.subagents.orchestrator_for("research-agent")
    assert "search_web" in research.tools.list_names()
    assert "shell" in research.tools.list_names()
    assert [i.name for i in research.interceptors] == [
        "todo_list", "filesystem", "context_editing", "patch_tool_calls", "large_result_eviction",
    ]


def test_file_checkpoints_when_configured(tmp_path: Path) -> None:
    config = make_config(tmp_path, checkpoint=CheckpointConfig(directory=tmp_path / "checkpoints"))
    agent = main_module.build_research_agent(config, model=ScriptedModel(), token_counter=word_count)

    assert type(agent.checkpointer).__name__ == "FileCheckpointStore"
    assert agent.subagents.checkpointer is agent.checkpointer


@pytest.mark.asyncio
async def test_research_agent_writes_report(config: Config) -> None:
    model = ScriptedModel([
        calls(tool_call("c1", "write_file", file_path="/final_report.md", content="# RISC-V vs ARM")),
        final("The report is in final_report.md"),
    ])
    agent = main_module.build_research_agent(
        config, model=model, approval_channel=AutoApprovalChannel(), token_counter=word_count
    )

    result = await agent.run("Compare RISC-V and ARM")

    assert result.completed
    assert result.state.files.read_raw("/final_report.md") == "# RISC-V vs ARM"


def test_loader_registers_research_agent(config: Config) -> None:
    loader = main_module.build_loader(config, model=ScriptedModel(), token_counter=word_count)
    assert loader.list_agents() == [main_module.RESEARCH_AGENT_NAME]


class TestMain:

    @pytest.fixture(autouse=True)
    def offline(self, monkeypatch: pytest.MonkeyPatch, config: Config) -> None:
        monkeypatch.setattr(main_module, "load_config", lambda env_file=None: config)
        monkeypatch.setattr(main_module, "make_token_counter", lambda model_name: word_count)

    @pytest.mark.asyncio
    async def test_prints_final_report(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        model = ScriptedModel([
            calls(tool_call("c1", "write_file", file_path="/final_report.md", content="# Final Report")),
            final("done"),
        ])
        monkeypatch.setattr(main_module, "ModelClient", lambda model_config: model)

        code = await main_module.main(["Compare RISC-V and ARM"])

        assert code == 0
        assert "# Final Report" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_prints_answer_without_report(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        monkeypatch.setattr(main_module, "ModelClient", lambda model_config: ScriptedModel([final("short answer")]))

        code = await main_module.main(["What is RISC-V?"])

        assert code == 0
        assert "short answer" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_limit_reached_exit_code(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        limited = make_config(tmp_path, tool_call_limit=ToolCallLimitConfig(run_limit=1))
        monkeypatch.setattr(main_module, "load_config", lambda env_file=None: limited)
        model = ScriptedModel([calls(tool_call("c1", "ls")), final("unused")])
        monkeypatch.setattr(main_module, "ModelClient", lambda model_config: model)

        assert await main_module.main(["go"]) == 1

    @pytest.mark.asyncio
    async def test_resume_unknown_run(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(main_module, "ModelClient", lambda model_config: ScriptedModel())

        assert await main_module.main(["--resume", "missing-run"]) == 1

    @pytest.mark.asyncio
    async def test_config_error_exit_code(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(env_file=None):
            raise ConfigError("AI_DASHSCOPE_API_KEY is required")

        monkeypatch.setattr(main_module, "load_config", broken)

        assert await main_module.main(["go"]) == 2

    @pytest.mark.asyncio
    async def test_question_or_resume_required(self) -> None:
        with pytest.raises(SystemExit):
            await main_module.main([])
