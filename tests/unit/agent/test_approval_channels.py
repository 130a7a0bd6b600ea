"""
Unit tests for approval channels.
"""

from __future__ import annotations

import asyncio

import pytest

from deepresearch.agent.approval import (
    ApprovalRequest,
    AutoApprovalChannel,
    ConsoleApprovalChannel,
    QueueApprovalChannel,
)


def _request(call_id: str = "c1", tool_name: str = "search_web") -> ApprovalRequest:
    return ApprovalRequest(run_id="run-1", call_id=call_id, tool_name=tool_name, arguments={"query": "x"})


class TestQueueApprovalChannel:

    @pytest.mark.asyncio
    async def test_waits_for_matching_decision(self) -> None:
        channel = QueueApprovalChannel()
        waiting = asyncio.create_task(channel.request(_request("c1")))

        queued = await channel.requests.get()
        assert queued.call_id == "c1"
        assert channel.pending() == ["c1"]

        channel.resolve("other", approved=True)
        await asyncio.sleep(0)
        assert not waiting.done()

        channel.resolve("c1", approved=False, reason="not now")
        decision = await waiting

        assert decision.call_id == "c1"
        assert not decision.approved
        assert decision.reason == "not now"
        assert channel.pending() == []

    @pytest.mark.asyncio
    async def test_decision_before_request(self) -> None:
        channel = QueueApprovalChannel()
        channel.resolve("c1", approved=True)

        decision = await channel.request(_request("c1"))
        assert decision.approved

    @pytest.mark.asyncio
    async def test_cancel_all_denies(self) -> None:
        channel = QueueApprovalChannel()
        waiting = asyncio.create_task(channel.request(_request("c1")))
        await channel.requests.get()

        channel.cancel_all()

        assert not (await waiting).approved

    @pytest.mark.asyncio
    async def test_unclaimed_early_decisions_are_capped(self) -> None:
        channel = QueueApprovalChannel(max_early=2)
        for call_id in ("c1", "c2", "c3"):
            channel.resolve(call_id, approved=True)

        assert (await channel.request(_request("c3"))).approved
        assert (await channel.request(_request("c2"))).approved

        waiting = asyncio.create_task(channel.request(_request("c1")))
        assert (await channel.requests.get()).call_id == "c1"
        assert not waiting.done()

        channel.resolve("c1", approved=False)
        assert not (await waiting).approved


@pytest.mark.asyncio
async def test_auto_channel_policy() -> None:
    channel = AutoApprovalChannel(lambda request: request.tool_name != "shell")

    assert (await channel.request(_request(tool_name="search_web"))).approved
    denied = await channel.request(_request(tool_name="shell"))
    assert not denied.approved
    assert denied.reason


@pytest.mark.asyncio
async def test_console_channel_reads_answer() -> None:
    prompts: list[str] = []

    def answer(prompt: str) -> str:
        prompts.append(prompt)
        return "y"

    decision = await ConsoleApprovalChannel(input_func=answer).request(_request())

    assert decision.approved
    assert "search_web" in prompts[0]
