"""Tests for tools.approval -- task-scoped approval state."""

import asyncio

import pytest

from tools.approval import ApprovalResponse, TaskApprovals


class _Channel:
    def __init__(self, answer):
        self.answer = answer
        self.calls = 0

    async def request(self, tool_name, description):
        self.calls += 1
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


class TestTaskApprovals:
    @pytest.mark.asyncio
    async def test_yolo_never_asks(self):
        channel = _Channel(ApprovalResponse.REJECT)
        approvals = TaskApprovals(channel, yolo=True)
        assert await approvals.request("shell", "rm -rf build") == ApprovalResponse.APPROVE_ONCE
        assert channel.calls == 0

    @pytest.mark.asyncio
    async def test_approve_once_asks_every_time(self):
        channel = _Channel(ApprovalResponse.APPROVE_ONCE)
        approvals = TaskApprovals(channel)
        await approvals.request("shell", "ls")
        await approvals.request("shell", "ls")
        assert channel.calls == 2
        assert not approvals.is_approved("shell")

    @pytest.mark.asyncio
    async def test_approve_for_task_is_cached_until_clear(self):
        channel = _Channel(ApprovalResponse.APPROVE_FOR_TASK)
        approvals = TaskApprovals(channel)
        await approvals.request("shell", "ls")
        assert await approvals.request("shell", "pwd") == ApprovalResponse.APPROVE_FOR_TASK
        assert channel.calls == 1

        approvals.clear()
        await approvals.request("shell", "ls")
        assert channel.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_for_same_tool_prompt_once(self):
        class _SlowChannel(_Channel):
            async def request(self, tool_name, description):
                self.calls += 1
                await asyncio.sleep(0.05)
                return self.answer

        channel = _SlowChannel(ApprovalResponse.APPROVE_FOR_TASK)
        approvals = TaskApprovals(channel)
        responses = await asyncio.gather(
            approvals.request("shell", "ls"),
            approvals.request("shell", "pwd"),
            approvals.request("shell", "whoami"),
        )
        assert channel.calls == 1
        assert all(r == ApprovalResponse.APPROVE_FOR_TASK for r in responses)

    @pytest.mark.asyncio
    async def test_different_tools_prompt_separately(self):
        channel = _Channel(ApprovalResponse.APPROVE_FOR_TASK)
        approvals = TaskApprovals(channel)
        await asyncio.gather(approvals.request("shell", "ls"), approvals.request("write_file", "a.py"))
        assert channel.calls == 2

    @pytest.mark.asyncio
    async def test_permanent_approvals_survive_clear(self):
        channel = _Channel(ApprovalResponse.REJECT)
        approvals = TaskApprovals(channel, permanent=["read_file"])
        approvals.clear()
        assert (await approvals.request("read_file", "a.py")).approved
        assert channel.calls == 0

    @pytest.mark.asyncio
    async def test_reject(self):
        approvals = TaskApprovals(_Channel(ApprovalResponse.REJECT))
        response = await approvals.request("shell", "ls")
        assert response == ApprovalResponse.REJECT
        assert not response.approved

    @pytest.mark.asyncio
    async def test_channel_failure_means_reject(self):
        approvals = TaskApprovals(_Channel(RuntimeError("prompt closed")))
        assert await approvals.request("shell", "ls") == ApprovalResponse.REJECT

    @pytest.mark.asyncio
    async def test_string_answer_is_coerced(self):
        approvals = TaskApprovals(_Channel("approve_for_task"))
        assert await approvals.request("shell", "ls") == ApprovalResponse.APPROVE_FOR_TASK
        assert approvals.is_approved("shell")

    @pytest.mark.asyncio
    async def test_no_channel_auto_approves(self):
        assert (await TaskApprovals().request("shell", "ls")).approved

    def test_instances_are_independent(self):
        a, b = TaskApprovals(), TaskApprovals()
        a.approve_for_task("shell")
        assert a.is_approved("shell")
        assert not b.is_approved("shell")

    def test_set_yolo(self):
        approvals = TaskApprovals()
        approvals.set_yolo(True)
        assert approvals.yolo is True
