"""Tests for agent.wire -- fire-and-forget event publishing."""

import asyncio

import pytest

from agent.wire import StatusUpdate, StepBegin, StepEnd, Wire


class TestWire:
    def test_multicast_to_all_subscribers(self):
        wire = Wire()
        a, b = [], []
        wire.subscribe(a.append)
        wire.subscribe(b.append)
        wire.send(StepBegin(step=1))
        assert a == b == [StepBegin(step=1)]

    def test_failing_subscriber_does_not_block_others(self):
        wire = Wire()
        received = []

        def broken(_msg):
            raise RuntimeError("ui crashed")

        wire.subscribe(broken)
        wire.subscribe(received.append)
        wire.send(StepEnd(step=1))
        assert received == [StepEnd(step=1)]

    def test_unsubscribe(self):
        wire = Wire()
        received = []
        unsubscribe = wire.subscribe(received.append)
        unsubscribe()
        wire.send(StepBegin(step=1))
        assert received == []
        assert wire.subscriber_count == 0

    def test_send_without_subscribers(self):
        Wire().send(StatusUpdate(text="nobody listening"))

    @pytest.mark.asyncio
    async def test_queue_subscriber_drops_when_full(self):
        wire = Wire()
        queue = wire.subscribe_queue(maxsize=2)
        for step in range(1, 5):
            wire.send(StepBegin(step=step))
        assert queue.qsize() == 2
        first = await asyncio.wait_for(queue.get(), timeout=1)
        assert first.step == 1
