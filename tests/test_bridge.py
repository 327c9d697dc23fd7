"""Tests for the bounded callback-to-iterator event bridge."""

import asyncio

import pytest

from turnproxy.core.exceptions import UpstreamAbort
from turnproxy.upstream.base import TurnRequest
from turnproxy.upstream.bridge import EventBridge
from turnproxy.upstream.callback_runtime import CallbackAgentRuntime


def _turn_request():
    return TurnRequest(model="m", client_model="m", prompt="user: hi", conversation_id="conv-1")


class TestEventBridge:
    """Tests for EventBridge."""

    @pytest.mark.asyncio
    async def test_delivers_in_order_then_stops(self):
        bridge = EventBridge(maxsize=4)
        for item in ("a", "b", "c"):
            assert await bridge.publish(item) is True
        await bridge.finish()
        assert [item async for item in bridge] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_publish_blocks_when_full(self):
        """Test that a full queue holds the producer until the consumer reads."""
        bridge = EventBridge(maxsize=2)
        await bridge.publish(1)
        await bridge.publish(2)
        blocked = asyncio.create_task(bridge.publish(3))
        await asyncio.sleep(0.01)
        assert not blocked.done()
        assert bridge.pending == 2

        assert await bridge.__anext__() == 1
        assert await asyncio.wait_for(blocked, timeout=1) is True
        assert bridge.pending == 2

    @pytest.mark.asyncio
    async def test_fail_raises_to_consumer(self):
        bridge = EventBridge()
        await bridge.publish("a")
        await bridge.fail(UpstreamAbort("gone"))
        assert await bridge.__anext__() == "a"
        with pytest.raises(UpstreamAbort, match="gone"):
            await bridge.__anext__()

    @pytest.mark.asyncio
    async def test_publish_after_finish_is_an_error(self):
        bridge = EventBridge()
        await bridge.finish()
        with pytest.raises(RuntimeError):
            await bridge.publish("late")

    @pytest.mark.asyncio
    async def test_close_unblocks_producer_and_cancels(self):
        cancelled = []

        async def on_cancel():
            cancelled.append(True)

        bridge = EventBridge(maxsize=1, on_cancel=on_cancel)
        await bridge.publish(1)
        blocked = asyncio.create_task(bridge.publish(2))
        await asyncio.sleep(0.01)

        await bridge.aclose()
        assert await asyncio.wait_for(blocked, timeout=1) is False
        assert await bridge.publish(3) is False
        assert cancelled == [True]
        with pytest.raises(StopAsyncIteration):
            await bridge.__anext__()

    @pytest.mark.asyncio
    async def test_close_after_finish_does_not_cancel(self):
        cancelled = []

        async def on_cancel():
            cancelled.append(True)

        bridge = EventBridge(on_cancel=on_cancel)
        await bridge.finish()
        await bridge.aclose()
        assert cancelled == []

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            EventBridge(maxsize=0)


class TestCallbackAgentRuntime:
    """Tests for running push-style producers as turns."""

    @pytest.mark.asyncio
    async def test_producer_events_reach_subscription(self):
        async def producer(request, publish):
            await publish({"type": "agent_message_delta", "delta": request.prompt})
            await publish({"type": "task_complete"})

        runtime = CallbackAgentRuntime(producer, queue_size=2)
        subscription = await runtime.start_turn(_turn_request())
        payloads = [payload async for payload in subscription]
        await subscription.aclose()
        await runtime.aclose()

        assert subscription.session_id == "conv-1"
        assert payloads == [
            {"type": "agent_message_delta", "delta": "user: hi"},
            {"type": "task_complete"},
        ]

    @pytest.mark.asyncio
    async def test_producer_failure_becomes_upstream_abort(self):
        async def producer(request, publish):
            await publish({"type": "agent_message_delta", "delta": "a"})
            raise RuntimeError("model crashed")

        runtime = CallbackAgentRuntime(producer)
        subscription = await runtime.start_turn(_turn_request())
        assert (await subscription.__anext__())["delta"] == "a"
        with pytest.raises(UpstreamAbort, match="model crashed"):
            await subscription.__anext__()
        await subscription.aclose()
        await runtime.aclose()

    @pytest.mark.asyncio
    async def test_closing_subscription_cancels_producer(self):
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def producer(request, publish):
            try:
                started.set()
                while await publish({"type": "agent_message_delta", "delta": "x"}):
                    pass
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        runtime = CallbackAgentRuntime(producer, queue_size=1)
        subscription = await runtime.start_turn(_turn_request())
        await started.wait()
        await subscription.__anext__()
        await subscription.aclose()
        await asyncio.wait_for(cancelled.wait(), timeout=1)
        await runtime.aclose()
