"""Tests for the channel approval broker."""

import asyncio

import pytest

from conductorAgent.hitl.approval import ApprovalBroker, ask_gate


async def wait_for_pending(broker, count=1):
    for _ in range(100):
        if len(broker.pending()) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("approval request never became pending")


class TestApprovalBroker:
    @pytest.mark.asyncio
    async def test_resolve_approves(self):
        seen = []
        broker = ApprovalBroker(on_request=seen.append, timeout=5)

        task = asyncio.create_task(broker("c1", "google_send_email", {"to": "a@b.c"}))
        await wait_for_pending(broker)

        assert seen[0].correlation_id == "c1"
        assert seen[0].function_name == "google_send_email"
        assert seen[0].arguments == {"to": "a@b.c"}
        assert broker.resolve("c1", True) is True
        assert await task is True
        assert broker.pending() == []
        assert broker.history[-1].reason == "approved"

    @pytest.mark.asyncio
    async def test_resolve_denies(self):
        broker = ApprovalBroker(timeout=5)

        task = asyncio.create_task(broker.request("c2", "hass_turn_on_light", {}))
        await wait_for_pending(broker)
        broker.resolve("c2", False)

        assert await task is False
        assert broker.history[-1].reason == "denied"

    @pytest.mark.asyncio
    async def test_timeout_resolves_to_denied(self):
        broker = ApprovalBroker(timeout=0.05)

        assert await broker("c3", "x", {}) is False
        assert broker.history[-1].reason == "timeout"
        assert broker.resolve("c3", True) is False

    @pytest.mark.asyncio
    async def test_async_listener(self):
        notified = asyncio.Event()

        async def on_request(request):
            notified.set()

        broker = ApprovalBroker(on_request=on_request, timeout=5)
        task = asyncio.create_task(broker("c4", "x", {}))
        await asyncio.wait_for(notified.wait(), timeout=1)
        broker.resolve("c4", True)

        assert await task is True

    def test_unknown_id(self):
        assert ApprovalBroker().resolve("missing", True) is False

    @pytest.mark.asyncio
    async def test_duplicate_pending_id_rejected(self):
        broker = ApprovalBroker(timeout=5)
        task = asyncio.create_task(broker("dup", "x", {}))
        await wait_for_pending(broker)

        with pytest.raises(ValueError):
            await broker("dup", "x", {})

        broker.resolve("dup", True)
        assert await task is True

    @pytest.mark.asyncio
    async def test_deny_all(self):
        broker = ApprovalBroker(timeout=5)
        tasks = [asyncio.create_task(broker(f"c{i}", "x", {})) for i in range(3)]
        await wait_for_pending(broker, 3)

        assert broker.deny_all() == 3
        assert await asyncio.gather(*tasks) == [False, False, False]


class TestAskGate:
    @pytest.mark.asyncio
    async def test_sync_and_async_gates(self):
        async def async_gate(correlation_id, function_name, arguments):
            return function_name == "allowed"

        assert await ask_gate(lambda *args: 1, "c", "x", {}) is True
        assert await ask_gate(async_gate, "c", "allowed", {}) is True
        assert await ask_gate(async_gate, "c", "other", {}) is False
