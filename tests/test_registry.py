"""Connection registry tests: registration, snapshots and per-target delivery."""

import asyncio

import pytest

from conftest import FakeWebSocket
from sosrelay.backend.exception import DeliveryError
from sosrelay.backend.registry import ConnectionRegistry


async def drain(handle):
    await asyncio.wait_for(handle.queue.join(), timeout=1.0)


class TestRegistration:
    def test_register_is_idempotent(self):
        async def scenario():
            registry = ConnectionRegistry()
            ws = FakeWebSocket()
            first = await registry.register("s1", ws)
            second = await registry.register("s1", ws)
            count = registry.count()
            await registry.unregister("s1")
            return first, second, count

        first, second, count = asyncio.run(scenario())

        assert first is second
        assert count == 1

    def test_unregister_unknown_session_is_noop(self):
        async def scenario():
            registry = ConnectionRegistry()
            await registry.unregister("missing")
            return registry.count()

        assert asyncio.run(scenario()) == 0

    def test_unregister_removes_session(self):
        async def scenario():
            registry = ConnectionRegistry()
            await registry.register("s1", FakeWebSocket())
            await registry.register("s2", FakeWebSocket())
            await registry.unregister("s1")
            return registry.count(), registry.is_registered("s1"), registry.is_registered("s2")

        count, has_s1, has_s2 = asyncio.run(scenario())

        assert count == 1
        assert not has_s1
        assert has_s2


class TestSnapshot:
    def test_all_except_excludes_origin(self):
        async def scenario():
            registry = ConnectionRegistry()
            for sid in ("a", "b", "c"):
                await registry.register(sid, FakeWebSocket())
            ids = sorted(handle.session_id for handle in registry.all_except("a"))
            await registry.disconnect_all()
            return ids

        assert asyncio.run(scenario()) == ["b", "c"]

    def test_snapshot_is_not_live(self):
        async def scenario():
            registry = ConnectionRegistry()
            await registry.register("a", FakeWebSocket())
            await registry.register("b", FakeWebSocket())
            snapshot = registry.all_except("a")
            await registry.register("c", FakeWebSocket())
            ids = [handle.session_id for handle in snapshot]
            await registry.disconnect_all()
            return ids

        assert asyncio.run(scenario()) == ["b"]

    def test_delivery_to_session_removed_after_snapshot_fails(self):
        async def scenario():
            registry = ConnectionRegistry()
            ws_b = FakeWebSocket()
            await registry.register("a", FakeWebSocket())
            await registry.register("b", ws_b)
            snapshot = registry.all_except("a")
            await registry.unregister("b")
            with pytest.raises(DeliveryError) as exc_info:
                registry.deliver(snapshot[0], {"type": "sos_alert_broadcast"})
            await asyncio.sleep(0.05)
            await registry.disconnect_all()
            return exc_info.value, ws_b.sent

        error, sent = asyncio.run(scenario())

        assert error.session_id == "b"
        assert sent == []

    def test_liveness_snapshot(self):
        async def scenario():
            registry = ConnectionRegistry()
            await registry.register("a", FakeWebSocket())
            await registry.register("b", FakeWebSocket())
            snapshot = registry.snapshot()
            await registry.disconnect_all()
            return snapshot

        snapshot = asyncio.run(scenario())

        assert [entry["sessionId"] for entry in snapshot] == ["a", "b"]
        assert all(entry["alive"] for entry in snapshot)
        assert all(entry["connectedAt"].endswith("Z") for entry in snapshot)


class TestDelivery:
    def test_send_reaches_websocket_in_order(self):
        async def scenario():
            registry = ConnectionRegistry()
            ws = FakeWebSocket()
            handle = await registry.register("a", ws)
            for n in range(3):
                assert registry.send("a", {"type": "ack", "n": n})
            await drain(handle)
            await registry.unregister("a")
            return ws.sent

        assert [m["n"] for m in asyncio.run(scenario())] == [0, 1, 2]

    def test_send_to_unknown_session_returns_false(self):
        registry = ConnectionRegistry()
        assert registry.send("missing", {"type": "ack"}) is False

    def test_failed_send_marks_session_not_live(self):
        async def scenario():
            registry = ConnectionRegistry()
            await registry.register("a", FakeWebSocket())
            handle_b = await registry.register("b", FakeWebSocket(fail_send=True))
            registry.deliver(handle_b, {"type": "sos_alert_broadcast"})
            await drain(handle_b)
            result = (
                handle_b.alive,
                registry.count(),
                [h.session_id for h in registry.all_except("a")],
            )
            with pytest.raises(DeliveryError):
                registry.deliver(handle_b, {"type": "sos_alert_broadcast"})
            assert registry.send("b", {"type": "ack"}) is False
            assert handle_b.queue.qsize() == 0
            await registry.disconnect_all()
            return result

        alive, count, targets = asyncio.run(scenario())

        assert alive is False
        assert count == 1
        assert targets == []

    def test_disconnect_all_closes_websockets(self):
        async def scenario():
            registry = ConnectionRegistry()
            sockets = [FakeWebSocket(), FakeWebSocket()]
            for n, ws in enumerate(sockets):
                await registry.register(f"s{n}", ws)
            closed = await registry.disconnect_all()
            return closed, registry.count(), [ws.closed_with for ws in sockets]

        closed, count, codes = asyncio.run(scenario())

        assert closed == 2
        assert count == 0
        assert codes == [1001, 1001]
