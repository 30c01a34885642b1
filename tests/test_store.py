"""Event store tests: alert upsert/list/clear and the operational event log."""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from sosrelay.backend.enum import ServerEventType
from sosrelay.backend.exception import StoreError
from sosrelay.backend.schema.alert import AlertIn
from sosrelay.backend.store import EventStore


def make_alert(**overrides) -> AlertIn:
    payload = {"id": "a1", "timestamp": "T1", "alertType": "medical"}
    payload.update(overrides)
    return AlertIn.model_validate(payload)


def broken_session_factory():
    raise OperationalError("INSERT", {}, Exception("disk I/O error"))


class TestAlerts:
    def test_put_then_list_round_trips_fields(self, run_with_store):
        alert = make_alert(
            message="help",
            user={"name": "Ana", "phone": "+100", "email": "ana@example.com"},
            location={"latitude": 1.0, "longitude": 2.0, "accuracy": 5.0, "timestamp": "T0"},
            device={"platform": "android", "version": "14"},
            additionalData={"battery": 12, "tags": ["a", "b"]},
        )

        async def scenario(store):
            await store.put(alert)
            return [record.to_record() for record in await store.list_all()]

        records = run_with_store(scenario)

        assert len(records) == 1
        record = records[0]
        assert record["id"] == "a1"
        assert record["timestamp"] == "T1"
        assert record["alertType"] == "medical"
        assert record["message"] == "help"
        assert record["user"] == {"name": "Ana", "phone": "+100", "email": "ana@example.com"}
        assert record["location"]["latitude"] == 1.0
        assert record["location"]["longitude"] == 2.0
        assert record["location"]["accuracy"] == 5.0
        assert record["location"]["timestamp"] == "T0"
        assert record["device"] == {"platform": "android", "version": "14"}
        assert record["additionalData"] == {"battery": 12, "tags": ["a", "b"]}
        assert record["storedAt"].endswith("Z")

    def test_location_absent_without_latitude(self, run_with_store):
        async def scenario(store):
            await store.put(make_alert(id="no-loc"))
            await store.put(make_alert(id="no-lat", location={"longitude": 2.0}))
            return {r.id: r.to_record() for r in await store.list_all()}

        records = run_with_store(scenario)

        assert records["no-loc"]["location"] is None
        assert records["no-lat"]["location"] is None

    def test_zero_latitude_is_a_location(self, run_with_store):
        async def scenario(store):
            await store.put(make_alert(location={"latitude": 0.0, "longitude": 0.0}))
            return (await store.list_all())[0].to_record()

        record = run_with_store(scenario)

        assert record["location"]["latitude"] == 0.0

    def test_additional_data_defaults_to_empty(self, run_with_store):
        async def scenario(store):
            await store.put(make_alert())
            return (await store.list_all())[0].to_record()

        assert run_with_store(scenario)["additionalData"] == {}

    def test_same_id_upserts_and_keeps_stored_at(self, run_with_store):
        async def scenario(store):
            await store.put(make_alert(alertType="medical", message="first"))
            first = (await store.list_all())[0]
            await asyncio.sleep(0.01)
            await store.put(make_alert(alertType="fire", message="second"))
            return first, await store.list_all()

        first, alerts = run_with_store(scenario)

        assert len(alerts) == 1
        assert alerts[0].alert_type == "fire"
        assert alerts[0].message == "second"
        assert alerts[0].stored_at == first.stored_at

    def test_list_is_newest_stored_first(self, run_with_store):
        async def scenario(store):
            for alert_id in ("old", "middle", "new"):
                await store.put(make_alert(id=alert_id))
                await asyncio.sleep(0.01)
            return [alert.id for alert in await store.list_all()]

        assert run_with_store(scenario) == ["new", "middle", "old"]

    def test_clear_all_removes_alerts_but_not_events(self, run_with_store):
        async def scenario(store):
            await store.put(make_alert(id="x"))
            await store.put(make_alert(id="y"))
            await store.append_event(ServerEventType.CONNECTED, {"sessionId": "s1"})
            deleted = await store.clear_all()
            return deleted, await store.list_all(), await store.recent_events()

        deleted, alerts, events = run_with_store(scenario)

        assert deleted == 2
        assert alerts == []
        assert [e.to_record()["eventType"] for e in events] == ["connected"]

    def test_put_failure_raises_store_error(self, run_with_store):
        async def scenario(store):
            store._session_factory = broken_session_factory
            with pytest.raises(StoreError) as exc_info:
                await store.put(make_alert())
            return exc_info.value

        error = run_with_store(scenario)

        assert error.code == "STORE_ERROR"
        assert "a1" in error.message

    def test_cancelled_put_leaves_store_usable(self, run_with_store):
        async def scenario(store):
            task = asyncio.create_task(store.put(make_alert(id="interrupted")))
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            # Waits on the write lock until the interrupted write has finished
            await store.put(make_alert(id="next"))
            return sorted(alert.id for alert in await store.list_all())

        assert run_with_store(scenario) == ["interrupted", "next"]


class TestServerEvents:
    def test_aggregate_stats_counts_per_type_most_recent_first(self, run_with_store):
        async def scenario(store):
            await store.append_event(ServerEventType.CONNECTED, {"sessionId": "s1"})
            await store.append_event(ServerEventType.CONNECTED, {"sessionId": "s2"})
            await asyncio.sleep(0.01)
            await store.append_event(ServerEventType.ALERT_RECEIVED, {"alertId": "a1"})
            return await store.aggregate_stats()

        stats = run_with_store(scenario)

        assert [s["eventType"] for s in stats] == ["alert_received", "connected"]
        assert stats[0]["count"] == 1
        assert stats[1]["count"] == 2
        assert stats[0]["lastOccurrence"] >= stats[1]["lastOccurrence"]

    def test_append_event_swallows_failures(self, run_with_store):
        async def scenario(store):
            store._session_factory = broken_session_factory
            await store.append_event(ServerEventType.SOCKET_ERROR, {"error": "boom"})

        run_with_store(scenario)

    def test_recent_events_respects_limit(self, run_with_store):
        async def scenario(store):
            for i in range(5):
                await store.append_event(ServerEventType.CONNECTED, {"n": i})
            return await store.recent_events(limit=2)

        events = run_with_store(scenario)

        assert [e.details["n"] for e in events] == [4, 3]


class TestInitialization:
    def test_data_dir_that_is_a_file_fails(self, tmp_path):
        blocker = tmp_path / "data"
        blocker.write_text("not a directory")

        with pytest.raises(StoreError):
            EventStore.from_data_dir(blocker)

    def test_initialize_is_idempotent(self, tmp_path):
        async def main():
            for _ in range(2):
                store = EventStore.from_data_dir(tmp_path / "data")
                await store.initialize()
                await store.put(make_alert())
                alerts = await store.list_all()
                await store.close()
            return alerts

        alerts = asyncio.run(main())

        assert len(alerts) == 1
        assert (tmp_path / "data" / EventStore.DB_FILENAME).exists()
