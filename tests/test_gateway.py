"""Tests for the SSE broadcast gateway."""

import asyncio
import json
from typing import Callable

import pytest

from audit_pipeline.config import AuditSettings
from audit_pipeline.events.models import ActivityEvent, ActivityStatus
from audit_pipeline.gateway import (
    CONNECTED_COMMENT,
    SSE_HEADERS,
    BroadcastGateway,
    QueueSink,
    format_sse,
)
from audit_pipeline.monitoring import ActivityMonitor


class FakeSink:
    """In-memory ResponseSink."""

    def __init__(self, fail_writes: bool = False):
        self.headers: dict[str, str] = {}
        self.writes: list[str] = []
        self.ended = False
        self.fail_writes = fail_writes
        self._callbacks: list[Callable[[], None]] = []

    def set_headers(self, headers: dict[str, str]) -> None:
        self.headers.update(headers)

    def write(self, data: str) -> None:
        if self.fail_writes and data != CONNECTED_COMMENT:
            raise BrokenPipeError("client went away")
        self.writes.append(data)

    def end(self) -> None:
        self.ended = True

    def on_close(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def close(self) -> None:
        for callback in self._callbacks:
            callback()


class TestBroadcastGateway:
    """Tests for BroadcastGateway."""

    def test_add_client_configures_sink(self) -> None:
        gateway = BroadcastGateway()
        sink = FakeSink()

        client_id = gateway.add_client(sink)

        assert client_id
        assert sink.headers == SSE_HEADERS
        assert sink.writes == [": connected\n\n"]
        assert gateway.get_client_count() == 1

    def test_broadcast_frames_message(self) -> None:
        gateway = BroadcastGateway()
        sink = FakeSink()
        gateway.add_client(sink)

        assert gateway.broadcast("activity", {"id": 1}) == 1
        assert sink.writes[-1] == 'event: activity\ndata: {"id": 1}\n\n'

    def test_broadcast_reaches_every_client(self) -> None:
        gateway = BroadcastGateway()
        sinks = [FakeSink() for _ in range(3)]
        for sink in sinks:
            gateway.add_client(sink)

        gateway.broadcast("alert", {"reason": "x"})
        assert all(len(sink.writes) == 2 for sink in sinks)

    def test_failing_client_is_dropped(self) -> None:
        """A dead client is removed and the others still receive the message."""
        gateway = BroadcastGateway()
        dead = FakeSink(fail_writes=True)
        alive = FakeSink()
        gateway.add_client(dead)
        gateway.add_client(alive)

        assert gateway.broadcast("activity", {"id": 1}) == 1
        assert gateway.get_client_count() == 1
        assert dead.ended is True
        assert alive.writes[-1].startswith("event: activity")

    def test_remove_client_is_idempotent(self) -> None:
        gateway = BroadcastGateway()
        sink = FakeSink()
        client_id = gateway.add_client(sink)

        gateway.remove_client(client_id)
        gateway.remove_client(client_id)
        gateway.remove_client("unknown")

        assert sink.ended is True
        assert gateway.get_client_count() == 0

    def test_connection_close_removes_client(self) -> None:
        gateway = BroadcastGateway()
        sink = FakeSink()
        gateway.add_client(sink)

        sink.close()
        assert gateway.get_client_count() == 0

    def test_close_all(self) -> None:
        gateway = BroadcastGateway()
        sinks = [FakeSink() for _ in range(2)]
        for sink in sinks:
            gateway.add_client(sink)

        gateway.close_all()
        assert gateway.get_client_count() == 0
        assert all(sink.ended for sink in sinks)

    def test_attach_forwards_monitor_events_and_alerts(self, clock) -> None:
        monitor = ActivityMonitor(AuditSettings(failure_alert_threshold=1), clock=clock)
        gateway = BroadcastGateway()
        gateway.attach(monitor)
        sink = FakeSink()
        gateway.add_client(sink)

        monitor.record(ActivityEvent(action="login_failed", status=ActivityStatus.FAILURE))

        names = [w.split("\n", 1)[0] for w in sink.writes[1:]]
        assert names == ["event: activity", "event: alert"]

        payload = json.loads(sink.writes[1].split("data: ", 1)[1])
        assert payload["action"] == "login_failed"

    def test_detach(self, clock) -> None:
        monitor = ActivityMonitor(clock=clock)
        gateway = BroadcastGateway()
        gateway.attach(monitor)
        gateway.detach()
        sink = FakeSink()
        gateway.add_client(sink)

        monitor.record(ActivityEvent(action="logout"))
        assert sink.writes == [CONNECTED_COMMENT]


class TestFormatSse:
    """Tests for SSE framing."""

    def test_models_are_serialized_as_json(self) -> None:
        message = format_sse("activity", ActivityEvent(id=3, action="logout"))
        assert message.startswith("event: activity\ndata: {")
        assert message.endswith("\n\n")
        assert json.loads(message.split("data: ", 1)[1])["id"] == 3


class TestQueueSink:
    """Tests for the asyncio-backed sink."""

    def test_stream_yields_writes_until_end(self) -> None:
        async def scenario() -> list[str]:
            sink = QueueSink()
            sink.write("one")
            sink.write("two")
            sink.end()
            return [item async for item in sink.stream()]

        assert asyncio.run(scenario()) == ["one", "two"]

    def test_stream_end_runs_close_callbacks(self) -> None:
        async def scenario() -> tuple[BroadcastGateway, QueueSink]:
            gateway = BroadcastGateway()
            sink = QueueSink()
            gateway.add_client(sink)
            gateway.broadcast("activity", {"id": 1})
            sink.end()
            received = [item async for item in sink.stream()]
            assert received[0] == CONNECTED_COMMENT
            assert received[1].startswith("event: activity")
            return gateway, sink

        gateway, sink = asyncio.run(scenario())
        assert gateway.get_client_count() == 0
        assert sink.closed is True

    def test_full_queue_drops_messages(self) -> None:
        async def scenario() -> QueueSink:
            sink = QueueSink(max_queue_size=2)
            for i in range(5):
                sink.write(str(i))
            await asyncio.sleep(0)
            return sink

        sink = asyncio.run(scenario())
        assert sink.dropped == 3

    def test_write_after_close_raises(self) -> None:
        async def scenario() -> None:
            sink = QueueSink()
            sink.end()
            [item async for item in sink.stream()]
            with pytest.raises(ConnectionError):
                sink.write("late")

        asyncio.run(scenario())
