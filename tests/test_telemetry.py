"""Tests for quota telemetry primitives."""

from __future__ import annotations

from quotakeeper.ai.services.telemetry import EventBus, InMemoryTelemetrySink, QuotaEvent, snapshot_events


def test_event_bus_adds_event_name_and_copies_payload() -> None:
    bus = EventBus()
    received: list[dict] = []

    bus.add_listener("context_shrink", received.append)
    bus.emit("context_shrink", {"summary": "short"})

    assert received == [{"event": "context_shrink", "summary": "short"}]


def test_event_bus_unregister_callable_and_isolation() -> None:
    bus = EventBus()
    calls: list[str] = []

    def _boom(_payload: dict) -> None:
        raise RuntimeError("bad listener")

    remove = bus.add_listener("quota_overflow", lambda payload: calls.append(payload["event"]))
    bus.add_listener("quota_overflow", _boom)
    bus.emit("quota_overflow")
    remove()
    bus.emit("quota_overflow")

    assert calls == ["quota_overflow"]
    assert bus.listener_count("quota_overflow") == 1


def test_in_memory_sink_keeps_most_recent_events() -> None:
    sink = InMemoryTelemetrySink(capacity=10)
    for index in range(12):
        sink.record(QuotaEvent(event=f"e{index}", input_usage=index, input_quota=10))

    assert [event.event for event in snapshot_events(sink, 2)] == ["e10", "e11"]
    assert len(sink) == 10


def test_quota_event_ratio_prefers_projected_usage() -> None:
    event = QuotaEvent(event="quota_overflow", input_usage=50, input_quota=100, projected_usage=80)

    assert event.ratio == 0.8
