"""Quota telemetry: event records, an in-memory sink and per-instance listeners."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Mapping, Protocol, Sequence

LOGGER = logging.getLogger(__name__)

QUOTA_OVERFLOW = "quota_overflow"
CONTEXT_CLEAR = "context_clear"
CONTEXT_SHRINK = "context_shrink"
SESSION_RECREATED = "session_recreated"

EventListener = Callable[[dict[str, Any]], None]


@dataclass(slots=True)
class QuotaEvent:
    """Represents one quota-management decision taken by a wrapper."""

    event: str
    input_usage: int
    input_quota: int
    projected_usage: int | None = None
    history_length: int = 0
    timestamp: float = field(default_factory=time.time)
    payload: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ratio(self) -> float:
        if self.input_quota <= 0:
            return 0.0
        usage = self.projected_usage if self.projected_usage is not None else self.input_usage
        return usage / self.input_quota


class TelemetrySink(Protocol):
    """Sink interface used to collect telemetry events."""

    def record(self, event: QuotaEvent) -> None:
        ...


class InMemoryTelemetrySink:
    """Simple ring-buffer telemetry sink for local inspection and tests."""

    def __init__(self, capacity: int = 200) -> None:
        self._capacity = max(10, capacity)
        self._buffer: deque[QuotaEvent] = deque(maxlen=self._capacity)
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, event: QuotaEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def tail(self, limit: int | None = None) -> list[QuotaEvent]:
        with self._lock:
            events = list(self._buffer)
        if limit is None or limit >= len(events):
            return events
        return events[-limit:]

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


def snapshot_events(sink: TelemetrySink, limit: int | None = None) -> Sequence[QuotaEvent]:
    """Best-effort helper to retrieve events from arbitrary sinks."""

    if hasattr(sink, "tail"):
        tail = getattr(sink, "tail")
        try:
            return list(tail(limit))  # type: ignore[misc]
        except TypeError:
            return list(tail())  # type: ignore[misc]
    raise NotImplementedError("Telemetry sink does not support snapshotting")


class EventBus:
    """Named-event listener registry owned by a single emitter."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}

    def add_listener(self, event_name: str, callback: EventListener) -> Callable[[], None]:
        """Register *callback* for *event_name* and return an unregister callable."""

        if not event_name:
            raise ValueError("event_name is required")
        listeners = self._listeners.setdefault(event_name, [])
        if callback not in listeners:
            listeners.append(callback)

        def _remove() -> None:
            self.remove_listener(event_name, callback)

        return _remove

    def remove_listener(self, event_name: str, callback: EventListener) -> None:
        listeners = self._listeners.get(event_name)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    def emit(self, event_name: str, payload: Mapping[str, Any] | None = None) -> None:
        """Broadcast *payload* to listeners of *event_name*; listener failures are logged."""

        event_payload: dict[str, Any] = {"event": event_name}
        if payload:
            event_payload.update(payload)
        for callback in list(self._listeners.get(event_name, ())):
            try:
                callback(dict(event_payload))
            except Exception:
                LOGGER.debug("Event listener %s failed", callback, exc_info=True)
        LOGGER.debug("Event emit %s: %s", event_name, event_payload)


__all__ = [
    "CONTEXT_CLEAR",
    "CONTEXT_SHRINK",
    "EventBus",
    "EventListener",
    "InMemoryTelemetrySink",
    "QUOTA_OVERFLOW",
    "QuotaEvent",
    "SESSION_RECREATED",
    "TelemetrySink",
    "snapshot_events",
]
