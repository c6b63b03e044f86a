"""Observable values with replay-on-subscribe semantics."""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class StreamingProperty(Generic[T]):
    """Holds a value that changes over time and notifies subscribers.

    New subscribers are called immediately with the current value. Once
    :meth:`finalize` runs, further publishes are ignored, so observers can rely
    on the last value they saw being final.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._subscribers: list[Callable[[T], None]] = []
        self._finalized = False

    @property
    def value(self) -> T:
        return self._value

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register *callback*, replay the current value to it and return an unsubscribe callable."""

        self._notify(callback, self._value)
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, value: T) -> None:
        if self._finalized:
            return
        self._value = value
        for callback in list(self._subscribers):
            self._notify(callback, value)

    def finalize(self) -> None:
        self._finalized = True

    def _notify(self, callback: Callable[[T], None], value: T) -> None:
        try:
            callback(value)
        except Exception:
            LOGGER.debug("StreamingProperty subscriber %s failed", callback, exc_info=True)

    def __repr__(self) -> str:
        state = "final" if self._finalized else "live"
        return f"StreamingProperty({self._value!r}, {state})"


__all__ = ["StreamingProperty"]
