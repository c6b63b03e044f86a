"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
import logging

import pytest

from quotakeeper.ai.services.telemetry import InMemoryTelemetrySink
from quotakeeper.utils import logging as logging_utils
from tests.helpers import FakeBackend


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(quota=1000)


@pytest.fixture
def telemetry_sink() -> InMemoryTelemetrySink:
    return InMemoryTelemetrySink(capacity=50)


@pytest.fixture
def abort_signal() -> asyncio.Event:
    return asyncio.Event()


@pytest.fixture
def restore_root_logging(monkeypatch: pytest.MonkeyPatch):
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    monkeypatch.setattr(logging_utils, "_active_path", None)
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.captureWarnings(False)
