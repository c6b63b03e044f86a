"""Quota-aware task wrappers and telemetry helpers."""

from .large_content import LargeContentProcessor, LargeContentStrategy
from .summarizer import SummarizerEx
from .telemetry import EventBus, InMemoryTelemetrySink, QuotaEvent, TelemetrySink, snapshot_events
from .translator import TranslatorEx
from .writer import RewriterEx, WriterEx

__all__ = [
    "EventBus",
    "InMemoryTelemetrySink",
    "LargeContentProcessor",
    "LargeContentStrategy",
    "QuotaEvent",
    "RewriterEx",
    "SummarizerEx",
    "TelemetrySink",
    "TranslatorEx",
    "WriterEx",
    "snapshot_events",
]
