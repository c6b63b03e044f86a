"""Quota-aware language model wrappers, task engines and the agent loop."""

from .ai_types import LanguageModel, LanguageModelFactory, SessionOptions
from .client import AIClient, ClientSettings
from .errors import (
    AbortError,
    MaxIterationsError,
    MeasurementError,
    ParseError,
    QuotaKeeperError,
    ReductionDepthExceeded,
    SplitExhaustedError,
    ToolExecutionError,
    ToolNotFoundError,
)
from .history import HistoryManager
from .language_model import (
    ContextStrategy,
    CustomContextHandler,
    CustomHistoryHandler,
    HistoryStrategy,
    LanguageModelEx,
    LanguageModelExOptions,
)
from .messages import ConversationMessage, MessagePart
from .streaming import StreamingProperty
from .text_splitter import TextSplitter
from .tokens import counter_for_model, estimate_tokens

__all__ = [
    "AIClient",
    "AbortError",
    "ClientSettings",
    "ContextStrategy",
    "ConversationMessage",
    "CustomContextHandler",
    "CustomHistoryHandler",
    "HistoryManager",
    "HistoryStrategy",
    "LanguageModel",
    "LanguageModelEx",
    "LanguageModelExOptions",
    "LanguageModelFactory",
    "MaxIterationsError",
    "MeasurementError",
    "MessagePart",
    "ParseError",
    "QuotaKeeperError",
    "ReductionDepthExceeded",
    "SessionOptions",
    "SplitExhaustedError",
    "StreamingProperty",
    "TextSplitter",
    "ToolExecutionError",
    "ToolNotFoundError",
    "counter_for_model",
    "estimate_tokens",
]
