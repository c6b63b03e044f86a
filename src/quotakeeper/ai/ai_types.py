"""Shared typing contracts for quota-limited engines."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Mapping, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from .messages import ConversationMessage, PromptInput

AbortSignal = asyncio.Event
"""Cooperative cancellation flag; set it to request an abort."""

MeasureFn = Callable[[str], Awaitable[int]]


class TokenCounterProtocol(Protocol):
    """Protocol describing tokenizer implementations."""

    model_name: str | None

    def count(self, text: str) -> int:
        """Return the token count for *text* (0 for empty text)."""
        ...


@dataclass(slots=True)
class SessionOptions:
    """Creation options forwarded to a language model factory.

    ``initial_prompts`` seeds the new session (system prompt first when
    present). ``response_constraint`` is a JSON schema the engine should
    constrain its output to; ``extra`` carries engine-specific keys untouched.
    """

    initial_prompts: Sequence[ConversationMessage] = field(default_factory=tuple)
    temperature: float | None = None
    top_k: int | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def with_prompts(self, prompts: Sequence[ConversationMessage]) -> SessionOptions:
        return SessionOptions(
            initial_prompts=tuple(prompts),
            temperature=self.temperature,
            top_k=self.top_k,
            extra=dict(self.extra),
        )


@runtime_checkable
class LanguageModel(Protocol):
    """Conversational engine with a hard input quota.

    Sessions remember every message they were sent. ``input_usage`` reports
    how much of ``input_quota`` the retained conversation currently consumes.
    """

    @property
    def input_quota(self) -> int: ...

    @property
    def input_usage(self) -> int: ...

    async def prompt(
        self,
        prompt: PromptInput,
        *,
        signal: AbortSignal | None = None,
        response_constraint: Mapping[str, Any] | None = None,
    ) -> str: ...

    def prompt_streaming(
        self,
        prompt: PromptInput,
        *,
        signal: AbortSignal | None = None,
        response_constraint: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[str]: ...

    async def append(self, prompt: PromptInput, *, signal: AbortSignal | None = None) -> None: ...

    async def measure_input_usage(self, prompt: PromptInput) -> int: ...

    def destroy(self) -> None: ...


LanguageModelFactory = Callable[[SessionOptions], Awaitable[LanguageModel]]


class _QuotaEngine(Protocol):
    @property
    def input_quota(self) -> int: ...

    async def measure_input_usage(self, text: str, **options: Any) -> int: ...

    def destroy(self) -> None: ...


@runtime_checkable
class Summarizer(_QuotaEngine, Protocol):
    """Summary engine; ``type`` is one of tldr, key-points, teaser or headline."""

    type: str

    async def summarize(self, text: str, **options: Any) -> str: ...

    def summarize_streaming(self, text: str, **options: Any) -> AsyncIterator[str]: ...


@runtime_checkable
class Writer(_QuotaEngine, Protocol):
    async def write(self, text: str, **options: Any) -> str: ...

    def write_streaming(self, text: str, **options: Any) -> AsyncIterator[str]: ...


@runtime_checkable
class Rewriter(_QuotaEngine, Protocol):
    async def rewrite(self, text: str, **options: Any) -> str: ...

    def rewrite_streaming(self, text: str, **options: Any) -> AsyncIterator[str]: ...


@runtime_checkable
class Translator(_QuotaEngine, Protocol):
    source_language: str | None
    target_language: str

    async def translate(self, text: str, **options: Any) -> str: ...

    def translate_streaming(self, text: str, **options: Any) -> AsyncIterator[str]: ...


__all__ = [
    "AbortSignal",
    "LanguageModel",
    "LanguageModelFactory",
    "MeasureFn",
    "Rewriter",
    "SessionOptions",
    "Summarizer",
    "TokenCounterProtocol",
    "Translator",
    "Writer",
]
