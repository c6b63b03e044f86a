"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, AsyncIterator, Callable, Iterable, Mapping, Sequence

from quotakeeper.ai.ai_types import SessionOptions
from quotakeeper.ai.messages import ConversationMessage, PromptInput, normalize_prompt

Responder = Callable[["FakeEngine", list[ConversationMessage]], str]


def sentences(count: int, *, width: int = 20) -> str:
    """Return *count* sentences of exactly *width* characters each."""

    return ("x" * (width - 1) + ".") * count


def echo(_engine: "FakeEngine", messages: list[ConversationMessage]) -> str:
    return messages[-1].text() if messages else ""


class FakeEngine:
    """In-memory language model whose usage is the character count of its session.

    Example:
        backend = FakeBackend(quota=1000)
        engine = await backend(SessionOptions())
        await engine.prompt("hi")   # usage grows by len("hi") + len(reply)
    """

    def __init__(self, backend: "FakeBackend", options: SessionOptions) -> None:
        self.backend = backend
        self.options = options
        self.session: list[ConversationMessage] = list(options.initial_prompts)
        self.input_quota = backend.quota
        self.destroyed = False
        self.received: list[list[ConversationMessage]] = []
        self.constraints: list[Mapping[str, Any] | None] = []

    @property
    def input_usage(self) -> int:
        return sum(len(message.text()) for message in self.session)

    @property
    def instruction(self) -> str:
        for message in self.options.initial_prompts:
            if message.is_system:
                return message.text()
        return ""

    async def measure_input_usage(self, prompt: PromptInput, **_options: Any) -> int:
        if self.backend.fail_measure:
            raise RuntimeError("measure failed")
        return sum(len(message.text()) for message in normalize_prompt(prompt))

    async def prompt(
        self,
        prompt: PromptInput,
        *,
        signal: asyncio.Event | None = None,
        response_constraint: Mapping[str, Any] | None = None,
    ) -> str:
        messages = self._receive(prompt, response_constraint)
        reply = self.backend.responder(self, messages)
        self.session.append(ConversationMessage.assistant(reply))
        return reply

    async def prompt_streaming(
        self,
        prompt: PromptInput,
        *,
        signal: asyncio.Event | None = None,
        response_constraint: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        messages = self._receive(prompt, response_constraint)
        reply = self.backend.responder(self, messages)
        size = max(1, self.backend.chunk_size)
        for start in range(0, len(reply), size):
            await asyncio.sleep(0)
            yield reply[start : start + size]
        self.session.append(ConversationMessage.assistant(reply))

    async def append(self, prompt: PromptInput, *, signal: asyncio.Event | None = None) -> None:
        self.session.extend(normalize_prompt(prompt))

    def destroy(self) -> None:
        self.destroyed = True

    def _receive(
        self, prompt: PromptInput, response_constraint: Mapping[str, Any] | None
    ) -> list[ConversationMessage]:
        messages = normalize_prompt(prompt)
        self.received.append(messages)
        self.constraints.append(response_constraint)
        self.session.extend(messages)
        return messages


class FakeBackend:
    """Language model factory producing :class:`FakeEngine` sessions and recording them."""

    def __init__(
        self,
        *,
        quota: int = 1000,
        responder: Responder | None = None,
        chunk_size: int = 3,
    ) -> None:
        self.quota = quota
        self.responder: Responder = responder or (lambda _engine, _messages: "ok")
        self.chunk_size = chunk_size
        self.fail_measure = False
        self.sessions: list[SessionOptions] = []
        self.engines: list[FakeEngine] = []

    async def __call__(self, options: SessionOptions) -> FakeEngine:
        self.sessions.append(options)
        engine = FakeEngine(self, options)
        self.engines.append(engine)
        return engine

    def engines_with_instruction(self, prefix: str) -> list[FakeEngine]:
        return [engine for engine in self.engines if engine.instruction.startswith(prefix)]


def scripted(responses: Sequence[str]) -> Responder:
    """Responder replaying *responses* in order, repeating the last one."""

    remaining = list(responses)

    def _respond(_engine: FakeEngine, _messages: list[ConversationMessage]) -> str:
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return _respond


async def collect(stream: AsyncIterator[str]) -> list[str]:
    return [chunk async for chunk in stream]


@dataclass
class FakeStreamEvent:
    """Simple structure emulating ChatCompletionStreamEvent attributes."""

    type: str
    delta: str | None = None
    content: str | None = None
    parsed: Any | None = None
    refusal: str | None = None


class _FakeStream:
    def __init__(self, events: Iterable[FakeStreamEvent], error: BaseException | None = None):
        self._iterator = iter(list(events))
        self._error = error

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> FakeStreamEvent:
        try:
            return next(self._iterator)
        except StopIteration as exc:  # pragma: no cover - exhaust iterator
            if self._error is not None:
                raise self._error from None
            raise StopAsyncIteration from exc


class _FakeStreamContext:
    def __init__(
        self,
        events: Iterable[FakeStreamEvent],
        *,
        open_error: BaseException | None = None,
        stream_error: BaseException | None = None,
    ):
        self._events = list(events)
        self._open_error = open_error
        self._stream_error = stream_error

    async def __aenter__(self) -> _FakeStream:
        if self._open_error is not None:
            raise self._open_error
        return _FakeStream(self._events, self._stream_error)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _FakeCompletions:
    def __init__(
        self,
        events: Iterable[FakeStreamEvent],
        *,
        open_errors: Iterable[BaseException] = (),
        stream_error: BaseException | None = None,
    ):
        self._events = list(events)
        self._open_errors = list(open_errors)
        self._stream_error = stream_error
        self.calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> _FakeStreamContext:
        self.calls.append(kwargs)
        open_error = self._open_errors.pop(0) if self._open_errors else None
        return _FakeStreamContext(self._events, open_error=open_error, stream_error=self._stream_error)


def make_openai_client(
    events: Iterable[FakeStreamEvent],
    *,
    open_errors: Iterable[BaseException] = (),
    stream_error: BaseException | None = None,
) -> SimpleNamespace:
    """Stand-in for ``AsyncOpenAI`` whose ``chat.completions.stream`` replays *events*.

    Each entry of *open_errors* fails one stream as it opens. *stream_error*
    is raised after the events of every stream.
    """

    completions = _FakeCompletions(events, open_errors=open_errors, stream_error=stream_error)
    chat = SimpleNamespace(completions=completions)
    return SimpleNamespace(chat=chat)


class FakeCounter:
    def __init__(self, multiplier: int = 1, *, model_name: str = "fake-model") -> None:
        self.multiplier = multiplier
        self.model_name: str | None = model_name

    def count(self, text: str) -> int:
        return len(text) * self.multiplier
