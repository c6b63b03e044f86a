"""Quota-bounded wrapper around a conversational language model.

:class:`LanguageModelEx` keeps its own copy of the conversation and checks,
before every call, whether the engine session plus the pending input would
cross ``max_quota_usage`` of the engine quota. When it would, the configured
history handler trims the stored conversation and the context handler rebuilds
the engine session (optionally from a summary of what came before).

Single string prompts that do not fit the quota at all are first reduced
chunk by chunk through a disposable scratch wrapper.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, AsyncIterator, Callable, Mapping, Sequence, Union

from .ai_types import AbortSignal, LanguageModel, LanguageModelFactory, SessionOptions
from .errors import AbortError, MeasurementError, ReductionDepthExceeded, raise_if_aborted
from .history import HistoryManager
from .messages import ConversationMessage, PromptInput, normalize_prompt
from .services.large_content import CHUNK_SEPARATOR, LargeContentStrategy, SummarizerFactory
from .services.summarizer import SummarizerEx
from .services.telemetry import (
    CONTEXT_CLEAR,
    CONTEXT_SHRINK,
    QUOTA_OVERFLOW,
    SESSION_RECREATED,
    EventBus,
    EventListener,
    QuotaEvent,
    TelemetrySink,
)
from .text_splitter import TextSplitter

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_QUOTA_USAGE = 0.75
LARGE_INPUT_THRESHOLD = 0.75
MAX_LARGE_INPUT_DEPTH = 8
SUMMARY_PREFIX = "Summary of previous conversation: "
REDUCE_TEMPLATE = (
    "Reduce the following text to the most important information while preserving the user's intent "
    "and important facts. Keep it concise but preserve meaning.\n\n"
    "System context:\n{system}\n\n"
    "Text:\n{text}"
)

_STREAM_END = object()


class ContextStrategy(str, Enum):
    """How the engine session is rebuilt once the quota threshold is crossed."""

    CLEAR = "clear"
    SUMMARIZE = "summarize"


class HistoryStrategy(str, Enum):
    """What happens to the stored conversation once the quota threshold is crossed."""

    CLEAR = "clear"
    PRESERVE = "preserve"
    UPDATE = "update"


@dataclass(frozen=True, slots=True)
class CustomContextHandler:
    """Caller-provided context handler.

    ``fn`` receives a copy of the stored conversation and returns (or resolves
    to) the exact initial prompts for the recreated session.
    """

    fn: Callable[[list[ConversationMessage]], Any]


@dataclass(frozen=True, slots=True)
class CustomHistoryHandler:
    """Caller-provided history handler; ``fn`` returns the replacement conversation."""

    fn: Callable[[list[ConversationMessage]], Any]


ContextHandler = Union[ContextStrategy, CustomContextHandler]
HistoryHandler = Union[HistoryStrategy, CustomHistoryHandler]


@dataclass(slots=True)
class LanguageModelExOptions:
    """Configuration for :class:`LanguageModelEx`.

    Handlers accept the enum members, their string values, the ``Custom*``
    wrappers or a bare callable, which is wrapped automatically.
    """

    max_quota_usage: float = DEFAULT_MAX_QUOTA_USAGE
    context_handler: ContextHandler | str | Callable[..., Any] = ContextStrategy.SUMMARIZE
    history_handler: HistoryHandler | str | Callable[..., Any] = HistoryStrategy.PRESERVE
    session: SessionOptions = field(default_factory=SessionOptions)
    summarizer_factory: SummarizerFactory | None = None
    large_input_threshold: float = LARGE_INPUT_THRESHOLD
    max_reduction_depth: int = MAX_LARGE_INPUT_DEPTH

    def normalized(self) -> LanguageModelExOptions:
        if not 0 < self.max_quota_usage <= 1:
            raise ValueError("max_quota_usage must be within (0, 1]")
        return replace(
            self,
            context_handler=_coerce_context_handler(self.context_handler),
            history_handler=_coerce_history_handler(self.history_handler),
        )


def _coerce_context_handler(handler: Any) -> ContextHandler:
    if isinstance(handler, (ContextStrategy, CustomContextHandler)):
        return handler
    if isinstance(handler, str):
        return ContextStrategy(handler)
    if callable(handler):
        return CustomContextHandler(handler)
    raise TypeError(f"Unsupported context handler: {handler!r}")


def _coerce_history_handler(handler: Any) -> HistoryHandler:
    if isinstance(handler, (HistoryStrategy, CustomHistoryHandler)):
        return handler
    if isinstance(handler, str):
        return HistoryStrategy(handler)
    if callable(handler):
        return CustomHistoryHandler(handler)
    raise TypeError(f"Unsupported history handler: {handler!r}")


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _seed_prompts(messages: Sequence[ConversationMessage]) -> list[ConversationMessage]:
    """Drop empty system placeholders; engines reject blank system prompts."""

    return [message for message in messages if not (message.is_system and not message.text())]


class LanguageModelEx:
    """Language model wrapper that never lets its session overflow.

    Calls on one instance are serialized. Streaming prompts keep the
    instance busy until the engine stream is fully drained, even when the
    caller stops reading early.
    """

    def __init__(
        self,
        factory: LanguageModelFactory,
        engine: LanguageModel,
        options: LanguageModelExOptions,
        *,
        telemetry_sink: TelemetrySink | None = None,
    ) -> None:
        self._factory = factory
        self._engine = engine
        self._options = options.normalized()
        self._history = HistoryManager(self._options.session.initial_prompts)
        self._events = EventBus()
        self._telemetry = telemetry_sink
        self._lock = asyncio.Lock()
        self._pumps: set[asyncio.Task[None]] = set()
        self._destroyed = False

    @classmethod
    async def create(
        cls,
        factory: LanguageModelFactory,
        options: LanguageModelExOptions | None = None,
        *,
        telemetry_sink: TelemetrySink | None = None,
    ) -> LanguageModelEx:
        resolved = (options or LanguageModelExOptions()).normalized()
        session = resolved.session.with_prompts(_seed_prompts(resolved.session.initial_prompts))
        engine = await factory(session)
        return cls(factory, engine, resolved, telemetry_sink=telemetry_sink)

    # ------------------------------------------------------------------
    # Engine surface
    # ------------------------------------------------------------------
    @property
    def input_quota(self) -> int:
        return self._engine.input_quota

    @property
    def input_usage(self) -> int:
        return self._engine.input_usage

    @property
    def history(self) -> HistoryManager:
        return self._history

    @property
    def options(self) -> LanguageModelExOptions:
        return self._options

    @property
    def engine(self) -> LanguageModel:
        return self._engine

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    def add_listener(self, event_name: str, callback: EventListener) -> Callable[[], None]:
        """Subscribe to ``quota_overflow``, ``context_clear``, ``context_shrink`` or ``session_recreated``."""

        return self._events.add_listener(event_name, callback)

    def remove_listener(self, event_name: str, callback: EventListener) -> None:
        self._events.remove_listener(event_name, callback)

    async def measure_input_usage(self, prompt: PromptInput) -> int:
        return await self._measure(prompt)

    async def prompt(
        self,
        prompt: PromptInput,
        *,
        signal: AbortSignal | None = None,
        response_constraint: Mapping[str, Any] | None = None,
    ) -> str:
        async with self._lock:
            self._ensure_alive()
            messages = await self._prepare(prompt, signal)
            self._history.add(messages)
            result = await self._engine.prompt(messages, signal=signal, response_constraint=response_constraint)
            if signal is None or not signal.is_set():
                self._history.add(ConversationMessage.assistant(result))
            return result

    async def prompt_streaming(
        self,
        prompt: PromptInput,
        *,
        signal: AbortSignal | None = None,
        response_constraint: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        await self._lock.acquire()
        try:
            self._ensure_alive()
            messages = await self._prepare(prompt, signal)
            self._history.add(messages)
            reply = ConversationMessage.assistant("")
            self._history.add(reply)
            queue: asyncio.Queue[Any] = asyncio.Queue()
            pump = asyncio.create_task(self._pump(messages, reply, queue, signal, response_constraint))
        except BaseException:
            self._lock.release()
            raise
        self._pumps.add(pump)
        pump.add_done_callback(self._pumps.discard)

        while True:
            item = await queue.get()
            if item is _STREAM_END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def append(self, prompt: PromptInput, *, signal: AbortSignal | None = None) -> None:
        async with self._lock:
            self._ensure_alive()
            messages = normalize_prompt(prompt)
            await self._ensure_quota(messages)
            raise_if_aborted(signal)
            await self._engine.append(messages, signal=signal)
            if signal is None or not signal.is_set():
                self._history.add(messages)

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self._engine.destroy()

    # ------------------------------------------------------------------
    # Quota management
    # ------------------------------------------------------------------
    async def _prepare(self, prompt: PromptInput, signal: AbortSignal | None) -> list[ConversationMessage]:
        pending_usage: int | None = None
        if isinstance(prompt, str):
            pending_usage = await self._measure(prompt)
            if pending_usage > self.input_quota:
                LOGGER.debug("Prompt of %s units exceeds quota %s; reducing", pending_usage, self.input_quota)
                prompt = await self._reduce_large_input(prompt, signal, depth=1)
                pending_usage = None
        messages = normalize_prompt(prompt)
        await self._ensure_quota(messages, pending_usage=pending_usage)
        raise_if_aborted(signal)
        return messages

    async def _ensure_quota(
        self,
        pending: Sequence[ConversationMessage] | None,
        *,
        pending_usage: int | None = None,
    ) -> bool:
        """Run the overflow handlers when the pending input would cross the threshold.

        Returns ``True`` when remediation ran.
        """

        if pending_usage is None:
            pending_usage = await self._measure(list(pending)) if pending else 0
        current = self._engine.input_usage
        projected = current + pending_usage
        quota = self.input_quota
        ratio = projected / quota if quota > 0 else float("inf")
        if self._options.max_quota_usage > ratio:
            return False

        LOGGER.info(
            "Input usage %s/%s would cross %.0f%% of the quota; recovering session",
            projected,
            quota,
            self._options.max_quota_usage * 100,
        )
        self._emit(QUOTA_OVERFLOW, {"input_usage": current, "input_quota": quota}, projected=projected)

        context_handler = self._options.context_handler
        transcript = self._history.to_string() if context_handler is ContextStrategy.SUMMARIZE else ""
        await self._apply_history_handler()
        await self._apply_context_handler(transcript)
        return True

    async def _apply_history_handler(self) -> None:
        handler = self._options.history_handler
        if isinstance(handler, CustomHistoryHandler):
            replacement = await _resolve(handler.fn(self._history.copy()))
            self._history.replace(list(replacement))
        elif handler in (HistoryStrategy.CLEAR, HistoryStrategy.UPDATE):
            self._history.clear()

    async def _apply_context_handler(self, transcript: str) -> None:
        handler = self._options.context_handler
        if isinstance(handler, CustomContextHandler):
            prompts = await _resolve(handler.fn(self._history.copy()))
            await self._recreate(list(prompts))
            return
        if handler is ContextStrategy.CLEAR:
            self._emit(CONTEXT_CLEAR)
            await self._recreate()
            return

        summary = await self._summarize(transcript) if transcript.strip() else ""
        self._emit(CONTEXT_SHRINK, {"summary": summary})
        if summary and self._options.history_handler is HistoryStrategy.UPDATE:
            self._history.clear()
            self._history.add(ConversationMessage.assistant(f"{SUMMARY_PREFIX}{summary}"))
        await self._recreate()

    async def _summarize(self, transcript: str) -> str:
        factory = self._options.summarizer_factory or self._default_summarizer
        summarizer = await factory()
        try:
            return await summarizer.summarize(transcript)
        finally:
            summarizer.destroy()

    async def _default_summarizer(self) -> SummarizerEx:
        return await SummarizerEx.create(
            self._factory,
            strategy=LargeContentStrategy.MERGE,
            session=self._options.session.with_prompts(()),
            type="tldr",
            length="long",
        )

    async def _recreate(self, initial_prompts: Sequence[ConversationMessage] | None = None) -> None:
        if initial_prompts is None:
            if self._options.history_handler is HistoryStrategy.PRESERVE:
                initial_prompts = [self._history.get_system_prompt()]
            else:
                initial_prompts = self._history.copy()
        prompts = _seed_prompts(initial_prompts)
        self._engine.destroy()
        self._engine = await self._factory(self._options.session.with_prompts(prompts))
        LOGGER.debug("Recreated engine session with %s initial prompt(s)", len(prompts))
        self._emit(SESSION_RECREATED, {"initial_prompts": len(prompts)})

    async def _reduce_large_input(self, text: str, signal: AbortSignal | None, *, depth: int) -> str:
        limit = self._options.max_reduction_depth
        if depth > limit:
            raise ReductionDepthExceeded(f"Input reduction depth exceeded (limit {limit}).", limit=limit)
        budget = self.input_quota * self._options.large_input_threshold
        chunks = await TextSplitter(self._measure, budget).split(text)
        system = self._history.get_system_prompt().text()

        reducer = await LanguageModelEx.create(
            self._factory,
            LanguageModelExOptions(
                context_handler=ContextStrategy.CLEAR,
                history_handler=HistoryStrategy.CLEAR,
                session=self._options.session.with_prompts(()),
            ),
            telemetry_sink=self._telemetry,
        )
        try:
            reduced = await asyncio.gather(
                *(self._reduce_chunk(reducer, chunk, system, signal) for chunk in chunks)
            )
        finally:
            reducer.destroy()

        merged = CHUNK_SEPARATOR.join(reduced)
        if await self._measure(merged) > self.input_quota:
            LOGGER.debug("Reduced input still over quota at depth %s", depth)
            return await self._reduce_large_input(merged, signal, depth=depth + 1)
        return merged

    async def _reduce_chunk(
        self,
        reducer: LanguageModelEx,
        chunk: str,
        system: str,
        signal: AbortSignal | None,
    ) -> str:
        try:
            return await reducer.prompt(REDUCE_TEMPLATE.format(system=system, text=chunk), signal=signal)
        except (AbortError, asyncio.CancelledError):
            raise
        except Exception:
            LOGGER.warning("Failed to reduce a %s char chunk; keeping it unchanged", len(chunk), exc_info=True)
            return chunk

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _pump(
        self,
        messages: list[ConversationMessage],
        reply: ConversationMessage,
        queue: asyncio.Queue[Any],
        signal: AbortSignal | None,
        response_constraint: Mapping[str, Any] | None,
    ) -> None:
        stream = self._engine.prompt_streaming(messages, signal=signal, response_constraint=response_constraint)
        try:
            async for chunk in stream:
                reply.content = f"{reply.content}{chunk}"
                queue.put_nowait(chunk)
                raise_if_aborted(signal, "Streaming prompt aborted by signal.")
        except AbortError as exc:
            LOGGER.debug("Streaming prompt aborted after %s chars", len(reply.text()))
            queue.put_nowait(exc)
        except asyncio.CancelledError:
            queue.put_nowait(AbortError("Streaming prompt cancelled."))
            raise
        except Exception as exc:
            self._discard(reply)
            queue.put_nowait(exc)
        else:
            queue.put_nowait(_STREAM_END)
        finally:
            aclose = getattr(stream, "aclose", None)
            try:
                if aclose is not None:
                    await aclose()
            finally:
                self._lock.release()

    def _discard(self, message: ConversationMessage) -> None:
        messages = self._history.get()
        for index, candidate in enumerate(messages):
            if candidate is message:
                del messages[index]
                return

    async def _measure(self, prompt: PromptInput) -> int:
        try:
            return await self._engine.measure_input_usage(prompt)
        except (AbortError, MeasurementError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise MeasurementError(f"Failed to measure input: {exc}") from exc

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("LanguageModelEx has been destroyed")

    def _emit(self, event_name: str, payload: Mapping[str, Any] | None = None, *, projected: int | None = None) -> None:
        self._events.emit(event_name, payload)
        if self._telemetry is None:
            return
        self._telemetry.record(
            QuotaEvent(
                event=event_name,
                input_usage=self._engine.input_usage,
                input_quota=self._engine.input_quota,
                projected_usage=projected,
                history_length=len(self._history),
                payload=dict(payload or {}),
            )
        )


__all__ = [
    "ContextStrategy",
    "CustomContextHandler",
    "CustomHistoryHandler",
    "HistoryStrategy",
    "LanguageModelEx",
    "LanguageModelExOptions",
    "REDUCE_TEMPLATE",
    "SUMMARY_PREFIX",
]
