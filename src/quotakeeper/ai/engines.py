"""Task engines implemented as instructions over a language model factory.

Each call opens a fresh session seeded with the task instruction as its system
prompt, runs a single prompt and destroys the session, so task engines never
accumulate history. A long-lived metering session answers quota and
measurement queries. Measurements cover the instruction as well as the text,
since both are sent.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping, TypeVar

from .ai_types import AbortSignal, LanguageModel, LanguageModelFactory, SessionOptions
from .messages import ConversationMessage

LOGGER = logging.getLogger(__name__)

_TaskEngineT = TypeVar("_TaskEngineT", bound="PromptedTaskEngine")

_SUMMARY_TYPES: Mapping[str, str] = {
    "tldr": "a short, to-the-point overview (TL;DR)",
    "key-points": "a bulleted list of the most important points",
    "teaser": "an intriguing teaser that makes the reader want to read the full text",
    "headline": "a single headline capturing the main point",
}
_SUMMARY_LENGTHS: Mapping[str, Mapping[str, str]] = {
    "tldr": {"short": "1 sentence", "medium": "3 sentences", "long": "5 sentences"},
    "key-points": {"short": "3 bullet points", "medium": "5 bullet points", "long": "7 bullet points"},
    "teaser": {"short": "1 sentence", "medium": "3 sentences", "long": "5 sentences"},
    "headline": {"short": "12 words", "medium": "17 words", "long": "22 words"},
}
_FORMATS: Mapping[str, str] = {
    "plain-text": "plain text without markup",
    "markdown": "Markdown",
    "as-is": "the same format as the input",
}


class PromptedTaskEngine:
    """Base class for single-shot task engines driven by an instruction."""

    def __init__(
        self,
        factory: LanguageModelFactory,
        meter: LanguageModel,
        *,
        session: SessionOptions | None = None,
        shared_context: str | None = None,
    ) -> None:
        self._factory = factory
        self._meter = meter
        self._session = session or SessionOptions()
        self._shared_context = shared_context
        self._destroyed = False

    @classmethod
    async def create(
        cls: type[_TaskEngineT],
        factory: LanguageModelFactory,
        *,
        session: SessionOptions | None = None,
        **kwargs: Any,
    ) -> _TaskEngineT:
        meter = await factory(session or SessionOptions())
        return cls(factory, meter, session=session, **kwargs)

    @property
    def input_quota(self) -> int:
        return self._meter.input_quota

    async def measure_input_usage(self, text: str, **options: Any) -> int:
        messages = [
            ConversationMessage.system(self.instruction(options)),
            ConversationMessage.user(self._compose(text, options.get("context"))),
        ]
        return await self._meter.measure_input_usage(messages)

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self._meter.destroy()

    def instruction(self, options: Mapping[str, Any] | None = None) -> str:
        """Return the system prompt, honouring per-call *options* where the task supports them."""

        raise NotImplementedError

    def _compose(self, text: str, context: str | None = None) -> str:
        sections = [part for part in (self._shared_context, context) if part]
        if not sections:
            return text
        joined = "\n".join(sections)
        return f"Context:\n{joined}\n\nText:\n{text}"

    async def _open(self, options: Mapping[str, Any]) -> LanguageModel:
        if self._destroyed:
            raise RuntimeError(f"{type(self).__name__} has been destroyed")
        prompts = [ConversationMessage.system(self.instruction(options))]
        return await self._factory(self._session.with_prompts(prompts))

    async def _run(self, text: str, options: Mapping[str, Any]) -> str:
        session = await self._open(options)
        try:
            return await session.prompt(self._compose(text, options.get("context")), signal=_signal(options))
        finally:
            session.destroy()

    async def _run_streaming(self, text: str, options: Mapping[str, Any]) -> AsyncIterator[str]:
        session = await self._open(options)
        try:
            async for chunk in session.prompt_streaming(
                self._compose(text, options.get("context")), signal=_signal(options)
            ):
                yield chunk
        finally:
            session.destroy()


class PromptedSummarizer(PromptedTaskEngine):
    def __init__(
        self,
        factory: LanguageModelFactory,
        meter: LanguageModel,
        *,
        type: str = "key-points",
        length: str = "short",
        format: str = "markdown",
        **kwargs: Any,
    ) -> None:
        if type not in _SUMMARY_TYPES:
            raise ValueError(f"Unsupported summary type: {type}")
        if length not in _SUMMARY_LENGTHS[type]:
            raise ValueError(f"Unsupported summary length: {length}")
        super().__init__(factory, meter, **kwargs)
        self.type = type
        self.length = length
        self.format = format

    def instruction(self, options: Mapping[str, Any] | None = None) -> str:
        options = options or {}
        summary_type = options.get("type") or self.type
        length = options.get("length") or self.length
        if summary_type not in _SUMMARY_TYPES:
            raise ValueError(f"Unsupported summary type: {summary_type}")
        if length not in _SUMMARY_LENGTHS[summary_type]:
            raise ValueError(f"Unsupported summary length: {length}")
        output_format = options.get("format") or self.format
        output = _FORMATS.get(output_format, output_format)
        size = _SUMMARY_LENGTHS[summary_type][length]
        return (
            f"You summarize text. Reply with {_SUMMARY_TYPES[summary_type]} of at most {size}, "
            f"written as {output}. Reply with the summary only."
        )

    async def summarize(self, text: str, **options: Any) -> str:
        return await self._run(text, options)

    def summarize_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._run_streaming(text, options)


class PromptedWriter(PromptedTaskEngine):
    def __init__(
        self,
        factory: LanguageModelFactory,
        meter: LanguageModel,
        *,
        tone: str = "neutral",
        format: str = "plain-text",
        length: str = "medium",
        **kwargs: Any,
    ) -> None:
        super().__init__(factory, meter, **kwargs)
        self.tone = tone
        self.format = format
        self.length = length

    def instruction(self, options: Mapping[str, Any] | None = None) -> str:
        output = _FORMATS.get(self.format, self.format)
        return (
            f"You write new content for the user's request in a {self.tone} tone, "
            f"{self.length} in length, formatted as {output}. Reply with the content only."
        )

    async def write(self, text: str, **options: Any) -> str:
        return await self._run(text, options)

    def write_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._run_streaming(text, options)


class PromptedRewriter(PromptedTaskEngine):
    def __init__(
        self,
        factory: LanguageModelFactory,
        meter: LanguageModel,
        *,
        tone: str = "as-is",
        format: str = "as-is",
        length: str = "as-is",
        **kwargs: Any,
    ) -> None:
        super().__init__(factory, meter, **kwargs)
        self.tone = tone
        self.format = format
        self.length = length

    def instruction(self, options: Mapping[str, Any] | None = None) -> str:
        tone = "the original tone" if self.tone == "as-is" else f"a {self.tone} tone"
        length = "the original length" if self.length == "as-is" else f"a {self.length} length"
        output = _FORMATS.get(self.format, self.format)
        return (
            f"You rewrite the user's text keeping its meaning, using {tone} and {length}, "
            f"formatted as {output}. Reply with the rewritten text only."
        )

    async def rewrite(self, text: str, **options: Any) -> str:
        return await self._run(text, options)

    def rewrite_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._run_streaming(text, options)


class PromptedTranslator(PromptedTaskEngine):
    def __init__(
        self,
        factory: LanguageModelFactory,
        meter: LanguageModel,
        *,
        target_language: str,
        source_language: str | None = None,
        **kwargs: Any,
    ) -> None:
        if not target_language:
            raise ValueError("target_language is required")
        super().__init__(factory, meter, **kwargs)
        self.source_language = source_language
        self.target_language = target_language

    def instruction(self, options: Mapping[str, Any] | None = None) -> str:
        source = f"from {self.source_language} " if self.source_language else ""
        return (
            f"You translate the user's text {source}into {self.target_language}. "
            "Preserve formatting and reply with the translation only."
        )

    async def translate(self, text: str, **options: Any) -> str:
        return await self._run(text, options)

    def translate_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._run_streaming(text, options)


def _signal(options: Mapping[str, Any]) -> AbortSignal | None:
    return options.get("signal")


__all__ = [
    "PromptedRewriter",
    "PromptedSummarizer",
    "PromptedTaskEngine",
    "PromptedTranslator",
    "PromptedWriter",
]
