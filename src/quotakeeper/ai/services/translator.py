"""Quota-aware translator wrapper and streaming transform."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterable, AsyncIterator, ClassVar

from ..ai_types import AbortSignal, LanguageModelFactory, SessionOptions, Translator
from ..engines import PromptedTranslator
from ..errors import AbortError, raise_if_aborted
from .large_content import LargeContentProcessor, LargeContentStrategy

LOGGER = logging.getLogger(__name__)


class TranslatorEx(LargeContentProcessor):
    """Translator that accepts input of any size by translating chunks independently."""

    supported_strategies: ClassVar[tuple[LargeContentStrategy, ...]] = (LargeContentStrategy.JOIN,)
    default_strategy: ClassVar[LargeContentStrategy] = LargeContentStrategy.JOIN

    def __init__(self, engine: Translator, **kwargs: Any) -> None:
        super().__init__(engine, **kwargs)

    @classmethod
    async def create(
        cls,
        factory: LanguageModelFactory,
        *,
        target_language: str,
        source_language: str | None = None,
        session: SessionOptions | None = None,
        **engine_options: Any,
    ) -> TranslatorEx:
        engine = await PromptedTranslator.create(
            factory,
            session=session,
            target_language=target_language,
            source_language=source_language,
            **engine_options,
        )
        return cls(engine)

    @property
    def source_language(self) -> str | None:
        return getattr(self._engine, "source_language", None)

    @property
    def target_language(self) -> str:
        return self._engine.target_language

    async def translate(self, text: str, **options: Any) -> str:
        return await self._process(text, options)

    def translate_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._process_streaming(text, options)

    async def stream(
        self,
        source: AsyncIterable[str],
        *,
        signal: AbortSignal | None = None,
        **options: Any,
    ) -> AsyncIterator[str]:
        """Translate *source* chunk by chunk as it arrives.

        The abort signal is checked before each chunk; an abort ends the stream
        quietly while any other failure propagates.

        Raises:
            ValueError: The source language is unknown.
        """

        if not self.source_language:
            raise ValueError("A source language is required to stream translations")
        try:
            async for text in source:
                raise_if_aborted(signal, "Translation stream aborted by signal.")
                if not text:
                    continue
                async for piece in self.translate_streaming(text, signal=signal, **options):
                    yield piece
        except AbortError:
            LOGGER.debug("Translation stream aborted")

    async def _primary(self, text: str, **options: Any) -> str:
        return await self._engine.translate(text, **options)

    def _primary_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._engine.translate_streaming(text, **options)


__all__ = ["TranslatorEx"]
