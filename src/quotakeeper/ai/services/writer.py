"""Quota-aware writer and rewriter wrappers."""

from __future__ import annotations

from typing import Any, AsyncIterator, ClassVar

from ..ai_types import LanguageModelFactory, Rewriter, SessionOptions, Writer
from ..engines import PromptedRewriter, PromptedWriter
from .large_content import LargeContentProcessor, LargeContentStrategy, SummarizerFactory
from .summarizer import SummarizerEx

CONDENSE_INSTRUCTION = "Summarize this content shortly for me:\n"

_ALL_STRATEGIES: tuple[LargeContentStrategy, ...] = (
    LargeContentStrategy.JOIN,
    LargeContentStrategy.MERGE,
    LargeContentStrategy.SUMMARIZE,
)


def default_summarizer_factory(factory: LanguageModelFactory, session: SessionOptions | None = None) -> SummarizerFactory:
    """Build the independent summarizer used by the ``summarize`` strategy."""

    async def _create() -> SummarizerEx:
        return await SummarizerEx.create(
            factory,
            strategy=LargeContentStrategy.JOIN,
            session=session,
            type="tldr",
            length="long",
            format="plain-text",
        )

    return _create


class WriterEx(LargeContentProcessor):
    """Writer accepting oversized requests; defaults to the ``merge`` strategy."""

    supported_strategies: ClassVar[tuple[LargeContentStrategy, ...]] = _ALL_STRATEGIES
    default_strategy: ClassVar[LargeContentStrategy] = LargeContentStrategy.MERGE

    def __init__(self, engine: Writer, **kwargs: Any) -> None:
        super().__init__(engine, **kwargs)

    @classmethod
    async def create(
        cls,
        factory: LanguageModelFactory,
        *,
        strategy: LargeContentStrategy | str | None = None,
        session: SessionOptions | None = None,
        **engine_options: Any,
    ) -> WriterEx:
        engine = await PromptedWriter.create(factory, session=session, **engine_options)
        return cls(engine, strategy=strategy, summarizer_factory=default_summarizer_factory(factory, session))

    async def write(self, text: str, **options: Any) -> str:
        return await self._process(text, options)

    def write_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._process_streaming(text, options)

    async def _primary(self, text: str, **options: Any) -> str:
        return await self._engine.write(text, **options)

    def _primary_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._engine.write_streaming(text, **options)

    async def _condense(self, text: str, **options: Any) -> str:
        return await self._engine.write(CONDENSE_INSTRUCTION + text, **options)


class RewriterEx(LargeContentProcessor):
    """Rewriter accepting oversized input; defaults to the ``join`` strategy."""

    supported_strategies: ClassVar[tuple[LargeContentStrategy, ...]] = _ALL_STRATEGIES
    default_strategy: ClassVar[LargeContentStrategy] = LargeContentStrategy.JOIN

    def __init__(self, engine: Rewriter, **kwargs: Any) -> None:
        super().__init__(engine, **kwargs)

    @classmethod
    async def create(
        cls,
        factory: LanguageModelFactory,
        *,
        strategy: LargeContentStrategy | str | None = None,
        session: SessionOptions | None = None,
        **engine_options: Any,
    ) -> RewriterEx:
        engine = await PromptedRewriter.create(factory, session=session, **engine_options)
        return cls(engine, strategy=strategy, summarizer_factory=default_summarizer_factory(factory, session))

    async def rewrite(self, text: str, **options: Any) -> str:
        return await self._process(text, options)

    def rewrite_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._process_streaming(text, options)

    async def _primary(self, text: str, **options: Any) -> str:
        return await self._engine.rewrite(text, **options)

    def _primary_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._engine.rewrite_streaming(text, **options)

    async def _condense(self, text: str, **options: Any) -> str:
        return await self._engine.rewrite(CONDENSE_INSTRUCTION + text, **options)


__all__ = ["CONDENSE_INSTRUCTION", "RewriterEx", "WriterEx", "default_summarizer_factory"]
