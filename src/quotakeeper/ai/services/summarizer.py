"""Quota-aware summarizer wrapper."""

from __future__ import annotations

from typing import Any, AsyncIterator, ClassVar, Mapping

from ..ai_types import LanguageModelFactory, SessionOptions, Summarizer
from ..engines import PromptedSummarizer
from .large_content import LargeContentProcessor, LargeContentStrategy

# Summary types whose per-chunk results still read well once concatenated.
JOINABLE_TYPES: frozenset[str] = frozenset({"tldr", "key-points"})


class SummarizerEx(LargeContentProcessor):
    """Summarizer that accepts input of any size.

    ``join`` summarizes chunks independently and concatenates them; it only
    applies to extractive summary types and falls back to ``merge`` for the
    others. ``merge`` condenses recursively and summarizes the result once.
    """

    supported_strategies: ClassVar[tuple[LargeContentStrategy, ...]] = (
        LargeContentStrategy.JOIN,
        LargeContentStrategy.MERGE,
    )
    default_strategy: ClassVar[LargeContentStrategy] = LargeContentStrategy.JOIN

    def __init__(self, engine: Summarizer, *, strategy: LargeContentStrategy | str | None = None, **kwargs: Any) -> None:
        super().__init__(engine, strategy=strategy, **kwargs)

    @classmethod
    async def create(
        cls,
        factory: LanguageModelFactory,
        *,
        strategy: LargeContentStrategy | str | None = None,
        session: SessionOptions | None = None,
        **engine_options: Any,
    ) -> SummarizerEx:
        engine = await PromptedSummarizer.create(factory, session=session, **engine_options)
        return cls(engine, strategy=strategy)

    @property
    def type(self) -> str:
        return getattr(self._engine, "type", "key-points")

    async def summarize(self, text: str, **options: Any) -> str:
        return await self._process(text, options)

    def summarize_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._process_streaming(text, options)

    def _effective_strategy(self, options: Mapping[str, Any]) -> LargeContentStrategy:
        summary_type = options.get("type") or self.type
        if self._strategy is LargeContentStrategy.JOIN and summary_type not in JOINABLE_TYPES:
            return LargeContentStrategy.MERGE
        return self._strategy

    async def _primary(self, text: str, **options: Any) -> str:
        return await self._engine.summarize(text, **options)

    def _primary_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        return self._engine.summarize_streaming(text, **options)

    async def _condense(self, text: str, **options: Any) -> str:
        return await self._engine.summarize(text, **options)


__all__ = ["JOINABLE_TYPES", "SummarizerEx"]
