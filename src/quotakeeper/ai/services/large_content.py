"""Reduction strategies shared by the quota-aware task wrappers.

Each wrapper pairs a task engine (summarizer, writer, rewriter, translator)
with one of three strategies for input that exceeds the engine quota:

``join``
    Split, run the task on every chunk concurrently, join the results in chunk
    order with a blank line.
``merge``
    Split, condense every chunk concurrently, join and re-measure; repeat until
    the merged text fits, then run the task once on it.
``summarize``
    Summarize the whole input with an independent summarizer, then run the
    task once on the summary.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, ClassVar, Mapping, Protocol

from ..errors import ReductionDepthExceeded
from ..text_splitter import TextSplitter

LOGGER = logging.getLogger(__name__)

SPLIT_THRESHOLD = 0.75
MAX_REDUCTION_DEPTH = 10
CHUNK_SEPARATOR = "\n\n"


class LargeContentStrategy(str, Enum):
    JOIN = "join"
    MERGE = "merge"
    SUMMARIZE = "summarize"


class SummarizerLike(Protocol):
    async def summarize(self, text: str, **options: Any) -> str: ...

    def destroy(self) -> None: ...


SummarizerFactory = Callable[[], Awaitable[SummarizerLike]]


class LargeContentProcessor:
    """Base class routing oversized input through a reduction strategy.

    Subclasses bind :meth:`_primary`, :meth:`_primary_streaming` and
    :meth:`_condense` to their engine's operation.
    """

    supported_strategies: ClassVar[tuple[LargeContentStrategy, ...]] = (
        LargeContentStrategy.JOIN,
        LargeContentStrategy.MERGE,
    )
    default_strategy: ClassVar[LargeContentStrategy] = LargeContentStrategy.JOIN

    def __init__(
        self,
        engine: Any,
        *,
        strategy: LargeContentStrategy | str | None = None,
        summarizer_factory: SummarizerFactory | None = None,
        threshold: float = SPLIT_THRESHOLD,
        max_depth: int = MAX_REDUCTION_DEPTH,
    ) -> None:
        resolved = LargeContentStrategy(strategy) if strategy is not None else self.default_strategy
        if resolved not in self.supported_strategies:
            raise ValueError(f"{type(self).__name__} does not support the '{resolved.value}' strategy")
        if resolved is LargeContentStrategy.SUMMARIZE and summarizer_factory is None:
            raise ValueError("The 'summarize' strategy requires a summarizer_factory")
        if not 0 < threshold <= 1:
            raise ValueError("threshold must be within (0, 1]")
        self._engine = engine
        self._strategy = resolved
        self._summarizer_factory = summarizer_factory
        self._threshold = threshold
        self._max_depth = max_depth

    @property
    def engine(self) -> Any:
        return self._engine

    @property
    def strategy(self) -> LargeContentStrategy:
        return self._strategy

    @property
    def input_quota(self) -> int:
        return self._engine.input_quota

    async def measure_input_usage(self, text: str, **options: Any) -> int:
        return await self._engine.measure_input_usage(text, **options)

    def destroy(self) -> None:
        self._engine.destroy()

    # ------------------------------------------------------------------
    # Engine bindings
    # ------------------------------------------------------------------
    async def _primary(self, text: str, **options: Any) -> str:
        raise NotImplementedError

    def _primary_streaming(self, text: str, **options: Any) -> AsyncIterator[str]:
        raise NotImplementedError

    async def _condense(self, text: str, **options: Any) -> str:
        raise NotImplementedError

    def _effective_strategy(self, options: Mapping[str, Any]) -> LargeContentStrategy:
        return self._strategy

    # ------------------------------------------------------------------
    # Strategy plumbing
    # ------------------------------------------------------------------
    async def _process(self, text: str, options: Mapping[str, Any]) -> str:
        if await self._fits(text, options):
            return await self._primary(text, **options)
        strategy = self._effective_strategy(options)
        LOGGER.debug("%s reducing %s chars with strategy %s", type(self).__name__, len(text), strategy.value)
        if strategy is LargeContentStrategy.JOIN:
            return await self._join(text, options)
        reduced = await self._reduce(text, strategy, options)
        return await self._primary(reduced, **options)

    async def _process_streaming(self, text: str, options: Mapping[str, Any]) -> AsyncIterator[str]:
        if await self._fits(text, options):
            async for chunk in self._primary_streaming(text, **options):
                yield chunk
            return
        strategy = self._effective_strategy(options)
        LOGGER.debug("%s reducing %s chars with strategy %s (streaming)", type(self).__name__, len(text), strategy.value)
        if strategy is LargeContentStrategy.JOIN:
            yield await self._join(text, options)
            return
        reduced = await self._reduce(text, strategy, options)
        async for chunk in self._primary_streaming(reduced, **options):
            yield chunk

    async def _reduce(self, text: str, strategy: LargeContentStrategy, options: Mapping[str, Any]) -> str:
        if strategy is LargeContentStrategy.SUMMARIZE:
            return await self._summarize_input(text)
        return await self._merge(text, options, depth=1)

    async def _fits(self, text: str, options: Mapping[str, Any]) -> bool:
        return await self.measure_input_usage(text, **options) <= self.input_quota

    async def _split(self, text: str, options: Mapping[str, Any]) -> list[str]:
        async def measure(chunk: str) -> int:
            return await self.measure_input_usage(chunk, **options)

        return await TextSplitter(measure, self.input_quota * self._threshold).split(text)

    async def _join(self, text: str, options: Mapping[str, Any]) -> str:
        chunks = await self._split(text, options)
        results = await asyncio.gather(*(self._primary(chunk, **options) for chunk in chunks))
        return CHUNK_SEPARATOR.join(results)

    async def _merge(self, text: str, options: Mapping[str, Any], *, depth: int) -> str:
        if depth > self._max_depth:
            raise ReductionDepthExceeded("Summarization depth exceeded.", limit=self._max_depth)
        chunks = await self._split(text, options)
        condensed = await asyncio.gather(*(self._condense(chunk, **options) for chunk in chunks))
        merged = CHUNK_SEPARATOR.join(condensed)
        if await self._fits(merged, options):
            return merged
        LOGGER.debug("Merged text still over quota at depth %s; reducing again", depth)
        return await self._merge(merged, options, depth=depth + 1)

    async def _summarize_input(self, text: str) -> str:
        if self._summarizer_factory is None:
            raise ValueError("The 'summarize' strategy requires a summarizer_factory")
        summarizer = await self._summarizer_factory()
        try:
            return await summarizer.summarize(text)
        finally:
            summarizer.destroy()


__all__ = [
    "CHUNK_SEPARATOR",
    "LargeContentProcessor",
    "LargeContentStrategy",
    "MAX_REDUCTION_DEPTH",
    "SPLIT_THRESHOLD",
    "SummarizerFactory",
]
