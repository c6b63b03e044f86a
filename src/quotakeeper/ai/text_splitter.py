"""Budget-driven text partitioning along sentence boundaries."""

from __future__ import annotations

import asyncio
import logging
import math
import re
from typing import Sequence

from .ai_types import MeasureFn
from .errors import AbortError, MeasurementError, SplitExhaustedError

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CHUNKS = 100
_SENTENCE_PATTERN = re.compile(r".*?[.!?\n\r]+|.+")


def split_sentences(text: str) -> list[str]:
    """Split *text* into sentences, keeping their terminators attached.

    Concatenating the result reproduces *text* exactly.
    """

    return _SENTENCE_PATTERN.findall(text)


def partition(text: str, parts: int) -> list[str]:
    """Group whole sentences into at most *parts* contiguous chunks of similar length.

    A chunk closes once it grows past ``ceil(len(text) / parts)`` characters;
    the last chunk absorbs whatever remains.
    """

    if parts <= 1:
        return [text]
    target_length = math.ceil(len(text) / parts)
    chunks: list[str] = []
    current = ""
    for sentence in split_sentences(text):
        current += sentence
        if len(current) > target_length and len(chunks) < parts - 1:
            chunks.append(current)
            current = ""
    if current:
        chunks.append(current)
    return chunks


class TextSplitter:
    """Finds the smallest sentence-aligned partition whose chunks all fit a budget.

    Args:
        measure: Async callable returning the engine cost of a string.
        budget: Maximum cost allowed per chunk.
        max_chunks: Largest partition attempted before giving up.
    """

    def __init__(self, measure: MeasureFn, budget: int | float, *, max_chunks: int = DEFAULT_MAX_CHUNKS) -> None:
        if max_chunks < 2:
            raise ValueError("max_chunks must be at least 2")
        self._measure = measure
        self._budget = budget
        self._max_chunks = max_chunks

    @property
    def budget(self) -> int | float:
        return self._budget

    @property
    def max_chunks(self) -> int:
        return self._max_chunks

    async def split(self, text: str) -> list[str]:
        """Return *text* as the fewest chunks that each measure within the budget.

        Raises:
            MeasurementError: The measure function failed.
            SplitExhaustedError: No partition up to ``max_chunks`` fits.
        """

        if await self._measure_one(text) <= self._budget:
            return [text]

        for parts in range(2, self._max_chunks + 1):
            chunks = partition(text, parts)
            if await self._all_fit(chunks):
                LOGGER.debug("Split %s chars into %s chunk(s) within budget %s", len(text), len(chunks), self._budget)
                return chunks

        raise SplitExhaustedError(max_chunks=self._max_chunks)

    async def _all_fit(self, chunks: Sequence[str]) -> bool:
        sizes = await asyncio.gather(*(self._measure_one(chunk) for chunk in chunks))
        return all(size <= self._budget for size in sizes)

    async def _measure_one(self, text: str) -> int:
        try:
            return await self._measure(text)
        except (AbortError, MeasurementError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise MeasurementError(f"Failed to measure text: {exc}", {"length": len(text)}) from exc


async def split_text(
    text: str,
    measure: MeasureFn,
    budget: int | float,
    *,
    max_chunks: int = DEFAULT_MAX_CHUNKS,
) -> list[str]:
    """Convenience wrapper around :meth:`TextSplitter.split`."""

    return await TextSplitter(measure, budget, max_chunks=max_chunks).split(text)


__all__ = ["DEFAULT_MAX_CHUNKS", "TextSplitter", "partition", "split_sentences", "split_text"]
