"""Token counting for chat sessions and the split inspector."""

from __future__ import annotations

import functools
import logging
import math

try:  # pragma: no cover - optional dependency, installed with the [tokenizers] extra
    import tiktoken  # type: ignore
except ImportError:  # pragma: no cover - counts fall back to the byte estimate
    tiktoken = None

from .ai_types import TokenCounterProtocol

LOGGER = logging.getLogger(__name__)

# Average UTF-8 bytes per token for English prose (GPT-style tokenization)
BYTES_PER_TOKEN = 4.0
FALLBACK_ENCODING = "cl100k_base"


def estimate_tokens(text: str) -> int:
    """Estimate the number of tokens in *text*.

    Returns 0 for empty text and at least 1 otherwise.
    """

    if not text:
        return 0
    return max(1, math.ceil(len(text.encode("utf-8", errors="ignore")) / BYTES_PER_TOKEN))


class EstimatingCounter:
    """Counter used when no tokenizer is available for a model."""

    def __init__(self, model_name: str | None = None) -> None:
        self.model_name = model_name

    def count(self, text: str) -> int:
        return estimate_tokens(text)


class TiktokenCounter:
    """Exact counts from tiktoken; models it does not know use ``cl100k_base``."""

    def __init__(self, model_name: str) -> None:
        if tiktoken is None:
            raise RuntimeError("tiktoken is not installed; install the [tokenizers] extra")
        self.model_name = model_name
        try:
            self._encoding = tiktoken.encoding_for_model(model_name)
        except KeyError:
            LOGGER.debug("No tiktoken encoding registered for %s; using %s", model_name, FALLBACK_ENCODING)
            self._encoding = tiktoken.get_encoding(FALLBACK_ENCODING)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))


@functools.lru_cache(maxsize=None)
def counter_for_model(model_name: str, *, estimate_only: bool = False) -> TokenCounterProtocol:
    """Return the best available counter for *model_name*, cached per model."""

    if estimate_only:
        return EstimatingCounter(model_name)
    if tiktoken is None:
        LOGGER.warning("tiktoken is not installed; token counts for %s are estimates", model_name)
        return EstimatingCounter(model_name)
    try:
        return TiktokenCounter(model_name)
    except Exception as exc:  # tiktoken downloads encodings on first use
        LOGGER.warning("Unable to load a tiktoken encoding for %s (%s); using estimates", model_name, exc)
        return EstimatingCounter(model_name)


__all__ = ["BYTES_PER_TOKEN", "EstimatingCounter", "TiktokenCounter", "counter_for_model", "estimate_tokens"]
