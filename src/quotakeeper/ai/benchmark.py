"""Streaming latency benchmark for language model factories."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

from .ai_types import LanguageModelFactory, SessionOptions
from .messages import PromptInput

SAMPLE_LIMIT = 1_000


@dataclass(slots=True)
class BenchResult:
    """Timings for one streamed prompt, in milliseconds unless noted."""

    model: str
    creation_time_ms: float
    initial_latency_ms: float
    first_chunk_latency_ms: float | None
    chunks: int
    total_time_ms: float
    chunks_per_second: float
    total_bytes: int
    sample: str

    def as_payload(self) -> dict[str, Any]:
        return asdict(self)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1_000


async def run_benchmark(
    factory: LanguageModelFactory,
    prompt: PromptInput,
    *,
    model: str = "default",
    session: SessionOptions | None = None,
) -> BenchResult:
    """Create a session, stream one prompt and report creation and streaming timings.

    ``initial_latency_ms`` measures the time until the stream object exists,
    ``first_chunk_latency_ms`` the time until the first chunk arrived (None
    when the model produced nothing).
    """

    created = time.perf_counter()
    engine = await factory(session or SessionOptions())
    creation_time_ms = _elapsed_ms(created)
    try:
        started = time.perf_counter()
        stream = engine.prompt_streaming(prompt)
        initial_latency_ms = _elapsed_ms(started)
        first_chunk_ms: float | None = None
        chunks = 0
        total_bytes = 0
        collected: list[str] = []
        collected_len = 0
        async for chunk in stream:
            if first_chunk_ms is None:
                first_chunk_ms = _elapsed_ms(started)
            chunks += 1
            total_bytes += len(chunk.encode("utf-8"))
            if collected_len < SAMPLE_LIMIT:
                collected.append(chunk)
                collected_len += len(chunk)
        total_ms = _elapsed_ms(started)
    finally:
        engine.destroy()

    return BenchResult(
        model=model,
        creation_time_ms=creation_time_ms,
        initial_latency_ms=initial_latency_ms,
        first_chunk_latency_ms=first_chunk_ms,
        chunks=chunks,
        total_time_ms=total_ms,
        chunks_per_second=chunks / (total_ms / 1_000) if total_ms > 0 else 0.0,
        total_bytes=total_bytes,
        sample="".join(collected)[:SAMPLE_LIMIT],
    )


__all__ = ["BenchResult", "run_benchmark"]
