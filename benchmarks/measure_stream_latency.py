from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import statistics
from pathlib import Path
from typing import AsyncIterator, Sequence

from quotakeeper.ai.ai_types import SessionOptions
from quotakeeper.ai.benchmark import BenchResult, run_benchmark
from quotakeeper.ai.language_model import LanguageModelEx, LanguageModelExOptions
from quotakeeper.ai.messages import PromptInput
from quotakeeper.services.settings import load_settings
from quotakeeper.utils.logging import cli_level, setup_logging

LOGGER = logging.getLogger(__name__)


class _SimulatedEngine:
    """Streams fixed-size chunks with a sleep between them."""

    def __init__(self, *, chunk_count: int, latency_ms: float, quota: int) -> None:
        self._chunk_count = chunk_count
        self._latency = max(0.0, latency_ms) / 1000.0
        self.input_quota = quota
        self.input_usage = 0

    async def prompt(self, messages: PromptInput, *, signal=None, response_constraint=None) -> str:
        return "".join([chunk async for chunk in self.prompt_streaming(messages)])

    async def prompt_streaming(
        self, messages: PromptInput, *, signal=None, response_constraint=None
    ) -> AsyncIterator[str]:
        for index in range(self._chunk_count):
            await asyncio.sleep(self._latency)
            yield f"chunk-{index} "

    async def append(self, messages: PromptInput, *, signal=None) -> None:
        return None

    async def measure_input_usage(self, messages: PromptInput, **_options) -> int:
        return len(str(messages))

    def destroy(self) -> None:
        return None


def _engine_factory(*, chunk_count: int, latency_ms: float, quota: int):
    async def factory(_options: SessionOptions) -> _SimulatedEngine:
        return _SimulatedEngine(chunk_count=chunk_count, latency_ms=latency_ms, quota=quota)

    return factory


def _wrapped_factory(
    *, chunk_count: int, latency_ms: float, quota: int, options: LanguageModelExOptions | None = None
):
    inner = _engine_factory(chunk_count=chunk_count, latency_ms=latency_ms, quota=quota)
    base = options or LanguageModelExOptions()

    async def factory(session: SessionOptions) -> LanguageModelEx:
        return await LanguageModelEx.create(inner, dataclasses.replace(base, session=session))

    return factory


async def _measure(
    *,
    wrapped: bool,
    iterations: int,
    chunk_count: int,
    latency_ms: float,
    quota: int,
    options: LanguageModelExOptions | None = None,
) -> dict[str, float]:
    if wrapped:
        factory = _wrapped_factory(chunk_count=chunk_count, latency_ms=latency_ms, quota=quota, options=options)
    else:
        factory = _engine_factory(chunk_count=chunk_count, latency_ms=latency_ms, quota=quota)
    results: list[BenchResult] = []
    for _ in range(iterations):
        results.append(await run_benchmark(factory, "Benchmark prompt", model="wrapped" if wrapped else "raw"))
    totals = [result.total_time_ms for result in results]
    first = [result.first_chunk_latency_ms or 0.0 for result in results]
    if len(totals) >= 2:
        p95 = statistics.quantiles(totals, n=20, method="inclusive")[18]
    else:
        p95 = totals[0] if totals else 0.0
    return {
        "wrapped": float(wrapped),
        "first_ms": statistics.fmean(first) if first else 0.0,
        "avg_ms": statistics.fmean(totals) if totals else 0.0,
        "p95_ms": p95,
        "create_ms": statistics.fmean(result.creation_time_ms for result in results) if results else 0.0,
    }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Measure streaming overhead of the quota-aware wrapper")
    parser.add_argument("--iterations", type=int, default=30, help="Samples per configuration")
    parser.add_argument("--chunks", type=int, default=20, help="Chunks emitted per response")
    parser.add_argument("--latency-ms", type=float, default=1.0, help="Simulated delay per chunk (ms)")
    parser.add_argument("--quota", type=int, default=4096, help="Simulated input quota")
    parser.add_argument("--settings-path", type=Path, help="Settings file providing the wrapper quota options")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    return parser.parse_args()


def _render_table(rows: Sequence[dict[str, float]]) -> str:
    headers = ("engine", "first ms", "avg ms", "p95 ms", "create ms")
    lines = [" | ".join(headers), " | ".join("-" * len(h) for h in headers)]
    for row in rows:
        lines.append(
            " | ".join(
                [
                    f"{'wrapped' if row['wrapped'] else 'raw':>7}",
                    f"{row['first_ms']:>8.2f}",
                    f"{row['avg_ms']:>7.2f}",
                    f"{row['p95_ms']:>7.2f}",
                    f"{row['create_ms']:>8.2f}",
                ]
            )
        )
    return "\n".join(lines)


def main() -> None:
    args = _parse_args()
    settings = load_settings(args.settings_path)
    setup_logging(cli_level(args.debug or settings.debug_logging))
    wrapper_options = settings.quota.to_options()
    LOGGER.debug("Wrapper options: %s", wrapper_options)

    async def _runner() -> list[dict[str, float]]:
        rows: list[dict[str, float]] = []
        for wrapped in (False, True):
            rows.append(
                await _measure(
                    wrapped=wrapped,
                    iterations=max(1, args.iterations),
                    chunk_count=max(1, args.chunks),
                    latency_ms=args.latency_ms,
                    quota=args.quota,
                    options=wrapper_options,
                )
            )
        return rows

    rows = asyncio.run(_runner())
    print("Streaming latency (simulated chunk delay = %.2f ms)" % args.latency_ms)
    print(_render_table(rows))


if __name__ == "__main__":  # pragma: no cover - script entry point
    main()
