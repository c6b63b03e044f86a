"""CLI helper to preview how text would be split for a token budget."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from ..ai.errors import SplitExhaustedError
from ..ai.text_splitter import DEFAULT_MAX_CHUNKS, TextSplitter
from ..ai.tokens import counter_for_model
from ..services.settings import load_settings
from ..utils.logging import cli_level, setup_logging

LOGGER = logging.getLogger(__name__)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Show the chunks a text would be split into for a token budget.")
    parser.add_argument("--model", help="Model identifier to use for token counting. Defaults to the configured model.")
    parser.add_argument(
        "--budget",
        type=int,
        help="Maximum tokens allowed per chunk. Defaults to the configured input quota.",
    )
    parser.add_argument(
        "--max-chunks",
        type=int,
        default=DEFAULT_MAX_CHUNKS,
        help="Largest number of chunks to try before giving up.",
    )
    parser.add_argument(
        "--file",
        type=Path,
        help="Optional file containing the text to split. Reads stdin when omitted and --text not provided.",
    )
    parser.add_argument("--text", help="Inline text to split. Overrides --file when provided.")
    parser.add_argument(
        "--estimate-only",
        action="store_true",
        help="Skip tiktoken lookups and use the byte-length estimator.",
    )
    parser.add_argument("--preview", type=int, default=60, help="Characters of each chunk to print.")
    parser.add_argument("--settings-path", type=Path, help="Override the default ~/.quotakeeper/settings.json path.")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level.")
    args = parser.parse_args(argv)

    settings = load_settings(args.settings_path)
    setup_logging(cli_level(args.debug or settings.debug_logging))

    payload = _load_text(args.text, args.file)
    if not payload:
        print("No input text provided.", file=sys.stderr)
        return 1
    budget = args.budget if args.budget is not None else settings.input_quota
    if budget < 1:
        print("--budget must be positive.", file=sys.stderr)
        return 2

    model = args.model or settings.model
    counter = counter_for_model(model, estimate_only=args.estimate_only)
    LOGGER.debug("Splitting %s chars for %s with budget %s", len(payload), model, budget)

    async def _measure(text: str) -> int:
        return counter.count(text)

    try:
        splitter = TextSplitter(_measure, budget, max_chunks=args.max_chunks)
        chunks = asyncio.run(splitter.split(payload))
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except SplitExhaustedError as exc:
        print(f"Could not split input: {exc}", file=sys.stderr)
        return 3

    print(f"model: {model}")
    print(f"characters: {len(payload)}")
    print(f"tokens: {counter.count(payload)}")
    print(f"budget: {budget}")
    print(f"chunks: {len(chunks)}")
    for index, chunk in enumerate(chunks, start=1):
        preview = chunk[: max(0, args.preview)].replace("\n", " ")
        print(f"[{index}] chars={len(chunk)} tokens={counter.count(chunk)} | {preview}")
    return 0


def _load_text(inline: str | None, path: Path | None) -> str:
    if inline:
        return inline
    if path:
        return path.read_text(encoding="utf-8")
    data = sys.stdin.read()
    return data.strip()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
