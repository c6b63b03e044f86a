from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from quotakeeper.scripts import inspect_split
from quotakeeper.utils import logging as logging_utils
from tests.helpers import sentences


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_root_logging) -> None:
    monkeypatch.setenv("QUOTAKEEPER_SETTINGS", str(tmp_path / "missing-settings.json"))
    monkeypatch.setenv("QUOTAKEEPER_LOG_DIR", str(tmp_path / "logs"))
    for name in (
        "QUOTAKEEPER_MODEL",
        "QUOTAKEEPER_DEBUG_LOGGING",
        "QUOTAKEEPER_MAX_CONTEXT_TOKENS",
        "QUOTAKEEPER_RESPONSE_TOKEN_RESERVE",
    ):
        monkeypatch.delenv(name, raising=False)


def test_prints_chunk_summary(capsys: pytest.CaptureFixture[str]) -> None:
    code = inspect_split.main(["--text", sentences(40), "--budget", "50", "--estimate-only", "--preview", "5"])

    output = capsys.readouterr().out
    assert code == 0
    assert "model: gpt-4o-mini" in output
    assert "tokens: 200" in output
    assert "chunks: 5" in output
    assert "[1] chars=180 tokens=45 | xxxxx" in output


def test_budget_and_model_default_to_settings(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    settings_path = tmp_path / "settings.json"
    settings_path.write_text(
        json.dumps({"model": "tiny-model", "max_context_tokens": 100, "response_token_reserve": 50}),
        encoding="utf-8",
    )

    code = inspect_split.main(["--text", sentences(40), "--settings-path", str(settings_path), "--estimate-only"])

    output = capsys.readouterr().out
    assert code == 0
    assert "model: tiny-model" in output
    assert "budget: 50" in output
    assert "chunks: 5" in output


def test_logging_goes_to_the_configured_directory(tmp_path: Path) -> None:
    inspect_split.main(["--text", "hello", "--budget", "10", "--estimate-only", "--debug"])

    assert logging_utils.get_log_path() == tmp_path / "logs" / "quotakeeper.log"
    assert (tmp_path / "logs" / "quotakeeper.log").exists()


def test_empty_stdin_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("   "))

    assert inspect_split.main(["--budget", "10", "--estimate-only"]) == 1


def test_non_positive_budget_is_rejected() -> None:
    assert inspect_split.main(["--text", "hello", "--budget", "0", "--estimate-only"]) == 2


def test_unsplittable_input_reports_exhaustion(capsys: pytest.CaptureFixture[str]) -> None:
    code = inspect_split.main(["--text", "a" * 400, "--budget", "5", "--max-chunks", "3", "--estimate-only"])

    assert code == 3
    assert "Could not split input" in capsys.readouterr().err
