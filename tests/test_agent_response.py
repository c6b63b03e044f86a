"""Tests for the lenient agent response parser and the system prompt."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from quotakeeper.ai.agents.prompts import build_system_prompt, localized_now
from quotakeeper.ai.agents.response import RESPONSE_SCHEMA, parse_partial_response, repair_json
from quotakeeper.ai.agents.types import IterationLogEntry, ToolCallLog, ToolCallStatus
from quotakeeper.ai.tools import create_tool
from quotakeeper.ai.tools.formatting import NO_TOOLS


def _payload(**overrides) -> str:
    data = {"thoughts": "thinking", "plan": ["step one"], "tool_calls": [], "message": "done"}
    data.update(overrides)
    return json.dumps(data)


def test_complete_response_parses_into_entry() -> None:
    entry = parse_partial_response(
        _payload(tool_calls=[{"tool": "lookup", "args": {"key": "a"}}]),
        iteration=2,
    )

    assert entry is not None
    assert entry.iteration == 2
    assert entry.plan == ("step one",)
    assert entry.tool_calls == (ToolCallLog(tool="lookup", args={"key": "a"}),)
    assert entry.tool_calls[0].status is ToolCallStatus.PENDING


def test_truncated_response_is_repaired() -> None:
    text = '{"thoughts": "thinking", "plan": ["a"], "tool_calls": [], "message": "Hel'

    entry = parse_partial_response(text, iteration=1)

    assert entry is not None
    assert entry.message == "Hel"


def test_incomplete_response_returns_none() -> None:
    assert parse_partial_response('{"thoughts": "thin', iteration=1) is None
    assert parse_partial_response("", iteration=1) is None
    assert parse_partial_response("I cannot comply.", iteration=1) is None
    assert repair_json("   ") is None


def test_wrongly_typed_fields_are_rejected() -> None:
    assert parse_partial_response(_payload(plan="one step"), iteration=1) is None
    assert parse_partial_response(_payload(message=None), iteration=1) is None


def test_malformed_tool_calls_are_skipped() -> None:
    entry = parse_partial_response(
        _payload(tool_calls=[{"args": {}}, {"tool": "bare"}, "junk"]),
        iteration=1,
    )

    assert entry is not None
    assert [(call.tool, dict(call.args)) for call in entry.tool_calls] == [("bare", {})]


def test_schema_requires_all_fields() -> None:
    assert RESPONSE_SCHEMA["required"] == ["thoughts", "plan", "tool_calls", "message"]


def test_tool_call_log_only_moves_forward() -> None:
    call = ToolCallLog(tool="lookup")
    running = call.advance(ToolCallStatus.RUNNING)
    finished = running.advance(ToolCallStatus.SUCCESS, result="v")

    assert finished.result == "v"
    with pytest.raises(ValueError):
        finished.advance(ToolCallStatus.ERROR)
    with pytest.raises(ValueError):
        running.advance(ToolCallStatus.PENDING)


def test_iteration_entry_payload() -> None:
    entry = IterationLogEntry(iteration=1, thoughts="t", plan=("p",), tool_calls=(ToolCallLog(tool="x"),), message="m")

    updated = entry.with_tool_call(0, entry.tool_calls[0].advance(ToolCallStatus.RUNNING))

    assert entry.tool_calls[0].status is ToolCallStatus.PENDING
    assert updated.as_payload()["tool_calls"] == [{"tool": "x", "args": {}, "status": "running"}]


def test_system_prompt_lists_tools_and_notes() -> None:
    tool = create_tool(
        "lookup",
        "Look up a value",
        lambda args: None,
        input_schema={"type": "object", "properties": {"key": {"type": "string"}}},
    )

    prompt = build_system_prompt([tool], user_notes="Answer in French.", now=datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc))

    assert prompt.startswith("# CORE MISSION")
    assert "lookup(key: string) // Look up a value" in prompt
    assert prompt.endswith("# ADDITIONAL USER NOTES\nAnswer in French.")
    assert "2024" in prompt


def test_system_prompt_without_tools_and_tool_format() -> None:
    tool = create_tool("ping", "Ping", lambda args: "pong")

    assert NO_TOOLS in build_system_prompt([])
    rendered = build_system_prompt([tool], tools_format="tool")
    assert '"name": "ping"' in rendered
    assert "ADDITIONAL USER NOTES" not in rendered


def test_localized_now_includes_year() -> None:
    assert "2024" in localized_now(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))
