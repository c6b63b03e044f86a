"""Structured response contract for agent iterations and its lenient parser."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import json_repair

from .types import IterationLogEntry, ToolCallLog

LOGGER = logging.getLogger(__name__)

RESPONSE_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "thoughts": {
            "type": "string",
            "description": (
                "Your analysis of the user prompt, considering the available tools and your own "
                "text generation abilities."
            ),
        },
        "plan": {
            "type": "array",
            "items": {"type": "string", "description": "A short description of one plan step."},
            "description": (
                "Full plan to complete the user request split into steps. It is shown to the user and "
                "used as reference in the next iterations."
            ),
        },
        "tool_calls": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "tool": {"type": "string", "description": "The name of the tool to invoke."},
                    "args": {
                        "type": "object",
                        "additionalProperties": True,
                        "description": "An object containing the arguments for the tool.",
                    },
                },
                "required": ["tool", "args"],
            },
            "description": "Tool calls to execute to gather more information or complete the request.",
        },
        "message": {
            "type": "string",
            "description": (
                "A concise, informative message for the user while they wait, or the final answer when "
                "no tool calls remain."
            ),
        },
    },
    "required": ["thoughts", "plan", "tool_calls", "message"],
}


def repair_json(text: str) -> Any | None:
    """Parse possibly truncated or malformed JSON, returning None when nothing is recoverable."""

    if not text or not text.strip():
        return None
    try:
        return json_repair.loads(text)
    except (ValueError, TypeError, RecursionError):
        LOGGER.debug("Unable to repair JSON fragment of %s chars", len(text), exc_info=True)
        return None


def parse_partial_response(text: str, iteration: int) -> IterationLogEntry | None:
    """Build an iteration entry from a (possibly partial) streamed response.

    Returns None until all four required fields are present with the right
    shapes. Tool calls start out ``pending``.
    """

    data = repair_json(text)
    if not isinstance(data, Mapping):
        return None
    thoughts = data.get("thoughts")
    plan = data.get("plan")
    tool_calls = data.get("tool_calls")
    message = data.get("message")
    if not (
        isinstance(thoughts, str)
        and isinstance(plan, list)
        and isinstance(tool_calls, list)
        and isinstance(message, str)
    ):
        return None

    calls: list[ToolCallLog] = []
    for item in tool_calls:
        if not isinstance(item, Mapping) or not isinstance(item.get("tool"), str):
            continue
        args = item.get("args")
        calls.append(ToolCallLog(tool=item["tool"], args=dict(args) if isinstance(args, Mapping) else {}))

    return IterationLogEntry(
        iteration=iteration,
        thoughts=thoughts,
        plan=tuple(str(step) for step in plan),
        tool_calls=tuple(calls),
        message=message,
    )


__all__ = ["RESPONSE_SCHEMA", "parse_partial_response", "repair_json"]
