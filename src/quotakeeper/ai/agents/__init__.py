"""Agent loop with observable progress."""

from .agent import Agent, AgentRun
from .prompts import build_system_prompt
from .response import RESPONSE_SCHEMA, parse_partial_response
from .types import AgentStatus, IterationLogEntry, ToolCallLog, ToolCallStatus

__all__ = [
    "Agent",
    "AgentRun",
    "AgentStatus",
    "IterationLogEntry",
    "RESPONSE_SCHEMA",
    "ToolCallLog",
    "ToolCallStatus",
    "build_system_prompt",
    "parse_partial_response",
]
