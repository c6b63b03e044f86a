"""Tool system for the agent loop.

Example:
    from quotakeeper.ai.tools import ToolRegistry, create_tool

    registry = ToolRegistry()
    registry.register(
        create_tool(
            "greet",
            "Greet someone by name",
            lambda args: f"Hello, {args.get('name', 'World')}!",
            input_schema={"type": "object", "properties": {"name": {"type": "string"}}},
            examples=[{"name": "Ada"}],
        )
    )
"""

from .formatting import ToolFormat, format_tools
from .registry import DuplicateToolError, ToolRegistration, ToolRegistry
from .results import classify_result, tool_error_message, tool_not_found_message, tool_result_message
from .types import MediaBlob, ToolDefinition, ToolExecutor, create_tool

__all__ = [
    "DuplicateToolError",
    "MediaBlob",
    "ToolDefinition",
    "ToolExecutor",
    "ToolFormat",
    "ToolRegistration",
    "ToolRegistry",
    "classify_result",
    "create_tool",
    "format_tools",
    "tool_error_message",
    "tool_not_found_message",
    "tool_result_message",
]
