"""Render tool catalogues for inclusion in a system prompt."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Iterable, Mapping

from .types import ToolDefinition

NO_TOOLS = "No tools available."


class ToolFormat(str, Enum):
    TOOL = "tool"
    TEXT = "text"
    SNIPPET = "snippet"
    DETAILED_SNIPPET = "detailed_snippet"


def _properties(tool: ToolDefinition) -> Mapping[str, Mapping[str, Any]]:
    properties = tool.input_schema.get("properties") or {}
    return properties if isinstance(properties, Mapping) else {}


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def describe_type(schema: Mapping[str, Any], *, enum_style: str = "union") -> str:
    """Short type label for a property schema.

    ``enum_style`` selects between ``"a"|"b"`` (union), ``enum ["a", "b"]``
    (list) and ``enum(a|b)`` (compact).
    """

    values = schema.get("enum")
    if isinstance(values, list) and values:
        if enum_style == "list":
            return "enum [" + ", ".join(f'"{value}"' for value in values) + "]"
        if enum_style == "compact":
            return "enum(" + "|".join(str(value) for value in values) + ")"
        return "|".join(f'"{value}"' for value in values)
    kind = schema.get("type")
    if kind == "integer":
        return "number"
    if kind == "array":
        items = schema.get("items")
        if isinstance(items, Mapping) and items.get("type") in ("string", "number", "integer", "boolean"):
            inner = "number" if items["type"] == "integer" else items["type"]
            return f"{inner}[]"
        return "array"
    if isinstance(kind, str):
        return kind
    return "any"


def format_as_tools(tools: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
    """Function-tool definitions suitable for a native tools parameter."""

    return [tool.to_openai_tool() for tool in tools]


def format_as_text(tools: Iterable[ToolDefinition]) -> str:
    """Markdown sections with name, description, parameters and examples."""

    tool_list = list(tools)
    if not tool_list:
        return NO_TOOLS
    lines = ["## Available Tools"]
    for tool in tool_list:
        lines.append(f"### {tool.name}")
        lines.append(f"- Name: {tool.name}")
        lines.append(f"- Description: {tool.description}")
        properties = _properties(tool)
        if properties:
            lines.append("- Input Schema:")
            for name, schema in properties.items():
                description = f" ({schema['description']})" if schema.get("description") else ""
                lines.append(f"  - {name}: {describe_type(schema, enum_style='list')}{description}")
        if tool.examples:
            lines.append("- Examples:")
            for example in tool.examples:
                lines.append(f"  - {_dump(example)}")
        lines.append("")
    return "\n".join(lines).strip()


def format_as_snippets(tools: Iterable[ToolDefinition]) -> str:
    """One signature line per tool, with its first example."""

    tool_list = list(tools)
    if not tool_list:
        return NO_TOOLS
    lines: list[str] = []
    for tool in tool_list:
        params = ", ".join(f"{name}: {describe_type(schema)}" for name, schema in _properties(tool).items())
        example = f" e.g., {_dump(tool.examples[0])}" if tool.examples else ""
        lines.append(f"{tool.name}({params}) // {tool.description}{example}")
    return "\n".join(lines)


def format_as_detailed_snippets(tools: Iterable[ToolDefinition]) -> str:
    """Signature line per tool plus parameter descriptions, a schema digest and all examples."""

    tool_list = list(tools)
    if not tool_list:
        return NO_TOOLS
    lines: list[str] = []
    for tool in tool_list:
        properties = _properties(tool)
        params: list[str] = []
        schema_parts: list[str] = []
        for name, schema in properties.items():
            description = schema.get("description")
            params.append(f"{name}: {describe_type(schema)}" + (f" - {description}" if description else ""))
            schema_parts.append(
                f"{name}={describe_type(schema, enum_style='compact')}" + (f": {description}" if description else "")
            )
        schema_text = f" schema[{', '.join(schema_parts)}]" if schema_parts else ""
        examples_text = ""
        if tool.examples:
            examples_text = " examples: " + "; ".join(_dump(example) for example in tool.examples)
        lines.append(f"{tool.name}({', '.join(params)}) // {tool.description}{schema_text}{examples_text}")
    return "\n".join(lines)


def format_tools(tools: Iterable[ToolDefinition], format: ToolFormat | str = ToolFormat.SNIPPET) -> str | list[dict[str, Any]]:
    """Render *tools* in the requested catalogue format."""

    resolved = ToolFormat(format)
    if resolved is ToolFormat.TOOL:
        return format_as_tools(tools)
    if resolved is ToolFormat.TEXT:
        return format_as_text(tools)
    if resolved is ToolFormat.DETAILED_SNIPPET:
        return format_as_detailed_snippets(tools)
    return format_as_snippets(tools)


__all__ = [
    "NO_TOOLS",
    "ToolFormat",
    "describe_type",
    "format_as_detailed_snippets",
    "format_as_snippets",
    "format_as_text",
    "format_as_tools",
    "format_tools",
]
