"""Tool definition types for the agent loop."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Mapping, Sequence, Union

from jsonschema import ValidationError
from jsonschema.validators import validator_for

__all__ = [
    "MediaBlob",
    "ToolDefinition",
    "ToolExecutor",
    "ToolExample",
    "create_tool",
]


# -----------------------------------------------------------------------------
# Executor Types
# -----------------------------------------------------------------------------

ToolExecutor = Callable[[Mapping[str, Any]], Union[Any, Awaitable[Any]]]
ToolExample = Mapping[str, Any]

_EMPTY_SCHEMA: Mapping[str, Any] = {"type": "object", "properties": {}}


# -----------------------------------------------------------------------------
# Binary Results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class MediaBlob:
    """Binary tool output tagged with its media type.

    Attributes:
        data: Raw bytes.
        mime_type: Media type such as ``image/png`` or ``audio/wav``.
    """

    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def kind(self) -> Literal["image", "audio"] | None:
        major = self.mime_type.split("/", 1)[0].strip().lower()
        if major == "image":
            return "image"
        if major == "audio":
            return "audio"
        return None


# -----------------------------------------------------------------------------
# Tool Definition
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolDefinition:
    """A callable capability the model may request.

    Attributes:
        name: Unique identifier the model uses to call the tool.
        description: What the tool does, shown in the system prompt.
        input_schema: JSON Schema describing the ``args`` object.
        execute: Sync or async callable receiving the validated arguments.
        examples: Sample argument objects shown to the model.
    """

    name: str
    description: str
    execute: ToolExecutor
    input_schema: Mapping[str, Any] = field(default_factory=lambda: dict(_EMPTY_SCHEMA))
    examples: Sequence[ToolExample] = ()

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Tool name is required")
        if not callable(self.execute):
            raise TypeError(f"Tool '{self.name}' execute must be callable")
        validator_for(self.input_schema).check_schema(self.input_schema)

    def validate(self, arguments: Mapping[str, Any]) -> list[str]:
        """Return human-readable schema violations for *arguments* (empty when valid)."""

        validator_cls = validator_for(self.input_schema)
        validator = validator_cls(self.input_schema)
        errors: list[ValidationError] = sorted(validator.iter_errors(arguments), key=lambda err: list(err.path))
        messages: list[str] = []
        for error in errors:
            location = ".".join(str(part) for part in error.path)
            messages.append(f"{location}: {error.message}" if location else error.message)
        return messages

    async def run(self, arguments: Mapping[str, Any]) -> Any:
        result = self.execute(arguments)
        if inspect.isawaitable(result):
            return await result
        return result

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.input_schema) if self.input_schema else dict(_EMPTY_SCHEMA),
            },
        }


def create_tool(
    name: str,
    description: str,
    execute: ToolExecutor,
    *,
    input_schema: Mapping[str, Any] | None = None,
    examples: Sequence[ToolExample] = (),
) -> ToolDefinition:
    """Build a :class:`ToolDefinition` with an empty object schema by default."""

    return ToolDefinition(
        name=name,
        description=description,
        execute=execute,
        input_schema=input_schema or dict(_EMPTY_SCHEMA),
        examples=tuple(examples),
    )
