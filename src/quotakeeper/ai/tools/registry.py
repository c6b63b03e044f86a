"""Name-keyed registry of agent tools."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence

from ..errors import ToolNotFoundError
from .types import ToolDefinition, ToolExample, ToolExecutor, create_tool

__all__ = [
    "DuplicateToolError",
    "ToolRegistration",
    "ToolRegistry",
]

LOGGER = logging.getLogger(__name__)


class DuplicateToolError(Exception):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


@dataclass(slots=True)
class ToolRegistration:
    """Record of a registered tool.

    Attributes:
        tool: The tool definition.
        enabled: Whether the model may call the tool.
        metadata: Additional registration metadata.
    """

    tool: ToolDefinition
    enabled: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.tool.name


class ToolRegistry:
    """Registry of :class:`ToolDefinition` objects keyed by name.

    Disabled tools stay registered but are invisible to lookups and to the
    system prompt catalogue.

    Example:
        registry = ToolRegistry()
        registry.register_function(
            "echo",
            "Repeat the given text",
            lambda args: args["text"],
            input_schema={"type": "object", "properties": {"text": {"type": "string"}}},
        )
        tool = registry.get("echo")
    """

    def __init__(self, tools: Iterable[ToolDefinition] | None = None) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        for tool in tools or ():
            self.register(tool)

    @classmethod
    def coerce(cls, tools: ToolRegistry | Mapping[str, ToolDefinition] | Iterable[ToolDefinition] | None) -> ToolRegistry:
        """Accept a registry, a name to definition mapping or a plain iterable."""

        if isinstance(tools, ToolRegistry):
            return tools
        if tools is None:
            return cls()
        if isinstance(tools, Mapping):
            registry = cls()
            for name, tool in tools.items():
                if name != tool.name:
                    raise ValueError(f"Tool registered as '{name}' is named '{tool.name}'")
                registry.register(tool)
            return registry
        return cls(tools)

    def register(
        self,
        tool: ToolDefinition,
        *,
        enabled: bool = True,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a tool definition.

        Raises:
            DuplicateToolError: If the name is taken and ``allow_override`` is False.
        """
        if tool.name in self._tools and not allow_override:
            raise DuplicateToolError(tool.name)
        registration = ToolRegistration(tool=tool, enabled=enabled, metadata=dict(metadata or {}))
        self._tools[tool.name] = registration
        LOGGER.debug("Registered tool: %s", tool.name)
        return registration

    def register_function(
        self,
        name: str,
        description: str,
        execute: ToolExecutor,
        *,
        input_schema: Mapping[str, Any] | None = None,
        examples: Sequence[ToolExample] = (),
        enabled: bool = True,
        allow_override: bool = False,
    ) -> ToolRegistration:
        """Wrap a plain callable in a :class:`ToolDefinition` and register it."""
        tool = create_tool(name, description, execute, input_schema=input_schema, examples=examples)
        return self.register(tool, enabled=enabled, allow_override=allow_override)

    def unregister(self, name: str) -> bool:
        if name in self._tools:
            del self._tools[name]
            LOGGER.debug("Unregistered tool: %s", name)
            return True
        return False

    def get(self, name: str) -> ToolDefinition | None:
        """Return the enabled tool called *name*, or None."""
        registration = self._tools.get(name)
        if registration is None or not registration.enabled:
            return None
        return registration.tool

    def get_required(self, name: str) -> ToolDefinition:
        """Return the enabled tool called *name*.

        Raises:
            ToolNotFoundError: If the tool is missing or disabled.
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(f"Tool '{name}' not found", tool_name=name)
        return tool

    def list_tools(self, *, include_disabled: bool = False) -> list[ToolDefinition]:
        return [
            registration.tool
            for registration in self._tools.values()
            if registration.enabled or include_disabled
        ]

    def list_names(self, *, include_disabled: bool = False) -> list[str]:
        return [tool.name for tool in self.list_tools(include_disabled=include_disabled)]

    def enable(self, name: str) -> bool:
        registration = self._tools.get(name)
        if registration is None:
            return False
        registration.enabled = True
        return True

    def disable(self, name: str) -> bool:
        registration = self._tools.get(name)
        if registration is None:
            return False
        registration.enabled = False
        return True

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self.list_tools())
