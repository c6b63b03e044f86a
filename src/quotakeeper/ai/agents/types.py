"""Observable records produced by an agent run."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping


class AgentStatus(str, Enum):
    """Overall status of a multi-iteration run."""

    THINKING = "thinking"
    CALLING_TOOLS = "calling_tools"
    ERROR = "error"
    DONE = "done"


class ToolCallStatus(str, Enum):
    """Lifecycle of a single tool call: pending, running, then success or error."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ToolCallStatus.SUCCESS, ToolCallStatus.ERROR)


_STAGE = {
    ToolCallStatus.PENDING: 0,
    ToolCallStatus.RUNNING: 1,
    ToolCallStatus.SUCCESS: 2,
    ToolCallStatus.ERROR: 2,
}


@dataclass(frozen=True, slots=True)
class ToolCallLog:
    """A requested tool call and, once finished, its outcome."""

    tool: str
    args: Mapping[str, Any] = field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: Any = None
    error: BaseException | None = None

    def advance(
        self,
        status: ToolCallStatus,
        *,
        result: Any = None,
        error: BaseException | None = None,
    ) -> ToolCallLog:
        """Return a copy moved forward to *status*.

        Raises:
            ValueError: The transition would move backwards or leave a terminal state.
        """

        if self.status.is_terminal or _STAGE[status] <= _STAGE[self.status]:
            raise ValueError(f"Cannot move tool call '{self.tool}' from {self.status.value} to {status.value}")
        return replace(self, status=status, result=result, error=error)

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"tool": self.tool, "args": dict(self.args), "status": self.status.value}
        if self.error is not None:
            payload["error"] = str(self.error)
        return payload


@dataclass(frozen=True, slots=True)
class IterationLogEntry:
    """Everything the model decided in one iteration, plus its tool call outcomes."""

    iteration: int
    thoughts: str
    plan: tuple[str, ...] = ()
    tool_calls: tuple[ToolCallLog, ...] = ()
    message: str = ""

    def with_tool_call(self, index: int, call: ToolCallLog) -> IterationLogEntry:
        calls = list(self.tool_calls)
        calls[index] = call
        return replace(self, tool_calls=tuple(calls))

    def as_payload(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "thoughts": self.thoughts,
            "plan": list(self.plan),
            "tool_calls": [call.as_payload() for call in self.tool_calls],
            "message": self.message,
        }


__all__ = ["AgentStatus", "IterationLogEntry", "ToolCallLog", "ToolCallStatus"]
