"""Error taxonomy shared by the splitter, the quota wrappers and the agent loop.

Every error carries a machine-readable ``error_code`` and serializes through
:meth:`QuotaKeeperError.to_dict` so it can be surfaced in logs or tool results.
Quota overflow has no error type: it is a recoverable signal handled by
:class:`~quotakeeper.ai.language_model.LanguageModelEx`, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


class ErrorCode:
    """Constants for error codes."""

    MEASUREMENT_FAILED = "measurement_failed"
    SPLIT_EXHAUSTED = "split_exhausted"
    REDUCTION_DEPTH_EXCEEDED = "reduction_depth_exceeded"
    TOOL_NOT_FOUND = "tool_not_found"
    TOOL_EXECUTION_FAILED = "tool_execution_failed"
    PARSE_FAILED = "parse_failed"
    ABORTED = "aborted"
    MAX_ITERATIONS = "max_iterations"
    INTERNAL_ERROR = "internal_error"


@dataclass(eq=False)
class QuotaKeeperError(Exception):
    """Base exception class.

    Attributes:
        message: Human-readable error description.
        details: Additional structured error information.
    """

    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    error_code: ClassVar[str] = ErrorCode.INTERNAL_ERROR

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class MeasurementError(QuotaKeeperError):
    """The engine failed to measure a candidate chunk or prompt."""

    error_code: ClassVar[str] = ErrorCode.MEASUREMENT_FAILED


@dataclass(eq=False)
class SplitExhaustedError(QuotaKeeperError):
    """No partition up to ``max_chunks`` parts fit within the budget."""

    max_chunks: int = 100
    error_code: ClassVar[str] = ErrorCode.SPLIT_EXHAUSTED

    def __post_init__(self) -> None:
        if not self.message:
            self.message = (
                f"Unable to split text into chunks that fit the budget; tried up to {self.max_chunks} chunks."
            )
        self.details.setdefault("max_chunks", self.max_chunks)
        super().__post_init__()


@dataclass(eq=False)
class ReductionDepthExceeded(QuotaKeeperError):
    """Recursive reduction did not converge within its depth limit."""

    limit: int = 0
    error_code: ClassVar[str] = ErrorCode.REDUCTION_DEPTH_EXCEEDED

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Reduction depth exceeded (limit {self.limit})."
        self.details.setdefault("limit", self.limit)
        super().__post_init__()


@dataclass(eq=False)
class ToolNotFoundError(QuotaKeeperError):
    """Requested tool is not registered. Recorded on the tool call, never raised out of a run."""

    tool_name: str = ""
    error_code: ClassVar[str] = ErrorCode.TOOL_NOT_FOUND

    def __post_init__(self) -> None:
        if not self.message:
            self.message = "Tool not found"
        if self.tool_name:
            self.details.setdefault("tool", self.tool_name)
        super().__post_init__()


@dataclass(eq=False)
class ToolExecutionError(QuotaKeeperError):
    """A tool executor raised or rejected its arguments."""

    tool_name: str = ""
    error_code: ClassVar[str] = ErrorCode.TOOL_EXECUTION_FAILED

    def __post_init__(self) -> None:
        if self.tool_name:
            self.details.setdefault("tool", self.tool_name)
        super().__post_init__()


@dataclass(eq=False)
class ParseError(QuotaKeeperError):
    """No schema-conforming response could be recovered from the model output."""

    raw: str = ""
    error_code: ClassVar[str] = ErrorCode.PARSE_FAILED

    def __post_init__(self) -> None:
        if not self.message:
            self.message = "Failed to parse a valid JSON response from the model."
        super().__post_init__()


@dataclass(eq=False)
class AbortError(QuotaKeeperError):
    """The caller's abort signal fired."""

    error_code: ClassVar[str] = ErrorCode.ABORTED

    def __post_init__(self) -> None:
        if not self.message:
            self.message = "Operation aborted by signal."
        super().__post_init__()


@dataclass(eq=False)
class MaxIterationsError(QuotaKeeperError):
    """The agent loop ran out of iterations before the model finished."""

    max_iterations: int = 0
    error_code: ClassVar[str] = ErrorCode.MAX_ITERATIONS

    def __post_init__(self) -> None:
        if not self.message:
            self.message = "Max iterations reached"
        self.details.setdefault("max_iterations", self.max_iterations)
        super().__post_init__()


def raise_if_aborted(signal: Any, message: str = "") -> None:
    """Raise :class:`AbortError` when ``signal`` (an ``asyncio.Event``) is set."""

    if signal is not None and signal.is_set():
        raise AbortError(message)


__all__ = [
    "AbortError",
    "ErrorCode",
    "MaxIterationsError",
    "MeasurementError",
    "ParseError",
    "QuotaKeeperError",
    "ReductionDepthExceeded",
    "SplitExhaustedError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "raise_if_aborted",
]
