"""Observable, cancellable multi-iteration agent loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, AsyncIterator, Callable, Generator, Iterable, Mapping, Union

from ..ai_types import AbortSignal, LanguageModelFactory
from ..errors import (
    AbortError,
    MaxIterationsError,
    ParseError,
    ToolExecutionError,
    ToolNotFoundError,
    raise_if_aborted,
)
from ..language_model import ContextStrategy, HistoryStrategy, LanguageModelEx, LanguageModelExOptions
from ..messages import ConversationMessage, PromptInput, normalize_prompt
from ..services.telemetry import EventListener, TelemetrySink
from ..streaming import StreamingProperty
from ..tools.formatting import ToolFormat
from ..tools.registry import ToolRegistry
from ..tools.results import tool_error_message, tool_not_found_message, tool_result_message
from ..tools.types import ToolDefinition
from .prompts import build_system_prompt
from .response import RESPONSE_SCHEMA, parse_partial_response
from .types import AgentStatus, IterationLogEntry, ToolCallLog, ToolCallStatus

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5
AGENT_MAX_QUOTA_USAGE = 0.70

ToolsInput = Union[ToolRegistry, Mapping[str, ToolDefinition], Iterable[ToolDefinition], None]


class AgentRun:
    """Handle for an in-flight agent run.

    Subscribe to :attr:`status`, :attr:`history` and :attr:`current_iteration`
    for live progress, call :meth:`abort` to stop at the next checkpoint, and
    ``await run`` for completion. All three properties are finalized exactly
    once when the run ends, whatever the outcome.
    """

    def __init__(self, signal: AbortSignal | None = None) -> None:
        self.status: StreamingProperty[AgentStatus] = StreamingProperty(AgentStatus.THINKING)
        self.history: StreamingProperty[tuple[IterationLogEntry, ...]] = StreamingProperty(())
        self.current_iteration: StreamingProperty[IterationLogEntry | None] = StreamingProperty(None)
        self.messages: list[ConversationMessage] = []
        self._signal = signal or asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def signal(self) -> AbortSignal:
        return self._signal

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def abort(self) -> None:
        self._signal.set()

    def __await__(self) -> Generator[Any, None, None]:
        if self._task is None:
            raise RuntimeError("AgentRun has not been started")
        return self._task.__await__()

    def _start(self, coro: Any) -> None:
        self._task = asyncio.create_task(coro)
        self._task.add_done_callback(_log_outcome)

    def _finalize(self) -> None:
        self.status.finalize()
        self.history.finalize()
        self.current_iteration.finalize()


def _log_outcome(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        LOGGER.debug("Agent run finished with %s: %s", type(error).__name__, error)


class Agent:
    """Runs a think / call tools / observe loop on a quota-bounded model.

    Every iteration the model streams a JSON object (thoughts, plan,
    tool_calls, message). Tool calls run one at a time and their results are
    fed back as user messages; the run completes when the model returns no
    tool calls.
    """

    def __init__(
        self,
        model: LanguageModelEx,
        tools: ToolRegistry | None = None,
        *,
        tools_format: ToolFormat | str = ToolFormat.SNIPPET,
    ) -> None:
        self._model = model
        self._tools = tools if tools is not None else ToolRegistry()
        self._tools_format = ToolFormat(tools_format)

    @classmethod
    async def create(
        cls,
        factory: LanguageModelFactory,
        *,
        tools: ToolsInput = None,
        tools_format: ToolFormat | str = ToolFormat.SNIPPET,
        initial_prompts: PromptInput | None = None,
        options: LanguageModelExOptions | None = None,
        telemetry_sink: TelemetrySink | None = None,
    ) -> Agent:
        """Create an agent whose system prompt describes *tools*.

        A leading system message in *initial_prompts* is kept as additional
        notes inside the generated system prompt.
        """

        registry = ToolRegistry.coerce(tools)
        base = options or LanguageModelExOptions(
            max_quota_usage=AGENT_MAX_QUOTA_USAGE,
            context_handler=ContextStrategy.SUMMARIZE,
            history_handler=HistoryStrategy.CLEAR,
        )
        prompts = normalize_prompt(initial_prompts) if initial_prompts is not None else list(base.session.initial_prompts)
        user_notes: str | None = None
        if prompts and prompts[0].is_system:
            user_notes = prompts.pop(0).text() or None
        system = build_system_prompt(registry.list_tools(), tools_format=tools_format, user_notes=user_notes)
        prompts.insert(0, ConversationMessage.system(system))

        model = await LanguageModelEx.create(
            factory,
            replace(base, session=base.session.with_prompts(prompts)),
            telemetry_sink=telemetry_sink,
        )
        return cls(model, registry, tools_format=tools_format)

    # ------------------------------------------------------------------
    # Model passthroughs
    # ------------------------------------------------------------------
    @property
    def model(self) -> LanguageModelEx:
        return self._model

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def tools_format(self) -> ToolFormat:
        return self._tools_format

    @property
    def input_quota(self) -> int:
        return self._model.input_quota

    @property
    def input_usage(self) -> int:
        return self._model.input_usage

    def add_listener(self, event_name: str, callback: EventListener) -> Callable[[], None]:
        return self._model.add_listener(event_name, callback)

    async def prompt(self, prompt: PromptInput, *, signal: AbortSignal | None = None) -> str:
        return await self._model.prompt(prompt, signal=signal, response_constraint=RESPONSE_SCHEMA)

    def prompt_streaming(self, prompt: PromptInput, *, signal: AbortSignal | None = None) -> AsyncIterator[str]:
        return self._model.prompt_streaming(prompt, signal=signal, response_constraint=RESPONSE_SCHEMA)

    async def measure_input_usage(self, prompt: PromptInput) -> int:
        return await self._model.measure_input_usage(prompt)

    def destroy(self) -> None:
        self._model.destroy()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def run(
        self,
        user_input: PromptInput,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        *,
        signal: AbortSignal | None = None,
    ) -> AgentRun:
        """Start a run in the background and return its handle immediately.

        Must be called from within a running event loop.
        """

        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        run = AgentRun(signal)
        run.messages.extend(normalize_prompt(user_input))
        run._start(self._drive(run, max_iterations))
        return run

    async def _drive(self, run: AgentRun, max_iterations: int) -> None:
        completed: list[IterationLogEntry] = []
        try:
            for iteration in range(1, max_iterations + 1):
                raise_if_aborted(run.signal, "Agent run aborted by signal.")
                run.status.publish(AgentStatus.THINKING)
                LOGGER.debug("Agent iteration %s: thinking", iteration)
                raw, entry = await self._think(run, iteration)

                if not entry.tool_calls:
                    completed.append(entry)
                    run.history.publish(tuple(completed))
                    run.current_iteration.publish(None)
                    run.status.publish(AgentStatus.DONE)
                    LOGGER.debug("Agent finished after %s iteration(s)", iteration)
                    return

                run.status.publish(AgentStatus.CALLING_TOOLS)
                LOGGER.debug("Agent iteration %s: calling %s tool(s)", iteration, len(entry.tool_calls))
                entry, results = await self._call_tools(run, entry)
                completed.append(entry)
                run.history.publish(tuple(completed))
                run.messages.append(ConversationMessage.assistant(raw))
                run.messages.extend(results)

            raise MaxIterationsError(max_iterations=max_iterations)
        except asyncio.CancelledError as exc:
            self._fail(run)
            raise AbortError("Agent run cancelled.") from exc
        except Exception as exc:
            LOGGER.info("Agent run failed: %s", exc)
            self._fail(run)
            raise
        finally:
            run._finalize()

    async def _think(self, run: AgentRun, iteration: int) -> tuple[str, IterationLogEntry]:
        raw = ""
        entry: IterationLogEntry | None = None
        async for chunk in self._model.prompt_streaming(
            list(run.messages),
            signal=run.signal,
            response_constraint=RESPONSE_SCHEMA,
        ):
            raw += chunk
            parsed = parse_partial_response(raw, iteration)
            if parsed is not None and parsed != entry:
                entry = parsed
                run.current_iteration.publish(entry)
        if entry is None:
            raise ParseError(raw=raw)
        return raw, entry

    async def _call_tools(
        self,
        run: AgentRun,
        entry: IterationLogEntry,
    ) -> tuple[IterationLogEntry, list[ConversationMessage]]:
        results: list[ConversationMessage] = []
        for index, call in enumerate(entry.tool_calls):
            call = call.advance(ToolCallStatus.RUNNING)
            entry = entry.with_tool_call(index, call)
            run.current_iteration.publish(entry)

            call, message = await self._execute(call)
            entry = entry.with_tool_call(index, call)
            run.current_iteration.publish(entry)
            results.append(message)
        return entry, results

    async def _execute(self, call: ToolCallLog) -> tuple[ToolCallLog, ConversationMessage]:
        tool = self._tools.get(call.tool)
        if tool is None:
            LOGGER.warning("Model requested unknown tool '%s'", call.tool)
            return (
                call.advance(ToolCallStatus.ERROR, error=ToolNotFoundError(tool_name=call.tool)),
                tool_not_found_message(call.tool),
            )

        problems = tool.validate(call.args)
        if problems:
            error = ToolExecutionError(f"Invalid arguments: {'; '.join(problems)}", tool_name=call.tool)
            return call.advance(ToolCallStatus.ERROR, error=error), tool_error_message(call.tool, error)

        try:
            result = await tool.run(call.args)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Tool '%s' failed: %s", call.tool, exc)
            error = ToolExecutionError(str(exc), tool_name=call.tool)
            error.__cause__ = exc
            return call.advance(ToolCallStatus.ERROR, error=error), tool_error_message(call.tool, exc)
        return call.advance(ToolCallStatus.SUCCESS, result=result), tool_result_message(call.tool, result)

    @staticmethod
    def _fail(run: AgentRun) -> None:
        run.current_iteration.publish(None)
        run.status.publish(AgentStatus.ERROR)


__all__ = ["AGENT_MAX_QUOTA_USAGE", "Agent", "AgentRun", "DEFAULT_MAX_ITERATIONS"]
