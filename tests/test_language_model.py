"""Tests for the quota-bounded language model wrapper."""

from __future__ import annotations

import asyncio

import pytest

from quotakeeper.ai.ai_types import SessionOptions
from quotakeeper.ai.errors import AbortError, MeasurementError, ReductionDepthExceeded
from quotakeeper.ai.language_model import (
    SUMMARY_PREFIX,
    ContextStrategy,
    CustomContextHandler,
    HistoryStrategy,
    LanguageModelEx,
    LanguageModelExOptions,
)
from quotakeeper.ai.messages import ConversationMessage
from tests.helpers import FakeBackend, collect, echo, sentences

PROMPT = "p" * 98


def _summarizing_responder(engine, messages) -> str:
    if engine.instruction.startswith("You summarize"):
        return "SUMMARY"
    return "ok"


def _reducing_responder(_engine, messages) -> str:
    if "Reduce the following text" in messages[-1].text():
        return "short"
    return "ok"


async def _fill(model: LanguageModelEx, count: int) -> None:
    for _ in range(count):
        await model.prompt(PROMPT)


@pytest.mark.asyncio
async def test_prompts_below_threshold_do_not_trigger_recovery(backend: FakeBackend) -> None:
    model = await LanguageModelEx.create(backend, LanguageModelExOptions(max_quota_usage=0.75))
    events: list[dict] = []
    model.add_listener("quota_overflow", events.append)

    await _fill(model, 7)

    assert events == []
    assert model.input_usage == 700
    assert len(model.history) == 14
    assert len(backend.engines) == 1


@pytest.mark.asyncio
async def test_clear_strategies_emit_events_and_reset_session(backend, telemetry_sink) -> None:
    options = LanguageModelExOptions(
        max_quota_usage=0.75,
        context_handler=ContextStrategy.CLEAR,
        history_handler=HistoryStrategy.CLEAR,
    )
    model = await LanguageModelEx.create(backend, options, telemetry_sink=telemetry_sink)
    seen: list[str] = []
    for name in ("quota_overflow", "context_clear", "context_shrink", "session_recreated"):
        model.add_listener(name, lambda payload: seen.append(payload["event"]))

    await _fill(model, 8)

    assert seen == ["quota_overflow", "context_clear", "session_recreated"]
    assert backend.engines[0].destroyed
    assert backend.sessions[-1].initial_prompts == ()
    assert model.input_usage == 100
    assert [message.role for message in model.history.get()] == ["user", "assistant"]
    recorded = telemetry_sink.tail()
    assert recorded[0].event == "quota_overflow"
    assert recorded[0].projected_usage == 798


@pytest.mark.asyncio
async def test_summarize_with_preserved_history_keeps_messages() -> None:
    backend = FakeBackend(quota=1000, responder=_summarizing_responder)
    options = LanguageModelExOptions(
        session=SessionOptions(initial_prompts=(ConversationMessage.system("rules"),)),
    )
    model = await LanguageModelEx.create(backend, options)
    shrinks: list[dict] = []
    model.add_listener("context_shrink", shrinks.append)

    await _fill(model, 8)

    assert shrinks == [{"event": "context_shrink", "summary": "SUMMARY"}]
    assert len(model.history) == 1 + 16
    recreated = backend.sessions[-1].initial_prompts
    assert [message.text() for message in recreated] == ["rules"]
    assert backend.engines_with_instruction("You summarize")


@pytest.mark.asyncio
async def test_summarize_with_update_folds_summary_into_history() -> None:
    backend = FakeBackend(quota=1000, responder=_summarizing_responder)
    options = LanguageModelExOptions(context_handler="summarize", history_handler="update")
    model = await LanguageModelEx.create(backend, options)

    await _fill(model, 8)

    summary = f"{SUMMARY_PREFIX}SUMMARY"
    assert [message.text() for message in backend.sessions[-1].initial_prompts] == [summary]
    assert [message.text() for message in model.history.get()] == [summary, PROMPT, "ok"]


@pytest.mark.asyncio
async def test_custom_handlers_control_history_and_new_session(backend: FakeBackend) -> None:
    received: list[list[ConversationMessage]] = []

    async def _context(messages: list[ConversationMessage]) -> list[ConversationMessage]:
        received.append(messages)
        return [ConversationMessage.user("carry over")]

    options = LanguageModelExOptions(
        context_handler=CustomContextHandler(_context),
        history_handler=lambda messages: messages[-2:],
    )
    model = await LanguageModelEx.create(backend, options)

    await _fill(model, 8)

    assert len(received[0]) == 2
    assert [message.text() for message in backend.sessions[-1].initial_prompts] == ["carry over"]
    assert len(model.history) == 4


@pytest.mark.asyncio
async def test_oversized_prompt_is_reduced_before_sending() -> None:
    backend = FakeBackend(quota=1000, responder=_reducing_responder)
    model = await LanguageModelEx.create(backend)

    result = await model.prompt(sentences(100))

    assert result == "ok"
    main_engine = backend.engines[0]
    assert main_engine.received[-1][0].text() == "short\n\nshort\n\nshort"
    reduce_calls = [
        batch
        for engine in backend.engines[1:]
        for batch in engine.received
        if "Reduce the following text" in batch[-1].text()
    ]
    assert len(reduce_calls) == 3
    assert model.history.get()[0].text() == "short\n\nshort\n\nshort"


@pytest.mark.asyncio
async def test_reduction_gives_up_past_depth_limit() -> None:
    backend = FakeBackend(quota=1000, responder=echo)
    model = await LanguageModelEx.create(backend, LanguageModelExOptions(max_reduction_depth=1))

    with pytest.raises(ReductionDepthExceeded):
        await model.prompt(sentences(100))

    assert backend.engines[0].received == []
    assert not model.is_busy


@pytest.mark.asyncio
async def test_reduction_counts_passes_from_one(monkeypatch: pytest.MonkeyPatch) -> None:
    backend = FakeBackend(quota=1000, responder=echo)
    model = await LanguageModelEx.create(backend, LanguageModelExOptions(max_reduction_depth=2))
    depths: list[int] = []
    reduce_large_input = model._reduce_large_input

    async def _recording_reduce(text, signal, *, depth):
        depths.append(depth)
        return await reduce_large_input(text, signal, depth=depth)

    monkeypatch.setattr(model, "_reduce_large_input", _recording_reduce)

    with pytest.raises(ReductionDepthExceeded):
        await model.prompt(sentences(100))

    assert depths == [1, 2, 3]


@pytest.mark.asyncio
async def test_streaming_prompt_records_full_reply() -> None:
    backend = FakeBackend(quota=1000, responder=lambda _engine, _messages: "hello world", chunk_size=3)
    model = await LanguageModelEx.create(backend)

    chunks = await collect(model.prompt_streaming("hi"))
    await asyncio.sleep(0)

    assert chunks == ["hel", "lo ", "wor", "ld"]
    assert [message.text() for message in model.history.get()] == ["hi", "hello world"]
    assert not model.is_busy


@pytest.mark.asyncio
async def test_streaming_abort_keeps_partial_reply(abort_signal: asyncio.Event) -> None:
    backend = FakeBackend(quota=1000, responder=lambda _engine, _messages: "hello world", chunk_size=3)
    model = await LanguageModelEx.create(backend)
    received: list[str] = []

    with pytest.raises(AbortError):
        async for chunk in model.prompt_streaming("hi", signal=abort_signal):
            received.append(chunk)
            if len(received) == 1:
                assert model.is_busy
            abort_signal.set()

    assert received == ["hel", "lo "]
    assert model.history.get()[-1].text() == "hello "
    assert not model.is_busy


@pytest.mark.asyncio
async def test_streaming_failure_discards_reply() -> None:
    def _fail(_engine, _messages) -> str:
        raise RuntimeError("engine down")

    backend = FakeBackend(quota=1000, responder=_fail)
    model = await LanguageModelEx.create(backend)

    with pytest.raises(RuntimeError, match="engine down"):
        await collect(model.prompt_streaming("hi"))

    assert [message.role for message in model.history.get()] == ["user"]
    assert not model.is_busy


@pytest.mark.asyncio
async def test_aborted_prompt_is_not_recorded_as_reply(backend: FakeBackend, abort_signal: asyncio.Event) -> None:
    model = await LanguageModelEx.create(backend)
    abort_signal.set()

    with pytest.raises(AbortError):
        await model.prompt("hi", signal=abort_signal)

    assert len(model.history) == 0


@pytest.mark.asyncio
async def test_append_updates_engine_and_history(backend: FakeBackend) -> None:
    model = await LanguageModelEx.create(backend)

    await model.append([ConversationMessage.user("fact one"), ConversationMessage.assistant("noted")])

    assert model.input_usage == len("fact one") + len("noted")
    assert [message.text() for message in model.history.get()] == ["fact one", "noted"]


@pytest.mark.asyncio
async def test_empty_system_prompt_is_not_forwarded(backend: FakeBackend) -> None:
    options = LanguageModelExOptions(session=SessionOptions(initial_prompts=(ConversationMessage.system(""),)))

    await LanguageModelEx.create(backend, options)

    assert backend.sessions[0].initial_prompts == ()


@pytest.mark.asyncio
async def test_measurement_failures_are_wrapped(backend: FakeBackend) -> None:
    model = await LanguageModelEx.create(backend)
    backend.fail_measure = True

    with pytest.raises(MeasurementError):
        await model.measure_input_usage("hello")


@pytest.mark.asyncio
async def test_destroy_releases_engine_and_blocks_further_calls(backend: FakeBackend) -> None:
    model = await LanguageModelEx.create(backend)

    model.destroy()
    model.destroy()

    assert backend.engines[0].destroyed
    with pytest.raises(RuntimeError):
        await model.prompt("hi")


@pytest.mark.asyncio
async def test_invalid_quota_ratio_is_rejected(backend: FakeBackend) -> None:
    with pytest.raises(ValueError):
        await LanguageModelEx.create(backend, LanguageModelExOptions(max_quota_usage=0))


def test_options_accept_string_handlers() -> None:
    options = LanguageModelExOptions(context_handler="clear", history_handler="update").normalized()

    assert options.context_handler is ContextStrategy.CLEAR
    assert options.history_handler is HistoryStrategy.UPDATE
