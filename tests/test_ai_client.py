"""Tests for the OpenAI-compatible AI client."""

from __future__ import annotations

import logging
from typing import cast

import httpx
import pytest

from openai import AsyncOpenAI

from quotakeeper.ai.client import AIClient, ClientSettings
from quotakeeper.ai.tokens import EstimatingCounter, counter_for_model, estimate_tokens
from tests.helpers import FakeCounter, FakeStreamEvent, make_openai_client


def _client(fake_client, *, model: str = "gpt-4o-mini", **settings) -> AIClient:
    return AIClient(
        ClientSettings(base_url="http://local", api_key="test", model=model, **settings),
        client=cast(AsyncOpenAI, fake_client),
        counter=FakeCounter(model_name=model),
    )


async def _collect(client: AIClient, **kwargs) -> list[str]:
    return [text async for text in client.stream_text(**kwargs)]


@pytest.mark.asyncio
async def test_stream_text_yields_content_deltas_only(caplog: pytest.LogCaptureFixture) -> None:
    events = [
        FakeStreamEvent(type="content.delta", delta="Hello"),
        FakeStreamEvent(type="content.delta", delta=""),
        FakeStreamEvent(type="tool_calls.function.arguments.delta", delta="{}"),
        FakeStreamEvent(type="content.delta", delta=" world"),
        FakeStreamEvent(type="content.done", content="Hello world", parsed={"ok": True}),
        FakeStreamEvent(type="refusal.done", refusal="no"),
    ]
    fake_client = make_openai_client(events)
    client = _client(fake_client, max_retries=1)

    with caplog.at_level(logging.WARNING, logger="quotakeeper.ai.client"):
        collected = await _collect(client, messages=[{"role": "user", "content": "Hi"}])

    assert collected == ["Hello", " world"]
    assert "refused" in caplog.text
    assert fake_client.chat.completions.calls[0]["messages"][0]["role"] == "user"


@pytest.mark.asyncio
async def test_stream_text_requires_messages() -> None:
    client = _client(make_openai_client([]), model="gpt-4o")

    generator = client.stream_text(messages=[])
    with pytest.raises(ValueError):
        await generator.__anext__()


@pytest.mark.asyncio
async def test_request_merges_metadata_and_extras() -> None:
    fake_client = make_openai_client([FakeStreamEvent(type="content.done", content="done")])
    client = _client(fake_client, model="stub", metadata={"app": "quotakeeper"})

    await _collect(
        client,
        messages=[{"role": "user", "content": "Hello"}],
        response_format={"type": "json_object"},
        temperature=None,
        seed=7,
    )

    payload = fake_client.chat.completions.calls[0]
    assert payload["model"] == "stub"
    assert payload["metadata"] == {"app": "quotakeeper"}
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["seed"] == 7
    assert "temperature" not in payload


@pytest.mark.asyncio
async def test_temperature_is_sent_when_given() -> None:
    fake_client = make_openai_client([])
    client = _client(fake_client)

    await _collect(client, messages=[{"role": "user", "content": "Hello"}], temperature=0.2)

    assert fake_client.chat.completions.calls[0]["temperature"] == 0.2


@pytest.mark.asyncio
async def test_debug_logging_writes_the_request(caplog: pytest.LogCaptureFixture) -> None:
    fake_client = make_openai_client([FakeStreamEvent(type="content.delta", delta="done")])
    client = _client(fake_client, model="debug", debug_logging=True)

    with caplog.at_level(logging.DEBUG, logger="quotakeeper.ai.client"):
        await _collect(client, messages=[{"role": "user", "content": "Hello there"}])

    assert "Chat request" in caplog.text
    assert "Hello there" in caplog.text


@pytest.mark.asyncio
async def test_request_is_not_logged_without_debug_logging(caplog: pytest.LogCaptureFixture) -> None:
    client = _client(make_openai_client([]))

    with caplog.at_level(logging.DEBUG, logger="quotakeeper.ai.client"):
        await _collect(client, messages=[{"role": "user", "content": "Hello"}])

    assert "Chat request" not in caplog.text


@pytest.mark.asyncio
async def test_transient_failure_before_text_is_retried(caplog: pytest.LogCaptureFixture) -> None:
    fake_client = make_openai_client(
        [FakeStreamEvent(type="content.delta", delta="ok")],
        open_errors=[httpx.ConnectTimeout("slow")],
    )
    client = _client(fake_client, max_retries=3, retry_min_seconds=0, retry_max_seconds=0)

    with caplog.at_level(logging.WARNING, logger="quotakeeper.ai.client"):
        collected = await _collect(client, messages=[{"role": "user", "content": "Hello"}])

    assert collected == ["ok"]
    assert len(fake_client.chat.completions.calls) == 2
    assert "retrying" in caplog.text


@pytest.mark.asyncio
async def test_retries_stop_at_the_attempt_limit() -> None:
    fake_client = make_openai_client(
        [],
        open_errors=[httpx.ConnectTimeout("one"), httpx.ConnectTimeout("two"), httpx.ConnectTimeout("three")],
    )
    client = _client(fake_client, max_retries=2, retry_min_seconds=0, retry_max_seconds=0)

    with pytest.raises(httpx.ConnectTimeout):
        await _collect(client, messages=[{"role": "user", "content": "Hello"}])

    assert len(fake_client.chat.completions.calls) == 2


@pytest.mark.asyncio
async def test_failure_after_text_is_not_retried() -> None:
    fake_client = make_openai_client(
        [FakeStreamEvent(type="content.delta", delta="partial")],
        stream_error=httpx.ReadTimeout("dropped"),
    )
    client = _client(fake_client, max_retries=3, retry_min_seconds=0, retry_max_seconds=0)
    collected: list[str] = []

    with pytest.raises(httpx.ReadTimeout):
        async for text in client.stream_text(messages=[{"role": "user", "content": "Hello"}]):
            collected.append(text)

    assert collected == ["partial"]
    assert len(fake_client.chat.completions.calls) == 1


@pytest.mark.asyncio
async def test_non_transient_failure_is_not_retried() -> None:
    fake_client = make_openai_client([], open_errors=[KeyError("bad")])
    client = _client(fake_client, max_retries=3, retry_min_seconds=0, retry_max_seconds=0)

    with pytest.raises(KeyError):
        await _collect(client, messages=[{"role": "user", "content": "Hello"}])

    assert len(fake_client.chat.completions.calls) == 1


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    class _StubAsyncOpenAI:
        def __init__(self) -> None:
            self.closed = False

        async def close(self) -> None:
            self.closed = True

    stub = _StubAsyncOpenAI()
    client = _client(stub, model="stub-model")

    await client.aclose()

    assert stub.closed is True


def test_count_tokens_uses_the_counter() -> None:
    client = AIClient(
        ClientSettings(base_url="http://local", api_key="test", model="stub"),
        client=cast(AsyncOpenAI, make_openai_client([])),
        counter=FakeCounter(multiplier=2, model_name="stub"),
    )

    assert client.count_tokens("abc") == 6
    assert client.count_tokens("") == 0
    assert client.counter.model_name == "stub"


def test_estimate_tokens_rounds_bytes_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("a") == 1
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    # multi-byte characters count by their UTF-8 size
    assert estimate_tokens("é" * 4) == 2


def test_counter_for_model_can_skip_the_tokenizer() -> None:
    counter = counter_for_model("gpt-4o-mini", estimate_only=True)

    assert isinstance(counter, EstimatingCounter)
    assert counter.model_name == "gpt-4o-mini"
    assert counter.count("x" * 40) == 10
    assert counter_for_model("gpt-4o-mini", estimate_only=True) is counter
