"""Streaming chat-completions transport for :class:`~quotakeeper.ai.chat_session.ChatSession`."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Sequence

import httpx
from openai import APIConnectionError, AsyncOpenAI, InternalServerError, RateLimitError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from .ai_types import TokenCounterProtocol
from .tokens import counter_for_model

LOGGER = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    APIConnectionError,
    RateLimitError,
    InternalServerError,
    httpx.TimeoutException,
)


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False


class AIClient:
    """Streams assistant text from an OpenAI-compatible endpoint.

    Opening a stream is retried on transient failures. Once text has been
    delivered a failure propagates unchanged, so callers never see a reply
    twice.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
        counter: TokenCounterProtocol | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
            # retries are driven by tenacity below
            max_retries=0,
        )
        self._counter = counter or counter_for_model(settings.model)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def counter(self) -> TokenCounterProtocol:
        return self._counter

    def count_tokens(self, text: str) -> int:
        return self._counter.count(text) if text else 0

    async def stream_text(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        response_format: Mapping[str, Any] | None = None,
        temperature: float | None = None,
        **extra: Any,
    ) -> AsyncIterator[str]:
        """Yield the assistant's text deltas for *messages*.

        Refusals are logged and end the stream without text.
        """

        if not messages:
            raise ValueError("At least one message is required to start a chat")
        request = self._request(messages, response_format, temperature, extra)
        if self._settings.debug_logging:
            LOGGER.debug("Chat request:\n%s", json.dumps(request, ensure_ascii=False, indent=2, default=str))

        delivered = False

        def _retryable(exc: BaseException) -> bool:
            return not delivered and isinstance(exc, TRANSIENT_ERRORS)

        async for attempt in AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(multiplier=self._settings.retry_min_seconds, max=self._settings.retry_max_seconds),
            retry=retry_if_exception(_retryable),
            before_sleep=_log_retry,
        ):
            with attempt:
                async with self._client.chat.completions.stream(**request) as stream:
                    async for event in stream:
                        kind = getattr(event, "type", None)
                        if kind == "content.delta":
                            text = getattr(event, "delta", None)
                            if text:
                                delivered = True
                                yield str(text)
                        elif kind == "refusal.done":
                            LOGGER.warning("Model refused the request: %s", getattr(event, "refusal", None))

    async def aclose(self) -> None:
        await self._client.close()

    def _request(
        self,
        messages: Sequence[Mapping[str, Any]],
        response_format: Mapping[str, Any] | None,
        temperature: float | None,
        extra: Mapping[str, Any],
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self._settings.model,
            "messages": [dict(message) for message in messages],
        }
        if self._settings.metadata:
            request["metadata"] = dict(self._settings.metadata)
        if response_format is not None:
            request["response_format"] = dict(response_format)
        if temperature is not None:
            request["temperature"] = temperature
        request.update(extra)
        return request


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    LOGGER.warning("Chat stream attempt %s failed (%s); retrying", state.attempt_number, exc)


__all__ = ["AIClient", "ClientSettings", "TRANSIENT_ERRORS"]
