"""Language model session backed by an OpenAI-compatible chat endpoint."""

from __future__ import annotations

import base64
import copy
import logging
from typing import Any, AsyncIterator, Mapping, Sequence

from .ai_types import AbortSignal, LanguageModelFactory, SessionOptions
from .client import AIClient
from .errors import AbortError, raise_if_aborted
from .messages import ConversationMessage, MessagePart, PromptInput, normalize_prompt

LOGGER = logging.getLogger(__name__)

MESSAGE_OVERHEAD_TOKENS = 4
IMAGE_TOKEN_COST = 85
AUDIO_TOKEN_COST = 200
_AUDIO_FORMATS: Mapping[str, str] = {"audio/wav": "wav", "audio/x-wav": "wav", "audio/mpeg": "mp3", "audio/mp3": "mp3"}


def _b64(data: Any) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def _part_param(part: MessagePart) -> dict[str, Any]:
    if part.type == "image":
        mime_type = part.mime_type or "image/png"
        return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{_b64(part.value)}"}}
    if part.type == "audio":
        mime_type = (part.mime_type or "audio/wav").lower()
        audio_format = _AUDIO_FORMATS.get(mime_type)
        if audio_format is None:
            # chat completions only accepts wav and mp3 input audio
            LOGGER.warning("Dropping audio part with unsupported format %s", mime_type)
            return {"type": "text", "text": f"[Unsupported audio format: {mime_type}]"}
        return {"type": "input_audio", "input_audio": {"data": _b64(part.value), "format": audio_format}}
    return {"type": "text", "text": str(part.value)}


def to_chat_param(message: ConversationMessage) -> dict[str, Any]:
    """Convert a message to the chat completions wire format.

    Only user messages may carry media; other roles are flattened to text.
    """

    if isinstance(message.content, str) or message.role != "user":
        return {"role": message.role, "content": message.text()}
    return {"role": message.role, "content": [_part_param(part) for part in message.content]}


def response_format_for(constraint: Mapping[str, Any] | None, *, name: str = "response") -> dict[str, Any] | None:
    """Wrap a JSON schema in a ``json_schema`` response format."""

    if not constraint:
        return None
    return {"type": "json_schema", "json_schema": {"name": name, "schema": dict(constraint)}}


class ChatSession:
    """Stateful conversation over :class:`AIClient`.

    The session replays its whole message list on every request, so
    ``input_usage`` grows with each turn until the owner recreates it.
    """

    def __init__(self, client: AIClient, options: SessionOptions, *, input_quota: int) -> None:
        if input_quota <= 0:
            raise ValueError("input_quota must be positive")
        self._client = client
        self._options = options
        self._input_quota = input_quota
        self._messages: list[ConversationMessage] = copy.deepcopy(list(options.initial_prompts))
        self._usage = self._count(self._messages)
        self._destroyed = False

    @property
    def input_quota(self) -> int:
        return self._input_quota

    @property
    def input_usage(self) -> int:
        return self._usage

    @property
    def messages(self) -> Sequence[ConversationMessage]:
        return tuple(self._messages)

    async def measure_input_usage(self, prompt: PromptInput) -> int:
        return self._count(normalize_prompt(prompt))

    async def prompt(
        self,
        prompt: PromptInput,
        *,
        signal: AbortSignal | None = None,
        response_constraint: Mapping[str, Any] | None = None,
    ) -> str:
        parts: list[str] = []
        async for chunk in self.prompt_streaming(prompt, signal=signal, response_constraint=response_constraint):
            parts.append(chunk)
        return "".join(parts)

    async def prompt_streaming(
        self,
        prompt: PromptInput,
        *,
        signal: AbortSignal | None = None,
        response_constraint: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        self._ensure_alive()
        raise_if_aborted(signal)
        incoming = normalize_prompt(prompt)
        payload = [to_chat_param(message) for message in [*self._messages, *incoming]]
        parts: list[str] = []
        try:
            async for text in self._client.stream_text(
                payload,
                response_format=response_format_for(response_constraint),
                temperature=self._options.temperature,
                **self._request_extras(),
            ):
                parts.append(text)
                yield text
                raise_if_aborted(signal)
        except AbortError:
            self._record(incoming, "".join(parts))
            raise
        self._record(incoming, "".join(parts))

    async def append(self, prompt: PromptInput, *, signal: AbortSignal | None = None) -> None:
        self._ensure_alive()
        raise_if_aborted(signal)
        self._messages.extend(normalize_prompt(prompt))
        self._usage = self._count(self._messages)

    def destroy(self) -> None:
        self._destroyed = True
        self._messages.clear()
        self._usage = 0

    def _record(self, incoming: list[ConversationMessage], reply: str) -> None:
        self._messages.extend(incoming)
        self._messages.append(ConversationMessage.assistant(reply))
        self._usage = self._count(self._messages)

    def _request_extras(self) -> dict[str, Any]:
        extras = dict(self._options.extra)
        if self._options.top_k is not None:
            LOGGER.debug("top_k=%s is not supported by chat completions; ignoring", self._options.top_k)
        return extras

    def _count(self, messages: Sequence[ConversationMessage]) -> int:
        total = 0
        for message in messages:
            total += MESSAGE_OVERHEAD_TOKENS
            if isinstance(message.content, str):
                total += self._client.count_tokens(message.content)
                continue
            for part in message.content:
                if part.type == "image":
                    total += IMAGE_TOKEN_COST
                elif part.type == "audio":
                    total += AUDIO_TOKEN_COST
                else:
                    total += self._client.count_tokens(str(part.value))
        return total

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("ChatSession has been destroyed")


def chat_session_factory(client: AIClient, *, input_quota: int) -> LanguageModelFactory:
    """Return a factory creating :class:`ChatSession` objects that share *client*."""

    async def _create(options: SessionOptions) -> ChatSession:
        return ChatSession(client, options, input_quota=input_quota)

    return _create


__all__ = ["ChatSession", "chat_session_factory", "response_format_for", "to_chat_param"]
