"""Turn tool outcomes into messages for the next agent iteration."""

from __future__ import annotations

import json
from typing import Any, Literal

from ..messages import ConversationMessage, MessagePart
from .types import MediaBlob

ResultKind = Literal["text", "image", "audio", "binary"]

RESULT_PREFIX = "TOOL_RESULT for {tool}: "
TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
UNIDENTIFIED_BINARY = "[Received unidentifiable binary data]"

_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"ID3", "audio/mpeg"),
    (b"OggS", "audio/ogg"),
    (b"fLaC", "audio/flac"),
)


def sniff_media(data: bytes) -> MediaBlob | None:
    """Recognise common image and audio containers by their magic bytes."""

    if data[:4] == b"RIFF" and len(data) >= 12:
        container = data[8:12]
        if container == b"WEBP":
            return MediaBlob(data, "image/webp")
        if container == b"WAVE":
            return MediaBlob(data, "audio/wav")
        return None
    for signature, mime_type in _SIGNATURES:
        if data.startswith(signature):
            return MediaBlob(data, mime_type)
    return None


def format_result_text(result: Any) -> str:
    """Format a non-binary tool result as text for the model."""

    if result is None:
        return "null"
    if isinstance(result, str):
        return result
    if isinstance(result, bool):
        return "true" if result else "false"
    if isinstance(result, (int, float)):
        return str(result)
    if isinstance(result, (dict, list)):
        try:
            return json.dumps(result, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            return str(result)
    if hasattr(result, "to_dict") and callable(result.to_dict):
        try:
            return json.dumps(result.to_dict(), ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            pass
    return str(result)


def classify_result(result: Any) -> tuple[ResultKind, Any]:
    """Return the kind of *result* and its normalized payload.

    Media results come back as :class:`MediaBlob`; anything non-binary is
    formatted to text.
    """

    if isinstance(result, MediaBlob):
        kind = result.kind
        return (kind, result) if kind else ("binary", result)
    if isinstance(result, (bytes, bytearray, memoryview)):
        data = bytes(result)
        media = sniff_media(data)
        if media is not None and media.kind is not None:
            return media.kind, media
        return "binary", data
    return "text", format_result_text(result)


def tool_result_message(tool: str, result: Any) -> ConversationMessage:
    """Build the user message reporting a successful tool call."""

    prefix = RESULT_PREFIX.format(tool=tool)
    kind, payload = classify_result(result)
    if kind == "text":
        return ConversationMessage.user(f"{prefix}{payload}")
    if kind == "binary":
        return ConversationMessage.user(f"{prefix}{UNIDENTIFIED_BINARY}")
    return ConversationMessage.user(
        [
            MessagePart(type="text", value=f"{prefix}[Attachment of type {kind}]"),
            MessagePart(type=kind, value=payload.data, mime_type=payload.mime_type),
        ]
    )


def tool_not_found_message(tool: str) -> ConversationMessage:
    return ConversationMessage.user(f"{RESULT_PREFIX.format(tool=tool)}{TOOL_NOT_FOUND}")


def tool_error_message(tool: str, error: BaseException | str) -> ConversationMessage:
    return ConversationMessage.user(f"{RESULT_PREFIX.format(tool=tool)}ERROR - {error}")


__all__ = [
    "RESULT_PREFIX",
    "ResultKind",
    "TOOL_NOT_FOUND",
    "UNIDENTIFIED_BINARY",
    "classify_result",
    "format_result_text",
    "sniff_media",
    "tool_error_message",
    "tool_not_found_message",
    "tool_result_message",
]
