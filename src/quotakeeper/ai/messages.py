"""Conversation message types exchanged with quota-limited engines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence, Union

MessageRole = Literal["system", "user", "assistant"]
PartType = Literal["text", "image", "audio"]

_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})
_NON_TEXT_PLACEHOLDER = "file"


@dataclass(slots=True)
class MessagePart:
    """One element of a multimodal message.

    Attributes:
        type: ``text``, ``image`` or ``audio``.
        value: The text for text parts, raw media bytes otherwise.
        mime_type: Optional media type hint for non-text parts.
    """

    type: PartType
    value: Any
    mime_type: str | None = None

    def render(self) -> str:
        if self.type == "text":
            return str(self.value)
        return _NON_TEXT_PLACEHOLDER

    def to_dict(self) -> dict[str, Any]:
        """Transcript form; media payloads are replaced by a placeholder."""

        payload: dict[str, Any] = {"type": self.type, "value": self.render()}
        if self.mime_type:
            payload["mime_type"] = self.mime_type
        return payload

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> MessagePart:
        part_type = str(payload.get("type") or "text")
        if part_type not in ("text", "image", "audio"):
            raise ValueError(f"Unsupported message part type: {part_type}")
        return cls(type=part_type, value=payload.get("value"), mime_type=payload.get("mime_type"))  # type: ignore[arg-type]


@dataclass(slots=True)
class ConversationMessage:
    """A single conversation turn.

    ``content`` is plain text or an ordered list of :class:`MessagePart`.
    """

    role: MessageRole
    content: str | list[MessagePart] = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unsupported message role: {self.role}")

    @property
    def is_system(self) -> bool:
        return self.role == "system"

    def text(self) -> str:
        """Return the message as plain text, rendering media parts as ``file``."""

        if isinstance(self.content, str):
            return self.content
        return "".join(part.render() for part in self.content)

    def to_dict(self) -> dict[str, Any]:
        content: Any
        if isinstance(self.content, str):
            content = self.content
        else:
            content = [part.to_dict() for part in self.content]
        return {"role": self.role, "content": content}

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> ConversationMessage:
        raw_content = payload.get("content", "")
        content: str | list[MessagePart]
        if isinstance(raw_content, str):
            content = raw_content
        elif isinstance(raw_content, Sequence):
            content = [
                part if isinstance(part, MessagePart) else MessagePart.from_mapping(part)
                for part in raw_content
            ]
        else:
            content = str(raw_content)
        return cls(role=payload.get("role", "user"), content=content)  # type: ignore[arg-type]

    @classmethod
    def system(cls, content: str) -> ConversationMessage:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str | list[MessagePart]) -> ConversationMessage:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str | list[MessagePart]) -> ConversationMessage:
        return cls(role="assistant", content=content)


PromptInput = Union[str, ConversationMessage, Mapping[str, Any], Sequence[Union[ConversationMessage, Mapping[str, Any]]]]


def normalize_prompt(prompt: PromptInput) -> list[ConversationMessage]:
    """Coerce any accepted prompt shape into a list of messages.

    A bare string becomes a single user message.
    """

    if isinstance(prompt, str):
        return [ConversationMessage.user(prompt)]
    if isinstance(prompt, ConversationMessage):
        return [prompt]
    if isinstance(prompt, Mapping):
        return [ConversationMessage.from_mapping(prompt)]
    if isinstance(prompt, Sequence):
        return [
            item if isinstance(item, ConversationMessage) else ConversationMessage.from_mapping(item)
            for item in prompt
        ]
    raise TypeError(f"Unsupported prompt input: {type(prompt).__name__}")


def render_prompt(prompt: PromptInput) -> str:
    """Flatten a prompt into text, one message per line."""

    if isinstance(prompt, str):
        return prompt
    return "\n".join(message.text() for message in normalize_prompt(prompt))


__all__ = [
    "ConversationMessage",
    "MessagePart",
    "MessageRole",
    "PromptInput",
    "normalize_prompt",
    "render_prompt",
]
