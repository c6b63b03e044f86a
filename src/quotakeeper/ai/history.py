"""Conversation history with a single leading system prompt."""

from __future__ import annotations

import copy
import json
import logging
from typing import Iterable, Literal

from .ai_types import LanguageModel
from .messages import ConversationMessage, PromptInput, normalize_prompt

LOGGER = logging.getLogger(__name__)

TranscriptFormat = Literal["string", "json"]


class HistoryManager:
    """Ordered list of messages owned by one engine wrapper.

    At most one system message exists and, when present, it sits at index 0.
    Mutators validate their input first, so a rejected call leaves the history
    untouched.
    """

    def __init__(self, messages: Iterable[ConversationMessage] | None = None) -> None:
        self._messages: list[ConversationMessage] = []
        if messages:
            self.replace(list(messages))

    def __len__(self) -> int:
        return len(self._messages)

    def add(self, prompt: PromptInput) -> None:
        """Append messages; a system message goes to the front.

        Raises:
            ValueError: A system message already exists, or more than one is given.
        """

        incoming = normalize_prompt(prompt)
        system = [message for message in incoming if message.is_system]
        if system and (len(system) > 1 or self.has_system_prompt()):
            raise ValueError("History already contains a system prompt")
        for message in incoming:
            if message.is_system:
                self._messages.insert(0, message)
            else:
                self._messages.append(message)

    def get(self) -> list[ConversationMessage]:
        """Return the live message list."""

        return self._messages

    def copy(self) -> list[ConversationMessage]:
        """Return a deep copy of the messages."""

        return copy.deepcopy(self._messages)

    def replace(self, messages: Iterable[ConversationMessage]) -> None:
        """Replace the whole history, moving a single system message to the front.

        Raises:
            ValueError: More than one system message is given.
        """

        incoming = normalize_prompt(list(messages))
        system = [message for message in incoming if message.is_system]
        if len(system) > 1:
            raise ValueError("History may contain only one system prompt")
        self._messages = system + [message for message in incoming if not message.is_system]

    def clear(self, *, preserve_system: bool = True) -> None:
        if preserve_system and self.has_system_prompt():
            self._messages = [self._messages[0]]
        else:
            self._messages = []

    def has_system_prompt(self) -> bool:
        return bool(self._messages) and self._messages[0].is_system

    def get_system_prompt(self) -> ConversationMessage:
        """Return the system message, or an empty system placeholder when there is none."""

        if self.has_system_prompt():
            return self._messages[0]
        return ConversationMessage.system("")

    def to_string(self, *, format: TranscriptFormat = "string", include_system: bool = False) -> str:
        """Render the history as a transcript.

        ``string`` renders ``role:`` headers with tab-indented content; media
        parts show up as ``file``. ``json`` renders the message dictionaries.
        """

        messages = [message for message in self._messages if include_system or not message.is_system]
        if format == "json":
            return json.dumps([message.to_dict() for message in messages], ensure_ascii=False)
        if format != "string":
            raise ValueError(f"Unsupported transcript format: {format}")
        return "\n".join(f"{message.role}:\n\t{message.text()}" for message in messages)

    async def measure_usage(self, engine: LanguageModel) -> int:
        """Measure what replaying this history would cost on *engine*.

        The system message is measured as a user message, since engines only
        accept a system prompt at session creation.
        """

        if not self._messages:
            return 0
        measured = copy.deepcopy(self._messages)
        if measured[0].is_system:
            measured[0].role = "user"
        return await engine.measure_input_usage(measured)


__all__ = ["HistoryManager", "TranscriptFormat"]
