"""Conversation transcript that keeps tool calls and results paired."""

from __future__ import annotations

from collections.abc import Iterable

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from rag_assistant.types import ConversationTurn


class TranscriptError(ValueError):
    """An append would break call/result pairing."""


class Transcript:
    """Ordered role-tagged messages for one question.

    Messages are LangChain's typed variants (system, human, ai, tool). The
    transcript only accepts a tool result for a call issued by the latest
    assistant message, and refuses new user or assistant messages while any
    call of that message is still unanswered.
    """

    def __init__(self) -> None:
        self._messages: list[BaseMessage] = []
        self._open_calls: dict[str, str | None] = {}

    @classmethod
    def seed(
        cls,
        system_prompt: str,
        history: Iterable[ConversationTurn],
        question: str,
    ) -> "Transcript":
        transcript = cls()
        transcript._messages.append(SystemMessage(content=system_prompt))
        for turn in history:
            transcript._messages.append(HumanMessage(content=turn.question))
            transcript._messages.append(AIMessage(content=turn.answer))
        transcript.add_user(question)
        return transcript

    @property
    def messages(self) -> list[BaseMessage]:
        return list(self._messages)

    @property
    def open_calls(self) -> list[str]:
        return list(self._open_calls)

    def __len__(self) -> int:
        return len(self._messages)

    def add_user(self, text: str) -> None:
        self._require_closed("user message")
        self._messages.append(HumanMessage(content=text))

    def add_assistant(self, message: AIMessage, round_number: int = 0) -> AIMessage:
        """Append a model reply, giving every tool call a unique id.

        Calls with unparseable arguments (`invalid_tool_calls`) are tracked
        like any other call and need a result too. Missing or repeated ids are
        replaced with `call_<round>_<position>`. Returns the message as stored,
        so callers iterate the same ids the transcript expects results for.
        """

        self._require_closed("assistant message")
        seen: set[str] = set()
        position = 0

        def _assign(entries: list) -> list[dict]:
            nonlocal position
            assigned = []
            for entry in entries:
                position += 1
                call_id = entry.get("id")
                if not call_id or call_id in seen:
                    call_id = f"call_{round_number}_{position}"
                seen.add(call_id)
                assigned.append({**entry, "id": call_id})
            return assigned

        calls = _assign(message.tool_calls)
        invalid = _assign(message.invalid_tool_calls)
        if calls != list(message.tool_calls) or invalid != list(message.invalid_tool_calls):
            message = message.model_copy(update={"tool_calls": calls, "invalid_tool_calls": invalid})

        self._messages.append(message)
        self._open_calls = {call["id"]: call.get("name") for call in [*calls, *invalid]}
        return message

    def add_tool_result(self, call_id: str, text: str) -> None:
        if call_id not in self._open_calls:
            raise TranscriptError(f"No open tool call with id {call_id!r}")
        name = self._open_calls.pop(call_id)
        self._messages.append(ToolMessage(content=text, tool_call_id=call_id, name=name))

    def _require_closed(self, what: str) -> None:
        if self._open_calls:
            raise TranscriptError(
                f"Cannot add {what}: tool calls still open: {', '.join(self._open_calls)}"
            )
