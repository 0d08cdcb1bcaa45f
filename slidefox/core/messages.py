"""Chat message history as produced by the agent runtime.

A message is an ordered list of parts. Parts form a closed set of variants
discriminated by ``type``: text, tool-call, file and object (a structured,
possibly still streaming, response).
"""

from __future__ import annotations

import logging
import uuid
from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, ValidationError

from slidefox.core.models import CamelModel

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

ToolCallStatus = Literal["pending", "running", "done", "error", "cancelled"]
MessageStatus = Literal["idle", "streaming", "done"]


class TextPart(CamelModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolCallPart(CamelModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    status: ToolCallStatus = "pending"


class FilePart(CamelModel):
    type: Literal["file"] = "file"
    id: str | None = None
    url: str
    media_type: str = ""
    tool_call_id: str | None = None

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")


class ObjectPart(CamelModel):
    """Structured response that is either partial (streaming) or final (done)."""

    type: Literal["object"] = "object"
    type_name: str = ""
    status: Literal["streaming", "done", "error"] = "streaming"
    partial: dict[str, Any] | None = None
    object: dict[str, Any] | None = None

    @property
    def payload(self) -> dict[str, Any] | None:
        if self.status == "done" and self.object is not None:
            return self.object
        return self.partial if self.partial is not None else self.object


MessagePart = Annotated[Union[TextPart, ToolCallPart, FilePart, ObjectPart], Field(discriminator="type")]

_part_adapter: TypeAdapter[MessagePart] = TypeAdapter(MessagePart)


class ChatMessage(CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Literal["user", "agent"] = "agent"
    status: MessageStatus = "done"
    parts: list[MessagePart] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))


def parse_part(raw: Any) -> TextPart | ToolCallPart | FilePart | ObjectPart | None:
    """Parse one raw part. Unknown or malformed parts yield None."""
    try:
        return _part_adapter.validate_python(raw)
    except ValidationError as e:
        kind = raw.get("type") if isinstance(raw, dict) else type(raw).__name__
        logger.debug(f"Skipping message part of type {kind!r}: {e.error_count()} validation errors")
        return None


def parse_messages(raw_messages: list[Any] | None) -> list[ChatMessage]:
    """Parse raw runtime messages, dropping anything that does not fit the model."""
    messages = []
    for raw in raw_messages or []:
        if not isinstance(raw, dict):
            continue
        parts = [part for part in map(parse_part, raw.get("parts") or []) if part is not None]
        role = "user" if raw.get("role") == "user" else "agent"
        status = raw.get("status") if raw.get("status") in ("idle", "streaming", "done") else "done"
        message = ChatMessage(role=role, status=status, parts=parts)
        if raw.get("id"):
            message.id = str(raw["id"])
        messages.append(message)
    return messages


def iter_parts(messages: list[ChatMessage], kind: type) -> list:
    """All parts of the given class across the history, in arrival order."""
    return [part for message in messages for part in message.parts if isinstance(part, kind)]


class MessageAccumulator:
    """Fold streamed agent events into an append-only message history.

    Finalized messages are never touched again, except for tool-call status
    updates addressed by tool call id. While a message streams, its last part
    may be extended or replaced in place.
    """

    def __init__(self, messages: list[ChatMessage] | None = None):
        self.messages: list[ChatMessage] = list(messages or [])
        self.error: str | None = None

    @property
    def is_streaming(self) -> bool:
        return any(message.status == "streaming" for message in self.messages)

    def add_user_message(self, text: str) -> ChatMessage:
        message = ChatMessage(role="user", status="done", parts=[TextPart(text=text)])
        self.messages.append(message)
        return message

    def _current(self) -> ChatMessage:
        if self.messages and self.messages[-1].status == "streaming":
            return self.messages[-1]
        message = ChatMessage(role="agent", status="streaming")
        self.messages.append(message)
        return message

    def _find_tool_call(self, tool_call_id: str) -> ToolCallPart | None:
        for message in reversed(self.messages):
            for part in message.parts:
                if isinstance(part, ToolCallPart) and part.tool_call_id == tool_call_id:
                    return part
        return None

    def apply(self, event: dict[str, Any]) -> None:
        """Apply a single stream event."""
        event_type = event.get("type")

        if event_type == "start":
            message = self._current()
            if event.get("messageId"):
                message.id = str(event["messageId"])

        elif event_type == "text-delta":
            delta = event.get("delta")
            if not isinstance(delta, str):
                logger.debug(f"Ignoring text delta of type {type(delta).__name__}")
                return
            message = self._current()
            if message.parts and isinstance(message.parts[-1], TextPart):
                message.parts[-1].text += delta
            else:
                message.parts.append(TextPart(text=delta))

        elif event_type == "tool-call":
            tool_call_id = event.get("toolCallId")
            if not tool_call_id:
                return
            existing = self._find_tool_call(tool_call_id)
            if existing is None:
                part = parse_part({"type": "tool-call", "toolName": "", **event})
                if part is not None:
                    self._current().parts.append(part)
                return
            if event.get("toolName"):
                existing.tool_name = event["toolName"]
            if isinstance(event.get("args"), dict):
                existing.args = event["args"]
            if event.get("status") in ("pending", "running", "done", "error", "cancelled"):
                existing.status = event["status"]

        elif event_type == "tool-result":
            existing = self._find_tool_call(event.get("toolCallId", ""))
            if existing is not None:
                existing.status = "error" if event.get("isError") else "done"

        elif event_type == "file":
            part = parse_part(event)
            if part is not None:
                self._current().parts.append(part)

        elif event_type == "object":
            part = parse_part(event)
            if part is None:
                return
            message = self._current()
            last = message.parts[-1] if message.parts else None
            if isinstance(last, ObjectPart) and last.status == "streaming" and last.type_name == part.type_name:
                message.parts[-1] = part
            else:
                message.parts.append(part)

        elif event_type == "finish":
            self.finalize()

        elif event_type == "error":
            message = event.get("message")
            self.error = message if isinstance(message, str) and message else "An error occurred"
            self.finalize()

        else:
            logger.debug(f"Ignoring stream event {event_type!r}")

    def finalize(self, cancelled: bool = False) -> None:
        """Finish the streaming message in whatever state it reached.

        With ``cancelled`` set, tool calls that never completed are marked cancelled.
        """
        for message in self.messages:
            if message.status != "streaming":
                continue
            message.status = "done"
            if not cancelled:
                continue
            for part in message.parts:
                if isinstance(part, ToolCallPart) and part.status in ("pending", "running"):
                    part.status = "cancelled"
