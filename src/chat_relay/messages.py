"""Chat message model shared by the relay handlers and the streaming client."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import BadRequest

ROLES = ("user", "assistant")


def new_message_id() -> str:
    return uuid.uuid4().hex[:16]


@dataclass(frozen=True)
class TextPart:
    text: str
    type: str = "text"

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class Message:
    role: str
    parts: Tuple[TextPart, ...] = ()
    id: str = field(default_factory=new_message_id)

    @classmethod
    def from_text(cls, role: str, text: str, id: Optional[str] = None) -> "Message":
        return cls.from_texts(role, [text], id=id)

    @classmethod
    def from_texts(
        cls, role: str, texts: Sequence[str], id: Optional[str] = None
    ) -> "Message":
        parts = tuple(TextPart(text) for text in texts)
        if id is None:
            return cls(role=role, parts=parts)
        return cls(role=role, parts=parts, id=id)

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        """Parse a message sent by a client.

        Accepts the UI shape ``{id?, role, parts: [{type, text}]}`` as well as
        the older ``{role, content}`` shape. Non-text parts are dropped.
        """
        if not isinstance(data, dict):
            raise BadRequest(f"Message must be an object, got {type(data).__name__}")

        role = data.get("role")
        if role not in ROLES:
            raise BadRequest(f"Unsupported message role: {role!r}")

        raw_parts = data.get("parts")
        if raw_parts is None and isinstance(data.get("content"), str):
            raw_parts = [{"type": "text", "text": data["content"]}]
        if not isinstance(raw_parts, list):
            raise BadRequest("Message must carry a 'parts' list or 'content' string")

        parts = tuple(
            TextPart(str(p.get("text", "")))
            for p in raw_parts
            if isinstance(p, dict) and p.get("type") == "text"
        )
        message_id = data.get("id")
        if isinstance(message_id, str) and message_id:
            return cls(role=role, parts=parts, id=message_id)
        return cls(role=role, parts=parts)

    @property
    def text(self) -> str:
        return "\n\n".join(part.text for part in self.parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "parts": [part.to_dict() for part in self.parts],
        }


def parse_messages(body: Any) -> List[Message]:
    """Extract the message history from a request body."""
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    raw = body.get("messages")
    if not isinstance(raw, list):
        raise BadRequest("Request body must contain a 'messages' list")
    return [Message.from_dict(item) for item in raw]


def to_gateway_messages(
    messages: List[Message], system_prompt: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Convert history to the role/content shape of the completion API."""
    result: List[Dict[str, Any]] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})
    for message in messages:
        result.append({"role": message.role, "content": message.text})
    return result


class AssistantState(Enum):
    NO_OPEN_ASSISTANT_MESSAGE = "no_open_assistant_message"
    OPEN_ASSISTANT_MESSAGE = "open_assistant_message"


class Conversation:
    """Client-owned message history.

    Fixed messages are only ever appended. A single assistant message may be
    open at a time; while open it is replaced wholesale on every update and
    stays the last element of the history.
    """

    def __init__(self, messages: Optional[List[Message]] = None):
        self._messages: List[Message] = list(messages or [])
        self.state = AssistantState.NO_OPEN_ASSISTANT_MESSAGE

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def open_message(self) -> Optional[Message]:
        if self.state is AssistantState.OPEN_ASSISTANT_MESSAGE:
            return self._messages[-1]
        return None

    def append(self, message: Message) -> None:
        if self.state is AssistantState.OPEN_ASSISTANT_MESSAGE:
            raise RuntimeError("Cannot append while an assistant message is open")
        self._messages.append(message)

    def set_open_assistant_text(self, text: str) -> Message:
        """Open a new assistant message or replace the open one with ``text``."""
        return self.set_open_assistant_parts([text])

    def set_open_assistant_parts(self, texts: Sequence[str]) -> Message:
        """Like :meth:`set_open_assistant_text`, with one text part per entry."""
        if self.state is AssistantState.NO_OPEN_ASSISTANT_MESSAGE:
            message = Message.from_texts("assistant", texts)
            self._messages.append(message)
            self.state = AssistantState.OPEN_ASSISTANT_MESSAGE
        else:
            message = Message.from_texts("assistant", texts, id=self._messages[-1].id)
            self._messages[-1] = message
        return message

    def close_assistant_message(self) -> Optional[Message]:
        message = self.open_message
        self.state = AssistantState.NO_OPEN_ASSISTANT_MESSAGE
        return message

    def to_payload(self) -> Dict[str, Any]:
        return {"messages": [m.to_dict() for m in self._messages]}

    def __len__(self) -> int:
        return len(self._messages)
