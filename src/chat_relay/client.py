"""Client side of the relay: reads a streamed reply into a Conversation.

The relay answers either with ``data: <json>`` event frames (ending with
``data: [DONE]``, or simply with connection close) or with a raw text stream.
Either way the in-progress assistant message is rebuilt from the running
accumulator on every delta instead of being patched piecemeal.
"""

import codecs
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import httpx

from .errors import FrameParseError, RelayError, UpstreamFailure
from .messages import Conversation, Message

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

# Returned by parse_frame for the end-of-stream marker
DONE = object()


class EventLineDecoder:
    """Incremental UTF-8 decoder that yields complete lines.

    Multi-byte characters and lines may both be split across network chunks;
    partial data is held until the next chunk or ``flush``.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def decode(self, chunk: bytes, final: bool = False) -> str:
        return self._decoder.decode(chunk, final=final)

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer += self.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        tail = self._buffer + self.decode(b"", final=True)
        self._buffer = ""
        return [tail.rstrip("\r")] if tail else []


def parse_frame(line: str) -> Any:
    """Parse one event line.

    Returns ``None`` for lines that are not ``data:`` frames (blank separators,
    comments, other fields), ``DONE`` for the sentinel, and the decoded JSON
    object otherwise.

    Raises:
        FrameParseError: If the payload is not a JSON object
    """
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return DONE
    if not payload:
        return None
    try:
        frame = json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameParseError(line, str(e)) from e
    if not isinstance(frame, dict):
        raise FrameParseError(line, "payload is not an object")
    return frame


class ReconcilerState(Enum):
    READING = "reading"
    DONE = "done"


class StreamReconciler:
    """Folds delta frames into the conversation's open assistant message.

    Text from each model step (one ``text-delta`` id) becomes its own text part.
    Tool frames are collected in ``tool_invocations``.
    """

    def __init__(
        self,
        conversation: Conversation,
        on_update: Optional[Callable[[Message], None]] = None,
        on_tool: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.conversation = conversation
        self.on_update = on_update
        self.on_tool = on_tool
        self.text_parts: List[str] = []
        self.tool_invocations: List[Dict[str, Any]] = []
        self.state = ReconcilerState.READING
        self.message: Optional[Message] = None
        self._part_id: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.state is ReconcilerState.DONE

    @property
    def accumulator(self) -> str:
        return self.text_parts[-1] if self.text_parts else ""

    def apply_delta(self, delta: str, part_id: Optional[str] = None) -> Optional[Message]:
        if self.done:
            logger.debug("Ignoring delta after end of stream")
            return None
        if not self.text_parts or (
            part_id is not None
            and self._part_id is not None
            and part_id != self._part_id
        ):
            self.text_parts.append("")
        if part_id is not None:
            self._part_id = part_id
        self.text_parts[-1] += delta
        self.message = self.conversation.set_open_assistant_parts(self.text_parts)
        if self.on_update:
            self.on_update(self.message)
        return self.message

    def apply_frame(self, frame: dict) -> None:
        frame_type = frame.get("type")
        if frame_type == "text-delta":
            delta = frame.get("delta")
            if isinstance(delta, str):
                part_id = frame.get("id")
                self.apply_delta(delta, part_id if isinstance(part_id, str) else None)
        elif frame_type == "tool-input-available":
            self.tool_invocations.append(
                {
                    "toolCallId": frame.get("toolCallId"),
                    "toolName": frame.get("toolName"),
                    "input": frame.get("input"),
                    "state": "call",
                }
            )
        elif frame_type == "tool-output-available":
            self._record_tool_output(frame)
        elif frame_type == "error":
            self.fail(str(frame.get("errorText") or "Unknown error"))
        # step frames carry nothing to show

    def _record_tool_output(self, frame: dict) -> None:
        call_id = frame.get("toolCallId")
        invocation = next(
            (i for i in self.tool_invocations if i["toolCallId"] == call_id), None
        )
        if invocation is None:
            logger.warning(f"Tool output for unknown call {call_id}")
            return
        invocation["output"] = frame.get("output")
        invocation["state"] = "result"
        if self.on_tool:
            self.on_tool(invocation)

    def fail(self, error_text: str) -> Message:
        """Fix any partial reply and record the error as an assistant message."""
        self.conversation.close_assistant_message()
        self.message = Message.from_text("assistant", f"Error: {error_text}")
        self.conversation.append(self.message)
        self.state = ReconcilerState.DONE
        return self.message

    def finish(self) -> Optional[Message]:
        if not self.done:
            self.conversation.close_assistant_message()
            self.state = ReconcilerState.DONE
        return self.message


def _consume_lines(reconciler: StreamReconciler, lines: List[str]) -> bool:
    """Apply event lines; return True once the end-of-stream marker is seen."""
    for line in lines:
        try:
            frame = parse_frame(line)
        except FrameParseError as e:
            logger.warning(f"Skipping frame: {e.message}")
            continue
        if frame is None:
            continue
        if frame is DONE:
            return True
        reconciler.apply_frame(frame)
    return False


async def reconcile_stream(
    chunks: AsyncIterator[bytes],
    conversation: Conversation,
    protocol: str = "data",
    on_update: Optional[Callable[[Message], None]] = None,
    on_tool: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> Optional[Message]:
    """Read a relay response body into ``conversation``.

    Args:
        chunks: Raw response body chunks
        conversation: Conversation receiving the assistant reply
        protocol: ``"data"`` for event frames, ``"text"`` for a raw text stream
        on_update: Called with the rebuilt assistant message after each delta
        on_tool: Called with each tool invocation once its output arrives

    Returns:
        The final assistant message, or None if the stream carried no text
    """
    reconciler = StreamReconciler(conversation, on_update, on_tool)
    decoder = EventLineDecoder()
    finished = False

    async for chunk in chunks:
        if protocol == "text":
            text = decoder.decode(chunk)
            if text:
                reconciler.apply_delta(text)
        elif _consume_lines(reconciler, decoder.feed(chunk)):
            finished = True
            break

    # Connection close ends the stream as well as the sentinel does
    if not finished:
        if protocol == "text":
            tail = decoder.decode(b"", final=True)
            if tail:
                reconciler.apply_delta(tail)
        else:
            _consume_lines(reconciler, decoder.flush())

    return reconciler.finish()


def _error_text(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"HTTP {response.status_code}: {response.text or response.reason_phrase}"


class ChatClient:
    """Holds a conversation and sends it to a relay endpoint one turn at a time."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        path: str = "/api/chat-with-tools",
        protocol: str = "data",
        http_client: Optional[httpx.AsyncClient] = None,
        on_update: Optional[Callable[[Message], None]] = None,
        on_tool: Optional[Callable[[Dict[str, Any]], None]] = None,
        timeout: float = 60.0,
    ):
        self.path = path
        self.protocol = protocol
        self.on_update = on_update
        self.on_tool = on_tool
        self.http_client = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout
        )
        self.conversation = Conversation()
        self.tool_invocations: List[Dict[str, Any]] = []
        self.is_loading = False

    async def submit(self, text: str) -> Optional[Message]:
        """Send ``text`` with the full history and stream the reply.

        Returns None without sending anything while a previous request is in
        flight or when ``text`` is blank.
        """
        if self.is_loading:
            logger.debug("Submit ignored: request already in flight")
            return None
        if not text.strip():
            return None

        self.is_loading = True
        self.tool_invocations = []
        try:
            self.conversation.append(Message.from_text("user", text.strip()))
            return await self._send()
        except (httpx.HTTPError, RelayError) as e:
            error_text = str(e) or e.__class__.__name__
            logger.error(f"Chat error: {error_text}")
            self.conversation.close_assistant_message()
            error_message = Message.from_text("assistant", f"Error: {error_text}")
            self.conversation.append(error_message)
            return error_message
        finally:
            # A partial reply stays in the history as a fixed message
            self.conversation.close_assistant_message()
            self.is_loading = False

    def _record_tool(self, invocation: Dict[str, Any]) -> None:
        self.tool_invocations.append(invocation)
        if self.on_tool:
            self.on_tool(invocation)

    async def _send(self) -> Optional[Message]:
        async with self.http_client.stream(
            "POST", self.path, json=self.conversation.to_payload()
        ) as response:
            logger.info(
                f"Response received: {response.status_code} {response.reason_phrase}"
            )
            if response.status_code >= 300:
                await response.aread()
                raise UpstreamFailure(_error_text(response))
            return await reconcile_stream(
                response.aiter_bytes(),
                self.conversation,
                self.protocol,
                self.on_update,
                self._record_tool,
            )

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
