import json
import logging
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from .errors import UpstreamFailure
from .messages import Message, to_gateway_messages
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


def _decode_arguments(arguments: str) -> Any:
    try:
        return json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        return arguments


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the relay request id into structured logs."""

    def __init__(self, logger, request_id):
        self.request_id = request_id
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        if "extra" in kwargs and "structured" in kwargs["extra"]:
            kwargs["extra"]["structured"]["request_id"] = self.request_id
        return msg, kwargs


class CompletionGateway:
    """Streams completions from the hosted model and runs requested tools.

    One call to :meth:`stream_text` covers a whole relay request: it may run
    several model steps, executing tool calls between them, until the model
    answers in text or the step budget is spent.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any = None,
    ):
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self._client = client

    @property
    def client(self):
        # Built on first use so the app can start without a credential
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def log_item(self, log: logging.LoggerAdapter, item_type: str, extra: dict):
        structured = {"log_type": item_type, **extra}
        log.info(
            f"{item_type.replace('_', ' ').title()} received",
            extra={"structured": structured},
        )

    async def stream_text(
        self,
        messages: List[Message],
        system_prompt: str,
        tools: Optional[ToolRegistry] = None,
        max_steps: int = 1,
        request_id: str | None = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield stream events for one relay request.

        Parameters
        ----------
        messages : list of Message
            Full conversation history sent by the client.
        system_prompt : str
            Instruction placed ahead of the history.
        tools : ToolRegistry, optional
            Tools the model may call. ``None`` or an empty registry disables tools.
        max_steps : int
            Maximum number of model steps. The last permitted step is forced
            to answer in text.
        request_id : str, optional
            Correlation id attached to structured logs.
        """
        log = RequestLoggerAdapter(logger, request_id or uuid.uuid4().hex[:8])
        context = to_gateway_messages(messages, system_prompt)
        use_tools = tools is not None and len(tools) > 0
        finish_reason = "stop"

        for step in range(max_steps):
            create_args = {
                "model": self.model,
                "messages": context,
                "stream": True,
            }
            if use_tools:
                create_args["tools"] = tools.get_schemas()
                # Final permitted step must produce an answer, not more tool calls
                create_args["tool_choice"] = "none" if step == max_steps - 1 else "auto"

            try:
                stream = await self.client.chat.completions.create(**create_args)
            except Exception as e:
                log.error(f"Error creating completion: {e}")
                raise UpstreamFailure(str(e)) from e

            text_parts: List[str] = []
            pending_calls: Dict[int, Dict[str, str]] = {}
            step_finish_reason = None
            text_id = f"txt-{step}"

            try:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    delta = choice.delta
                    if delta.content:
                        text_parts.append(delta.content)
                        yield {"type": "text-delta", "id": text_id, "delta": delta.content}
                    for fragment in delta.tool_calls or []:
                        call = pending_calls.setdefault(
                            fragment.index, {"id": "", "name": "", "arguments": ""}
                        )
                        if fragment.id:
                            call["id"] = fragment.id
                        if fragment.function is not None:
                            if fragment.function.name:
                                call["name"] += fragment.function.name
                            if fragment.function.arguments:
                                call["arguments"] += fragment.function.arguments
                    if choice.finish_reason:
                        step_finish_reason = choice.finish_reason
            except Exception as e:
                log.error(f"Completion stream failed: {e}")
                raise UpstreamFailure(str(e)) from e

            finish_reason = step_finish_reason or "stop"
            calls = [pending_calls[index] for index in sorted(pending_calls)]
            log.info(
                "Step finished",
                extra={
                    "structured": {
                        "log_type": "step_finished",
                        "step": step + 1,
                        "text_length": sum(len(p) for p in text_parts),
                        "tool_calls": len(calls),
                        "finish_reason": finish_reason,
                    }
                },
            )

            # Calls requested on the last permitted step are not executed
            if not calls or not use_tools or step == max_steps - 1:
                yield {"type": "finish-step", "finishReason": finish_reason}
                break

            for call in calls:
                if not call["id"]:
                    call["id"] = f"call_{uuid.uuid4().hex[:8]}"

            context.append(
                {
                    "role": "assistant",
                    "content": "".join(text_parts) or None,
                    "tool_calls": [
                        {
                            "id": call["id"],
                            "type": "function",
                            "function": {
                                "name": call["name"],
                                "arguments": call["arguments"],
                            },
                        }
                        for call in calls
                    ],
                }
            )

            for call in calls:
                self.log_item(
                    log,
                    "tool_call",
                    {
                        "tool_name": call["name"],
                        "arguments": call["arguments"],
                        "call_id": call["id"],
                    },
                )
                yield {
                    "type": "tool-input-available",
                    "toolCallId": call["id"],
                    "toolName": call["name"],
                    "input": _decode_arguments(call["arguments"]),
                }
                tool_result = await tools.execute_tool_call(
                    call["id"], call["name"], call["arguments"]
                )
                self.log_item(
                    log,
                    "tool_result",
                    {"tool_name": call["name"], "result": tool_result["output"]},
                )
                yield {
                    "type": "tool-output-available",
                    "toolCallId": call["id"],
                    "output": (
                        tool_result["result"]
                        if tool_result["result"] is not None
                        else tool_result["output"]
                    ),
                }
                context.append(
                    {
                        "role": "tool",
                        "tool_call_id": call["id"],
                        "content": tool_result["output"],
                    }
                )

            yield {"type": "finish-step", "finishReason": finish_reason}

        yield {"type": "finish", "finishReason": finish_reason}

