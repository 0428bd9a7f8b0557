from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from chat_relay.app import create_app
from chat_relay.config import Settings


# ─── Fake OpenAI streaming client ─────────────────────────────────────────────

def text_chunk(content: str, finish_reason: str | None = None):
    delta = SimpleNamespace(content=content, tool_calls=None)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


def tool_call_chunk(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
):
    fragment = SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )
    delta = SimpleNamespace(content=None, tool_calls=[fragment])
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=None)])


def finish_chunk(reason: str = "stop"):
    delta = SimpleNamespace(content=None, tool_calls=None)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=reason)])


class FakeStream:
    def __init__(self, chunks: list, error: Exception | None = None) -> None:
        self._chunks = list(chunks)
        self._error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error


class FakeCompletions:
    """Returns one preset stream per ``create`` call and records the arguments."""

    def __init__(self, steps: list, error: Exception | None = None) -> None:
        self._steps = list(steps)
        self._error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append({**kwargs, "messages": list(kwargs["messages"])})
        if self._error is not None:
            raise self._error
        step = self._steps[min(len(self.calls), len(self._steps)) - 1]
        if isinstance(step, FakeStream):
            return step
        return FakeStream(step)


class FakeOpenAI:
    def __init__(self, steps: list, error: Exception | None = None) -> None:
        self.completions = FakeCompletions(steps, error)
        self.chat = SimpleNamespace(completions=self.completions)


# ─── Fake gateway for handler tests ───────────────────────────────────────────

class FakeGateway:
    def __init__(
        self,
        events: list[dict] | None = None,
        error: Exception | None = None,
        error_after: int | None = None,
    ) -> None:
        self.events = events if events is not None else []
        self.error = error
        self.error_after = error_after
        self.calls: list[dict] = []

    async def stream_text(self, messages, system_prompt, tools=None, max_steps=1, request_id=None):
        self.calls.append(
            {
                "messages": messages,
                "system_prompt": system_prompt,
                "tools": tools,
                "max_steps": max_steps,
            }
        )
        for index, event in enumerate(self.events):
            if self.error is not None and self.error_after == index:
                raise self.error
            yield event
        if self.error is not None and (self.error_after is None or self.error_after >= len(self.events)):
            raise self.error


def delta_events(*deltas: str) -> list[dict]:
    events = [{"type": "text-delta", "id": "txt-0", "delta": d} for d in deltas]
    events.append({"type": "finish-step", "finishReason": "stop"})
    events.append({"type": "finish", "finishReason": "stop"})
    return events


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def make_client(settings):
    def _make(gateway) -> TestClient:
        return TestClient(create_app(settings=settings, gateway=gateway))

    return _make
