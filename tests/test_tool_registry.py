from __future__ import annotations

from typing import Annotated

import pytest

from chat_relay.errors import ToolArgumentError
from chat_relay.plugins.city_plugin import CityPlugin
from chat_relay.plugins.podcast_plugin import PodcastPlugin
from chat_relay.plugins.weather_plugin import WeatherPlugin
from chat_relay.tool_registry import ToolRegistry, callable_to_tool_schema, tool


def add(a: int, b: int = 0) -> int:
    """Add two numbers.

    Longer explanation that should not end up in the schema.
    """
    return a + b


async def shout(text: Annotated[str, "Text to upper-case"]) -> str:
    return text.upper()


def test_schema_from_signature():
    schema = callable_to_tool_schema(add, "add")

    assert schema["type"] == "function"
    function = schema["function"]
    assert function["name"] == "add"
    assert function["description"] == "Add two numbers."
    assert function["parameters"]["properties"] == {
        "a": {"type": "integer", "description": "The a parameter"},
        "b": {"type": "integer", "description": "The b parameter"},
    }
    assert function["parameters"]["required"] == ["a"]
    assert function["parameters"]["additionalProperties"] is False


def test_annotated_description_and_missing_docstring():
    function = callable_to_tool_schema(shout, "shout")["function"]

    assert function["description"] == "Execute shout"
    assert function["parameters"]["properties"]["text"] == {
        "type": "string",
        "description": "Text to upper-case",
    }


def test_tool_decorator_names_plugin_methods():
    registry = ToolRegistry.from_plugins([WeatherPlugin(), PodcastPlugin(), CityPlugin()])

    assert registry.get_tool_names() == ["getWeather", "getPodcastInfo", "getCityFact"]
    weather = registry.schemas["getWeather"]["function"]
    assert weather["description"] == "Get the current weather for a location"
    assert weather["parameters"]["required"] == ["location"]
    assert "self" not in weather["parameters"]["properties"]
    assert "Paris" in weather["parameters"]["properties"]["location"]["description"]


def test_register_callable_overrides():
    @tool(name="plus", description="Adds")
    def plus(a: int, b: int) -> int:
        return a + b

    registry = ToolRegistry()
    registry.register_callable(plus)
    registry.register_callable(add, name="addition", description="Sum")

    assert registry.has_tool("plus")
    assert registry.schemas["plus"]["function"]["description"] == "Adds"
    assert registry.schemas["addition"]["function"]["description"] == "Sum"
    assert len(registry) == 2
    assert len(registry.get_schemas()) == 2

    registry.clear()
    assert len(registry) == 0
    assert registry.get_schemas() == []


@pytest.mark.parametrize(
    "args, message",
    [
        ({}, "'a' is a required property"),
        ({"a": 1, "c": 2}, r"\('c' was unexpected\)"),
        ({"a": "1"}, "'1' is not of type 'integer'"),
        ({"a": True}, "True is not of type 'integer'"),
        (["a"], "is not of type 'object'"),
    ],
)
def test_validate_arguments_rejects_malformed_input(args, message):
    registry = ToolRegistry()
    registry.register_callable(add)

    with pytest.raises(ToolArgumentError, match=message):
        registry.validate_arguments("add", args)


@pytest.mark.asyncio
async def test_execute_sync_and_async_tools():
    registry = ToolRegistry()
    registry.register_callable(add)
    registry.register_callable(shout)

    assert await registry.execute_tool("add", {"a": 2, "b": 3}) == 5
    assert await registry.execute_tool("shout", {"text": "hi"}) == "HI"


@pytest.mark.asyncio
async def test_execute_unknown_tool_raises_key_error():
    with pytest.raises(KeyError):
        await ToolRegistry().execute_tool("missing", {})


@pytest.mark.asyncio
async def test_execute_tool_call_serializes_result():
    registry = ToolRegistry()
    registry.register_callable(add)

    result = await registry.execute_tool_call("call_1", "add", '{"a": 2, "b": 3}')

    assert result == {
        "call_id": "call_1",
        "name": "add",
        "arguments": {"a": 2, "b": 3},
        "result": 5,
        "output": "5",
    }


@pytest.mark.asyncio
async def test_execute_tool_call_reports_errors_as_output():
    def boom() -> str:
        raise RuntimeError("exploded")

    registry = ToolRegistry()
    registry.register_callable(add)
    registry.register_callable(boom)

    bad_json = await registry.execute_tool_call("c1", "add", "{oops")
    invalid = await registry.execute_tool_call("c2", "add", '{"b": 1}')
    failing = await registry.execute_tool_call("c3", "boom", "")
    unknown = await registry.execute_tool_call("c4", "nope", "{}")

    assert bad_json["output"].startswith("Error parsing arguments:")
    assert invalid["output"] == "Error: Invalid arguments for add: 'a' is a required property"
    assert failing["output"] == "Error: exploded"
    assert unknown["output"].startswith("Error:")
    assert all(r["result"] is None for r in (bad_json, invalid, failing, unknown))
