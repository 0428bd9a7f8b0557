from __future__ import annotations

import random

import pytest

from chat_relay.plugins.city_plugin import CityPlugin
from chat_relay.plugins.podcast_plugin import PodcastPlugin
from chat_relay.plugins.weather_plugin import WeatherPlugin
from chat_relay.tool_registry import ToolRegistry


@pytest.mark.parametrize("seed", range(25))
def test_weather_readings_conform_to_schema(seed):
    result = WeatherPlugin(rng=random.Random(seed)).get_weather("Paris")

    assert result["location"] == "Paris"
    assert isinstance(result["temperature"], int)
    assert 10 <= result["temperature"] <= 29
    assert result["condition"] in {"sunny", "cloudy", "rainy"}
    assert 40 <= result["humidity"] <= 79


@pytest.mark.asyncio
async def test_weather_through_registry_by_tool_name():
    registry = ToolRegistry.from_plugins([WeatherPlugin()])

    result = await registry.execute_tool("getWeather", {"location": "Paris"})

    assert 10 <= result["temperature"] <= 29
    assert result["condition"] in {"sunny", "cloudy", "rainy"}


def test_podcast_info_echoes_query():
    result = PodcastPlugin().get_podcast_info("productivity")

    assert result["topic"] == "productivity"
    assert result["title"] == "Sample Podcast Episode"
    assert "productivity" in result["summary"]
    assert set(result) == {"title", "host", "topic", "duration", "summary"}


def test_city_fact_is_case_insensitive():
    result = CityPlugin().get_city_fact("  TOKYO ")

    assert result["known"] is True
    assert "Tokyo" in result["fact"]


def test_unknown_city_falls_back_without_raising():
    result = CityPlugin().get_city_fact("Atlantis")

    assert result == {
        "city": "Atlantis",
        "known": False,
        "fact": "No curated fact is available for Atlantis.",
    }
