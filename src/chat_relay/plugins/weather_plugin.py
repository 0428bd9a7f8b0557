import logging
import random
from typing import Annotated

from ..tool_registry import tool

logger = logging.getLogger(__name__)


class WeatherPlugin:
    """Plugin providing mock weather lookups."""

    CONDITIONS = ("sunny", "cloudy", "rainy")

    def __init__(self, rng: random.Random | None = None):
        """Initialize the weather plugin.

        Parameters
        ----------
        rng : random.Random, optional
            Source of randomness for the mock readings (default: a fresh Random)
        """
        self.rng = rng or random.Random()

    @tool(name="getWeather")
    def get_weather(
        self,
        location: Annotated[str, 'The city name, e.g., "Paris" or "New York"'],
    ) -> dict:
        """Get the current weather for a location"""
        logger.info(f"Tool called: getWeather for {location}")
        return {
            "location": location,
            "temperature": self.rng.randint(10, 29),  # Celsius
            "condition": self.rng.choice(self.CONDITIONS),
            "humidity": self.rng.randint(40, 79),  # percent
        }

    def hook_provide_tools(self):
        """Return tools this plugin provides for auto-registration."""
        return [self.get_weather]
