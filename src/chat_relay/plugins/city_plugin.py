import logging
from typing import Annotated

from ..tool_registry import tool

logger = logging.getLogger(__name__)

CITY_FACTS = {
    "paris": "The Eiffel Tower was built for the 1889 World's Fair and was meant to stand for only 20 years.",
    "new york": "New York City's subway system has 472 stations, more than any other system in the world.",
    "tokyo": "Greater Tokyo is the most populous metropolitan area in the world.",
    "london": "The London Underground, opened in 1863, is the oldest underground railway in the world.",
    "sydney": "The Sydney Opera House roof is made of over one million tiles.",
}


class CityPlugin:
    """Plugin with hard-coded city trivia."""

    @tool(name="getCityFact")
    def get_city_fact(self, city: Annotated[str, "The city name, e.g., \"Tokyo\""]) -> dict:
        """Get an interesting fact about a city"""
        logger.info(f"Tool called: getCityFact for {city}")
        fact = CITY_FACTS.get(city.strip().lower())
        if fact is None:
            return {
                "city": city,
                "known": False,
                "fact": f"No curated fact is available for {city}.",
            }
        return {"city": city, "known": True, "fact": fact}

    def hook_provide_tools(self):
        return [self.get_city_fact]
