import logging
from typing import Annotated

from ..tool_registry import tool

logger = logging.getLogger(__name__)


class PodcastPlugin:
    """Plugin returning mock podcast episode data for testing tool calls."""

    @tool(name="getPodcastInfo")
    def get_podcast_info(
        self, query: Annotated[str, "Search query for podcast or episode"]
    ) -> dict:
        """Get information about a podcast or episode (mock data for testing)"""
        logger.info(f'Tool called: getPodcastInfo for "{query}"')
        return {
            "title": "Sample Podcast Episode",
            "host": "John Doe",
            "topic": query,
            "duration": "45 minutes",
            "summary": f"This episode discusses {query} in depth with industry experts.",
        }

    def hook_provide_tools(self):
        return [self.get_podcast_info]
