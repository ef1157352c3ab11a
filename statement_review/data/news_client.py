"""
News feed REST client.

Reads high-impact economic calendar events from the back-office API.
"""

import logging
from typing import Any, List

import requests

from ..errors import NewsFeedError
from ..models.news import NewsEvent

logger = logging.getLogger(__name__)


def _event_rows(payload: Any) -> List[dict]:
    """Find the event list in a feed payload: a list, nested list or wrapper object."""
    if payload is None:
        return []
    if isinstance(payload, dict):
        for value in payload.values():
            if isinstance(value, list):
                return _event_rows(value)
        return []
    if isinstance(payload, list):
        rows = []
        for item in payload:
            if isinstance(item, list):
                rows.extend(_event_rows(item))
            elif isinstance(item, dict):
                rows.append(item)
        return rows
    raise NewsFeedError(f"Unexpected news payload type: {type(payload).__name__}")


class NewsClient:
    """Reads high-impact news events from the news API."""

    def __init__(self, base_url: str = "http://localhost:3000", timeout: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def get_high_impact_news(self) -> List[NewsEvent]:
        """Get every high-impact event in the feed."""
        try:
            resp = requests.get(f"{self._base_url}/news", timeout=self._timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            logger.warning(f"Failed to get news from {self._base_url}: {e}")
            raise NewsFeedError(f"News feed unavailable: {e}") from e
        except ValueError as e:
            logger.warning(f"News feed returned invalid JSON: {e}")
            raise NewsFeedError(f"News feed returned invalid JSON: {e}") from e

        events = [NewsEvent.from_dict(row) for row in _event_rows(payload)]
        logger.debug(f"Loaded {len(events)} news events")
        return events
