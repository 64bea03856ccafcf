"""Feed source abstraction and the HTTP implementation."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional

import aiohttp

from icaowx.config import FetchConfig

logger = logging.getLogger(__name__)


class FeedTransportError(Exception):
    """Raised when a feed cannot be retrieved."""


class FeedSource(ABC):
    """Abstract base class for feed sources."""

    def __init__(self, url: str):
        self.url = url

    @abstractmethod
    async def fetch(self, last_updated: Optional[datetime]) -> Optional[str]:
        """
        Retrieve the feed body if it changed since last_updated.

        Args:
            last_updated: Time of the last successful fetch (aware, UTC),
                or None if the feed was never fetched

        Returns:
            The feed body, or None if the feed was not modified

        Raises:
            FeedTransportError: If the feed cannot be retrieved
        """
        pass


def parse_last_modified(value: str) -> datetime:
    """Parse an HTTP date (RFC 1123) into an aware datetime."""
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        parsed = None
    if parsed is None or parsed.tzinfo is None:
        raise FeedTransportError(f"Cannot parse Last-Modified: {value}")
    return parsed


class HttpFeedSource(FeedSource):
    """Feed retrieved over HTTP with a HEAD probe for freshness."""

    def __init__(self, url: str, config: Optional[FetchConfig] = None):
        super().__init__(url)
        self.config = config or FetchConfig()

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=self.config.total_timeout_seconds,
            connect=self.config.connect_timeout_seconds,
        )

    async def fetch(self, last_updated: Optional[datetime]) -> Optional[str]:
        headers = {"User-Agent": self.config.user_agent}
        try:
            async with aiohttp.ClientSession(timeout=self._timeout(), headers=headers) as session:
                async with session.head(self.url, allow_redirects=True) as head:
                    if head.status != 200:
                        raise FeedTransportError(f"HEAD request to {self.url} resulted in code {head.status}")
                    last_modified = head.headers.get("Last-Modified")

                if last_modified:
                    modified = parse_last_modified(last_modified)
                    if last_updated is not None and modified <= last_updated:
                        logger.debug(f"{self.url} last modified {modified}, not newer than {last_updated}")
                        return None

                async with session.get(self.url) as response:
                    if response.status != 200:
                        raise FeedTransportError(f"Request to {self.url} resulted in code {response.status}")
                    return await response.text(encoding="utf-8", errors="replace")
        except aiohttp.ClientError as e:
            raise FeedTransportError(f"Request to {self.url} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise FeedTransportError(f"Request to {self.url} timed out") from e
