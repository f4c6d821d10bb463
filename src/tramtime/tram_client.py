"""GTFS static archive and GTFS-Realtime feed fetcher."""

import logging
from typing import Optional

import requests

from .config import TramSettings
from .feed_decoder import DecodeError, FeedMessage, decode_feed
from .results import Failure, Result, Success

logger = logging.getLogger(__name__)


class TramClient:
    """Downloads the static GTFS archive and the real-time TripUpdate feed."""

    def __init__(self, settings: Optional[TramSettings] = None, session: Optional[requests.Session] = None):
        """
        Args:
            settings: Feed URLs and timeouts. Defaults to TramSettings().
            session: requests session to use, e.g. a mock in tests.
        """
        self.settings = settings or TramSettings()
        self.session = session or requests.Session()

    def _download(self, url: str) -> bytes:
        logger.debug(f"Fetching {url}")
        response = self.session.get(url, timeout=self.settings.timeout)
        response.raise_for_status()
        return response.content

    def fetch_archive(self) -> Result[bytes]:
        """Download the static GTFS zip archive."""
        url = self.settings.gtfs_url
        logger.info(f"Downloading GTFS data from {url}")
        try:
            return Success(self._download(url))
        except requests.RequestException as e:
            logger.error(f"Failed to download GTFS: {e}")
            return Failure(e)

    def fetch_feed(self) -> Result[bytes]:
        """Download the raw GTFS-RT feed bytes."""
        url = self.settings.gtfs_rt_url
        try:
            return Success(self._download(url))
        except requests.RequestException as e:
            logger.error(f"Failed to fetch GTFS-RT {url}: {e}")
            return Failure(e)

    def fetch_feed_message(self) -> Result[FeedMessage]:
        """Download and decode the GTFS-RT feed."""
        raw = self.fetch_feed()
        if not raw.ok:
            return raw

        try:
            return Success(decode_feed(raw.value))
        except DecodeError as e:
            logger.error(f"Error parsing GTFS-RT feed: {e}")
            return Failure(e)

    def close(self) -> None:
        self.session.close()
