"""Runtime settings for the tram arrivals core."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# Montpellier TAM GTFS static data (urban network)
GTFS_URL = "https://data.montpellier3m.fr/GTFS/Urbain/GTFS.zip"

# GTFS-RT TripUpdate feed (urban network)
GTFS_RT_URL = "https://data.montpellier3m.fr/GTFS/Urbain/TripUpdate.pb"

CONNECT_TIMEOUT = 30.0
READ_TIMEOUT = 30.0
MAX_RESULTS = 6
WINDOW_MINUTES = 90


@dataclass(frozen=True)
class TramSettings:
    """Feed locations, network timeouts and result limits."""
    gtfs_url: str = GTFS_URL
    gtfs_rt_url: str = GTFS_RT_URL
    connect_timeout: float = CONNECT_TIMEOUT
    read_timeout: float = READ_TIMEOUT
    max_results: int = MAX_RESULTS
    window_minutes: int = WINDOW_MINUTES

    @property
    def timeout(self):
        """(connect, read) tuple as accepted by requests."""
        return (self.connect_timeout, self.read_timeout)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TramSettings":
        """
        Build settings from TRAMTIME_* environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ

        def number(name: str, default: float, cast=float):
            raw = env.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {name}: {raw!r}") from None

        return cls(
            gtfs_url=env.get("TRAMTIME_GTFS_URL", GTFS_URL),
            gtfs_rt_url=env.get("TRAMTIME_GTFS_RT_URL", GTFS_RT_URL),
            connect_timeout=number("TRAMTIME_CONNECT_TIMEOUT", CONNECT_TIMEOUT),
            read_timeout=number("TRAMTIME_READ_TIMEOUT", READ_TIMEOUT),
            max_results=number("TRAMTIME_MAX_RESULTS", MAX_RESULTS, int),
            window_minutes=number("TRAMTIME_WINDOW_MINUTES", WINDOW_MINUTES, int),
        )
