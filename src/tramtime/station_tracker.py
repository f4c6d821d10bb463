"""Main tram station tracker: joins real-time trip updates with static GTFS data."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Set

from .config import TramSettings
from .feed_decoder import FeedMessage
from .gtfs_loader import GTFSLoader, StaticDataCache, StaticTables
from .models import LineDirection, Station, TramArrival, TripInfo, WidgetFilter
from .results import Failure, Result, Success
from .time_utils import format_display_time, minutes_until, now_epoch
from .tram_client import TramClient

logger = logging.getLogger(__name__)

NO_DESTINATION = "---"
UNKNOWN_STATION = "Unknown Station"

# Used when the GTFS archive cannot be downloaded
FALLBACK_STATIONS = [
    Station("S5902", "École de Chimie", ["T1"]),
    Station("S5997", "Pôle Chimie Balard", ["T1"]),
    Station("S1190", "Mosson", ["T1"]),
    Station("S1241", "Odysseum", ["T1"]),
    Station("S1206", "Gare Saint-Roch", ["T1", "T2", "T4"]),
    Station("S1199", "Corum", ["T1", "T2"]),
    Station("S1201", "Place de l'Europe", ["T1"]),
    Station("S1203", "Antigone", ["T1"]),
    Station("S1198", "Comédie", ["T1", "T2", "T3", "T4"]),
    Station("S1196", "Peyrou - Arc de Triomphe", ["T1"]),
]

# Shown when no real-time data is available
MOCK_ARRIVALS = [
    TramArrival("T1", "Odysseum", "2 min", 2),
    TramArrival("T1", "Mosson", "5 min", 5),
    TramArrival("T2", "Saint-Jean-de-Védas", "8 min", 8),
    TramArrival("T1", "Odysseum", "12 min", 12),
]


class ArrivalSource(Enum):
    REALTIME = "realtime"
    MOCK = "mock"


@dataclass(frozen=True)
class ArrivalsResult:
    """Arrivals for a station and whether they came from the live feed."""
    arrivals: List[TramArrival]
    source: ArrivalSource

    @property
    def is_realtime(self) -> bool:
        return self.source is ArrivalSource.REALTIME


def line_label(trip: TripInfo, tables: StaticTables) -> str:
    """Trip short name (upper-cased) if set, else the route short name, else the route id."""
    if trip.short_name:
        return trip.short_name.upper()
    return tables.route_name(trip.route_id)


def resolve_arrivals(
    feed: FeedMessage,
    tables: StaticTables,
    station_id: str,
    now: int,
    window_minutes: int = 90,
) -> List[TramArrival]:
    """
    Join decoded trip updates against static tables for one station.

    Args:
        feed: Decoded GTFS-RT feed.
        tables: Static GTFS indices.
        station_id: Station or child stop id.
        now: Current Unix time in seconds.
        window_minutes: Upper bound of the minutes-until-arrival window.

    Returns:
        Arrivals within [0, window_minutes] sorted by minutes until arrival.
        Ties keep feed order.
    """
    relevant_stop_ids = tables.relevant_stop_ids(station_id)
    logger.debug(
        f"Station {station_id} (primary: {tables.primary_id(station_id)}): "
        f"looking for stop_ids {sorted(relevant_stop_ids)}"
    )

    arrivals: List[TramArrival] = []
    for entity in feed.entities:
        trip_update = entity.trip_update
        if trip_update is None:
            continue

        trip = tables.trips.get(trip_update.trip.trip_id)
        if trip is None:
            continue

        line = line_label(trip, tables)
        destination = trip.headsign or NO_DESTINATION

        for stop_time_update in trip_update.stop_time_updates:
            if stop_time_update.stop_id not in relevant_stop_ids:
                continue

            event_time = stop_time_update.event_time
            if event_time is None:
                continue

            minutes = minutes_until(event_time, now)
            if 0 <= minutes <= window_minutes:
                arrivals.append(TramArrival(
                    line=line,
                    destination=destination,
                    arrival_time=format_display_time(minutes),
                    minutes_until_arrival=minutes,
                ))

    arrivals.sort(key=lambda a: a.minutes_until_arrival)
    logger.debug(f"Found {len(arrivals)} arrivals for station {station_id}")
    return arrivals


def apply_filter(arrivals: List[TramArrival], widget_filter: WidgetFilter, limit: int = 6) -> List[TramArrival]:
    """Keep arrivals matching an active filter, then truncate to limit."""
    if widget_filter.is_active():
        arrivals = [a for a in arrivals if widget_filter.matches(a)]
    return arrivals[:limit]


def available_lines(arrivals: List[TramArrival]) -> List[LineDirection]:
    """Distinct (line, destination) pairs sorted by line then destination."""
    return sorted({LineDirection(a.line, a.destination) for a in arrivals})


class TramStationTracker:
    """
    Resolves real-time tram arrivals for stations.

    This class provides methods to:
    - List stations (static GTFS, or a fallback list)
    - Get upcoming arrivals at a station, with mock data when live data is unavailable
    - Apply a widget's line/direction filter
    - List the lines and directions currently serving a station
    """

    def __init__(
        self,
        settings: Optional[TramSettings] = None,
        client: Optional[TramClient] = None,
        cache: Optional[StaticDataCache] = None,
        clock: Callable[[], int] = now_epoch,
    ):
        """
        Args:
            settings: Feed URLs, timeouts and limits.
            client: Fetcher for the archive and feed.
            cache: Static data cache; shared between trackers to load once per process.
            clock: Returns the current Unix time in seconds.
        """
        self.settings = settings or TramSettings()
        self.client = client or TramClient(self.settings)
        self.cache = cache or StaticDataCache(GTFSLoader(self.client).load_from_url)
        self.clock = clock

    def get_stations(self) -> List[Station]:
        """Stations from static GTFS data, or FALLBACK_STATIONS if it cannot be loaded."""
        result = self.cache.ensure_loaded()
        if result.ok:
            return result.value.stations
        logger.warning("Using fallback station list")
        return list(FALLBACK_STATIONS)

    def get_station_name(self, station_id: str) -> str:
        for station in self.get_stations():
            if station.id == station_id:
                return station.name
        return UNKNOWN_STATION

    def get_relevant_stop_ids(self, station_id: str) -> Set[str]:
        """Stop ids whose arrivals count for this station (the primary id and its children)."""
        loaded = self.cache.ensure_loaded()
        if not loaded.ok:
            return {station_id}
        return loaded.value.relevant_stop_ids(station_id)

    def fetch_realtime_arrivals(self, station_id: str) -> Result[List[TramArrival]]:
        """Fetch the live feed and resolve arrivals. Does not fall back."""
        loaded = self.cache.ensure_loaded()
        if not loaded.ok:
            return loaded

        feed = self.client.fetch_feed_message()
        if not feed.ok:
            return feed

        arrivals = resolve_arrivals(
            feed.value,
            loaded.value,
            station_id,
            now=self.clock(),
            window_minutes=self.settings.window_minutes,
        )
        return Success(arrivals)

    def get_tram_arrivals(self, station_id: str) -> ArrivalsResult:
        """
        Get upcoming arrivals for a station.

        Falls back to MOCK_ARRIVALS when the feed cannot be fetched or decoded,
        or when it yields no arrivals for the station.
        """
        result = self.fetch_realtime_arrivals(station_id)
        if isinstance(result, Success) and result.value:
            return ArrivalsResult(result.value, ArrivalSource.REALTIME)

        if isinstance(result, Failure):
            logger.warning(f"Error fetching real-time data for {station_id}: {result.message}")
        else:
            logger.warning(f"No real-time arrivals for {station_id}")
        return ArrivalsResult(list(MOCK_ARRIVALS), ArrivalSource.MOCK)

    def get_filtered_arrivals(self, station_id: str, widget_filter: WidgetFilter = WidgetFilter.NONE) -> ArrivalsResult:
        """Arrivals for a widget: filter applied if active, limited to max_results."""
        result = self.get_tram_arrivals(station_id)
        arrivals = apply_filter(result.arrivals, widget_filter, self.settings.max_results)
        logger.debug(
            f"get_filtered_arrivals: {len(result.arrivals)} arrivals, "
            f"filter active: {widget_filter.is_active()}, returning {len(arrivals)}"
        )
        return ArrivalsResult(arrivals, result.source)

    def get_available_lines(self, station_id: str) -> List[LineDirection]:
        """Line/direction pairs currently present in the live feed; empty on failure."""
        result = self.fetch_realtime_arrivals(station_id)
        if not result.ok:
            logger.error(f"Error getting available lines: {result.message}")
            return []
        return available_lines(result.value)

    def cleanup(self) -> None:
        """Release the HTTP session."""
        self.client.close()
        logger.info("Cleaned up tracker resources")
