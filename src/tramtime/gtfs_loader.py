"""GTFS static data loader for the tram network."""

import io
import logging
import os
import threading
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from .models import Station, TripInfo
from .results import Failure, Result, Success

logger = logging.getLogger(__name__)

STOPS_FILE = "stops.txt"
ROUTES_FILE = "routes.txt"
TRIPS_FILE = "trips.txt"


def normalize_data(data: str) -> str:
    """Strip a UTF-8 BOM and normalize CRLF / CR line endings to LF."""
    if data.startswith("\ufeff"):
        data = data[1:]
    return data.replace("\r\n", "\n").replace("\r", "\n")


def parse_csv_line(line: str) -> List[str]:
    """
    Split one CSV line on commas that are not inside double quotes.

    Quote characters toggle the quoted state and are not kept; fields are trimmed.
    """
    result = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            result.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    result.append("".join(current).strip())
    return result


def _read_table(data: str) -> Tuple[Dict[str, int], List[List[str]]]:
    """Return a lower-cased header -> column index map and the non-blank data rows."""
    lines = normalize_data(data).split("\n")
    if not lines or not lines[0].strip():
        return {}, []

    columns = {}
    for index, name in enumerate(parse_csv_line(lines[0])):
        columns.setdefault(name.lower(), index)

    rows = [parse_csv_line(line) for line in lines[1:] if line.strip()]
    return columns, rows


def _value(values: List[str], index: Optional[int]) -> str:
    if index is None or index >= len(values):
        return ""
    return values[index]


def parse_routes(data: str) -> Dict[str, str]:
    """Parse routes.txt into route_id -> route_short_name."""
    columns, rows = _read_table(data)
    route_id_idx = columns.get("route_id")
    short_name_idx = columns.get("route_short_name")
    if route_id_idx is None or short_name_idx is None:
        logger.warning("routes.txt lacks route_id/route_short_name, skipping")
        return {}

    routes = {}
    for values in rows:
        route_id = _value(values, route_id_idx)
        short_name = _value(values, short_name_idx)
        if route_id and short_name:
            routes[route_id] = short_name
    return routes


def parse_trips(data: str) -> Dict[str, TripInfo]:
    """Parse trips.txt into trip_id -> TripInfo."""
    columns, rows = _read_table(data)
    trip_id_idx = columns.get("trip_id")
    route_id_idx = columns.get("route_id")
    if trip_id_idx is None or route_id_idx is None:
        logger.warning("trips.txt lacks trip_id/route_id, skipping")
        return {}

    headsign_idx = columns.get("trip_headsign")
    short_name_idx = columns.get("trip_short_name")

    trips = {}
    for values in rows:
        trip_id = _value(values, trip_id_idx)
        route_id = _value(values, route_id_idx)
        if trip_id and route_id:
            trips[trip_id] = TripInfo(
                route_id=route_id,
                headsign=_value(values, headsign_idx),
                short_name=_value(values, short_name_idx),
            )
    return trips


def parse_stops(data: str) -> Tuple[List[Station], Dict[str, str]]:
    """
    Parse stops.txt into stations and a child stop -> parent station map.

    If any row is a parent station (location_type 1), parent stations become
    the stations and rows naming a parent_station are recorded as children.
    Otherwise stops are grouped by exact name: the first stop_id of each name
    becomes the station and the other stop_ids of that name map to it.
    """
    columns, rows = _read_table(data)
    stop_id_idx = columns.get("stop_id")
    stop_name_idx = columns.get("stop_name")
    if stop_id_idx is None or stop_name_idx is None:
        logger.warning("stops.txt lacks stop_id/stop_name, skipping")
        return [], {}

    location_type_idx = columns.get("location_type")
    parent_station_idx = columns.get("parent_station")
    min_size = max(stop_id_idx, stop_name_idx) + 1

    stations: List[Station] = []
    child_to_parent: Dict[str, str] = {}
    stops_by_name: Dict[str, List[str]] = {}

    for values in rows:
        if len(values) < min_size:
            continue
        stop_id = values[stop_id_idx]
        stop_name = values[stop_name_idx]
        if not stop_id or not stop_name:
            continue

        stops_by_name.setdefault(stop_name, []).append(stop_id)

        if _value(values, location_type_idx) == "1":
            stations.append(Station(id=stop_id, name=stop_name))
        else:
            parent_station = _value(values, parent_station_idx)
            if parent_station:
                child_to_parent[stop_id] = parent_station

    if not stations:
        logger.debug(f"Using flat structure - grouping {len(stops_by_name)} station names")
        child_to_parent = {}
        for name, stop_ids in stops_by_name.items():
            primary_stop_id = stop_ids[0]
            stations.append(Station(id=primary_stop_id, name=name))
            for stop_id in stop_ids[1:]:
                child_to_parent[stop_id] = primary_stop_id

    return stations, child_to_parent


def _distinct_sorted(stations: List[Station]) -> List[Station]:
    seen: Set[str] = set()
    unique = []
    for station in stations:
        if station.name not in seen:
            seen.add(station.name)
            unique.append(station)
    return sorted(unique, key=lambda s: s.name)


@dataclass
class StaticTables:
    """Indexed static GTFS data needed to resolve real-time arrivals."""
    stations: List[Station] = field(default_factory=list)
    child_to_parent: Dict[str, str] = field(default_factory=dict)
    route_names: Dict[str, str] = field(default_factory=dict)
    trips: Dict[str, TripInfo] = field(default_factory=dict)
    parent_to_children: Dict[str, Set[str]] = field(init=False, repr=False)

    def __post_init__(self):
        self.parent_to_children = {}
        for child_id, parent_id in self.child_to_parent.items():
            self.parent_to_children.setdefault(parent_id, set()).add(child_id)

    def primary_id(self, stop_id: str) -> str:
        return self.child_to_parent.get(stop_id, stop_id)

    def relevant_stop_ids(self, stop_id: str) -> Set[str]:
        """The primary station id plus every stop id mapped to it."""
        primary_id = self.primary_id(stop_id)
        return {primary_id} | self.parent_to_children.get(primary_id, set())

    def route_name(self, route_id: str) -> str:
        return self.route_names.get(route_id, route_id)


class GTFSLoader:
    """Builds StaticTables from a GTFS archive or local files."""

    def __init__(self, client=None):
        """
        Args:
            client: TramClient used by load_from_url(). Not needed for local loading.
        """
        self.client = client

    @staticmethod
    def from_texts(stops: Optional[str], routes: Optional[str], trips: Optional[str]) -> StaticTables:
        """Build tables from the raw text of the three files; a missing file yields an empty table."""
        route_names = parse_routes(routes) if routes is not None else {}
        logger.debug(f"Parsed {len(route_names)} routes")
        trip_infos = parse_trips(trips) if trips is not None else {}
        logger.debug(f"Parsed {len(trip_infos)} trips")
        stations, child_to_parent = parse_stops(stops) if stops is not None else ([], {})
        logger.debug(f"Parsed {len(stations)} stations, {len(child_to_parent)} child stops")

        return StaticTables(
            stations=_distinct_sorted(stations),
            child_to_parent=child_to_parent,
            route_names=route_names,
            trips=trip_infos,
        )

    def load_from_zip_bytes(self, data: bytes) -> StaticTables:
        """
        Parse a GTFS zip archive held in memory.

        Raises:
            zipfile.BadZipFile: If the archive is corrupt.
            zlib.error: If a member's compressed data is corrupt.
        """
        texts: Dict[str, str] = {}
        with zipfile.ZipFile(io.BytesIO(data)) as zip_file:
            for name in zip_file.namelist():
                base = os.path.basename(name).lower()
                if base in (STOPS_FILE, ROUTES_FILE, TRIPS_FILE):
                    texts[base] = zip_file.read(name).decode("utf-8", errors="replace")

        for wanted in (STOPS_FILE, ROUTES_FILE, TRIPS_FILE):
            if wanted not in texts:
                logger.warning(f"{wanted} missing from GTFS archive")

        tables = self.from_texts(texts.get(STOPS_FILE), texts.get(ROUTES_FILE), texts.get(TRIPS_FILE))
        logger.info(f"Loaded {len(tables.stations)} stations and {len(tables.route_names)} routes")
        return tables

    def load_from_url(self) -> Result[StaticTables]:
        """Download and parse the GTFS archive."""
        if self.client is None:
            return Failure(RuntimeError("No client configured for GTFS download"))

        archive = self.client.fetch_archive()
        if not archive.ok:
            return archive

        try:
            return Success(self.load_from_zip_bytes(archive.value))
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError, ValueError) as e:
            logger.error(f"Failed to parse GTFS archive: {e}")
            return Failure(e)

    def load_from_files(self, stops_path: str, routes_path: str, trips_path: str) -> StaticTables:
        """Load GTFS data from local CSV files."""
        logger.info("Loading GTFS data from local files")
        with open(stops_path, "r", encoding="utf-8") as f:
            stops = f.read()
        with open(routes_path, "r", encoding="utf-8") as f:
            routes = f.read()
        with open(trips_path, "r", encoding="utf-8") as f:
            trips = f.read()
        tables = self.from_texts(stops, routes, trips)
        logger.info(f"Loaded {len(tables.stations)} stations and {len(tables.route_names)} routes")
        return tables


class StaticDataCache:
    """
    Load-once holder for StaticTables.

    Only a successful load is kept. Concurrent first callers may each run the
    loader; the lock guards publishing the result, not the download.
    """

    def __init__(self, load: Callable[[], Result[StaticTables]]):
        self._load = load
        self._lock = threading.Lock()
        self._tables: Optional[StaticTables] = None

    @property
    def loaded(self) -> bool:
        return self._tables is not None

    @property
    def tables(self) -> Optional[StaticTables]:
        return self._tables

    def ensure_loaded(self) -> Result[StaticTables]:
        tables = self._tables
        if tables is not None:
            return Success(tables)

        result = self._load()
        if not result.ok:
            logger.error(f"Error loading GTFS data: {result.message}")
            return result

        with self._lock:
            if self._tables is None:
                self._tables = result.value
                logger.info("GTFS data fully loaded")
            return Success(self._tables)

    def set(self, tables: StaticTables) -> None:
        """Install preloaded tables (e.g. from local files)."""
        with self._lock:
            self._tables = tables

    def clear(self) -> None:
        """Drop cached tables so the next call reloads."""
        with self._lock:
            self._tables = None
        logger.info("Cleared GTFS data from memory")
