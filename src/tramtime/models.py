"""Data models for the tram arrivals widget."""

from dataclasses import dataclass, field, replace
from typing import ClassVar, List, Optional


@dataclass
class Station:
    """Represents a tram station (parent stop or primary stop of a name group)."""
    id: str
    name: str
    lines: List[str] = field(default_factory=list)  # Line labels served at this station


@dataclass(frozen=True)
class TripInfo:
    """Static trip attributes from trips.txt."""
    route_id: str
    headsign: str
    short_name: str = ""  # e.g. "4a", "4b" for circular lines


@dataclass(frozen=True)
class TramArrival:
    """Represents a resolved real-time tram arrival."""
    line: str
    destination: str
    arrival_time: str  # Display string, e.g. "Now", "5 min"
    minutes_until_arrival: int


@dataclass(frozen=True)
class WidgetFilter:
    """
    Line and direction filter for a widget.

    When a field is set, only arrivals whose line (or destination) equals it are shown.
    """
    line: Optional[str] = None
    direction: Optional[str] = None

    NONE: ClassVar["WidgetFilter"]

    def is_active(self) -> bool:
        return self.line is not None or self.direction is not None

    def matches(self, arrival: TramArrival) -> bool:
        if self.line is not None and arrival.line != self.line:
            return False
        if self.direction is not None and arrival.destination != self.direction:
            return False
        return True


WidgetFilter.NONE = WidgetFilter(None, None)


@dataclass(frozen=True, order=True)
class LineDirection:
    """A line/destination pair offered in the filter selection."""
    line: str
    direction: str

    def __str__(self) -> str:
        return f"{self.line} → {self.direction}"


@dataclass(frozen=True)
class StopConfig:
    """One configured stop of a widget."""
    station_id: str
    station_name: str
    filter: WidgetFilter = WidgetFilter.NONE


@dataclass(frozen=True)
class WidgetConfig:
    """
    Multi-stop configuration of one widget.

    current_index is clamped into [0, len(stops) - 1], or 0 when there are no stops.
    """
    stops: List[StopConfig] = field(default_factory=list)
    current_index: int = 0

    def __post_init__(self):
        object.__setattr__(self, "stops", list(self.stops))
        object.__setattr__(self, "current_index", self._clamp(self.current_index))

    def _clamp(self, index: int) -> int:
        if not self.stops:
            return 0
        return max(0, min(index, len(self.stops) - 1))

    @property
    def current_stop(self) -> Optional[StopConfig]:
        if not self.stops:
            return None
        return self.stops[self.current_index]

    def next_index(self) -> int:
        if not self.stops:
            return 0
        return (self.current_index + 1) % len(self.stops)

    def prev_index(self) -> int:
        if not self.stops:
            return 0
        return (self.current_index - 1 + len(self.stops)) % len(self.stops)

    def with_index(self, index: int) -> "WidgetConfig":
        return replace(self, current_index=self._clamp(index))

    def with_stop(self, stop: StopConfig) -> "WidgetConfig":
        # An empty config has index 0 already, which is valid for the first stop
        return WidgetConfig(stops=self.stops + [stop], current_index=self.current_index)
