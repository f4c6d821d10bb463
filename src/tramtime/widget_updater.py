"""Widget refresh orchestration: config -> arrivals -> rendered view."""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List

from .models import StopConfig, TramArrival
from .station_tracker import TramStationTracker
from .widget_config import WidgetConfigStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WidgetView:
    """Text content of the four widget fields."""
    station_name: str
    next_tram: str = ""
    time_text: str = ""
    next_tram_2: str = ""


LOADING_VIEW = WidgetView(station_name="Loading...")
UNCONFIGURED_VIEW = WidgetView(station_name="Tap to configure")
ERROR_VIEW = WidgetView(station_name="Error", next_tram="Tap to retry", time_text="--")

Renderer = Callable[[int, WidgetView], None]


def _describe(arrival: TramArrival) -> str:
    return f"{arrival.line} → {arrival.destination}"


def build_view(stop: StopConfig, arrivals: List[TramArrival], position: str = "") -> WidgetView:
    """
    Compose the widget text for a stop.

    The first arrival fills the next-tram line; the time line shows up to two
    arrival times; the second line names the second arrival only if it differs
    from the first in line or destination.
    """
    widget_filter = stop.filter
    display_name = stop.station_name
    if widget_filter.is_active():
        display_name = f"{display_name} ({widget_filter.line or widget_filter.direction})"
    if position:
        display_name = f"{display_name} {position}"

    if not arrivals:
        if widget_filter.line:
            no_data = f"No {widget_filter.line} trams scheduled"
        else:
            no_data = "No trams scheduled"
        return WidgetView(station_name=display_name, next_tram=no_data, time_text="--")

    first = arrivals[0]
    if len(arrivals) == 1:
        return WidgetView(station_name=display_name, next_tram=_describe(first), time_text=first.arrival_time)

    second = arrivals[1]
    same_service = second.line == first.line and second.destination == first.destination
    return WidgetView(
        station_name=display_name,
        next_tram=_describe(first),
        time_text=f"{first.arrival_time} | {second.arrival_time}",
        next_tram_2="" if same_service else _describe(second),
    )


class WidgetUpdater:
    """
    Refreshes widgets. Triggers (scheduler, taps, config saves) may call in
    concurrently; whichever refresh renders last wins.
    """

    def __init__(self, tracker: TramStationTracker, config_store: WidgetConfigStore, renderer: Renderer):
        self.tracker = tracker
        self.config_store = config_store
        self.renderer = renderer

    def refresh(self, widget_id: int) -> WidgetView:
        """Fetch arrivals for the widget's current stop and render them."""
        try:
            view = self._compose(widget_id)
        except Exception as e:
            logger.error(f"Error refreshing widget {widget_id}: {e}", exc_info=True)
            view = ERROR_VIEW
        self.renderer(widget_id, view)
        return view

    def _compose(self, widget_id: int) -> WidgetView:
        config = self.config_store.get_widget_config(widget_id)
        stop = config.current_stop
        if stop is None:
            return UNCONFIGURED_VIEW

        self.renderer(widget_id, LOADING_VIEW)
        result = self.tracker.get_filtered_arrivals(stop.station_id, stop.filter)
        logger.debug(
            f"Got {len(result.arrivals)} {result.source.value} arrivals "
            f"for widget {widget_id}, station {stop.station_id}"
        )
        position = f"{config.current_index + 1}/{len(config.stops)}" if len(config.stops) > 1 else ""
        return build_view(stop, result.arrivals, position)

    def refresh_all(self, widget_ids: Iterable[int]) -> None:
        for widget_id in widget_ids:
            self.refresh(widget_id)

    def next_stop(self, widget_id: int) -> WidgetView:
        self.config_store.next_stop(widget_id)
        return self.refresh(widget_id)

    def prev_stop(self, widget_id: int) -> WidgetView:
        self.config_store.prev_stop(widget_id)
        return self.refresh(widget_id)
