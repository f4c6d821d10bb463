"""TramTime - Real-time tram arrivals for home-screen widgets."""

__version__ = "0.1.0"

from .models import Station, TramArrival, WidgetFilter, LineDirection, StopConfig, WidgetConfig
from .feed_decoder import DecodeError, FeedMessage, decode_feed
from .gtfs_loader import GTFSLoader, StaticDataCache, StaticTables
from .tram_client import TramClient
from .station_tracker import ArrivalSource, ArrivalsResult, TramStationTracker
from .widget_config import WidgetConfigStore, InMemoryPreferenceStore, JsonFilePreferenceStore
from .widget_updater import WidgetUpdater, WidgetView
from .config import TramSettings

__all__ = [
    "TramStationTracker",
    "ArrivalSource",
    "ArrivalsResult",
    "GTFSLoader",
    "StaticDataCache",
    "StaticTables",
    "TramClient",
    "TramSettings",
    "DecodeError",
    "FeedMessage",
    "decode_feed",
    "WidgetConfigStore",
    "InMemoryPreferenceStore",
    "JsonFilePreferenceStore",
    "WidgetUpdater",
    "WidgetView",
    "Station",
    "TramArrival",
    "WidgetFilter",
    "LineDirection",
    "StopConfig",
    "WidgetConfig",
]
