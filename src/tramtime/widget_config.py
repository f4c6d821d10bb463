"""Per-widget configuration persistence and multi-stop navigation."""

import json
import logging
import os
import threading
from typing import Callable, Dict, Optional

from .models import StopConfig, WidgetConfig, WidgetFilter

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Key-value store of strings. Implementations must make set/remove atomic per call."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)


class JsonFilePreferenceStore(PreferenceStore):
    """Preferences kept in one JSON object on disk, rewritten in full on every change."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except ValueError as e:
            logger.error(f"Corrupt preference file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, values: Dict[str, str]) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(values, f)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            values = self._read()
            values[key] = value
            self._write(values)

    def remove(self, key: str) -> None:
        with self._lock:
            values = self._read()
            if values.pop(key, None) is not None:
                self._write(values)


def _station_key(widget_id: int) -> str:
    return f"widget_{widget_id}"


def _line_key(widget_id: int) -> str:
    return f"widget_{widget_id}_line"


def _direction_key(widget_id: int) -> str:
    return f"widget_{widget_id}_direction"


def _config_key(widget_id: int) -> str:
    return f"widget_{widget_id}_config"


def serialize_widget_config(config: WidgetConfig) -> str:
    return json.dumps({
        "currentIndex": config.current_index,
        "stops": [
            {
                "stationId": stop.station_id,
                "stationName": stop.station_name,
                "filterLine": stop.filter.line,
                "filterDirection": stop.filter.direction,
            }
            for stop in config.stops
        ],
    }, ensure_ascii=False)


def _optional_text(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def deserialize_widget_config(json_str: str) -> WidgetConfig:
    """Parse a stored config; malformed JSON yields an empty config."""
    try:
        data = json.loads(json_str)
        current_index = int(data.get("currentIndex", 0))
        stops = []
        for stop in data.get("stops") or []:
            stops.append(StopConfig(
                station_id=stop["stationId"],
                station_name=stop["stationName"],
                filter=WidgetFilter(
                    line=_optional_text(stop.get("filterLine")),
                    direction=_optional_text(stop.get("filterDirection")),
                ),
            ))
        return WidgetConfig(stops=stops, current_index=current_index)
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        logger.error(f"Error deserializing widget config: {e}")
        return WidgetConfig()


class WidgetConfigStore:
    """
    Reads and writes widget configurations in a PreferenceStore.

    Every mutation re-reads the config and persists the whole result. Writes
    for the same widget are last-write-wins.
    """

    def __init__(self, preferences: PreferenceStore, station_name: Callable[[str], str]):
        """
        Args:
            preferences: Backing key-value store.
            station_name: Resolves a station id to its display name, used when
                upgrading a legacy single-stop configuration.
        """
        self.preferences = preferences
        self.station_name = station_name

    # Legacy single-stop layout

    def save_widget_station(self, widget_id: int, station_id: str) -> None:
        self.preferences.set(_station_key(widget_id), station_id)

    def get_widget_station(self, widget_id: int) -> Optional[str]:
        return self.preferences.get(_station_key(widget_id))

    def remove_widget_station(self, widget_id: int) -> None:
        self.preferences.remove(_station_key(widget_id))

    def save_widget_filter(self, widget_id: int, widget_filter: WidgetFilter) -> None:
        for key, value in ((_line_key(widget_id), widget_filter.line),
                           (_direction_key(widget_id), widget_filter.direction)):
            if value is not None:
                self.preferences.set(key, value)
            else:
                self.preferences.remove(key)

    def get_widget_filter(self, widget_id: int) -> WidgetFilter:
        return WidgetFilter(
            line=self.preferences.get(_line_key(widget_id)),
            direction=self.preferences.get(_direction_key(widget_id)),
        )

    # Multi-stop layout

    def save_widget_config(self, widget_id: int, config: WidgetConfig) -> None:
        self.preferences.set(_config_key(widget_id), serialize_widget_config(config))

    def get_widget_config(self, widget_id: int) -> WidgetConfig:
        """
        Load a widget's configuration.

        A legacy single-stop configuration is converted to the multi-stop shape
        and persisted that way.
        """
        json_str = self.preferences.get(_config_key(widget_id))
        if json_str is not None:
            return deserialize_widget_config(json_str)

        station_id = self.get_widget_station(widget_id)
        if station_id is None:
            return WidgetConfig()

        stop = StopConfig(station_id, self.station_name(station_id), self.get_widget_filter(widget_id))
        config = WidgetConfig(stops=[stop], current_index=0)
        self.save_widget_config(widget_id, config)
        logger.info(f"Upgraded legacy config of widget {widget_id}")
        return config

    def add_stop_to_widget(self, widget_id: int, stop: StopConfig) -> WidgetConfig:
        config = self.get_widget_config(widget_id).with_stop(stop)
        self.save_widget_config(widget_id, config)
        return config

    def set_widget_current_index(self, widget_id: int, index: int) -> WidgetConfig:
        config = self.get_widget_config(widget_id).with_index(index)
        self.save_widget_config(widget_id, config)
        return config

    def next_stop(self, widget_id: int) -> WidgetConfig:
        config = self.get_widget_config(widget_id)
        config = config.with_index(config.next_index())
        self.save_widget_config(widget_id, config)
        return config

    def prev_stop(self, widget_id: int) -> WidgetConfig:
        config = self.get_widget_config(widget_id)
        config = config.with_index(config.prev_index())
        self.save_widget_config(widget_id, config)
        return config

    def remove_widget_config(self, widget_id: int) -> None:
        """Remove a widget's configuration, including legacy keys."""
        for key in (_config_key(widget_id), _station_key(widget_id),
                    _line_key(widget_id), _direction_key(widget_id)):
            self.preferences.remove(key)
