"""Example usage of TramStationTracker."""

import logging
import sys
from pathlib import Path

# Add src to path so we can import tramtime
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tramtime.config import TramSettings
from tramtime.models import WidgetFilter
from tramtime.station_tracker import TramStationTracker

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_arrivals(tracker: TramStationTracker, station_id: str, line: str = None):
    """
    Fetch and display tram arrivals for a station.

    Args:
        tracker: Tracker to query.
        station_id: Station or stop ID (e.g., "S1198")
        line: Optional line filter (e.g., "T1")
    """
    name = tracker.get_station_name(station_id)
    result = tracker.get_filtered_arrivals(station_id, WidgetFilter(line=line))

    print(f"\n{'='*70}")
    print(f"{name} ({station_id})")
    print(f"{'='*70}")
    if not result.is_realtime:
        print("(no live data - showing sample arrivals)")
    for arrival in result.arrivals:
        print(f"  {arrival.line:>4} → {arrival.destination:<30} {arrival.arrival_time}")

    lines = tracker.get_available_lines(station_id)
    if lines:
        print("\nLines currently serving this station:")
        for line_direction in lines:
            print(f"  {line_direction}")
    print()


def interactive_mode(tracker: TramStationTracker):
    """
    Run in interactive mode, allowing user to query multiple stations.
    """
    print("Tram Tracker - Interactive Mode")
    print("Enter a station name (or part of it) to see arrivals")
    print("(Type 'quit' to exit)\n")

    stations = tracker.get_stations()
    print(f"{len(stations)} stations available\n")

    while True:
        try:
            user_input = input("Enter station (or 'quit'): ").strip()

            if user_input.lower() in ["quit", "q", "exit"]:
                print("Goodbye!")
                break

            if not user_input:
                continue

            matching = [s for s in stations if user_input.lower() in s.name.lower() or s.id == user_input]
            if not matching:
                print(f"No station found matching '{user_input}'")
                continue
            if len(matching) > 1:
                print("\nDid you mean:")
                for station in matching[:5]:
                    print(f"  - {station.name} ({station.id})")
            print_arrivals(tracker, matching[0].id)

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break


if __name__ == "__main__":
    tracker = TramStationTracker(TramSettings.from_env())
    try:
        if len(sys.argv) > 1:
            # Command line mode: station id, optional line filter
            print_arrivals(tracker, sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)
        else:
            interactive_mode(tracker)
    finally:
        tracker.cleanup()
