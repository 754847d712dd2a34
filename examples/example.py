"""Example usage of LineTracker.

Configure with environment variables, e.g.:

    LINEWATCH_GTFS_PATH=gtfs/ LINEWATCH_FEED_URL=https://... python examples/example.py 5
"""

import logging
import sys
from pathlib import Path

# Add src to path so we can import linewatch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from linewatch import LineTracker, Settings, UpstreamUnavailable

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_line_data(tracker: LineTracker, line_code: str) -> bool:
    """
    Fetch and display geometry and live vehicles for a line.

    Args:
        tracker: Configured LineTracker.
        line_code: Line code (e.g., "5")

    Returns:
        False if the line does not exist.
    """
    print(f"\n{'='*70}")
    print(f"Line: {line_code}")
    print(f"{'='*70}\n")

    geometry = tracker.get_line_geometry(line_code)
    if geometry is None:
        print(f"No line named {line_code!r}")
        return False

    print(f"Shape: {len(geometry.shape)} points")
    if len(geometry.shapes) > 1:
        for direction, points in geometry.shapes.items():
            print(f"  direction {direction}: {len(points)} points")

    print(f"\nSTOPS ({len(geometry.stops)}):")
    print("-" * 70)
    for stop in geometry.stops:
        print(f"  {stop.name} ({stop.latitude:.5f}, {stop.longitude:.5f})")

    vehicles = tracker.get_live_vehicles(line_code)
    print(f"\nLIVE VEHICLES ({len(vehicles)}):")
    print("-" * 70)
    if vehicles:
        for vehicle in vehicles:
            direction = "-" if vehicle.direction_id is None else vehicle.direction_id
            print(
                f"  {vehicle.id}: ({vehicle.lat:.5f}, {vehicle.lon:.5f}) "
                f"dir {direction} → {vehicle.destination}"
            )
    else:
        print("  No vehicles reporting")

    print("\n" + "=" * 70 + "\n")
    return True


def interactive_mode(tracker: LineTracker):
    """
    Run in interactive mode, allowing user to query multiple lines.
    """
    print("Line Tracker - Interactive Mode")
    print("Enter a line code to see its stops and live vehicles")
    print("(Type 'quit' to exit)\n")

    while True:
        try:
            user_input = input("Enter line (or 'quit'): ").strip()

            if user_input.lower() in ["quit", "q", "exit"]:
                print("Goodbye!")
                break

            if not user_input:
                continue

            print_line_data(tracker, user_input)

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except UpstreamUnavailable as e:
            logger.error(f"Upstream data unavailable: {e}")
            print(f"Error: {e}")


if __name__ == "__main__":
    try:
        tracker = LineTracker.from_settings(Settings.from_env())
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    if len(sys.argv) > 1:
        # Command line mode: pass line code as argument
        try:
            found = print_line_data(tracker, sys.argv[1])
        except UpstreamUnavailable as e:
            logger.error(f"Upstream data unavailable: {e}")
            sys.exit(2)
        sys.exit(0 if found else 1)
    else:
        interactive_mode(tracker)
