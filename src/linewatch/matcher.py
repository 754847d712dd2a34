"""Matches real-time vehicle reports to a line's scheduled trips."""

import enum
import logging
import math
from typing import List, Optional

from .models import FeedSnapshot, LineView, VehiclePosition, VehicleReport

logger = logging.getLogger(__name__)

UNKNOWN_DESTINATION = "Unknown destination"


class MatchMode(enum.Enum):
    """How a vehicle report is tied to a line."""
    TRIP = "trip"  # trip_id must be one of the line's trips
    ROUTE = "route"  # route_id must equal the line's route
    AUTO = "auto"  # trip_id when the feed sends one, else route_id

    @classmethod
    def parse(cls, value: str) -> "MatchMode":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown match mode {value!r}, expected one of: {', '.join(m.value for m in cls)}"
            ) from None


def belongs_to_line(report: VehicleReport, view: LineView, mode: MatchMode = MatchMode.AUTO) -> bool:
    """Check whether a report is for one of the line's vehicles."""
    if not report.has_position:
        return False

    if mode is MatchMode.TRIP:
        return report.trip_id is not None and report.trip_id in view.trip_ids
    if mode is MatchMode.ROUTE:
        return report.route_id is not None and report.route_id == view.route.route_id

    if report.trip_id:
        return report.trip_id in view.trip_ids
    if report.route_id:
        return report.route_id == view.route.route_id
    return False


def resolve_destination(view: LineView, trip_id: Optional[str], placeholder: str = UNKNOWN_DESTINATION) -> str:
    """Headsign, else terminal stop name, else the placeholder."""
    if trip_id:
        headsign = view.headsigns.get(trip_id)
        if headsign:
            return headsign
        terminal = view.terminal_names.get(trip_id)
        if terminal:
            return terminal
    return placeholder


def _valid_coordinate(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def match_vehicles(
    view: LineView,
    snapshot: FeedSnapshot,
    mode: MatchMode = MatchMode.AUTO,
    placeholder: str = UNKNOWN_DESTINATION,
) -> List[VehiclePosition]:
    """
    Map the snapshot's reports onto the line.

    Args:
        view: The line's schedule view.
        snapshot: Current feed snapshot.
        mode: How reports are matched to the line.
        placeholder: Destination used when neither headsign nor terminal stop is known.

    Returns:
        VehiclePositions in feed order.
    """
    vehicles: List[VehiclePosition] = []
    for report in snapshot.reports:
        if not belongs_to_line(report, view, mode):
            continue

        direction_id = report.direction_id
        if direction_id is None and report.trip_id:
            direction_id = view.directions.get(report.trip_id)

        vehicles.append(VehiclePosition(
            id=report.vehicle_id,
            lat=report.latitude,
            lon=report.longitude,
            bearing=report.bearing if report.bearing is not None else 0,
            direction_id=direction_id,
            destination=resolve_destination(view, report.trip_id, placeholder),
        ))

    # Final safety net against garbage coordinates
    result = [v for v in vehicles if _valid_coordinate(v.lat) and _valid_coordinate(v.lon)]
    if len(result) != len(vehicles):
        logger.debug(f"Dropped {len(vehicles) - len(result)} vehicle(s) with invalid coordinates")
    return result
