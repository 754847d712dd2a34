"""Builds per-line schedule views from a static GTFS source."""

import logging
import math
from typing import Dict, List, Optional

from .models import LineView, Point, Route, ShapePoint, Stop, StopTime, Trip
from .sources import ScheduleSource

logger = logging.getLogger(__name__)


def _to_int(value: Optional[str]) -> Optional[int]:
    """Parse a GTFS integer field; empty means None. Raises ValueError if malformed."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        number = float(value)
        if not number.is_integer():
            raise
        return int(number)


def _optional_int(value: Optional[str]) -> Optional[int]:
    """Like _to_int, but an unparseable optional field is treated as absent."""
    try:
        return _to_int(value)
    except ValueError:
        return None


def _coordinate(value: str) -> float:
    """Parse a latitude or longitude. NaN and infinities are rejected."""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite coordinate {value!r}")
    return number


def _required(row: dict, *fields: str) -> None:
    for name in fields:
        if not row.get(name):
            raise ValueError(f"missing {name}")


def parse_route(row: dict) -> Route:
    _required(row, "route_id", "route_short_name")
    return Route(
        route_id=row["route_id"],
        short_name=row["route_short_name"],
        long_name=row.get("route_long_name", ""),
        route_type=_optional_int(row.get("route_type")),
        description=row.get("route_desc", ""),
    )


def parse_trip(row: dict) -> Trip:
    _required(row, "trip_id", "route_id")
    return Trip(
        trip_id=row["trip_id"],
        route_id=row["route_id"],
        headsign=row.get("trip_headsign", ""),
        direction_id=_optional_int(row.get("direction_id")),
        shape_id=row.get("shape_id", ""),
    )


def parse_stop_time(row: dict) -> StopTime:
    _required(row, "trip_id", "stop_id", "stop_sequence")
    return StopTime(
        trip_id=row["trip_id"],
        stop_id=row["stop_id"],
        stop_sequence=_to_int(row["stop_sequence"]),
        arrival_time=row.get("arrival_time") or None,
        departure_time=row.get("departure_time") or None,
    )


def parse_stop(row: dict) -> Stop:
    _required(row, "stop_id", "stop_lat", "stop_lon")
    return Stop(
        stop_id=row["stop_id"],
        name=row.get("stop_name", ""),
        latitude=_coordinate(row["stop_lat"]),
        longitude=_coordinate(row["stop_lon"]),
        parent_station=row.get("parent_station") or None,
    )


def parse_shape_point(row: dict) -> ShapePoint:
    _required(row, "shape_id", "shape_pt_lat", "shape_pt_lon", "shape_pt_sequence")
    return ShapePoint(
        shape_id=row["shape_id"],
        latitude=_coordinate(row["shape_pt_lat"]),
        longitude=_coordinate(row["shape_pt_lon"]),
        sequence=_to_int(row["shape_pt_sequence"]),
    )


def _parse_rows(rows: List[dict], parser, table: str) -> list:
    """Parse rows with ``parser``, skipping (and counting) malformed ones."""
    parsed = []
    skipped = 0
    for row in rows:
        try:
            parsed.append(parser(row))
        except (KeyError, ValueError, TypeError) as e:
            skipped += 1
            logger.debug(f"Skipping malformed {table} row {row}: {e}")
    if skipped:
        logger.warning(f"Skipped {skipped} malformed row(s) in {table}")
    return parsed


class ScheduleStore:
    """
    Resolves line codes against a static GTFS schedule.

    Each call to resolve_line() reads the relevant subset from the source and
    builds a fresh LineView; caching is LineCache's job.
    """

    def __init__(self, source: ScheduleSource):
        """
        Initialize the store.

        Args:
            source: Where the GTFS tables come from.
        """
        self.source = source

    def find_route(self, line_code: str) -> Optional[Route]:
        """
        Find the route whose short name equals the line code.

        Matching is exact and case-sensitive; when several agencies reuse a
        short name the first route in file order wins.
        """
        for route in _parse_rows(self.source.fetch_routes(), parse_route, "routes"):
            if route.short_name == line_code:
                return route
        return None

    def resolve_line(self, line_code: str) -> Optional[LineView]:
        """
        Build the LineView for a line code.

        Args:
            line_code: Route short name as typed by a rider (e.g. "5").

        Returns:
            The LineView, or None if no route has that short name or the route
            has no trips.

        Raises:
            UpstreamUnavailable: If the schedule source cannot be read.
        """
        line_code = line_code.strip()
        route = self.find_route(line_code)
        if route is None:
            logger.debug(f"No route with short name {line_code!r}")
            return None

        trips = [
            trip for trip in _parse_rows(self.source.fetch_trips(route.route_id), parse_trip, "trips")
            if trip.route_id == route.route_id
        ]
        if not trips:
            logger.debug(f"Route {route.route_id} ({line_code!r}) has no trips")
            return None

        trip_ids = frozenset(trip.trip_id for trip in trips)
        stop_times = self._build_stop_times(trip_ids)

        referenced = {st.stop_id for sts in stop_times.values() for st in sts}
        stops = {
            stop.stop_id: stop
            for stop in _parse_rows(self.source.fetch_stops(referenced), parse_stop, "stops")
        }

        view = LineView(
            line_code=line_code,
            route=route,
            trips=trips,
            trip_ids=trip_ids,
            headsigns={trip.trip_id: trip.headsign for trip in trips},
            directions={trip.trip_id: trip.direction_id for trip in trips},
            stop_times=stop_times,
            stops=stops,
            shapes=self._build_shapes(trips),
            terminal_names=self._build_terminal_names(stop_times, stops),
        )
        logger.info(
            f"Built line {line_code!r}: route {route.route_id}, {len(trips)} trips, "
            f"{len(stops)} stops, {len(view.shapes)} shape(s)"
        )
        return view

    def _build_stop_times(self, trip_ids) -> Dict[str, List[StopTime]]:
        by_trip: Dict[str, List[StopTime]] = {}
        rows = self.source.fetch_stop_times(trip_ids)
        for st in _parse_rows(rows, parse_stop_time, "stop_times"):
            if st.trip_id in trip_ids:
                by_trip.setdefault(st.trip_id, []).append(st)
        for sts in by_trip.values():
            sts.sort(key=lambda st: st.stop_sequence)
        return by_trip

    def _build_shapes(self, trips: List[Trip]) -> Dict[Optional[int], List[Point]]:
        """One polyline per direction, taken from the first trip in that direction."""
        shape_by_direction: Dict[Optional[int], str] = {}
        for trip in trips:
            if trip.direction_id not in shape_by_direction:
                shape_by_direction[trip.direction_id] = trip.shape_id

        loaded: Dict[str, List[Point]] = {}
        shapes: Dict[Optional[int], List[Point]] = {}
        for direction, shape_id in shape_by_direction.items():
            if shape_id not in loaded:
                loaded[shape_id] = self._load_polyline(shape_id)
            shapes[direction] = loaded[shape_id]
        return shapes

    def _load_polyline(self, shape_id: str) -> List[Point]:
        if not shape_id:
            return []
        rows = self.source.fetch_shape_points(shape_id)
        points = [
            p for p in _parse_rows(rows, parse_shape_point, "shapes")
            if p.shape_id == shape_id
        ]
        # sorted() is stable, so equal sequence numbers keep file order
        points = sorted(points, key=lambda p: p.sequence)
        return [(p.latitude, p.longitude) for p in points]

    @staticmethod
    def _build_terminal_names(
        stop_times: Dict[str, List[StopTime]], stops: Dict[str, Stop]
    ) -> Dict[str, str]:
        terminal_names: Dict[str, str] = {}
        for trip_id, sts in stop_times.items():
            if not sts:
                continue
            # Lists are sorted by sequence; the last entry is the terminal stop
            stop = stops.get(sts[-1].stop_id)
            if stop and stop.name:
                terminal_names[trip_id] = stop.name
        return terminal_names


def dedupe_stops(view: LineView) -> List[Stop]:
    """
    Return the line's stops once each, in order of first encounter.

    Trips are walked in order, then each trip's stops by sequence. Stop IDs
    without a Stop record are left out.
    """
    seen = set()
    result: List[Stop] = []
    for trip in view.trips:
        for st in view.stop_times.get(trip.trip_id, []):
            if st.stop_id in seen:
                continue
            seen.add(st.stop_id)
            stop = view.stops.get(st.stop_id)
            if stop is not None:
                result.append(stop)
    return result
