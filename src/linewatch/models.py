"""Data models for the line tracker."""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

# A polyline point: (latitude, longitude)
Point = Tuple[float, float]


@dataclass
class Route:
    """Represents a GTFS route (a transit line)."""
    route_id: str
    short_name: str  # The line code riders see, e.g. "5"
    long_name: str = ""
    route_type: Optional[int] = None
    description: str = ""


@dataclass
class Trip:
    """Represents a scheduled trip on a route."""
    trip_id: str
    route_id: str
    headsign: str = ""
    direction_id: Optional[int] = None
    shape_id: str = ""


@dataclass
class StopTime:
    """One scheduled visit of a trip to a stop."""
    trip_id: str
    stop_id: str
    stop_sequence: int
    arrival_time: Optional[str] = None  # GTFS clock time, may exceed 24:00:00
    departure_time: Optional[str] = None


@dataclass
class Stop:
    """Represents a stop or station."""
    stop_id: str
    name: str
    latitude: float
    longitude: float
    parent_station: Optional[str] = None

    def to_dict(self) -> dict:
        return {"lat": self.latitude, "lon": self.longitude, "name": self.name}


@dataclass
class ShapePoint:
    """A single point of a shape polyline."""
    shape_id: str
    latitude: float
    longitude: float
    sequence: int


@dataclass
class VehicleReport:
    """A vehicle entity decoded from the real-time feed."""
    vehicle_id: str
    latitude: Optional[float] = None  # None when the feed carries no position
    longitude: Optional[float] = None
    bearing: Optional[float] = None
    trip_id: Optional[str] = None
    direction_id: Optional[int] = None
    route_id: Optional[str] = None

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class FeedSnapshot:
    """One fetched and decoded copy of the vehicle-position feed."""
    reports: List[VehicleReport]
    fetched_at: float  # Unix timestamp of the fetch
    feed_timestamp: Optional[int] = None  # Header timestamp set by the producer


@dataclass
class LineView:
    """
    Schedule projection for a single line code.

    Built by ScheduleStore.resolve_line() and cached by LineCache. All trips
    belong to ``route``; ``stops`` holds every stop referenced by
    ``stop_times`` that existed when the view was built.
    """
    line_code: str
    route: Route
    trips: List[Trip]
    trip_ids: FrozenSet[str]
    headsigns: Dict[str, str]  # trip_id -> headsign
    directions: Dict[str, Optional[int]]  # trip_id -> static direction_id
    stop_times: Dict[str, List[StopTime]]  # trip_id -> visits ordered by sequence
    stops: Dict[str, Stop]  # stop_id -> Stop
    shapes: Dict[Optional[int], List[Point]]  # direction_id -> polyline
    terminal_names: Dict[str, str]  # trip_id -> name of the last stop

    @property
    def shape(self) -> List[Point]:
        """The default polyline: the one for the first trip's direction."""
        if not self.trips:
            return []
        return self.shapes.get(self.trips[0].direction_id, [])


@dataclass
class LineGeometry:
    """Geometry and stops for a line, as returned to callers."""
    shape: List[Point]
    stops: List[Stop]
    shapes: Dict[Optional[int], List[Point]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Return a JSON-serializable dict: {shape: [[lat, lon], ...], stops: [...]}."""
        result = {
            "shape": [[lat, lon] for lat, lon in self.shape],
            "stops": [stop.to_dict() for stop in self.stops],
        }
        # Only expose per-direction polylines when they actually differ by direction
        if len(self.shapes) > 1:
            result["shapes"] = {
                ("default" if direction is None else str(direction)): [[lat, lon] for lat, lon in points]
                for direction, points in self.shapes.items()
            }
        return result


@dataclass
class VehiclePosition:
    """A live vehicle matched to one of the line's trips."""
    id: str
    lat: float
    lon: float
    bearing: float
    direction_id: Optional[int]
    destination: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lat": self.lat,
            "lon": self.lon,
            "bearing": self.bearing,
            "directionId": self.direction_id,
            "destination": self.destination,
        }
