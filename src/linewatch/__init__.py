"""linewatch - Live vehicles, stops and shapes per transit line from GTFS and GTFS-Realtime."""

__version__ = "0.1.0"

from .models import (
    Route,
    Trip,
    StopTime,
    Stop,
    ShapePoint,
    VehicleReport,
    FeedSnapshot,
    LineView,
    LineGeometry,
    VehiclePosition,
)
from .exceptions import LinewatchError, UpstreamUnavailable, DecodeFailure
from .sources import (
    ScheduleSource,
    DirectoryScheduleSource,
    RemoteScheduleSource,
    SQLScheduleSource,
)
from .gtfs_loader import ScheduleStore
from .line_cache import LineCache
from .feed_client import RealtimeFeedCache
from .matcher import MatchMode, match_vehicles
from .config import Settings
from .line_tracker import LineTracker
from .subset import write_line_subset

__all__ = [
    "LineTracker",
    "Settings",
    "ScheduleStore",
    "LineCache",
    "RealtimeFeedCache",
    "MatchMode",
    "match_vehicles",
    "write_line_subset",
    "ScheduleSource",
    "DirectoryScheduleSource",
    "RemoteScheduleSource",
    "SQLScheduleSource",
    "LinewatchError",
    "UpstreamUnavailable",
    "DecodeFailure",
    "Route",
    "Trip",
    "StopTime",
    "Stop",
    "ShapePoint",
    "VehicleReport",
    "FeedSnapshot",
    "LineView",
    "LineGeometry",
    "VehiclePosition",
]
