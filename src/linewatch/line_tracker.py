"""Main LineTracker class."""

import logging
from typing import List, Optional, Union

from .config import Settings
from .feed_client import RealtimeFeedCache
from .gtfs_loader import ScheduleStore, dedupe_stops
from .line_cache import DEFAULT_LINE_TTL, LineCache
from .matcher import UNKNOWN_DESTINATION, MatchMode, match_vehicles
from .models import LineGeometry, VehiclePosition
from .sources import ScheduleSource

logger = logging.getLogger(__name__)


class LineTracker:
    """
    Serves line geometry, stops and live vehicles for transit lines.

    This class provides methods to:
    - Get a line's shape polyline(s) and its stops
    - Get the vehicles currently running on a line, with destinations

    The tracker owns its two caches: per-line schedule views (LineCache) and
    the vehicle feed snapshot (RealtimeFeedCache). It is safe to share one
    tracker between concurrent request handlers.
    """

    def __init__(
        self,
        source: Union[ScheduleSource, ScheduleStore],
        feed_cache: RealtimeFeedCache,
        line_ttl: float = DEFAULT_LINE_TTL,
        match_mode: MatchMode = MatchMode.AUTO,
        unknown_destination: str = UNKNOWN_DESTINATION,
    ):
        """
        Initialize the tracker.

        Args:
            source: Static GTFS schedule source, or a ScheduleStore built on one.
            feed_cache: Cache around the vehicle-position feed.
            line_ttl: Seconds a line's schedule view stays fresh.
            match_mode: How vehicle reports are matched to a line.
            unknown_destination: Destination shown when none can be resolved.
        """
        self.store = source if isinstance(source, ScheduleStore) else ScheduleStore(source)
        self.line_cache = LineCache(self.store, ttl=line_ttl)
        self.feed_cache = feed_cache
        self.match_mode = match_mode
        self.unknown_destination = unknown_destination

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LineTracker":
        """
        Build a tracker from Settings (by default, from the environment).

        Raises:
            ValueError: If the settings lack a schedule source or feed URL.
        """
        if settings is None:
            settings = Settings.from_env()
        if not settings.feed_url:
            raise ValueError("A feed URL is required")

        feed_cache = RealtimeFeedCache(
            settings.feed_url,
            ttl=settings.feed_ttl,
            api_key=settings.feed_api_key,
            timeout=settings.request_timeout,
            serve_stale=settings.serve_stale,
        )
        return cls(
            settings.schedule_source(),
            feed_cache,
            line_ttl=settings.line_ttl,
            match_mode=settings.match_mode,
        )

    def get_line_geometry(self, line_code: str, now: Optional[float] = None) -> Optional[LineGeometry]:
        """
        Get the shape and stops of a line.

        Args:
            line_code: Line code, e.g. "5".
            now: Current Unix time, for cache expiry. Defaults to time.time().

        Returns:
            LineGeometry, or None if there is no such line.

        Raises:
            UpstreamUnavailable: If the schedule can't be read and nothing is cached.
        """
        view = self.line_cache.get_line_view(line_code, now)
        if view is None:
            return None

        return LineGeometry(
            shape=list(view.shape),
            stops=dedupe_stops(view),
            shapes={direction: list(points) for direction, points in view.shapes.items()},
        )

    def get_live_vehicles(self, line_code: str, now: Optional[float] = None) -> List[VehiclePosition]:
        """
        Get the vehicles currently reporting on a line.

        An unknown line gives an empty list, the same as a line with no
        vehicles out right now.

        Args:
            line_code: Line code, e.g. "5".
            now: Current Unix time, for cache expiry. Defaults to time.time().

        Returns:
            VehiclePositions in feed order.

        Raises:
            UpstreamUnavailable: If the schedule or feed can't be read and nothing is cached.
        """
        view = self.line_cache.get_line_view(line_code, now)
        if view is None:
            logger.debug(f"No line {line_code.strip()!r}, returning no vehicles")
            return []

        snapshot = self.feed_cache.get_snapshot(now)
        return match_vehicles(view, snapshot, mode=self.match_mode, placeholder=self.unknown_destination)

    def cleanup(self) -> None:
        """Release resources and clear caches."""
        self.line_cache.clear()
        self.feed_cache.clear_cache()
        logger.info("Cleaned up tracker resources")
