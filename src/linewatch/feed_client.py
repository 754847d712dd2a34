"""GTFS-Realtime vehicle position fetcher with a single-snapshot cache."""

import logging
import time
from typing import List, Optional

import requests
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from .exceptions import DecodeFailure, UpstreamUnavailable
from .models import FeedSnapshot, VehicleReport

logger = logging.getLogger(__name__)

DEFAULT_FEED_TTL = 5.0


def decode_vehicle_positions(data: bytes) -> tuple:
    """
    Decode a GTFS-Realtime FeedMessage into vehicle reports.

    Args:
        data: Raw protobuf bytes.

    Returns:
        (reports, header_timestamp) where reports keeps feed order and
        header_timestamp is None if the producer didn't set it.

    Raises:
        DecodeError: If the bytes are not a FeedMessage.
    """
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.ParseFromString(data)

    reports: List[VehicleReport] = []
    for entity in feed.entity:
        if not entity.HasField("vehicle"):
            continue

        vehicle = entity.vehicle
        report = VehicleReport(vehicle_id=vehicle.vehicle.id or entity.id)

        if vehicle.HasField("position"):
            position = vehicle.position
            report.latitude = position.latitude
            report.longitude = position.longitude
            if position.HasField("bearing"):
                report.bearing = position.bearing

        if vehicle.HasField("trip"):
            trip = vehicle.trip
            report.trip_id = trip.trip_id or None
            report.route_id = trip.route_id or None
            if trip.HasField("direction_id"):
                report.direction_id = trip.direction_id

        reports.append(report)

    header_timestamp = feed.header.timestamp if feed.header.HasField("timestamp") else None
    return reports, header_timestamp


class RealtimeFeedCache:
    """
    Fetches the vehicle-position feed and keeps the last decoded snapshot.

    A snapshot younger than ``ttl`` seconds is returned as-is. When a refresh
    fails and ``serve_stale`` is set, the previous snapshot is returned instead
    of raising, however old it is.
    """

    def __init__(
        self,
        feed_url: str,
        ttl: float = DEFAULT_FEED_TTL,
        api_key: Optional[str] = None,
        api_key_param: str = "key",
        timeout: float = 10.0,
        serve_stale: bool = True,
    ):
        """
        Initialize the feed cache.

        Args:
            feed_url: URL of the VehiclePositions protobuf feed.
            ttl: Seconds a snapshot stays fresh.
            api_key: Optional key sent as the ``api_key_param`` query parameter.
            api_key_param: Query parameter name for the key.
            timeout: HTTP timeout in seconds.
            serve_stale: Return the previous snapshot if a refresh fails.
        """
        self.feed_url = feed_url
        self.ttl = ttl
        self.api_key = api_key
        self.api_key_param = api_key_param
        self.timeout = timeout
        self.serve_stale = serve_stale
        self._snapshot: Optional[FeedSnapshot] = None

    @property
    def snapshot(self) -> Optional[FeedSnapshot]:
        """The cached snapshot, fresh or not."""
        return self._snapshot

    def get_snapshot(self, now: Optional[float] = None) -> FeedSnapshot:
        """
        Get the current feed snapshot, refetching it if expired.

        Args:
            now: Current Unix time. Defaults to time.time().

        Raises:
            UpstreamUnavailable: If the refresh fails and no snapshot can be served.
        """
        if now is None:
            now = time.time()

        cached = self._snapshot
        if cached is not None and now - cached.fetched_at < self.ttl:
            logger.debug("Using cached vehicle feed")
            return cached

        try:
            snapshot = self._refresh(now)
        except UpstreamUnavailable as e:
            if cached is None or not self.serve_stale:
                raise
            logger.warning(
                f"Feed refresh failed, serving snapshot from {now - cached.fetched_at:.1f}s ago: {e}"
            )
            return cached

        # Single assignment; concurrent refreshers simply overwrite each other
        self._snapshot = snapshot
        return snapshot

    def _refresh(self, now: float) -> FeedSnapshot:
        data = self._fetch_feed()
        try:
            reports, header_timestamp = decode_vehicle_positions(data)
        except DecodeError as e:
            logger.error(f"Failed to decode feed from {self.feed_url}: {e}")
            raise DecodeFailure(self.feed_url, str(e), size=len(data)) from e

        logger.info(f"Fetched {len(reports)} vehicle reports from feed")
        return FeedSnapshot(reports=reports, fetched_at=now, feed_timestamp=header_timestamp)

    def _fetch_feed(self) -> bytes:
        """
        Download the raw feed.

        Returns:
            Raw protobuf bytes.
        """
        params = {self.api_key_param: self.api_key} if self.api_key else None
        logger.debug(f"Fetching {self.feed_url}")
        try:
            response = requests.get(
                self.feed_url,
                params=params,
                headers={"Accept": "application/x-protobuf"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.content
        except requests.RequestException as e:
            logger.error(f"Failed to fetch {self.feed_url}: {e}")
            raise UpstreamUnavailable(self.feed_url, str(e)) from e

    def clear_cache(self) -> None:
        """Manually clear the cached snapshot."""
        self._snapshot = None
