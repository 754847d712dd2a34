"""TTL cache of per-line schedule views."""

import logging
import time
from typing import Dict, Optional, Tuple

from .exceptions import UpstreamUnavailable
from .gtfs_loader import ScheduleStore
from .models import LineView

logger = logging.getLogger(__name__)

# Rebuild a line's view after 10 minutes
DEFAULT_LINE_TTL = 600.0


class LineCache:
    """
    Memoizes ScheduleStore.resolve_line() per line code.

    Unknown line codes are cached as None so repeated lookups of a bad code
    don't hit the source. Entries are never evicted; the number of distinct
    line codes in a network is small.

    There is no locking: two callers that both see an expired entry will both
    rebuild it and the last one to finish wins. Rebuilds only read immutable
    upstream data, so either result is fine.
    """

    def __init__(self, store: ScheduleStore, ttl: float = DEFAULT_LINE_TTL):
        self.store = store
        self.ttl = ttl
        self._entries: Dict[str, Tuple[Optional[LineView], float]] = {}  # line_code -> (view, built_at)

    def get_line_view(self, line_code: str, now: Optional[float] = None) -> Optional[LineView]:
        """
        Get the LineView for a line code, rebuilding it if expired.

        Args:
            line_code: Route short name; surrounding whitespace is ignored.
            now: Current Unix time. Defaults to time.time().

        Returns:
            The cached or freshly built LineView, or None if the line does not exist.

        Raises:
            UpstreamUnavailable: If the source is unreachable and nothing is cached.
        """
        if now is None:
            now = time.time()
        key = line_code.strip()

        entry = self._entries.get(key)
        if entry is not None:
            view, built_at = entry
            if now - built_at < self.ttl:
                logger.debug(f"Using cached view for line {key!r}")
                return view

        try:
            view = self.store.resolve_line(key)
        except UpstreamUnavailable as e:
            if entry is None:
                raise
            # Keep the old timestamp so the next call tries again
            logger.warning(f"Rebuild of line {key!r} failed, serving stale view: {e}")
            return entry[0]

        self._entries[key] = (view, now)
        return view

    def clear(self) -> None:
        """Manually clear the cache."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, line_code: str) -> bool:
        return line_code.strip() in self._entries
