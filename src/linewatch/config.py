"""Settings for the line tracker, read from environment variables."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .feed_client import DEFAULT_FEED_TTL
from .line_cache import DEFAULT_LINE_TTL
from .matcher import MatchMode
from .sources import DirectoryScheduleSource, RemoteScheduleSource, ScheduleSource

ENV_PREFIX = "LINEWATCH_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class Settings:
    """Runtime settings. Every field maps to a LINEWATCH_<FIELD> variable."""
    gtfs_path: Optional[str] = None  # Local directory or .zip
    gtfs_base_url: Optional[str] = None  # Used when gtfs_path is unset
    gtfs_extension: str = ".txt"
    gtfs_max_age: Optional[float] = None  # Reload static tables after this many seconds
    feed_url: Optional[str] = None
    feed_api_key: Optional[str] = None
    feed_ttl: float = DEFAULT_FEED_TTL
    line_ttl: float = DEFAULT_LINE_TTL
    request_timeout: float = 10.0
    serve_stale: bool = True
    match_mode: MatchMode = MatchMode.AUTO

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        if environ is None:
            environ = os.environ

        def get(name: str) -> Optional[str]:
            value = environ.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return None
            return value.strip()

        def get_float(name: str, default: Optional[float]) -> Optional[float]:
            value = get(name)
            if value is None:
                return default
            try:
                number = float(value)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {value!r}") from None
            if number < 0:
                raise ValueError(f"{ENV_PREFIX}{name} must not be negative, got {value!r}")
            return number

        def get_bool(name: str, default: bool) -> bool:
            value = get(name)
            if value is None:
                return default
            if value.lower() in _TRUE:
                return True
            if value.lower() in _FALSE:
                return False
            raise ValueError(f"{ENV_PREFIX}{name} must be true or false, got {value!r}")

        match_mode = get("MATCH_MODE")
        try:
            mode = MatchMode.parse(match_mode) if match_mode else MatchMode.AUTO
        except ValueError as e:
            raise ValueError(f"{ENV_PREFIX}MATCH_MODE: {e}") from None

        return cls(
            gtfs_path=get("GTFS_PATH"),
            gtfs_base_url=get("GTFS_BASE_URL"),
            gtfs_extension=get("GTFS_EXTENSION") or ".txt",
            gtfs_max_age=get_float("GTFS_MAX_AGE", None),
            feed_url=get("FEED_URL"),
            feed_api_key=get("FEED_API_KEY"),
            feed_ttl=get_float("FEED_TTL", DEFAULT_FEED_TTL),
            line_ttl=get_float("LINE_TTL", DEFAULT_LINE_TTL),
            request_timeout=get_float("REQUEST_TIMEOUT", 10.0),
            serve_stale=get_bool("SERVE_STALE", True),
            match_mode=mode,
        )

    def schedule_source(self) -> ScheduleSource:
        """Create the static schedule source these settings point at."""
        if self.gtfs_path:
            return DirectoryScheduleSource(
                self.gtfs_path,
                extension=self.gtfs_extension,
                max_age=self.gtfs_max_age,
            )
        if self.gtfs_base_url:
            return RemoteScheduleSource(
                self.gtfs_base_url,
                extension=self.gtfs_extension,
                timeout=self.request_timeout,
                max_age=self.gtfs_max_age,
            )
        raise ValueError(f"Set {ENV_PREFIX}GTFS_PATH or {ENV_PREFIX}GTFS_BASE_URL")
