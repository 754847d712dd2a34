"""
Backing stores for the static GTFS schedule.

ScheduleStore only talks to the ScheduleSource interface, so the schedule can
come from a local directory or zip, from CSV documents on a web server, or
from a relational database without touching the join logic.
"""

import io
import logging
import math
import os
import time
import zipfile
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

import pandas as pd
import requests

from .exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)

# The five relations the tracker needs
TABLES = ("routes", "trips", "stop_times", "stops", "shapes")

# Columns a table must have to be usable at all
REQUIRED_COLUMNS = {
    "routes": ("route_id", "route_short_name"),
    "trips": ("route_id", "trip_id"),
    "stop_times": ("trip_id", "stop_id", "stop_sequence"),
    "stops": ("stop_id", "stop_lat", "stop_lon"),
    "shapes": ("shape_id", "shape_pt_lat", "shape_pt_lon", "shape_pt_sequence"),
}

# Keep IN (...) lists below SQLite's host parameter limit
SQL_CHUNK_SIZE = 500


class ScheduleSource(ABC):
    """
    Capability interface over a static GTFS dataset.

    Every method returns raw rows: dicts of string values keyed by GTFS column
    name. Parsing and validation happen in ScheduleStore.
    """

    @abstractmethod
    def fetch_routes(self) -> List[dict]:
        """Return all rows of routes.txt, in file order."""

    @abstractmethod
    def fetch_trips(self, route_id: str) -> List[dict]:
        """Return the trips.txt rows belonging to a route, in file order."""

    @abstractmethod
    def fetch_stop_times(self, trip_ids: Iterable[str]) -> List[dict]:
        """Return the stop_times.txt rows for the given trips."""

    @abstractmethod
    def fetch_stops(self, stop_ids: Iterable[str]) -> List[dict]:
        """Return the stops.txt rows for the given stop IDs."""

    @abstractmethod
    def fetch_shape_points(self, shape_id: str) -> List[dict]:
        """Return the shapes.txt rows for one shape."""


def read_gtfs_csv(buffer) -> pd.DataFrame:
    """Parse a GTFS CSV file into a DataFrame of trimmed strings."""
    df = pd.read_csv(
        buffer,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        encoding="utf-8-sig",
    )
    df.columns = [str(column).strip() for column in df.columns]
    for column in df.columns:
        df[column] = df[column].str.strip()
    return df


def _records(df: pd.DataFrame) -> List[dict]:
    return df.to_dict("records")


class TableScheduleSource(ScheduleSource):
    """
    Base class for sources that load each GTFS table whole.

    Tables are loaded on first use and kept in memory. If ``max_age`` is set,
    all tables are dropped and reloaded once they are older than that many
    seconds, so a republished dataset is eventually picked up.
    """

    def __init__(self, max_age: Optional[float] = None):
        self.max_age = max_age
        self._tables: Dict[str, pd.DataFrame] = {}
        self._loaded_at: Optional[float] = None

    @property
    def description(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def _load_table(self, name: str) -> pd.DataFrame:
        """Load one table. Implementations raise UpstreamUnavailable on failure."""

    def reload(self) -> None:
        """Drop loaded tables; they are fetched again on next use."""
        self._tables = {}
        self._loaded_at = None

    def _table(self, name: str) -> pd.DataFrame:
        now = time.time()
        if self.max_age is not None and self._loaded_at is not None:
            if now - self._loaded_at >= self.max_age:
                logger.info(f"Static schedule from {self.description} expired, reloading")
                self.reload()

        df = self._tables.get(name)
        if df is None:
            df = self._load_table(name)
            missing = [c for c in REQUIRED_COLUMNS.get(name, ()) if c not in df.columns]
            if missing:
                # e.g. an HTML error page served with 200; left uncached so the next call refetches
                logger.error(f"{name} from {self.description} lacks columns: {', '.join(missing)}")
                raise UpstreamUnavailable(self.description, f"{name} lacks columns {', '.join(missing)}")
            logger.info(f"Loaded {len(df)} rows of {name} from {self.description}")
            self._tables[name] = df
            if self._loaded_at is None:
                self._loaded_at = now
        return df

    @staticmethod
    def _where_equals(df: pd.DataFrame, column: str, value: str) -> pd.DataFrame:
        if column not in df.columns:
            return df.iloc[0:0]
        return df[df[column] == value]

    @staticmethod
    def _where_in(df: pd.DataFrame, column: str, values: Iterable[str]) -> pd.DataFrame:
        if column not in df.columns:
            return df.iloc[0:0]
        return df[df[column].isin(list(values))]

    def fetch_routes(self) -> List[dict]:
        return _records(self._table("routes"))

    def fetch_trips(self, route_id: str) -> List[dict]:
        return _records(self._where_equals(self._table("trips"), "route_id", route_id))

    def fetch_stop_times(self, trip_ids: Iterable[str]) -> List[dict]:
        return _records(self._where_in(self._table("stop_times"), "trip_id", trip_ids))

    def fetch_stops(self, stop_ids: Iterable[str]) -> List[dict]:
        return _records(self._where_in(self._table("stops"), "stop_id", stop_ids))

    def fetch_shape_points(self, shape_id: str) -> List[dict]:
        return _records(self._where_equals(self._table("shapes"), "shape_id", shape_id))


class DirectoryScheduleSource(TableScheduleSource):
    """Reads GTFS CSV files from a local directory or a .zip archive."""

    def __init__(self, path: str, extension: str = ".txt", max_age: Optional[float] = None):
        super().__init__(max_age=max_age)
        self.path = path
        self.extension = extension

    @property
    def description(self) -> str:
        return self.path

    def _load_table(self, name: str) -> pd.DataFrame:
        filename = f"{name}{self.extension}"
        try:
            if zipfile.is_zipfile(self.path):
                with zipfile.ZipFile(self.path) as zip_file:
                    with zip_file.open(filename) as fh:
                        return read_gtfs_csv(fh)
            return read_gtfs_csv(os.path.join(self.path, filename))
        except (OSError, KeyError, ValueError, zipfile.BadZipFile) as e:
            logger.error(f"Failed to read {filename} from {self.path}: {e}")
            raise UpstreamUnavailable(self.path, f"cannot read {filename}: {e}") from e


class RemoteScheduleSource(TableScheduleSource):
    """
    Fetches each GTFS table as a CSV document over HTTP.

    The URL of a table is ``base_url + name + extension``, e.g.
    ``https://example.com/gtfs/routes.txt``.
    """

    def __init__(
        self,
        base_url: str,
        extension: str = ".txt",
        timeout: float = 30.0,
        max_age: Optional[float] = None,
    ):
        super().__init__(max_age=max_age)
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.extension = extension
        self.timeout = timeout

    @property
    def description(self) -> str:
        return self.base_url

    def _load_table(self, name: str) -> pd.DataFrame:
        url = f"{self.base_url}{name}{self.extension}"
        logger.debug(f"Fetching {url}")
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            return read_gtfs_csv(io.BytesIO(response.content))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to fetch {url}: {e}")
            raise UpstreamUnavailable(url, str(e)) from e


class SQLScheduleSource(ScheduleSource):
    """
    Queries GTFS tables in a relational database through a DB-API connection.

    Tables are expected to be named like the GTFS files (``routes``,
    ``trips``, ...), optionally with a common prefix. ``placeholder`` is the
    driver's parameter marker: ``?`` for sqlite3, ``%s`` for psycopg.
    """

    def __init__(self, connection, table_prefix: str = "", placeholder: str = "?"):
        self.connection = connection
        self.table_prefix = table_prefix
        self.placeholder = placeholder

    def _query(self, sql: str, params: Optional[list] = None) -> List[dict]:
        try:
            df = pd.read_sql_query(sql, self.connection, params=params)
        except pd.errors.DatabaseError as e:
            logger.error(f"Schedule query failed: {e}")
            raise UpstreamUnavailable("schedule database", str(e)) from e
        return [
            {str(key): _sql_value_to_str(value) for key, value in row.items()}
            for row in df.to_dict("records")
        ]

    def _table_name(self, name: str) -> str:
        return f"{self.table_prefix}{name}"

    def _select_in(self, table: str, column: str, values: Iterable[str]) -> List[dict]:
        values = list(dict.fromkeys(values))
        rows: List[dict] = []
        for start in range(0, len(values), SQL_CHUNK_SIZE):
            chunk = values[start:start + SQL_CHUNK_SIZE]
            markers = ", ".join([self.placeholder] * len(chunk))
            rows.extend(self._query(
                f"SELECT * FROM {self._table_name(table)} WHERE {column} IN ({markers})",
                chunk,
            ))
        return rows

    def fetch_routes(self) -> List[dict]:
        return self._query(f"SELECT * FROM {self._table_name('routes')}")

    def fetch_trips(self, route_id: str) -> List[dict]:
        return self._query(
            f"SELECT * FROM {self._table_name('trips')} WHERE route_id = {self.placeholder}",
            [route_id],
        )

    def fetch_stop_times(self, trip_ids: Iterable[str]) -> List[dict]:
        return self._select_in("stop_times", "trip_id", trip_ids)

    def fetch_stops(self, stop_ids: Iterable[str]) -> List[dict]:
        return self._select_in("stops", "stop_id", stop_ids)

    def fetch_shape_points(self, shape_id: str) -> List[dict]:
        return self._query(
            f"SELECT * FROM {self._table_name('shapes')} WHERE shape_id = {self.placeholder}",
            [shape_id],
        )


def _sql_value_to_str(value) -> str:
    """Render a database value the way it would appear in a GTFS CSV file."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()
