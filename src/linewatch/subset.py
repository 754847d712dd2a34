"""Write a reduced GTFS dataset that only contains selected lines."""

import logging
import os
from typing import Dict, Iterable

import pandas as pd

from .sources import read_gtfs_csv

logger = logging.getLogger(__name__)


def _column(df: pd.DataFrame, name: str) -> pd.Series:
    if name in df.columns:
        return df[name]
    return pd.Series([""] * len(df), index=df.index, dtype=str)


def write_line_subset(
    source_dir: str,
    dest_dir: str,
    line_codes: Iterable[str],
    extension: str = ".txt",
) -> Dict[str, int]:
    """
    Copy only the rows needed for some lines into a new GTFS directory.

    Keeps routes whose short name is in ``line_codes``, their trips, those
    trips' stop times, the stops they visit and the shapes they follow. Useful
    for shipping a small static dataset for a handful of lines.

    Args:
        source_dir: Directory holding the full GTFS tables.
        dest_dir: Output directory, created if missing.
        line_codes: Route short names to keep.
        extension: File extension of the tables, in and out.

    Returns:
        Number of rows written per table.
    """
    keep_lines = {code.strip() for code in line_codes}

    def read(name: str) -> pd.DataFrame:
        return read_gtfs_csv(os.path.join(source_dir, f"{name}{extension}"))

    routes = read("routes")
    routes = routes[_column(routes, "route_short_name").isin(keep_lines)]
    route_ids = set(_column(routes, "route_id"))

    trips = read("trips")
    trips = trips[_column(trips, "route_id").isin(route_ids)]
    trip_ids = set(_column(trips, "trip_id"))
    shape_ids = set(_column(trips, "shape_id")) - {""}

    stop_times = read("stop_times")
    stop_times = stop_times[_column(stop_times, "trip_id").isin(trip_ids)]
    stop_ids = set(_column(stop_times, "stop_id"))

    stops = read("stops")
    stops = stops[_column(stops, "stop_id").isin(stop_ids)]

    shapes = read("shapes")
    shapes = shapes[_column(shapes, "shape_id").isin(shape_ids)]

    os.makedirs(dest_dir, exist_ok=True)
    counts: Dict[str, int] = {}
    for name, df in (
        ("routes", routes),
        ("trips", trips),
        ("stop_times", stop_times),
        ("stops", stops),
        ("shapes", shapes),
    ):
        df.to_csv(os.path.join(dest_dir, f"{name}{extension}"), index=False)
        counts[name] = len(df)

    missing = keep_lines - set(_column(routes, "route_short_name"))
    if missing:
        logger.warning(f"No routes found for line(s): {', '.join(sorted(missing))}")
    logger.info(
        f"Wrote subset to {dest_dir}: {counts['routes']} routes, {counts['trips']} trips, "
        f"{counts['stops']} stops, {counts['shapes']} shape points"
    )
    return counts
