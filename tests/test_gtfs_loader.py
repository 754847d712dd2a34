"""Tests for ScheduleStore."""

import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# Add src to path so we can import linewatch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from linewatch.exceptions import UpstreamUnavailable
from linewatch.gtfs_loader import (
    ScheduleStore,
    dedupe_stops,
    parse_shape_point,
    parse_stop,
    parse_stop_time,
    parse_trip,
)
from linewatch.sources import DirectoryScheduleSource, ScheduleSource

from gtfs_fixtures import SAMPLE_GTFS, write_gtfs


class TestRowParsing(unittest.TestCase):
    """Test parsing of single GTFS rows."""

    def test_trip_without_direction(self):
        """Test that a missing direction_id parses as None."""
        trip = parse_trip({"trip_id": "T1", "route_id": "R1", "direction_id": ""})
        self.assertIsNone(trip.direction_id)
        self.assertEqual(trip.headsign, "")

    def test_trip_with_garbage_direction(self):
        """Test that an unparseable direction_id is treated as absent."""
        trip = parse_trip({"trip_id": "T1", "route_id": "R1", "direction_id": "north"})
        self.assertIsNone(trip.direction_id)

    def test_stop_time_requires_sequence(self):
        """Test that stop times without a usable sequence are rejected."""
        with self.assertRaises(ValueError):
            parse_stop_time({"trip_id": "T1", "stop_id": "A", "stop_sequence": ""})
        with self.assertRaises(ValueError):
            parse_stop_time({"trip_id": "T1", "stop_id": "A", "stop_sequence": "1.5"})

    def test_non_finite_coordinates_are_rejected(self):
        """Test that NaN and infinite coordinates don't parse."""
        with self.assertRaises(ValueError):
            parse_stop({"stop_id": "A", "stop_lat": "inf", "stop_lon": "18.0"})
        with self.assertRaises(ValueError):
            parse_stop({"stop_id": "A", "stop_lat": "59.3", "stop_lon": "NaN"})
        with self.assertRaises(ValueError):
            parse_shape_point({"shape_id": "S1", "shape_pt_lat": "-Infinity",
                               "shape_pt_lon": "18.0", "shape_pt_sequence": "1"})

    def test_stop_time_accepts_float_formatted_sequence(self):
        """Test that "3.0" (as exported by some databases) parses as 3."""
        st = parse_stop_time({"trip_id": "T1", "stop_id": "A", "stop_sequence": "3.0"})
        self.assertEqual(st.stop_sequence, 3)
        self.assertIsNone(st.arrival_time)


class TestScheduleStore(unittest.TestCase):
    """Test building LineViews from the sample dataset."""

    def setUp(self):
        """Set up test fixtures."""
        self._tmp = tempfile.TemporaryDirectory()
        write_gtfs(self._tmp.name, SAMPLE_GTFS)
        self.store = ScheduleStore(DirectoryScheduleSource(self._tmp.name))

    def tearDown(self):
        self._tmp.cleanup()

    def test_resolve_line(self):
        """Test that a line code resolves to its route and trips."""
        view = self.store.resolve_line("5")

        self.assertIsNotNone(view)
        self.assertEqual(view.route.route_id, "R1")
        self.assertEqual(view.route.long_name, "Centrum - Hamnen")
        self.assertEqual(view.route.route_type, 3)
        self.assertEqual([t.trip_id for t in view.trips], ["T1", "T2", "T3"])
        self.assertEqual(view.trip_ids, frozenset({"T1", "T2", "T3"}))

    def test_all_trips_belong_to_route(self):
        """Test that no trip from another route leaks into the view."""
        view = self.store.resolve_line("5")
        for trip in view.trips:
            self.assertEqual(trip.route_id, view.route.route_id)
        self.assertNotIn("T20", view.trip_ids)

    def test_line_code_is_trimmed(self):
        """Test that surrounding whitespace is ignored."""
        view = self.store.resolve_line("  117 \n")
        self.assertIsNotNone(view)
        self.assertEqual(view.route.route_id, "R2")
        self.assertEqual(view.line_code, "117")

    def test_line_code_is_case_sensitive(self):
        """Test that matching is exact."""
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        tables = dict(SAMPLE_GTFS)
        tables["routes"] = SAMPLE_GTFS["routes"] + "R9,SL,N,Night line,3,\n"
        tables["trips"] = SAMPLE_GTFS["trips"] + "R9,WKD,T90,Night,0,S1\n"
        store = ScheduleStore(DirectoryScheduleSource(write_gtfs(tmp.name, tables)))

        self.assertIsNotNone(store.resolve_line("N"))
        self.assertIsNone(store.resolve_line("n"))

    def test_unknown_line(self):
        """Test that an unknown line code gives None."""
        self.assertIsNone(self.store.resolve_line("404"))

    def test_line_without_trips(self):
        """Test that a route with no trips is treated as not found."""
        self.assertIsNone(self.store.resolve_line("99"))

    def test_stop_times_are_ordered(self):
        """Test that each trip's stop times are sorted by sequence."""
        view = self.store.resolve_line("5")

        self.assertEqual([st.stop_id for st in view.stop_times["T1"]], ["A", "B"])
        self.assertEqual([st.stop_id for st in view.stop_times["T2"]], ["B", "A"])
        # The row with sequence "x" is skipped
        self.assertEqual([st.stop_id for st in view.stop_times["T3"]], ["A", "C", "GHOST"])
        for sts in view.stop_times.values():
            sequences = [st.stop_sequence for st in sts]
            self.assertEqual(sequences, sorted(sequences))

    def test_shapes_per_direction(self):
        """Test one polyline per direction, ordered by sequence."""
        view = self.store.resolve_line("5")

        self.assertEqual(set(view.shapes), {0, 1})
        self.assertEqual(view.shapes[0], [(59.3, 18.0), (59.31, 18.01)])
        self.assertEqual(view.shapes[1], [(59.31, 18.01), (59.305, 18.005), (59.3, 18.0)])
        # Default shape follows the first trip (direction 0)
        self.assertEqual(view.shape, view.shapes[0])

    def test_rebuild_is_identical(self):
        """Test that rebuilding from unchanged data gives the same polylines."""
        first = self.store.resolve_line("5")
        second = self.store.resolve_line("5")
        self.assertIsNot(first, second)
        self.assertEqual(first.shapes, second.shapes)
        self.assertEqual(first.stop_times, second.stop_times)

    def test_headsigns_and_terminal_names(self):
        """Test the headsign map and the terminal-stop fallback map."""
        view = self.store.resolve_line("5")

        self.assertEqual(view.headsigns, {"T1": "", "T2": "Hamnen", "T3": "Centrum"})
        self.assertEqual(view.terminal_names["T1"], "B")
        self.assertEqual(view.terminal_names["T2"], "A")
        # T3 ends at a stop that doesn't exist in stops.txt
        self.assertNotIn("T3", view.terminal_names)

    def test_static_directions(self):
        """Test that the trip direction map comes from trips.txt."""
        view = self.store.resolve_line("5")
        self.assertEqual(view.directions, {"T1": 0, "T2": 1, "T3": 0})

    def test_missing_stops_are_omitted(self):
        """Test that stops absent from stops.txt are left out rather than failing."""
        view = self.store.resolve_line("5")
        self.assertEqual(set(view.stops), {"A", "B", "C"})

    def test_dedupe_stops(self):
        """Test that each stop appears once, in order of first encounter."""
        view = self.store.resolve_line("5")
        stops = dedupe_stops(view)

        self.assertEqual([s.stop_id for s in stops], ["A", "B", "C"])
        self.assertEqual(stops[2].name, "Central Station")

    def test_first_route_wins_on_duplicate_short_name(self):
        """Test that R1 wins over R3, which reuses short name "5"."""
        route = self.store.find_route("5")
        self.assertEqual(route.route_id, "R1")


class TestScheduleStoreFailures(unittest.TestCase):
    """Test error propagation from the source."""

    def test_source_failure_propagates(self):
        """Test that an unreachable source raises UpstreamUnavailable."""
        source = MagicMock(spec=ScheduleSource)
        source.fetch_routes.side_effect = UpstreamUnavailable("http://example.com/gtfs/", "timeout")
        store = ScheduleStore(source)

        with self.assertRaises(UpstreamUnavailable):
            store.resolve_line("5")

    def test_missing_directory(self):
        """Test that a missing dataset is reported as unavailable."""
        store = ScheduleStore(DirectoryScheduleSource("/nonexistent/gtfs"))
        with self.assertRaises(UpstreamUnavailable):
            store.resolve_line("5")

    def test_trip_without_shape(self):
        """Test that a trip with no shape_id yields an empty polyline."""
        source = MagicMock(spec=ScheduleSource)
        source.fetch_routes.return_value = [{"route_id": "R1", "route_short_name": "5"}]
        source.fetch_trips.return_value = [{"route_id": "R1", "trip_id": "T1", "shape_id": ""}]
        source.fetch_stop_times.return_value = []
        source.fetch_stops.return_value = []

        view = ScheduleStore(source).resolve_line("5")

        self.assertEqual(view.shape, [])
        source.fetch_shape_points.assert_not_called()

    def test_non_finite_coordinates_are_skipped(self):
        """Test that stops and shape points with NaN or inf coordinates are dropped."""
        source = MagicMock(spec=ScheduleSource)
        source.fetch_routes.return_value = [{"route_id": "R1", "route_short_name": "5"}]
        source.fetch_trips.return_value = [{"route_id": "R1", "trip_id": "T1", "shape_id": "S1"}]
        source.fetch_stop_times.return_value = [
            {"trip_id": "T1", "stop_id": "A", "stop_sequence": "1"},
            {"trip_id": "T1", "stop_id": "B", "stop_sequence": "2"},
        ]
        source.fetch_stops.return_value = [
            {"stop_id": "A", "stop_name": "A", "stop_lat": "NaN", "stop_lon": "18.0"},
            {"stop_id": "B", "stop_name": "B", "stop_lat": "59.31", "stop_lon": "18.01"},
        ]
        source.fetch_shape_points.return_value = [
            {"shape_id": "S1", "shape_pt_lat": "59.3", "shape_pt_lon": "18.0", "shape_pt_sequence": "1"},
            {"shape_id": "S1", "shape_pt_lat": "inf", "shape_pt_lon": "18.0", "shape_pt_sequence": "2"},
            {"shape_id": "S1", "shape_pt_lat": "59.31", "shape_pt_lon": "18.01", "shape_pt_sequence": "3"},
        ]

        view = ScheduleStore(source).resolve_line("5")

        self.assertEqual(view.shape, [(59.3, 18.0), (59.31, 18.01)])
        self.assertEqual([s.stop_id for s in dedupe_stops(view)], ["B"])


if __name__ == "__main__":
    unittest.main()
