"""Tests for write_line_subset."""

import os
import sys
import tempfile
import unittest
from pathlib import Path

# Add src to path so we can import linewatch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from linewatch.gtfs_loader import ScheduleStore
from linewatch.sources import DirectoryScheduleSource
from linewatch.subset import write_line_subset

from gtfs_fixtures import SAMPLE_GTFS, write_gtfs


class TestWriteLineSubset(unittest.TestCase):
    """Test writing a reduced dataset."""

    def setUp(self):
        """Set up source and destination directories."""
        self._src = tempfile.TemporaryDirectory()
        self._dst = tempfile.TemporaryDirectory()
        write_gtfs(self._src.name, SAMPLE_GTFS)
        self.dest = os.path.join(self._dst.name, "mini")

    def tearDown(self):
        self._src.cleanup()
        self._dst.cleanup()

    def test_counts(self):
        """Test the number of rows kept per table."""
        counts = write_line_subset(self._src.name, self.dest, ["117"])

        self.assertEqual(counts, {
            "routes": 1,
            "trips": 1,
            "stop_times": 1,
            "stops": 1,
            "shapes": 1,
        })
        for name in counts:
            self.assertTrue(os.path.exists(os.path.join(self.dest, f"{name}.txt")))

    def test_subset_resolves_like_the_original(self):
        """Test that a line in the subset builds the same view."""
        write_line_subset(self._src.name, self.dest, ["5", "117"])

        full = ScheduleStore(DirectoryScheduleSource(self._src.name)).resolve_line("5")
        mini = ScheduleStore(DirectoryScheduleSource(self.dest)).resolve_line("5")

        self.assertEqual(mini.trip_ids, full.trip_ids)
        self.assertEqual(mini.shapes, full.shapes)
        self.assertEqual(mini.terminal_names, full.terminal_names)
        self.assertIsNone(ScheduleStore(DirectoryScheduleSource(self.dest)).resolve_line("99"))

    def test_unknown_line_writes_empty_tables(self):
        """Test that unknown lines give headers only."""
        counts = write_line_subset(self._src.name, self.dest, ["404"])

        self.assertEqual(set(counts.values()), {0})
        with open(os.path.join(self.dest, "routes.txt"), encoding="utf-8") as f:
            self.assertTrue(f.readline().startswith("route_id,"))


if __name__ == "__main__":
    unittest.main()
