"""
Unit tests for loading ward boundary GeoJSON files.
"""

import json
import sys
import tempfile
import unittest
from pathlib import Path

from shapely.geometry import MultiPolygon, Polygon


sys.path.append(str(Path(__file__).parent.parent / "src"))

from road_sync.services.sync.region_boundaries import RegionBoundaryStore


SQUARE = [[[136.90, 35.16], [136.92, 35.16], [136.92, 35.18], [136.90, 35.18], [136.90, 35.16]]]


class TestRegionBoundaryStore(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.dir = Path(self.temp_dir.name)
        self.store = RegionBoundaryStore(self.dir)

    def tearDown(self):
        self.temp_dir.cleanup()

    def write(self, name, payload):
        (self.dir / name).write_text(json.dumps(payload), encoding="utf-8")

    def test_path_is_lower_case(self):
        self.assertEqual(self.store.boundary_path("Naka-ku"), self.dir / "naka-ku.geojson")

    def test_feature_collection(self):
        self.write("naka-ku.geojson", {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": SQUARE}},
            ],
        })

        boundary = self.store.load_region_boundary_polygon("Naka-ku")

        self.assertIsInstance(boundary, Polygon)
        self.assertEqual(boundary.bounds, (136.90, 35.16, 136.92, 35.18))

    def test_single_feature_multipolygon(self):
        self.write("kita-ku.geojson", {
            "type": "Feature",
            "properties": {},
            "geometry": {"type": "MultiPolygon", "coordinates": [SQUARE]},
        })

        boundary = self.store.load_region_boundary_polygon("Kita-ku")

        self.assertIsInstance(boundary, MultiPolygon)

    def test_missing_file(self):
        self.assertIsNone(self.store.load_region_boundary_polygon("Atlantis"))

    def test_empty_collection(self):
        self.write("empty.geojson", {"type": "FeatureCollection", "features": []})
        self.assertIsNone(self.store.load_region_boundary_polygon("Empty"))

    def test_non_polygon_geometry(self):
        self.write("line.geojson", {
            "type": "Feature",
            "properties": {},
            "geometry": {"type": "LineString", "coordinates": [[136.9, 35.1], [136.91, 35.1]]},
        })
        self.assertIsNone(self.store.load_region_boundary_polygon("Line"))

    def test_malformed_json_raises(self):
        (self.dir / "broken.geojson").write_text("{not json", encoding="utf-8")

        with self.assertRaises(ValueError):
            self.store.load_region_boundary_polygon("Broken")


if __name__ == "__main__":
    unittest.main()
