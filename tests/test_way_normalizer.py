"""
Unit tests for way normalization and deduplication.
"""

import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path


sys.path.append(str(Path(__file__).parent.parent / "src"))

from road_sync.services.sync.models import ExternalWay
from road_sync.services.sync.way_normalizer import (
    WayNormalizer,
    deduplicate_ways,
    parse_direction,
    parse_lane_count,
)


def make_way(external_id=1, tags=None, vertices=None, last_modified=None):
    return ExternalWay(
        external_id=external_id,
        vertices=vertices or [(35.17, 136.900), (35.17, 136.905)],
        tags=tags if tags is not None else {"highway": "residential"},
        last_modified=last_modified,
    )


class TestTagParsing(unittest.TestCase):
    def test_lane_count(self):
        self.assertEqual(parse_lane_count("4"), 4)
        self.assertEqual(parse_lane_count("3;2"), 3)
        self.assertEqual(parse_lane_count(" 1 "), 1)
        self.assertEqual(parse_lane_count(None), 2)
        self.assertEqual(parse_lane_count("abc"), 2)
        self.assertEqual(parse_lane_count("0"), 2)

    def test_direction(self):
        for value in ("yes", "1", "true", "-1", "YES"):
            self.assertEqual(parse_direction(value), "one-way", value)
        for value in (None, "no", "reversible", ""):
            self.assertEqual(parse_direction(value), "two-way", value)


class TestWayNormalizer(unittest.TestCase):
    """Test mapping of OSM tags onto road fields."""

    def setUp(self):
        self.normalizer = WayNormalizer()

    def test_road_class_mapping(self):
        expected = {
            "primary": "arterial",
            "secondary_link": "arterial",
            "tertiary": "collector",
            "living_street": "local",
            "service": "local",
            "motorway": "local",
        }
        for highway, road_class in expected.items():
            candidate = self.normalizer.normalize(make_way(tags={"highway": highway}), "Naka-ku")
            self.assertEqual(candidate.road_class, road_class, highway)

    def test_geometry_is_lng_lat(self):
        candidate = self.normalizer.normalize(make_way(), "Naka-ku")

        self.assertEqual(list(candidate.geometry.coords), [(136.900, 35.17), (136.905, 35.17)])
        self.assertAlmostEqual(candidate.length_m, 455.5, delta=2.0)
        self.assertEqual(candidate.bbox.min_lng, 136.900)
        self.assertEqual(candidate.bbox.max_lng, 136.905)

    def test_fields_copied(self):
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        way = make_way(
            external_id=42,
            tags={
                "highway": "primary",
                "name": "Otsu-dori",
                "name:ja": "大津通",
                "ref": "153",
                "local_ref": "N-12",
                "lanes": "4",
                "oneway": "yes",
            },
            last_modified=modified,
        )

        candidate = self.normalizer.normalize(way, "Naka-ku")

        self.assertEqual(candidate.external_id, 42)
        self.assertEqual(candidate.region, "Naka-ku")
        self.assertEqual(candidate.name, "Otsu-dori")
        self.assertEqual(candidate.name_local, "大津通")
        self.assertEqual(candidate.route_ref, "153")
        self.assertEqual(candidate.local_ref, "N-12")
        self.assertEqual(candidate.lane_count, 4)
        self.assertEqual(candidate.direction, "one-way")
        self.assertEqual(candidate.source_class, "primary")
        self.assertEqual(candidate.external_last_modified, modified)

    def test_name_falls_back_to_english(self):
        way = make_way(tags={"highway": "residential", "name:en": "Cherry Street"})
        self.assertEqual(self.normalizer.normalize(way, "Naka-ku").name, "Cherry Street")

    def test_missing_tags_use_defaults(self):
        candidate = self.normalizer.normalize(make_way(tags={}), "Unknown")

        self.assertEqual(candidate.road_class, "local")
        self.assertEqual(candidate.lane_count, 2)
        self.assertEqual(candidate.direction, "two-way")
        self.assertIsNone(candidate.name)
        self.assertIsNone(candidate.route_ref)

    def test_single_vertex_rejected(self):
        way = make_way(vertices=[(35.17, 136.90)])
        self.assertIsNone(self.normalizer.normalize(way, "Naka-ku"))

    def test_repeated_vertex_rejected(self):
        way = make_way(vertices=[(35.17, 136.90), (35.17, 136.90)])
        self.assertIsNone(self.normalizer.normalize(way, "Naka-ku"))

    def test_consecutive_duplicates_dropped(self):
        way = make_way(vertices=[(35.17, 136.90), (35.17, 136.90), (35.17, 136.901)])
        candidate = self.normalizer.normalize(way, "Naka-ku")
        self.assertEqual(len(candidate.geometry.coords), 2)


class TestDeduplicateWays(unittest.TestCase):
    def test_last_seen_wins(self):
        first = make_way(external_id=7, tags={"highway": "residential"})
        second = make_way(external_id=7, tags={"highway": "primary"})
        other = make_way(external_id=8)

        unique = deduplicate_ways([first, other, second])

        self.assertEqual(list(unique.keys()), [7, 8])
        self.assertIs(unique[7], second)


if __name__ == "__main__":
    unittest.main()
