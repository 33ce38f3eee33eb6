"""
Way normalization.

Converts raw OSM way records into road candidates carrying the internal
vocabulary used by the asset store: road class, lane count, direction and
naming fields.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from shapely.geometry import LineString

from ...utils.geo_utils import GeoBox, geometry_length_m
from .models import ExternalWay


logger = logging.getLogger(__name__)

# Mapping from OSM highway to internal road class
ROAD_CLASS_MAP: Dict[str, str] = {
    "primary": "arterial",
    "primary_link": "arterial",
    "secondary": "arterial",
    "secondary_link": "arterial",
    "tertiary": "collector",
    "tertiary_link": "collector",
    "residential": "local",
    "unclassified": "local",
    "living_street": "local",
    "service": "local",
}
DEFAULT_ROAD_CLASS = "local"
DEFAULT_LANE_COUNT = 2
ONE_WAY_VALUES = {"yes", "1", "true", "-1"}

_LEADING_INT = re.compile(r"^\s*(\d+)")


@dataclass
class NormalizedRoadCandidate:
    """A way translated into internal road fields, not yet segmented"""

    external_id: int
    geometry: LineString  # lng/lat
    road_class: str
    lane_count: int
    direction: str
    region: str
    name: Optional[str] = None
    name_local: Optional[str] = None
    route_ref: Optional[str] = None
    local_ref: Optional[str] = None
    source_class: Optional[str] = None
    external_last_modified: Optional[datetime] = None

    @property
    def length_m(self) -> float:
        return geometry_length_m(self.geometry)

    @property
    def bbox(self) -> GeoBox:
        return GeoBox.from_bounds(self.geometry.bounds)


def deduplicate_ways(ways: Iterable[ExternalWay]) -> Dict[int, ExternalWay]:
    """Collapse ways fetched from overlapping cells by external id, last seen wins."""
    unique: Dict[int, ExternalWay] = {}
    for way in ways:
        unique[way.external_id] = way
    return unique


def parse_lane_count(value: Optional[str]) -> int:
    """Parse an OSM ``lanes`` tag, falling back to the default for junk values."""
    if value is None:
        return DEFAULT_LANE_COUNT
    match = _LEADING_INT.match(str(value))
    if not match:
        return DEFAULT_LANE_COUNT
    lanes = int(match.group(1))
    return lanes if lanes > 0 else DEFAULT_LANE_COUNT


def parse_direction(value: Optional[str]) -> str:
    if value is not None and value.strip().lower() in ONE_WAY_VALUES:
        return "one-way"
    return "two-way"


class WayNormalizer:
    """Maps ExternalWay records onto NormalizedRoadCandidate"""

    def __init__(self, road_class_map: Optional[Dict[str, str]] = None):
        self.road_class_map = road_class_map or ROAD_CLASS_MAP

    def normalize(self, way: ExternalWay, region: str) -> Optional[NormalizedRoadCandidate]:
        """
        Normalize one way.

        Args:
            way: Raw way record
            region: Ward label stamped on the candidate

        Returns:
            The candidate, or None if the way has fewer than two distinct
            vertices and cannot form a road
        """
        coords = self._clean_coords(way)
        if len(coords) < 2:
            logger.debug(f"Way {way.external_id} rejected: fewer than two vertices")
            return None

        tags = way.tags or {}
        source_class = tags.get("highway")

        return NormalizedRoadCandidate(
            external_id=way.external_id,
            geometry=LineString(coords),
            road_class=self.road_class_map.get(source_class, DEFAULT_ROAD_CLASS),
            lane_count=parse_lane_count(tags.get("lanes")),
            direction=parse_direction(tags.get("oneway")),
            region=region,
            name=tags.get("name") or tags.get("name:en") or None,
            name_local=tags.get("name:ja") or None,
            route_ref=tags.get("ref") or None,
            local_ref=tags.get("local_ref") or None,
            source_class=source_class,
            external_last_modified=way.last_modified,
        )

    def _clean_coords(self, way: ExternalWay) -> List[tuple]:
        """Convert (lat, lon) vertices to lng/lat, dropping consecutive duplicates."""
        coords = []
        for lat, lon in way.vertices or []:
            point = (lon, lat)
            if not coords or coords[-1] != point:
                coords.append(point)
        return coords
