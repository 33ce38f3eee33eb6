from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from pyproj import Geod
from shapely.geometry import LineString, box


GEOD = Geod(ellps="WGS84")


@dataclass(frozen=True)
class GeoBox:
    """Geographic rectangle in WGS84 degrees."""

    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    @classmethod
    def from_bounds(cls, bounds: Sequence[float]) -> "GeoBox":
        """Build from a (min_lng, min_lat, max_lng, max_lat) sequence, e.g. shapely ``bounds``."""
        min_lng, min_lat, max_lng, max_lat = bounds
        return cls(float(min_lng), float(min_lat), float(max_lng), float(max_lat))

    @classmethod
    def parse(cls, value: str) -> "GeoBox":
        """Parse the ``minLng,minLat,maxLng,maxLat`` string stored on sync logs."""
        parts = [p.strip() for p in value.split(",")]
        if len(parts) != 4:
            raise ValueError(f"bbox must have 4 comma separated values, got: {value!r}")
        return cls.from_bounds([float(p) for p in parts])

    def to_param(self) -> str:
        return f"{self.min_lng},{self.min_lat},{self.max_lng},{self.max_lat}"

    def to_polygon(self):
        return box(self.min_lng, self.min_lat, self.max_lng, self.max_lat)

    def validate(self) -> None:
        """Validate coordinate ranges and ordering."""
        if not (-180 <= self.min_lng <= 180 and -180 <= self.max_lng <= 180):
            raise ValueError("Longitudes must be within [-180, 180]")
        if not (-90 <= self.min_lat <= 90 and -90 <= self.max_lat <= 90):
            raise ValueError("Latitudes must be within [-90, 90]")
        if self.min_lng > self.max_lng:
            raise ValueError(f"min_lng ({self.min_lng}) must be less than max_lng ({self.max_lng})")
        if self.min_lat > self.max_lat:
            raise ValueError(f"min_lat ({self.min_lat}) must be less than max_lat ({self.max_lat})")


def distance_m(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """Geodesic distance in metres between two lng/lat points."""
    _, _, dist = GEOD.inv(lng1, lat1, lng2, lat2)
    return abs(dist)


def box_dimensions_m(bbox: GeoBox) -> Tuple[float, float]:
    """
    Width and height of a bbox in metres, measured along its edges.

    The width is the longer of the southern and northern edges so that a cell
    reported within a side ceiling is within it along every parallel.
    """
    south = distance_m(bbox.min_lng, bbox.min_lat, bbox.max_lng, bbox.min_lat)
    north = distance_m(bbox.min_lng, bbox.max_lat, bbox.max_lng, bbox.max_lat)
    height = distance_m(bbox.min_lng, bbox.min_lat, bbox.min_lng, bbox.max_lat)
    return max(south, north), height


def box_area_m2(bbox: GeoBox) -> float:
    """Geodesic area of a bbox in square metres."""
    lngs = [bbox.min_lng, bbox.max_lng, bbox.max_lng, bbox.min_lng]
    lats = [bbox.min_lat, bbox.min_lat, bbox.max_lat, bbox.max_lat]
    area, _ = GEOD.polygon_area_perimeter(lngs, lats)
    return abs(area)


def line_length_m(coords: Iterable[Tuple[float, float]]) -> float:
    """Geodesic length of a lng/lat polyline in metres."""
    coords = list(coords)
    if len(coords) < 2:
        return 0.0
    lngs = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    return GEOD.line_length(lngs, lats)


def geometry_length_m(line: LineString) -> float:
    return line_length_m(line.coords)


def union_bounds(boxes: List[GeoBox]) -> GeoBox:
    """Smallest bbox containing every box in the list."""
    if not boxes:
        raise ValueError("Cannot compute bounds of an empty box list")
    return GeoBox(
        min(b.min_lng for b in boxes),
        min(b.min_lat for b in boxes),
        max(b.max_lng for b in boxes),
        max(b.max_lat for b in boxes),
    )
