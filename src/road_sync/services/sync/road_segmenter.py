"""
Road segmentation.

Splits a road candidate where it crosses roads already in the asset store so
that stored segments end at real intersections. Distances are measured in a
local azimuthal equidistant projection centred on the candidate, which keeps
metre-level accuracy over the extent of a single road.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, List, Tuple

import shapely
from pyproj import CRS, Transformer
from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry
from shapely.ops import substring

from .models import StoredRoadGeometry
from .way_normalizer import NormalizedRoadCandidate


logger = logging.getLogger(__name__)

# Minimum segment length in meters
MIN_SEGMENT_LENGTH = 15.0

# Nearby road endpoints this close to the candidate count as a junction
SNAP_TOLERANCE_M = 1.0


@dataclass
class CandidateSegment:
    """One piece of a segmented candidate; ``road.geometry`` is the piece."""

    segment_index: int
    road: NormalizedRoadCandidate
    length_m: float


def _local_projection(center: Point) -> Tuple[Transformer, Transformer]:
    local = CRS.from_proj4(
        f"+proj=aeqd +lat_0={center.y} +lon_0={center.x} +datum=WGS84 +units=m +no_defs"
    )
    forward = Transformer.from_crs("EPSG:4326", local, always_xy=True)
    inverse = Transformer.from_crs(local, "EPSG:4326", always_xy=True)
    return forward, inverse


def _reproject(transformer: Transformer, geometry: BaseGeometry) -> BaseGeometry:
    return shapely.transform(geometry, transformer.transform, interleaved=False)


def _iter_points(geometry: BaseGeometry) -> Iterator[Point]:
    """Yield the junction points contained in an intersection result."""
    if geometry.is_empty:
        return
    if isinstance(geometry, Point):
        yield geometry
    elif isinstance(geometry, LineString):
        # Overlapping stretch: the junctions are where the overlap begins and ends
        yield Point(geometry.coords[0])
        yield Point(geometry.coords[-1])
    elif hasattr(geometry, "geoms"):
        for part in geometry.geoms:
            yield from _iter_points(part)


class RoadSegmenter:
    """Splits candidates at crossings with nearby stored roads."""

    def __init__(
        self,
        min_segment_length_m: float = MIN_SEGMENT_LENGTH,
        snap_tolerance_m: float = SNAP_TOLERANCE_M,
    ):
        self.min_segment_length_m = min_segment_length_m
        self.snap_tolerance_m = snap_tolerance_m

    def segment(
        self,
        candidate: NormalizedRoadCandidate,
        nearby_roads: Iterable[StoredRoadGeometry],
    ) -> List[CandidateSegment]:
        """
        Split a candidate into segments.

        Args:
            candidate: Normalized road to split
            nearby_roads: Stored roads whose bounding boxes meet the candidate's.
                Segments of the candidate's own way are ignored.

        Returns:
            Segments in order along the candidate with zero-based indexes.
            Every segment is at least ``min_segment_length_m`` long unless the
            whole candidate is shorter, in which case it is returned unsplit.
        """
        forward, inverse = _local_projection(candidate.geometry.centroid)
        line_m = _reproject(forward, candidate.geometry)
        total = line_m.length

        others = [
            road for road in nearby_roads
            if road.external_id is None or road.external_id != candidate.external_id
        ]
        cuts = self._find_cut_distances(candidate, line_m, others, forward)
        boundaries = self._choose_boundaries(cuts, total)

        if len(boundaries) == 2:
            return [CandidateSegment(0, candidate, total)]

        segments = []
        for index, (start, end) in enumerate(zip(boundaries[:-1], boundaries[1:])):
            piece_m = substring(line_m, start, end)
            piece = _reproject(inverse, piece_m)
            segments.append(CandidateSegment(index, replace(candidate, geometry=piece), end - start))

        logger.debug(
            f"Way {candidate.external_id}: {len(cuts)} crossing(s), {len(segments)} segment(s)"
        )
        return segments

    def _find_cut_distances(
        self,
        candidate: NormalizedRoadCandidate,
        line_m: LineString,
        others: List[StoredRoadGeometry],
        forward: Transformer,
    ) -> List[float]:
        """Distances along the candidate (metres) at which a nearby road meets it."""
        cuts = set()
        for road in others:
            geometry = road.geometry
            if geometry is None or geometry.is_empty:
                continue

            crossing = candidate.geometry.intersection(geometry)
            points = list(_iter_points(crossing))

            if not points:
                # Junctions that miss by a rounding error
                other_m = _reproject(forward, geometry)
                if other_m.distance(line_m) > self.snap_tolerance_m:
                    continue
                for end in (Point(other_m.coords[0]), Point(other_m.coords[-1])):
                    if end.distance(line_m) <= self.snap_tolerance_m:
                        cuts.add(round(line_m.project(end), 3))
                continue

            for point in points:
                point_m = _reproject(forward, point)
                cuts.add(round(line_m.project(point_m), 3))

        return sorted(cuts)

    def _choose_boundaries(self, cuts: List[float], total: float) -> List[float]:
        """
        Pick split distances so that no segment is shorter than the minimum.

        A cut closer than the minimum to the previous boundary is dropped, which
        merges the sliver into the following segment. A short trailing piece is
        merged into the segment before it.
        """
        kept: List[float] = [0.0]
        for cut in cuts:
            if cut <= 0.0 or cut >= total:
                continue
            if cut - kept[-1] >= self.min_segment_length_m:
                kept.append(cut)

        if len(kept) > 1 and total - kept[-1] < self.min_segment_length_m:
            kept.pop()

        kept.append(total)
        return kept
