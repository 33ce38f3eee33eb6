"""
Adaptive bbox partitioning.

Splits a query rectangle into quadrants until every cell is within both the
side-length and the area ceiling, so that each Overpass query stays under the
service's size limits.
"""

import logging
from typing import List

from ...utils.geo_utils import GeoBox, box_area_m2, box_dimensions_m
from .errors import PartitionDegenerate


logger = logging.getLogger(__name__)

MAX_DEPTH = 20
MIN_CELL_SIDE_M = 1.0


class BboxPartitioner:
    """Recursively splits a GeoBox into cells under configured ceilings."""

    def __init__(self, max_side_m: float, max_area_m2: float, max_depth: int = MAX_DEPTH):
        if max_side_m <= 0 or max_area_m2 <= 0:
            raise ValueError("Partition ceilings must be positive")
        self.max_side_m = max_side_m
        self.max_area_m2 = max_area_m2
        self.max_depth = max_depth

    def partition(self, bbox: GeoBox) -> List[GeoBox]:
        """
        Partition a bbox into cells.

        Args:
            bbox: Area to cover

        Returns:
            Cells in deterministic order (SW, SE, NW, NE at every level) that
            cover the input without gaps. Empty for a zero-area input.
        """
        try:
            self._check_degenerate(bbox)
        except PartitionDegenerate as e:
            logger.warning(f"Skipping partition: {e}")
            return []

        cells = self._split(bbox, 0)
        logger.debug(f"Partitioned {bbox.to_param()} into {len(cells)} cell(s)")
        return cells

    def _check_degenerate(self, bbox: GeoBox) -> None:
        if bbox.max_lng <= bbox.min_lng or bbox.max_lat <= bbox.min_lat:
            raise PartitionDegenerate(f"bbox has zero area: {bbox.to_param()}")

    def _within_limits(self, bbox: GeoBox) -> bool:
        width, height = box_dimensions_m(bbox)
        if width > self.max_side_m or height > self.max_side_m:
            return False
        return box_area_m2(bbox) <= self.max_area_m2

    def _split(self, bbox: GeoBox, depth: int) -> List[GeoBox]:
        if self._within_limits(bbox):
            return [bbox]

        width, height = box_dimensions_m(bbox)
        if width < MIN_CELL_SIDE_M or height < MIN_CELL_SIDE_M:
            return [bbox]
        if depth >= self.max_depth:
            logger.warning(f"Partition depth limit {self.max_depth} reached at {bbox.to_param()}")
            return [bbox]

        mid_lng = (bbox.min_lng + bbox.max_lng) / 2
        mid_lat = (bbox.min_lat + bbox.max_lat) / 2
        quadrants = [
            GeoBox(bbox.min_lng, bbox.min_lat, mid_lng, mid_lat),
            GeoBox(mid_lng, bbox.min_lat, bbox.max_lng, mid_lat),
            GeoBox(bbox.min_lng, mid_lat, mid_lng, bbox.max_lat),
            GeoBox(mid_lng, mid_lat, bbox.max_lng, bbox.max_lat),
        ]

        cells: List[GeoBox] = []
        for quadrant in quadrants:
            cells.extend(self._split(quadrant, depth + 1))
        return cells
