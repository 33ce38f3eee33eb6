import json
import logging
from pathlib import Path
from typing import Optional, Union

from shapely.geometry import MultiPolygon, Polygon, shape


logger = logging.getLogger(__name__)


class RegionBoundaryStore:
    """Loads ward boundary polygons from ``<boundary_dir>/<ward lower-case>.geojson``."""

    def __init__(self, boundary_dir: Union[str, Path]):
        self.boundary_dir = Path(boundary_dir)

    def boundary_path(self, region_name: str) -> Path:
        return self.boundary_dir / f"{region_name.lower()}.geojson"

    def load_region_boundary_polygon(
        self, region_name: str
    ) -> Optional[Union[Polygon, MultiPolygon]]:
        """
        Load the boundary of a ward.

        Returns:
            The first feature's Polygon or MultiPolygon, or None if the file is
            missing, empty or holds no polygon
        """
        path = self.boundary_path(region_name)
        if not path.exists():
            logger.warning(f"Ward boundary file not found: {path}")
            return None

        with open(path, encoding="utf-8") as f:
            collection = json.load(f)

        if collection.get("type") == "Feature":
            features = [collection]
        else:
            features = collection.get("features") or []

        if not features:
            logger.warning(f"No features in ward boundary file: {path}")
            return None

        geometry = shape(features[0]["geometry"])
        if not isinstance(geometry, (Polygon, MultiPolygon)):
            logger.warning(f"Ward boundary is a {geometry.geom_type}, expected a polygon: {path}")
            return None
        return geometry
