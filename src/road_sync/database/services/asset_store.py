"""
Road asset store used by the sync pipeline.

The pipeline reads nearby road geometries for segmentation, reads the segment
set of an OSM way for the manual edit check, and replaces that set as one
unit. Everything else about road assets belongs to the CRUD layer.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from psycopg2.extras import execute_values
from shapely import wkt

from ...services.sync.errors import WayProcessingError
from ...services.sync.models import (
    DataOrigin,
    EditState,
    RoadSegment,
    StoredRoadGeometry,
)
from ...utils.geo_utils import GeoBox
from .database_service import DatabaseService


logger = logging.getLogger(__name__)

SEGMENT_COLUMNS = """
    id, osm_id, segment_index, name, name_ja, ref, local_ref,
    ST_AsText(geometry) AS geometry_wkt, road_type, lanes, direction, ward,
    data_origin, is_manually_edited, last_synced_at, osm_timestamp, updated_at
"""


class RoadAssetStore:
    """Interface to the road asset table as seen by the sync pipeline"""

    def find_roads_intersecting(self, bbox: GeoBox, limit: int = 5000) -> List[StoredRoadGeometry]:
        """Stored roads whose bounding boxes intersect the bbox"""
        raise NotImplementedError("Subclasses must implement find_roads_intersecting")

    def find_segments_by_external_id(self, external_id: int) -> List[RoadSegment]:
        raise NotImplementedError("Subclasses must implement find_segments_by_external_id")

    def replace_segments_for_external_id(
        self, external_id: int, segments: List[RoadSegment]
    ) -> int:
        """Atomically swap the segment set of a way; returns the number of rows removed"""
        raise NotImplementedError("Subclasses must implement replace_segments_for_external_id")

    def find_any_ward_near(self, bbox: GeoBox) -> Optional[str]:
        raise NotImplementedError("Subclasses must implement find_any_ward_near")

    def count_synced_segments(self) -> int:
        """Number of stored segments carrying an external id"""
        raise NotImplementedError("Subclasses must implement count_synced_segments")

    def find_stale_regions(self, max_age_hours: float) -> List[str]:
        raise NotImplementedError("Subclasses must implement find_stale_regions")


def _row_to_segment(row: dict) -> RoadSegment:
    return RoadSegment(
        id=row["id"],
        external_id=row["osm_id"],
        segment_index=row["segment_index"] or 0,
        geometry=wkt.loads(row["geometry_wkt"]),
        road_class=row["road_type"],
        lane_count=row["lanes"],
        direction=row["direction"],
        region=row["ward"],
        data_origin=DataOrigin(row["data_origin"]),
        edit_state=EditState.from_flag(bool(row["is_manually_edited"])),
        name=row["name"],
        name_local=row["name_ja"],
        route_ref=row["ref"],
        local_ref=row["local_ref"],
        last_synced_at=row["last_synced_at"],
        external_last_modified=row["osm_timestamp"],
        updated_at=row["updated_at"],
    )


class PostgisAssetStore(RoadAssetStore, DatabaseService):
    """RoadAssetStore backed by the PostGIS ``road_assets`` table."""

    def find_roads_intersecting(self, bbox: GeoBox, limit: int = 5000) -> List[StoredRoadGeometry]:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, osm_id, ST_AsText(geometry) AS geometry_wkt
                FROM road_assets
                WHERE geometry && ST_MakeEnvelope(%s, %s, %s, %s, 4326)
                LIMIT %s
            """,
                (bbox.min_lng, bbox.min_lat, bbox.max_lng, bbox.max_lat, limit),
            )
            rows = cursor.fetchall()

        return [
            StoredRoadGeometry(
                id=row["id"],
                external_id=row["osm_id"],
                geometry=wkt.loads(row["geometry_wkt"]),
            )
            for row in rows
        ]

    def find_segments_by_external_id(self, external_id: int) -> List[RoadSegment]:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {SEGMENT_COLUMNS}
                FROM road_assets
                WHERE osm_id = %s
                ORDER BY segment_index
            """,
                (external_id,),
            )
            return [_row_to_segment(row) for row in cursor.fetchall()]

    def replace_segments_for_external_id(
        self, external_id: int, segments: List[RoadSegment]
    ) -> int:
        """
        Delete the stored segments of a way and insert the new set in one transaction.

        Readers see either the old set or the new set. The existing rows are
        locked first; if one was hand-edited since the guard check the
        transaction is rolled back and nothing changes.

        Returns:
            Number of segments removed
        """
        with self.transaction() as conn:
            cursor = conn.cursor()

            cursor.execute(
                """
                SELECT id, is_manually_edited
                FROM road_assets
                WHERE osm_id = %s
                FOR UPDATE
            """,
                (external_id,),
            )
            locked = cursor.fetchall()
            if any(row["is_manually_edited"] for row in locked):
                raise WayProcessingError(external_id, "segments were manually edited during sync")

            cursor.execute("DELETE FROM road_assets WHERE osm_id = %s", (external_id,))
            removed = cursor.rowcount

            if segments:
                now = datetime.now(timezone.utc)
                execute_values(
                    cursor,
                    """
                    INSERT INTO road_assets (
                        id, osm_id, segment_index, name, name_ja, ref, local_ref,
                        display_name, name_source, geometry, road_type, lanes, direction,
                        status, ward, data_origin, is_manually_edited,
                        last_synced_at, osm_timestamp, updated_at
                    ) VALUES %s
                """,
                    [
                        (
                            s.id, external_id, s.segment_index, s.name, s.name_local,
                            s.route_ref, s.local_ref, s.display_name, "osm",
                            s.geometry.wkt, s.road_class, s.lane_count, s.direction,
                            "active", s.region, s.data_origin.value, s.is_manually_edited,
                            s.last_synced_at or now, s.external_last_modified, s.updated_at or now,
                        )
                        for s in segments
                    ],
                    template=(
                        "(%s, %s, %s, %s, %s, %s, %s, %s, %s, "
                        "ST_SetSRID(ST_GeomFromText(%s), 4326), %s, %s, %s, "
                        "%s, %s, %s, %s, %s, %s, %s)"
                    ),
                )

            logger.debug(
                f"Replaced way {external_id}: removed {removed}, inserted {len(segments)}"
            )
            return removed

    def find_any_ward_near(self, bbox: GeoBox) -> Optional[str]:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT ward FROM road_assets
                WHERE ward IS NOT NULL
                  AND ST_Intersects(geometry, ST_MakeEnvelope(%s, %s, %s, %s, 4326))
                LIMIT 1
            """,
                (bbox.min_lng, bbox.min_lat, bbox.max_lng, bbox.max_lat),
            )
            row = cursor.fetchone()
            return row["ward"] if row else None

    def count_synced_segments(self) -> int:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*)::int AS count FROM road_assets WHERE osm_id IS NOT NULL")
            row = cursor.fetchone()
            return row["count"] if row else 0

    def find_stale_regions(self, max_age_hours: float) -> List[str]:
        """Wards with segments never synced or last synced before the cutoff, never-synced first."""
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT ward
                FROM road_assets
                WHERE ward IS NOT NULL
                  AND (last_synced_at IS NULL
                       OR last_synced_at < NOW() - make_interval(secs => %s))
                GROUP BY ward
                ORDER BY BOOL_OR(last_synced_at IS NULL) DESC, MIN(last_synced_at) ASC NULLS FIRST
            """,
                (max_age_hours * 3600,),
            )
            return [row["ward"] for row in cursor.fetchall()]
