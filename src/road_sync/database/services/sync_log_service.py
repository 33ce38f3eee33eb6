"""
Sync run audit log.

One row per run: created as ``running`` at start, optionally patched with the
region label, and moved to a terminal status exactly once at the end.
Rows are never deleted.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from psycopg2.extras import Json

from ...services.sync.models import SyncRun, SyncScope, SyncStatus
from .database_service import DatabaseService


logger = logging.getLogger(__name__)


class SyncLogStore:
    """Interface to the sync run log"""

    def create_run(self, run: SyncRun) -> None:
        raise NotImplementedError("Subclasses must implement create_run")

    def set_region(self, run_id: str, region: str) -> None:
        raise NotImplementedError("Subclasses must implement set_region")

    def finish_run(self, run: SyncRun) -> None:
        """Persist the terminal status, counters and errors of a running run"""
        raise NotImplementedError("Subclasses must implement finish_run")

    def list_runs(self, limit: int = 20, offset: int = 0) -> Tuple[List[SyncRun], int]:
        """Runs ordered by start time, newest first, with the total count"""
        raise NotImplementedError("Subclasses must implement list_runs")

    def count_running(self) -> int:
        raise NotImplementedError("Subclasses must implement count_running")

    def last_completed_started_at(self) -> Optional[datetime]:
        """Start time of the most recent completed or partial run"""
        raise NotImplementedError("Subclasses must implement last_completed_started_at")


def _row_to_run(row: dict) -> SyncRun:
    details = row.get("error_details")
    if details is None and row.get("error_message"):
        details = [row["error_message"]]

    return SyncRun(
        id=row["id"],
        scope=SyncScope(row["sync_type"]),
        region=row["ward_param"],
        bbox_param=row["bbox_param"],
        status=SyncStatus(row["status"]),
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        ways_fetched=row["osm_roads_fetched"] or 0,
        segments_created=row["roads_created"] or 0,
        segments_replaced=row["roads_updated"] or 0,
        segments_skipped=row["roads_skipped"] or 0,
        error_messages=list(details or []),
        triggered_by=row["triggered_by"],
    )


class PostgisSyncLogStore(SyncLogStore, DatabaseService):
    """SyncLogStore backed by the ``osm_sync_logs`` table."""

    def create_run(self, run: SyncRun) -> None:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO osm_sync_logs (
                    id, sync_type, bbox_param, ward_param, status, started_at, triggered_by
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
                (
                    run.id,
                    run.scope.value,
                    run.bbox_param,
                    run.region,
                    run.status.value,
                    run.started_at,
                    run.triggered_by,
                ),
            )
        logger.info(f"Created sync log {run.id} ({run.scope.value})")

    def set_region(self, run_id: str, region: str) -> None:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE osm_sync_logs SET sync_type = %s, ward_param = %s WHERE id = %s",
                (SyncScope.REGION.value, region, run_id),
            )

    def finish_run(self, run: SyncRun) -> None:
        if not run.status.is_terminal:
            raise ValueError(f"Run {run.id} must be finished with a terminal status")

        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE osm_sync_logs SET
                    status = %s,
                    completed_at = %s,
                    osm_roads_fetched = %s,
                    roads_created = %s,
                    roads_updated = %s,
                    roads_skipped = %s,
                    error_message = %s,
                    error_details = %s
                WHERE id = %s AND status = %s
            """,
                (
                    run.status.value,
                    run.completed_at,
                    run.ways_fetched,
                    run.segments_created,
                    run.segments_replaced,
                    run.segments_skipped,
                    run.error_message,
                    Json(run.error_messages) if run.error_messages else None,
                    run.id,
                    SyncStatus.RUNNING.value,
                ),
            )
            if cursor.rowcount == 0:
                logger.warning(f"Sync log {run.id} was not running; terminal status not written")

        logger.info(f"Sync log {run.id} finished: {run.status.value}")

    def list_runs(self, limit: int = 20, offset: int = 0) -> Tuple[List[SyncRun], int]:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, sync_type, bbox_param, ward_param, status, started_at, completed_at,
                       osm_roads_fetched, roads_created, roads_updated, roads_skipped,
                       error_message, error_details, triggered_by
                FROM osm_sync_logs
                ORDER BY started_at DESC
                LIMIT %s OFFSET %s
            """,
                (limit, offset),
            )
            runs = [_row_to_run(row) for row in cursor.fetchall()]

            cursor.execute("SELECT COUNT(*)::int AS count FROM osm_sync_logs")
            row = cursor.fetchone()
            total = row["count"] if row else 0

        return runs, total

    def count_running(self) -> int:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*)::int AS count FROM osm_sync_logs WHERE status = %s",
                (SyncStatus.RUNNING.value,),
            )
            row = cursor.fetchone()
            return row["count"] if row else 0

    def last_completed_started_at(self) -> Optional[datetime]:
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT started_at FROM osm_sync_logs
                WHERE status IN (%s, %s)
                ORDER BY started_at DESC
                LIMIT 1
            """,
                (SyncStatus.COMPLETED.value, SyncStatus.PARTIAL.value),
            )
            row = cursor.fetchone()
            return row["started_at"] if row else None
