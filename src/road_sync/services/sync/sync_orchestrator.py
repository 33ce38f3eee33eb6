"""
OSM road sync orchestrator.

Drives one sync run end to end:
- Partition the requested bbox into cells the Overpass API will accept
- Fetch ways cell by cell through the rate-limited client
- Deduplicate ways seen in more than one cell
- Skip ways protected by manual edits
- Normalize, segment and replace the stored segments of every other way
- Record counters and errors on the run's sync log row

Cell and way failures are collected on the run and never abort it; only a
failure before any way is processed marks the run as failed.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from ...clients.overpass.overpass_client import OverpassClient
from ...config.sync_config import SyncConfig
from ...database.services.asset_store import RoadAssetStore
from ...database.services.sync_log_service import SyncLogStore
from ...utils.geo_utils import GeoBox
from ...utils.id_utils import generate_road_asset_id, generate_sync_run_id
from .bbox_partitioner import BboxPartitioner
from .errors import (
    ExternalServiceError,
    RegionBoundaryNotFound,
    SyncCancelled,
    SyncError,
    WayProcessingError,
)
from .manual_edit_guard import ManualEditGuard
from .models import (
    DataOrigin,
    EditState,
    ExternalWay,
    RoadSegment,
    SyncRun,
    SyncRunResult,
    SyncScope,
    SyncStatus,
    SyncStatusReport,
)
from .region_boundaries import RegionBoundaryStore
from .road_segmenter import RoadSegmenter
from .way_normalizer import WayNormalizer, deduplicate_ways


logger = logging.getLogger(__name__)

UNKNOWN_REGION = "Unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CancellationToken:
    """Lets a caller abort a long-running sync, explicitly or by deadline."""

    def __init__(
        self,
        deadline_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._deadline = clock() + deadline_seconds if deadline_seconds is not None else None
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self._reason = reason

    @property
    def is_cancelled(self) -> bool:
        return self._reason is not None or (
            self._deadline is not None and self._clock() >= self._deadline
        )

    def check(self) -> None:
        """Raise SyncCancelled if the token was cancelled or its deadline passed."""
        if self._reason is not None:
            raise SyncCancelled(self._reason)
        if self._deadline is not None and self._clock() >= self._deadline:
            raise SyncCancelled("deadline exceeded")


class SyncOrchestrator:
    """Runs bbox and region syncs against the asset store."""

    def __init__(
        self,
        asset_store: RoadAssetStore,
        log_store: SyncLogStore,
        fetcher: Optional[OverpassClient] = None,
        boundary_store: Optional[RegionBoundaryStore] = None,
        config: Optional[SyncConfig] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or SyncConfig.from_env()
        self.asset_store = asset_store
        self.log_store = log_store
        self.fetcher = fetcher or OverpassClient(self.config)
        self.boundary_store = boundary_store or RegionBoundaryStore(self.config.region_boundary_dir)
        self.partitioner = BboxPartitioner(
            max_side_m=self.config.max_cell_side_m,
            max_area_m2=self.config.max_cell_area_m2,
        )
        self.normalizer = WayNormalizer()
        self.segmenter = RoadSegmenter(self.config.min_segment_length_m)
        self.guard = ManualEditGuard()
        self._now = now

        logger.info("Sync orchestrator initialized")

    def run_bbox_sync(
        self,
        bbox: GeoBox,
        triggered_by: str = "api",
        cancel_token: Optional[CancellationToken] = None,
    ) -> SyncRunResult:
        """
        Sync all roads within a bbox.

        Args:
            bbox: Area to sync
            triggered_by: Caller label stored on the sync log
            cancel_token: Optional token to abort the run early

        Returns:
            Result with status and counters. Partial failures are reported in
            the result, not raised.

        Raises:
            ValueError: If the bbox is invalid
        """
        bbox.validate()
        run = self._start_run(bbox, SyncScope.BBOX, triggered_by)
        self._execute(run, bbox, region=None, cancel_token=cancel_token or CancellationToken())
        return SyncRunResult.from_run(run)

    def run_region_sync(
        self,
        region_name: str,
        triggered_by: str = "api",
        cancel_token: Optional[CancellationToken] = None,
    ) -> SyncRunResult:
        """
        Sync all roads within the bounding box of a ward boundary.

        Raises:
            RegionBoundaryNotFound: If no boundary exists for the ward. A failed
                sync log row is still written for the attempt.
        """
        try:
            boundary = self.boundary_store.load_region_boundary_polygon(region_name)
        except (OSError, ValueError, KeyError) as e:
            self._record_preflight_failure(region_name, triggered_by, f"Could not load boundary: {e}")
            raise RegionBoundaryNotFound(region_name, str(e)) from e

        if boundary is None or boundary.is_empty:
            error = RegionBoundaryNotFound(region_name)
            self._record_preflight_failure(region_name, triggered_by, str(error))
            raise error

        bbox = GeoBox.from_bounds(boundary.bounds)
        logger.info(f"Resolved ward {region_name} to bbox {bbox.to_param()}")

        run = self._start_run(bbox, SyncScope.BBOX, triggered_by)
        try:
            self.log_store.set_region(run.id, region_name)
        except Exception as e:
            run.status = SyncStatus.FAILED
            run.error_messages.append(f"Could not record ward on sync log: {e}")
            run.completed_at = self._now()
            self.log_store.finish_run(run)
            logger.error(f"Ward {region_name} sync failed before fetch: {e}")
            raise
        run.scope = SyncScope.REGION
        run.region = region_name

        self._execute(run, bbox, region=region_name, cancel_token=cancel_token or CancellationToken())
        return SyncRunResult.from_run(run)

    def sync_stale_regions(
        self,
        max_age_hours: float = 24,
        triggered_by: str = "cron-hourly",
    ) -> Dict[str, Optional[SyncRunResult]]:
        """Sync every ward not synced within ``max_age_hours``; a failing ward never stops the rest."""
        regions = self.asset_store.find_stale_regions(max_age_hours)
        if not regions:
            logger.info("No wards need syncing")
            return {}

        logger.info(f"Syncing {len(regions)} ward(s): {', '.join(regions)}")
        results: Dict[str, Optional[SyncRunResult]] = {}
        for region in regions:
            try:
                result = self.run_region_sync(region, triggered_by)
                logger.info(f"Ward {region} sync {result.summary}")
                results[region] = result
            except SyncError as e:
                logger.error(f"Ward {region} sync failed: {e}")
                results[region] = None
            except Exception as e:
                logger.exception(f"Ward {region} sync failed unexpectedly: {e}")
                results[region] = None
        return results

    def get_sync_status(self) -> SyncStatusReport:
        return SyncStatusReport(
            running_count=self.log_store.count_running(),
            last_completed_at=self.log_store.last_completed_started_at(),
            total_synced_asset_count=self.asset_store.count_synced_segments(),
        )

    def list_sync_runs(self, limit: int = 20, offset: int = 0) -> Tuple[List[SyncRun], int]:
        return self.log_store.list_runs(limit=limit, offset=offset)

    def _start_run(self, bbox: GeoBox, scope: SyncScope, triggered_by: str) -> SyncRun:
        run = SyncRun(
            id=generate_sync_run_id(),
            scope=scope,
            bbox_param=bbox.to_param(),
            status=SyncStatus.RUNNING,
            started_at=self._now(),
            triggered_by=triggered_by,
        )
        self.log_store.create_run(run)
        return run

    def _record_preflight_failure(self, region_name: str, triggered_by: str, message: str) -> None:
        run = SyncRun(
            id=generate_sync_run_id(),
            scope=SyncScope.REGION,
            region=region_name,
            bbox_param="",
            status=SyncStatus.RUNNING,
            started_at=self._now(),
            triggered_by=triggered_by,
        )
        self.log_store.create_run(run)
        run.status = SyncStatus.FAILED
        run.error_messages.append(message)
        run.completed_at = self._now()
        self.log_store.finish_run(run)
        logger.error(f"Ward {region_name} sync failed before fetch: {message}")

    def _execute(
        self,
        run: SyncRun,
        bbox: GeoBox,
        region: Optional[str],
        cancel_token: CancellationToken,
    ) -> None:
        """Run the pipeline for a started run and persist its terminal state."""
        processed_any = False

        try:
            cells = self.partitioner.partition(bbox)
            logger.info(f"Processing {len(cells)} cell(s) for bbox: {run.bbox_param}")

            fetched = self._fetch_cells(run, cells, cancel_token)
            unique_ways = deduplicate_ways(fetched)
            run.ways_fetched = len(unique_ways)
            logger.info(f"Fetched {run.ways_fetched} unique OSM ways")

            region = region or self.asset_store.find_any_ward_near(bbox) or UNKNOWN_REGION

            for way in unique_ways.values():
                cancel_token.check()
                try:
                    self._process_way(run, way, region)
                except WayProcessingError as e:
                    logger.error(str(e))
                    run.error_messages.append(str(e))
                except Exception as e:
                    error = WayProcessingError(way.external_id, str(e))
                    logger.error(str(error))
                    run.error_messages.append(str(error))
                processed_any = True

            run.status = SyncStatus.PARTIAL if run.error_messages else SyncStatus.COMPLETED

        except SyncCancelled as e:
            logger.warning(f"Run {run.id}: {e}")
            run.error_messages.append(str(e))
            run.status = SyncStatus.PARTIAL

        except Exception as e:
            logger.exception(f"Run {run.id} failed: {e}")
            run.error_messages.append(str(e))
            run.status = SyncStatus.PARTIAL if processed_any else SyncStatus.FAILED

        run.completed_at = self._now()
        self.log_store.finish_run(run)
        logger.info(f"Run {run.id} {SyncRunResult.from_run(run).summary}")

    def _fetch_cells(
        self,
        run: SyncRun,
        cells: List[GeoBox],
        cancel_token: CancellationToken,
    ) -> List[ExternalWay]:
        """Fetch every cell sequentially; failed cells are recorded and skipped."""
        ways: List[ExternalWay] = []
        for cell in cells:
            cancel_token.check()
            try:
                ways.extend(self.fetcher.fetch_ways(cell, self.config.max_retries))
            except ExternalServiceError as e:
                message = f"Cell {cell.to_param()} fetch failed: {e}"
                logger.warning(message)
                run.error_messages.append(message)
        return ways

    def _process_way(self, run: SyncRun, way: ExternalWay, region: str) -> None:
        existing = self.asset_store.find_segments_by_external_id(way.external_id)

        guard = self.guard.check(way.external_id, existing)
        if guard.should_skip:
            run.segments_skipped += guard.existing_count
            return

        candidate = self.normalizer.normalize(way, region)
        if candidate is None:
            run.segments_skipped += 1
            return

        if candidate.length_m < self.config.min_segment_length_m:
            logger.debug(
                f"Way {way.external_id} rejected: {candidate.length_m:.1f}m is shorter "
                f"than {self.config.min_segment_length_m}m"
            )
            run.segments_skipped += 1
            return

        nearby = self.asset_store.find_roads_intersecting(
            candidate.bbox, self.config.nearby_roads_limit
        )
        pieces = self.segmenter.segment(candidate, nearby)

        now = self._now()
        segments = [
            RoadSegment(
                id=generate_road_asset_id(region),
                external_id=way.external_id,
                segment_index=piece.segment_index,
                geometry=piece.road.geometry,
                road_class=candidate.road_class,
                lane_count=candidate.lane_count,
                direction=candidate.direction,
                region=region,
                data_origin=DataOrigin.SYNC,
                edit_state=EditState.SYNCED,
                name=candidate.name,
                name_local=candidate.name_local,
                route_ref=candidate.route_ref,
                local_ref=candidate.local_ref,
                last_synced_at=now,
                external_last_modified=candidate.external_last_modified,
                updated_at=now,
            )
            for piece in pieces
        ]

        removed = self.asset_store.replace_segments_for_external_id(way.external_id, segments)
        if existing:
            # Counted per way, however many segments it had
            run.segments_replaced += 1
            logger.debug(f"Way {way.external_id}: replaced {removed} segment(s) with {len(segments)}")
        else:
            run.segments_created += len(segments)
