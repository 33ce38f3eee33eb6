from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from shapely.geometry import LineString


class SyncStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SyncStatus.RUNNING


@dataclass
class ExternalWay:
    """One raw way record from the external map service"""

    external_id: int
    vertices: List[Tuple[float, float]]  # (lat, lon) in source order
    tags: Dict[str, str] = field(default_factory=dict)
    last_modified: Optional[datetime] = None


class SyncScope(Enum):
    BBOX = "bbox"
    REGION = "region"


class DataOrigin(Enum):
    """Where a stored road segment came from"""

    SYNC = "sync"
    MANUAL = "manual"
    INITIAL = "initial"


class EditState(Enum):
    """
    Manual edit protection state of a stored segment.

    Only the manual editing workflow moves a segment back to SYNCED; the sync
    pipeline reads this state and never writes it.
    """

    SYNCED = "synced"
    MANUALLY_EDITED = "manually_edited"

    @classmethod
    def from_flag(cls, is_manually_edited: bool) -> "EditState":
        return cls.MANUALLY_EDITED if is_manually_edited else cls.SYNCED


@dataclass
class StoredRoadGeometry:
    """A stored road used as segmentation context"""

    id: str
    geometry: LineString
    external_id: Optional[int] = None


@dataclass
class RoadSegment:
    """Stored road asset row, restricted to the fields the sync pipeline owns"""

    id: str
    external_id: Optional[int]
    segment_index: int
    geometry: LineString
    road_class: str
    lane_count: int
    direction: str
    region: str
    data_origin: DataOrigin = DataOrigin.SYNC
    edit_state: EditState = EditState.SYNCED
    name: Optional[str] = None
    name_local: Optional[str] = None
    route_ref: Optional[str] = None
    local_ref: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    external_last_modified: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_manually_edited(self) -> bool:
        return self.edit_state is EditState.MANUALLY_EDITED

    @property
    def display_name(self) -> Optional[str]:
        return self.name or self.route_ref


@dataclass
class SyncRun:
    """Audit record for one sync run"""

    id: str
    scope: SyncScope
    bbox_param: str
    status: SyncStatus
    started_at: datetime
    triggered_by: str
    region: Optional[str] = None
    completed_at: Optional[datetime] = None
    ways_fetched: int = 0
    segments_created: int = 0
    segments_replaced: int = 0
    segments_skipped: int = 0
    error_messages: List[str] = field(default_factory=list)

    @property
    def error_message(self) -> Optional[str]:
        return "; ".join(self.error_messages) if self.error_messages else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "scope": self.scope.value,
            "region": self.region,
            "bbox_param": self.bbox_param,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "ways_fetched": self.ways_fetched,
            "segments_created": self.segments_created,
            "segments_replaced": self.segments_replaced,
            "segments_skipped": self.segments_skipped,
            "error_message": self.error_message,
            "triggered_by": self.triggered_by,
        }


@dataclass
class SyncRunResult:
    """Outcome of a sync run as returned to callers"""

    run_id: str
    status: SyncStatus
    ways_fetched: int
    segments_created: int
    segments_replaced: int
    segments_skipped: int
    errors: List[str]

    @classmethod
    def from_run(cls, run: SyncRun) -> "SyncRunResult":
        return cls(
            run_id=run.id,
            status=run.status,
            ways_fetched=run.ways_fetched,
            segments_created=run.segments_created,
            segments_replaced=run.segments_replaced,
            segments_skipped=run.segments_skipped,
            errors=list(run.error_messages),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "ways_fetched": self.ways_fetched,
            "segments_created": self.segments_created,
            "segments_replaced": self.segments_replaced,
            "segments_skipped": self.segments_skipped,
            "errors": list(self.errors),
        }

    @property
    def summary(self) -> str:
        """Human-readable summary of the run"""
        text = (
            f"{self.status.value}: {self.ways_fetched} ways, "
            f"{self.segments_created} created, {self.segments_replaced} replaced, "
            f"{self.segments_skipped} skipped"
        )
        if self.errors:
            text += f", {len(self.errors)} error(s)"
        return text


@dataclass
class SyncStatusReport:
    running_count: int
    last_completed_at: Optional[datetime]
    total_synced_asset_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "running_count": self.running_count,
            "last_completed_at": self.last_completed_at.isoformat() if self.last_completed_at else None,
            "total_synced_asset_count": self.total_synced_asset_count,
        }
