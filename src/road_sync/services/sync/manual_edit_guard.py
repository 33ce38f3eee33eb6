import logging
from dataclasses import dataclass
from enum import Enum
from typing import List

from .models import RoadSegment


logger = logging.getLogger(__name__)


class GuardDecision(Enum):
    PROCEED = "proceed"
    SKIP = "skip"


@dataclass
class GuardResult:
    decision: GuardDecision
    existing_count: int
    edited_segment_ids: List[str]

    @property
    def should_skip(self) -> bool:
        return self.decision is GuardDecision.SKIP


class ManualEditGuard:
    """Blocks sync for every segment of a way once any of them was hand-edited."""

    def check(self, external_id: int, existing_segments: List[RoadSegment]) -> GuardResult:
        edited = [s.id for s in existing_segments if s.is_manually_edited]
        if edited:
            logger.info(
                f"Way {external_id}: skipping, {len(edited)} of {len(existing_segments)} "
                f"segment(s) manually edited"
            )
            return GuardResult(GuardDecision.SKIP, len(existing_segments), edited)
        return GuardResult(GuardDecision.PROCEED, len(existing_segments), [])
