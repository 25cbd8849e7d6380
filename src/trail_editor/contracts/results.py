# path: trail-editor/src/trail_editor/contracts/results.py

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from trail_editor.core.models import Point, Route, SegmentMode


@dataclass(frozen=True)
class SegmentDefinition:
    mode: "SegmentMode"
    indices: Tuple[int, ...]  # positions in the flat waypoint list, in order


@dataclass(frozen=True)
class PolylineHit:
    point: "Point"
    segment_index: int  # index of the polyline edge (i -> i+1)
    distance: float  # planar degrees


@dataclass(frozen=True)
class SegmentHit:
    point: "Point"
    geometry_index: int
    distance: float
    insert_index: int  # position in segment.waypoints for a new midpoint
    mode: "SegmentMode"


@dataclass(frozen=True)
class RouteHit:
    route: "Route"
    distance: float
    pixel_distance: float


class EditFailure(str, Enum):
    WAYPOINT_LIMIT = "waypoint_limit"
    INDEX_OUT_OF_RANGE = "index_out_of_range"
    NO_SUCH_SEGMENT = "no_such_segment"
    ROUTING_FAILED = "routing_failed"
    NOT_SPLITTABLE = "not_splittable"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class EditResult:
    """Outcome of an engine operation. Truthy on success."""

    ok: bool
    failure: Optional[EditFailure] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls) -> "EditResult":
        return cls(ok=True)

    @classmethod
    def fail(cls, failure: EditFailure, message: str) -> "EditResult":
        return cls(ok=False, failure=failure, message=message)
