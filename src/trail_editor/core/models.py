from __future__ import annotations

from enum import Enum
from typing import ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


DEFAULT_ROUTE_COLOR = "#808080"


class SegmentMode(str, Enum):
    ROUTING = "routing"
    MANUAL = "manual"


class RouteType(str, Enum):
    HIKING = "Hiking"
    FOOT = "Foot"
    FITNESS_TRAIL = "FitnessTrail"
    VIA_FERRATA = "ViaFerrata"


class RouteColor(str, Enum):
    RED = "Red"
    BLUE = "Blue"
    GREEN = "Green"
    YELLOW = "Yellow"
    BLACK = "Black"
    BROWN = "Brown"
    ORANGE = "Orange"
    PURPLE = "Purple"
    OTHER = "Other"


class RouteNetwork(str, Enum):
    IWN = "Iwn"
    NWN = "Nwn"
    LWN = "Lwn"


ROUTE_TYPE_LABELS: Dict[RouteType, str] = {
    RouteType.HIKING: "Hiking route",
    RouteType.FOOT: "Foot route",
    RouteType.FITNESS_TRAIL: "Educational trail",
    RouteType.VIA_FERRATA: "Via ferrata",
}

# OTHER has no fixed hex, it resolves to Route.custom_color
ROUTE_COLOR_HEX: Dict[RouteColor, str] = {
    RouteColor.RED: "#D32F2F",
    RouteColor.BLUE: "#1976D2",
    RouteColor.GREEN: "#388E3C",
    RouteColor.YELLOW: "#FBC02D",
    RouteColor.BLACK: "#212121",
    RouteColor.BROWN: "#795548",
    RouteColor.ORANGE: "#F57C00",
    RouteColor.PURPLE: "#7B1FA2",
}


class Point(BaseModel):
    """A ``{lat, lon}`` pair in unprojected degrees.

    Used both for user-placed waypoints and for rendered geometry. Frozen, so
    a point can be shared between lists without aliasing surprises; "moving" a
    waypoint replaces the list item.
    """

    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float

    @property
    def lat_lon(self) -> Tuple[float, float]:
        return (self.lat, self.lon)


class ModedWaypoint(BaseModel):
    """Waypoint tagged with the mode of the leg that ends at it (flat legacy form)."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float
    mode: SegmentMode = SegmentMode.ROUTING

    @property
    def point(self) -> Point:
        return Point(lat=self.lat, lon=self.lon)


class Segment(BaseModel):
    """
    Independent unit of a route with its own control points and geometry.

    Routing: waypoints are control points (start, vias, end) and geometry
    comes from the routing service, denser and not index-aligned.
    Manual: geometry is a copy of the waypoints, straight lines between them.
    """

    mode: SegmentMode = SegmentMode.ROUTING
    waypoints: List[Point] = Field(default_factory=list)
    geometry: List[Point] = Field(default_factory=list)

    # Bumped by every recompute; a response is applied only if it still matches
    _generation: int = PrivateAttr(default=0)
    # Flat-list indices and coordinates this segment was derived from
    # (structural recompute only; cleared by any targeted edit)
    _source_indices: Optional[Tuple[int, ...]] = PrivateAttr(default=None)
    _source_points: Optional[Tuple[Point, ...]] = PrivateAttr(default=None)

    def is_valid(self) -> bool:
        return len(self.waypoints) >= 2

    @property
    def start(self) -> Optional[Point]:
        return self.waypoints[0] if self.waypoints else None

    @property
    def end(self) -> Optional[Point]:
        return self.waypoints[-1] if self.waypoints else None

    def clone(self) -> "Segment":
        return Segment(
            mode=self.mode,
            waypoints=list(self.waypoints),
            geometry=list(self.geometry),
        )


class Route(BaseModel):
    """
    Route with OSM-like attributes and independent segments.

    Attributes:
      route_type   required, default Hiking
      color        enum or None; OTHER means custom_color holds the hex
      symbol       text description of the trail marking
      name, ref    route name and number/abbreviation
      network      route scope, default Nwn
      wikidata     Wikidata ID
      custom_data  free user data
    """

    model_config = ConfigDict(populate_by_name=True)

    ATTRIBUTE_NAMES: ClassVar[Tuple[str, ...]] = (
        "route_type",
        "color",
        "custom_color",
        "symbol",
        "name",
        "ref",
        "network",
        "wikidata",
        "custom_data",
    )

    id: Optional[int] = None

    route_type: RouteType = Field(default=RouteType.HIKING, alias="routeType")
    color: Optional[RouteColor] = None
    custom_color: Optional[str] = Field(default=None, alias="customColor")
    symbol: Optional[str] = None
    name: Optional[str] = None
    ref: Optional[str] = None
    network: RouteNetwork = RouteNetwork.NWN
    wikidata: Optional[str] = None
    custom_data: Optional[str] = Field(default=None, alias="customData")

    segments: List[Segment] = Field(default_factory=list)

    # ---- Display ----
    @property
    def title(self) -> str:
        """``"ref - name"`` when both are filled, else whichever is, else ``"noname"``."""
        has_ref = bool(self.ref and self.ref.strip())
        has_name = bool(self.name and self.name.strip())
        if has_ref and has_name:
            return f"{self.ref} - {self.name}"
        if has_ref:
            return self.ref
        if has_name:
            return self.name
        return "noname"

    @property
    def subtitle(self) -> str:
        n = len(self.segments)
        label = ROUTE_TYPE_LABELS.get(self.route_type, self.route_type.value)
        return f"{label} • {n} segment{'' if n == 1 else 's'}"

    @property
    def display_color(self) -> str:
        if self.color is None:
            return DEFAULT_ROUTE_COLOR
        if self.color == RouteColor.OTHER:
            return self.custom_color or DEFAULT_ROUTE_COLOR
        return ROUTE_COLOR_HEX.get(self.color, DEFAULT_ROUTE_COLOR)

    # ---- Segment bookkeeping ----
    @property
    def total_waypoint_count(self) -> int:
        return sum(len(seg.waypoints) for seg in self.segments)

    @property
    def valid_segment_count(self) -> int:
        return sum(1 for seg in self.segments if seg.is_valid())

    def has_valid_segments(self) -> bool:
        return self.valid_segment_count > 0

    def add_segment(self, mode: SegmentMode = SegmentMode.ROUTING) -> int:
        self.segments.append(Segment(mode=mode))
        return len(self.segments) - 1

    def remove_segment(self, index: int) -> bool:
        if 0 <= index < len(self.segments):
            del self.segments[index]
            return True
        return False

    def get_segment(self, index: Optional[int]) -> Optional[Segment]:
        if index is None or not 0 <= index < len(self.segments):
            return None
        return self.segments[index]

    def remove_invalid_segments(self) -> int:
        before = len(self.segments)
        self.segments = [seg for seg in self.segments if seg.is_valid()]
        return before - len(self.segments)

    # ---- Snapshot ----
    def clone(self) -> "Route":
        copy = Route(id=self.id, segments=[seg.clone() for seg in self.segments])
        for attr in self.ATTRIBUTE_NAMES:
            setattr(copy, attr, getattr(self, attr))
        return copy

    def restore_from(self, backup: "Route") -> None:
        """Overwrite every attribute and segment with a copy of *backup*."""
        for attr in self.ATTRIBUTE_NAMES:
            setattr(self, attr, getattr(backup, attr))
        self.segments = [seg.clone() for seg in backup.segments]
