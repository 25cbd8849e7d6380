"""
Versioned import adapters. Every file version converges on ``Route``.

version 2 (segmented)::

    {"version": 2, "routes": [{"id": 1, "routeType": "Hiking", "color": "Red", ...,
                               "segments": [{"mode": "routing",
                                             "waypoints": [{"lat": .., "lon": ..}, ...],
                                             "geometry": [...]}]}]}

version 1 (legacy, one mode per route)::

    {"version": 1, "routes": [{"name": .., "displayColor": "red", "routeMode": "routing",
                               "waypoints": [...], "geometry": [...]}]}

In version 1, ``waypoints`` are the via points of a routing route (start and
end come from the geometry). When any waypoint carries its own ``mode`` the
list is a flat waypoint-with-mode description instead, handed over for a
structural rebuild.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from trail_editor.core.models import ModedWaypoint, Point, Route, RouteColor, Segment, SegmentMode

log = logging.getLogger(__name__)

CURRENT_VERSION = 2

LEGACY_COLOR_MAP: Dict[str, RouteColor] = {
    "red": RouteColor.RED,
    "blue": RouteColor.BLUE,
    "green": RouteColor.GREEN,
}


class StorageError(Exception):
    pass


@dataclass
class ImportedRoute:
    """A parsed route; ``flat_waypoints`` is set when its segments still need a rebuild."""

    route: Route
    flat_waypoints: Optional[List[ModedWaypoint]] = None

    @property
    def needs_rebuild(self) -> bool:
        return self.flat_waypoints is not None


def map_legacy_color(value: Optional[str]) -> Dict[str, Any]:
    """Legacy free-text colour -> ``color``/``custom_color`` attributes."""
    if not value or not value.strip():
        return {}
    mapped = LEGACY_COLOR_MAP.get(value.strip().lower())
    if mapped is not None:
        return {"color": mapped}
    return {"color": RouteColor.OTHER, "custom_color": value}


def _points(raw: Any) -> List[Point]:
    return [Point(lat=float(p["lat"]), lon=float(p["lon"])) for p in raw or []]


_ROUTE_KEYS = (
    "id",
    "routeType",
    "color",
    "customColor",
    "symbol",
    "name",
    "ref",
    "network",
    "wikidata",
    "customData",
)


def _route_attrs(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {k: raw[k] for k in _ROUTE_KEYS if raw.get(k) is not None}


# ---------------------------------------------------------------------------
# version 2
# ---------------------------------------------------------------------------
def _parse_segment_v2(raw: Dict[str, Any]) -> Optional[Segment]:
    mode = SegmentMode(str(raw.get("mode") or SegmentMode.MANUAL.value).lower())
    geometry = _points(raw.get("geometry"))
    waypoints = _points(raw.get("waypoints")) if mode == SegmentMode.ROUTING else []

    # Manual segments, and routing segments that lost their control points,
    # are rebuilt from the geometry
    if mode == SegmentMode.MANUAL or not waypoints:
        mode = SegmentMode.MANUAL
        waypoints = list(geometry)
        geometry = list(waypoints)

    if len(waypoints) < 2:
        return None
    return Segment(mode=mode, waypoints=waypoints, geometry=geometry)


def parse_route_v2(raw: Dict[str, Any]) -> Optional[ImportedRoute]:
    segments = [s for s in (_parse_segment_v2(r) for r in raw.get("segments") or []) if s is not None]
    if not segments:
        return None
    route = Route.model_validate({**_route_attrs(raw), "segments": []})
    route.segments = segments
    return ImportedRoute(route=route)


# ---------------------------------------------------------------------------
# version 1
# ---------------------------------------------------------------------------
def parse_route_v1(raw: Dict[str, Any]) -> Optional[ImportedRoute]:
    attrs = _route_attrs(raw)
    attrs.pop("color", None)
    attrs.pop("customColor", None)
    route = Route.model_validate(attrs)
    for attr, value in map_legacy_color(raw.get("displayColor")).items():
        setattr(route, attr, value)

    raw_waypoints = raw.get("waypoints") or []
    geometry = _points(raw.get("geometry"))

    if any("mode" in wp for wp in raw_waypoints):
        flat = [ModedWaypoint.model_validate(wp) for wp in raw_waypoints]
        if len(flat) < 2:
            return None
        return ImportedRoute(route=route, flat_waypoints=flat)

    route_mode = str(raw.get("routeMode") or "").lower()
    if route_mode == SegmentMode.ROUTING.value:
        waypoints = [geometry[0], *_points(raw_waypoints), geometry[-1]] if len(geometry) >= 2 else []
        segment = Segment(mode=SegmentMode.ROUTING, waypoints=waypoints, geometry=geometry)
    else:
        if route_mode and route_mode != SegmentMode.MANUAL.value:
            log.warning("Unknown routeMode %r for route %r, importing as manual", route_mode, raw.get("name"))
        segment = Segment(mode=SegmentMode.MANUAL, waypoints=list(geometry), geometry=list(geometry))

    if not segment.is_valid():
        return None
    route.segments = [segment]
    return ImportedRoute(route=route)


_PARSERS = {
    1: parse_route_v1,
    2: parse_route_v2,
}


def parse_document(data: Any) -> List[ImportedRoute]:
    """Parse a whole document. Routes without a valid segment are skipped."""
    if not isinstance(data, dict):
        raise StorageError("Route document must be a JSON object")
    version = data.get("version")
    parser = _PARSERS.get(version)
    if parser is None:
        raise StorageError(f"Unsupported route document version: {version!r}")

    out: List[ImportedRoute] = []
    for i, raw in enumerate(data.get("routes") or []):
        try:
            imported = parser(raw)
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Route #{i} is malformed: {exc}") from exc
        if imported is None:
            log.info("Skipping route #%d without a valid segment", i)
            continue
        out.append(imported)
    return out


def dump_document(routes: List[Route]) -> Dict[str, Any]:
    """Current-version document with valid routes and valid segments only."""
    out = []
    for route in routes:
        if not route.has_valid_segments():
            continue
        copy = route.clone()
        copy.remove_invalid_segments()
        out.append(copy.model_dump(mode="json", by_alias=True))
    return {"version": CURRENT_VERSION, "routes": out}
