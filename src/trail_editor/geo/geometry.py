"""Planar geometry helpers for hit-testing segments and routes.

All math is done directly in degree space (no earth-curvature correction).
"""
from __future__ import annotations

from math import inf, sqrt
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from trail_editor.contracts.results import PolylineHit, RouteHit, SegmentHit
from trail_editor.core.models import Point, Route, Segment, SegmentMode

# Maps a geographic point to container pixels (x, y)
PixelProjector = Callable[[Point], Tuple[float, float]]


def project_point_on_segment(point: Point, a: Point, b: Point) -> Point:
    """Nearest point to *point* on the segment a-b (parametric t clamped to [0, 1])."""
    dx = b.lon - a.lon
    dy = b.lat - a.lat
    if dx == 0 and dy == 0:
        return a

    t = ((point.lon - a.lon) * dx + (point.lat - a.lat) * dy) / (dx * dx + dy * dy)
    t = max(0.0, min(1.0, t))
    return Point(lat=a.lat + t * dy, lon=a.lon + t * dx)


def distance_squared(p1: Point, p2: Point) -> float:
    dlat = p1.lat - p2.lat
    dlon = p1.lon - p2.lon
    return dlat * dlat + dlon * dlon


def distance(p1: Point, p2: Point) -> float:
    return sqrt(distance_squared(p1, p2))


def points_equal(p1: Point, p2: Point, tolerance: float = 1e-6) -> bool:
    return abs(p1.lat - p2.lat) < tolerance and abs(p1.lon - p2.lon) < tolerance


def find_closest_point_on_polyline(point: Point, polyline: Sequence[Point]) -> Optional[PolylineHit]:
    """
    Scan every consecutive pair and return the globally closest projection.

    Ties keep the lowest edge index (strict ``<``). Returns None when the
    polyline has fewer than two points.
    """
    best_d2 = inf
    best_point: Optional[Point] = None
    best_index = 0

    for i in range(len(polyline) - 1):
        projected = project_point_on_segment(point, polyline[i], polyline[i + 1])
        d2 = distance_squared(point, projected)
        if d2 < best_d2:
            best_d2 = d2
            best_point = projected
            best_index = i

    if best_point is None:
        return None
    return PolylineHit(point=best_point, segment_index=best_index, distance=sqrt(best_d2))


def _routing_insert_index(projected: Point, waypoints: Sequence[Point]) -> int:
    """
    Routed geometry is not aligned with the control points, so pick the
    waypoint nearest to the projection and insert on the side of whichever
    neighbour is closer. Start and end stay anchored.
    """
    nearest = 0
    nearest_d2 = inf
    for i, wp in enumerate(waypoints):
        d2 = distance_squared(projected, wp)
        if d2 < nearest_d2:
            nearest_d2 = d2
            nearest = i

    last = len(waypoints) - 1
    if nearest == 0:
        return 1
    if nearest == last:
        return last

    d_prev = distance_squared(projected, waypoints[nearest - 1])
    d_next = distance_squared(projected, waypoints[nearest + 1])
    return nearest if d_prev < d_next else nearest + 1


def find_closest_point_on_segment(point: Point, segment: Segment) -> Optional[SegmentHit]:
    """Closest point on the segment's geometry plus where a new waypoint would go."""
    if len(segment.geometry) < 2:
        return None

    hit = find_closest_point_on_polyline(point, segment.geometry)
    if hit is None:
        return None

    if segment.mode == SegmentMode.MANUAL:
        insert_index = hit.segment_index + 1
    else:
        insert_index = _routing_insert_index(hit.point, segment.waypoints)

    return SegmentHit(
        point=hit.point,
        geometry_index=hit.segment_index,
        distance=hit.distance,
        insert_index=insert_index,
        mode=segment.mode,
    )


def _route_distance(point: Point, route: Route) -> float:
    best = inf
    for seg in route.segments:
        if len(seg.geometry) < 2:
            continue
        hit = find_closest_point_on_polyline(point, seg.geometry)
        if hit is not None and hit.distance < best:
            best = hit.distance
    return best


def find_routes_at_point(
    point: Point,
    routes: Iterable[Route],
    pixel_tolerance: float,
    pixel_projector: PixelProjector,
) -> List[RouteHit]:
    """
    Routes whose geometry passes within *pixel_tolerance* pixels of *point*,
    closest first. The degree distance is converted to pixels by projecting
    a test point offset by that distance in latitude.
    """
    origin_px = pixel_projector(point)
    out: List[RouteHit] = []

    for route in routes:
        if not route.segments:
            continue
        d = _route_distance(point, route)
        if d == inf:
            continue

        test_px = pixel_projector(Point(lat=point.lat + d, lon=point.lon))
        pixel_distance = abs(test_px[1] - origin_px[1])
        if pixel_distance <= pixel_tolerance:
            out.append(RouteHit(route=route, distance=d, pixel_distance=pixel_distance))

    out.sort(key=lambda h: h.distance)
    return out
