"""Segment geometry reconciliation.

Keeps every ``Segment.geometry`` consistent with its waypoints and with its
neighbours, while calling the routing service only for segments that really
changed. Two tiers:

* targeted edits (add/insert/move/delete a waypoint, mode switch, reverse,
  split) recompute just the touched segment(s);
* ``rebuild_route`` re-derives the whole segment list from a flat
  waypoint-with-mode description and reuses geometry of equivalent segments.

Every edit finishes with ``fix_continuity`` so adjacent segments never show a
gap or a duplicate stub at the boundary.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from trail_editor.contracts.results import EditFailure, EditResult, SegmentDefinition
from trail_editor.core.models import ModedWaypoint, Point, Route, Segment, SegmentMode
from trail_editor.geo.geometry import points_equal
from trail_editor.providers.base import RoutingProvider

log = logging.getLogger(__name__)


class RouteCalculator:
    def __init__(self, provider: RoutingProvider, max_waypoints: Optional[int] = None):
        self.provider = provider
        self.max_waypoints = max_waypoints or provider.max_waypoints
        if self.max_waypoints < 2:
            raise ValueError(f"max_waypoints must be at least 2, got {self.max_waypoints}")

    # ------------------------------------------------------------------
    # Failure helpers
    # ------------------------------------------------------------------
    def _limit_failure(self) -> EditResult:
        return EditResult.fail(
            EditFailure.WAYPOINT_LIMIT,
            f"A routing segment can have at most {self.max_waypoints} waypoints.",
        )

    @staticmethod
    def _no_segment(segment_index: int) -> EditResult:
        return EditResult.fail(EditFailure.NO_SUCH_SEGMENT, f"Segment {segment_index} does not exist.")

    @staticmethod
    def _bad_index(index: int, size: int) -> EditResult:
        return EditResult.fail(
            EditFailure.INDEX_OUT_OF_RANGE,
            f"Waypoint index {index} is out of range for a segment with {size} waypoints.",
        )

    @staticmethod
    def _routing_failure() -> EditResult:
        return EditResult.fail(EditFailure.ROUTING_FAILED, "Routing failed, segment geometry was not updated.")

    def _would_exceed(self, segment: Segment, extra: int = 1) -> bool:
        return segment.mode == SegmentMode.ROUTING and len(segment.waypoints) + extra > self.max_waypoints

    # ------------------------------------------------------------------
    # Waypoint edits
    # ------------------------------------------------------------------
    async def add_waypoint(self, route: Route, segment_index: int, lat: float, lon: float) -> EditResult:
        segment = route.get_segment(segment_index)
        if segment is None:
            return self._no_segment(segment_index)
        if self._would_exceed(segment):
            return self._limit_failure()

        segment.waypoints.append(Point(lat=lat, lon=lon))
        return await self._recompute_and_fix(route, [segment_index])

    async def insert_waypoint(
        self, route: Route, segment_index: int, index: int, lat: float, lon: float
    ) -> EditResult:
        segment = route.get_segment(segment_index)
        if segment is None:
            return self._no_segment(segment_index)
        if not 0 <= index <= len(segment.waypoints):
            return self._bad_index(index, len(segment.waypoints))
        if self._would_exceed(segment):
            return self._limit_failure()

        segment.waypoints.insert(index, Point(lat=lat, lon=lon))
        return await self._recompute_and_fix(route, [segment_index])

    async def delete_waypoint(self, route: Route, segment_index: int, index: int) -> EditResult:
        """Remove a waypoint. Dropping below 2 leaves a transiently invalid segment."""
        segment = route.get_segment(segment_index)
        if segment is None:
            return self._no_segment(segment_index)
        if not 0 <= index < len(segment.waypoints):
            return self._bad_index(index, len(segment.waypoints))

        del segment.waypoints[index]
        return await self._recompute_and_fix(route, [segment_index])

    async def move_waypoint(
        self, route: Route, segment_index: int, index: int, lat: float, lon: float
    ) -> EditResult:
        """
        Move a waypoint. When it is a boundary point shared with the adjacent
        segment, the neighbour's touching waypoint moves too. The boundary is
        shared when the touching control points or geometry ends coincide, so
        a manual end snapped onto a routed (road-snapped) start still counts.
        """
        segment = route.get_segment(segment_index)
        if segment is None:
            return self._no_segment(segment_index)
        if not 0 <= index < len(segment.waypoints):
            return self._bad_index(index, len(segment.waypoints))

        old = segment.waypoints[index]
        new = Point(lat=lat, lon=lon)
        affected = [segment_index]

        if index == 0 and segment_index > 0:
            prev = route.segments[segment_index - 1]
            own_end = segment.geometry[0] if segment.geometry else None
            prev_end = prev.geometry[-1] if prev.geometry else None
            if prev.waypoints and _shares_boundary((old, own_end), (prev.waypoints[-1], prev_end)):
                prev.waypoints[-1] = new
                affected.insert(0, segment_index - 1)

        if index == len(segment.waypoints) - 1 and segment_index + 1 < len(route.segments):
            nxt = route.segments[segment_index + 1]
            own_end = segment.geometry[-1] if segment.geometry else None
            next_start = nxt.geometry[0] if nxt.geometry else None
            if nxt.waypoints and _shares_boundary((old, own_end), (nxt.waypoints[0], next_start)):
                nxt.waypoints[0] = new
                affected.append(segment_index + 1)

        segment.waypoints[index] = new

        return await self._recompute_and_fix(route, affected)

    # ------------------------------------------------------------------
    # Segment-level edits
    # ------------------------------------------------------------------
    async def change_to_routing(self, route: Route, segment_index: int) -> EditResult:
        """
        Switch to routing; rolled back (stays manual) if the service fails.
        Reports SUPERSEDED, with the mode unchanged, when a newer edit of the
        segment lands while the route is being fetched.
        """
        segment = route.get_segment(segment_index)
        if segment is None:
            return self._no_segment(segment_index)
        if len(segment.waypoints) > self.max_waypoints:
            return self._limit_failure()
        if segment.mode == SegmentMode.ROUTING:
            return EditResult.success()

        segment._generation += 1
        generation = segment._generation

        if not segment.is_valid():
            segment.mode = SegmentMode.ROUTING
            segment.geometry = []
            return EditResult.success()

        geometry = await self.provider.compute_route(segment.waypoints)
        if generation != segment._generation or not _contains(route, segment):
            log.debug("Discarding superseded routing result for segment %d", segment_index)
            return EditResult.fail(
                EditFailure.SUPERSEDED,
                "The segment changed while routing, it was not converted.",
            )
        if geometry is None:
            return EditResult.fail(
                EditFailure.ROUTING_FAILED,
                "Routing failed, could not convert the segment to a routing segment.",
            )

        segment.mode = SegmentMode.ROUTING
        segment.geometry = geometry
        self.fix_continuity(route)
        return EditResult.success()

    async def change_to_manual(self, route: Route, segment_index: int) -> EditResult:
        segment = route.get_segment(segment_index)
        if segment is None:
            return self._no_segment(segment_index)

        segment.mode = SegmentMode.MANUAL
        return await self._recompute_and_fix(route, [segment_index])

    async def reverse_segment_waypoints(self, route: Route, segment_index: int) -> EditResult:
        segment = route.get_segment(segment_index)
        if segment is None:
            return self._no_segment(segment_index)

        segment.waypoints.reverse()
        return await self._recompute_and_fix(route, [segment_index])

    async def recalculate_segment(self, route: Route, segment_index: int) -> EditResult:
        if route.get_segment(segment_index) is None:
            return self._no_segment(segment_index)
        return await self._recompute_and_fix(route, [segment_index])

    async def recalculate_route(self, route: Route) -> EditResult:
        """Recompute every segment in route order (import, bulk changes)."""
        return await self._recompute_and_fix(route, range(len(route.segments)))

    async def split_segment(self, route: Route, segment_index: int, waypoint_index: int) -> EditResult:
        """
        Split at an interior waypoint: it ends the first part and (as a copy)
        starts the second. Both parts keep the mode.
        """
        segment = route.get_segment(segment_index)
        if segment is None:
            return self._no_segment(segment_index)
        if not 0 < waypoint_index < len(segment.waypoints) - 1:
            return EditResult.fail(EditFailure.NOT_SPLITTABLE, "Cannot split a segment at its start or end.")

        second = Segment(mode=segment.mode, waypoints=segment.waypoints[waypoint_index:])
        segment.waypoints = segment.waypoints[: waypoint_index + 1]
        route.segments.insert(segment_index + 1, second)

        return await self._recompute_and_fix(route, [segment_index, segment_index + 1])

    async def paste_segment(self, route: Route, segment: Segment) -> EditResult:
        """Append a copy of *segment* (e.g. from a clipboard) and compute its geometry."""
        if segment.mode == SegmentMode.ROUTING and len(segment.waypoints) > self.max_waypoints:
            return self._limit_failure()

        route.segments.append(Segment(mode=segment.mode, waypoints=list(segment.waypoints)))
        return await self._recompute_and_fix(route, [len(route.segments) - 1])

    # ------------------------------------------------------------------
    # Structural recompute
    # ------------------------------------------------------------------
    def analyze_segments(self, waypoints: Sequence[ModedWaypoint]) -> List[SegmentDefinition]:
        """
        Group a flat waypoint list into segment definitions.

        A waypoint's mode describes the leg that ends at it, so the first
        waypoint's mode is ignored. Each run of equal modes becomes one
        segment that starts at the last waypoint of the previous run. Routing
        runs over the ceiling are chunked, each chunk starting at the previous
        chunk's last waypoint.
        """
        if len(waypoints) < 2:
            return []

        runs: List[tuple] = []
        mode: Optional[SegmentMode] = None
        indices: List[int] = []
        for i in range(1, len(waypoints)):
            if waypoints[i].mode != mode:
                if indices:
                    runs.append((mode, indices))
                mode = waypoints[i].mode
                indices = [i - 1, i]
            else:
                indices.append(i)
        runs.append((mode, indices))

        out: List[SegmentDefinition] = []
        step = self.max_waypoints - 1
        for run_mode, run in runs:
            if run_mode == SegmentMode.ROUTING and len(run) > self.max_waypoints:
                for start in range(0, len(run) - 1, step):
                    out.append(SegmentDefinition(mode=run_mode, indices=tuple(run[start : start + self.max_waypoints])))
            else:
                out.append(SegmentDefinition(mode=run_mode, indices=tuple(run)))
        return out

    @staticmethod
    def segments_are_equivalent(
        old: Optional[Segment], definition: SegmentDefinition, waypoints: Sequence[ModedWaypoint]
    ) -> bool:
        """
        Same mode, same flat-list provenance and same coordinates at those
        positions. Coordinates are compared with the ones the segment was
        built from, since continuity may have snapped its boundary waypoints.
        """
        if old is None or old.mode != definition.mode:
            return False
        if old._source_indices != definition.indices or old._source_points is None:
            return False
        return list(old._source_points) == [waypoints[i].point for i in definition.indices]

    async def rebuild_route(self, route: Route, waypoints: Sequence[ModedWaypoint]) -> EditResult:
        """
        Re-derive the route's segments from a flat waypoint-with-mode list.

        Leading segments equivalent to the previous list keep their geometry
        object as is. From the first divergence to the end everything is
        recomputed in route order, since each segment's boundary depends on
        its freshly computed predecessor. Fewer than two waypoints leave a
        single routing segment holding whatever was given.
        """
        old_segments = route.segments
        definitions = self.analyze_segments(waypoints)

        if not definitions:
            # Under two waypoints: keep them in one (invalid) routing segment
            route.segments = [Segment(mode=SegmentMode.ROUTING, waypoints=[w.point for w in waypoints])]
            log.debug("Rebuild of route %s: %d waypoint(s), no valid segment", route.id, len(waypoints))
            return EditResult.success()

        new_segments: List[Segment] = []
        first_changed = -1
        for i, definition in enumerate(definitions):
            points = [waypoints[j].point for j in definition.indices]
            segment = Segment(mode=definition.mode, waypoints=points)
            segment._source_indices = definition.indices
            segment._source_points = tuple(points)

            prev = old_segments[i] if i < len(old_segments) else None
            if first_changed == -1 and self.segments_are_equivalent(prev, definition, waypoints) and prev.geometry:
                segment.waypoints = list(prev.waypoints)
                segment.geometry = prev.geometry
            elif first_changed == -1:
                first_changed = i
            new_segments.append(segment)

        route.segments = new_segments

        if first_changed == -1:
            log.debug("Rebuild of route %s: all %d segment(s) reused", route.id, len(new_segments))
            self.fix_continuity(route)
            return EditResult.success()

        log.debug(
            "Rebuild of route %s: reusing %d segment(s), recomputing %d",
            route.id,
            first_changed,
            len(new_segments) - first_changed,
        )
        return await self._recompute_and_fix(route, range(first_changed, len(new_segments)), keep_source=True)

    # ------------------------------------------------------------------
    # Continuity
    # ------------------------------------------------------------------
    def fix_continuity(self, route: Route) -> None:
        """
        Snap manual segment endpoints onto their neighbours' geometry:
          - a manual segment (not the first) starts where the previous geometry ends;
          - a manual segment followed by a routing one ends where that geometry starts.
        The matching waypoint moves with it, so manual geometry stays equal to
        its waypoints. Idempotent.
        """
        segments = route.segments
        for i, segment in enumerate(segments):
            if segment.mode != SegmentMode.MANUAL or not segment.geometry:
                continue
            if i > 0 and segments[i - 1].geometry:
                _snap_manual_point(segment, 0, segments[i - 1].geometry[-1])
            if i + 1 < len(segments):
                nxt = segments[i + 1]
                if nxt.mode == SegmentMode.ROUTING and nxt.geometry:
                    _snap_manual_point(segment, -1, nxt.geometry[0])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _recompute_and_fix(
        self, route: Route, indices: Sequence[int], keep_source: bool = False
    ) -> EditResult:
        ok = True
        for i in indices:
            if not keep_source:
                # Edited in place, no longer derived from a flat list
                route.segments[i]._source_indices = None
                route.segments[i]._source_points = None
            if not await self._recompute(route, i):
                ok = False
        self.fix_continuity(route)
        return EditResult.success() if ok else self._routing_failure()

    async def _recompute(self, route: Route, segment_index: int) -> bool:
        """
        Recompute one segment from its waypoints and mode. Returns False only
        on routing failure, in which case the previous geometry is kept.
        """
        segment = route.segments[segment_index]
        segment._generation += 1
        generation = segment._generation

        if not segment.is_valid():
            segment.geometry = []
            return True

        if segment.mode == SegmentMode.MANUAL:
            segment.geometry = list(segment.waypoints)
            if segment_index > 0 and route.segments[segment_index - 1].geometry:
                _snap_manual_point(segment, 0, route.segments[segment_index - 1].geometry[-1])
            return True

        geometry = await self._route_geometry(segment.waypoints)

        if generation != segment._generation or not _contains(route, segment):
            log.debug("Discarding stale routing result for route %s segment %d", route.id, segment_index)
            return True
        if geometry is None:
            log.warning("Routing failed for route %s segment %d", route.id, segment_index)
            return False

        segment.geometry = geometry
        return True

    async def _route_geometry(self, waypoints: Sequence[Point]) -> Optional[List[Point]]:
        """Route through *waypoints*, in overlapping chunks when over the ceiling."""
        if len(waypoints) <= self.max_waypoints:
            return await self.provider.compute_route(list(waypoints))

        out: List[Point] = []
        step = self.max_waypoints - 1
        for start in range(0, len(waypoints) - 1, step):
            chunk = list(waypoints[start : start + self.max_waypoints])
            part = await self.provider.compute_route(chunk)
            if part is None:
                return None
            out.extend(part if not out else part[1:])
        return out


def _shares_boundary(ours: Sequence[Optional[Point]], theirs: Sequence[Optional[Point]]) -> bool:
    """Any of our touching points (waypoint, geometry end) coincides with one of theirs."""
    return any(
        points_equal(a, b) for a in ours if a is not None for b in theirs if b is not None
    )


def _contains(route: Route, segment: Segment) -> bool:
    return any(s is segment for s in route.segments)


def _snap_manual_point(segment: Segment, index: int, point: Point) -> None:
    if segment.geometry[index] != point:
        segment.geometry[index] = point
    if len(segment.waypoints) == len(segment.geometry) and segment.waypoints[index] != point:
        segment.waypoints[index] = point
