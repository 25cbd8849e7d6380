from __future__ import annotations

import asyncio
from typing import List, Optional

from trail_editor.core.models import Point
from trail_editor.providers.base import RoutingProvider


class MockRoutingProvider(RoutingProvider):
    """
    Deterministic fake routing so the editor runs end-to-end without the API.

    The "road" is the control polyline with a midpoint inserted on every leg,
    so the result is denser than the input and not index-aligned with it,
    like a real routed path. With ``snap_offset_deg`` the first and last
    points are pushed north by that many degrees, the way a real service
    snaps endpoints onto the nearest road.
    """

    def __init__(
        self,
        max_waypoints: int = 15,
        fail: bool = False,
        delay_s: float = 0.0,
        snap_offset_deg: float = 0.0,
    ):
        super().__init__(max_waypoints=max_waypoints)
        self.fail = fail
        self.delay_s = delay_s
        self.snap_offset_deg = snap_offset_deg
        self.calls: List[List[Point]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def _fetch(self, waypoints: List[Point]) -> Optional[List[Point]]:
        self.calls.append(list(waypoints))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.fail:
            return None

        out: List[Point] = [waypoints[0]]
        for a, b in zip(waypoints[:-1], waypoints[1:]):
            out.append(Point(lat=(a.lat + b.lat) / 2, lon=(a.lon + b.lon) / 2))
            out.append(b)
        if self.snap_offset_deg:
            out[0] = Point(lat=out[0].lat + self.snap_offset_deg, lon=out[0].lon)
            out[-1] = Point(lat=out[-1].lat + self.snap_offset_deg, lon=out[-1].lon)
        return out
