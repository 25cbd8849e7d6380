from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from requests.exceptions import RequestException

from trail_editor.config import settings
from trail_editor.core.models import Point
from trail_editor.providers.base import RoutingProvider
from trail_editor.providers.http import HTTPClient

log = logging.getLogger(__name__)


def _fmt(p: Point) -> str:
    """Mapy.com takes ``lon,lat``."""
    return f"{p.lon},{p.lat}"


def _parse_coordinates(data: Any) -> Optional[List[Point]]:
    """
    Routing response in geojson format:
      {"geometry": {"geometry": {"coordinates": [[lon, lat], ...]}}, ...}
    """
    try:
        coords = data["geometry"]["geometry"]["coordinates"]
        out = [Point(lat=float(c[1]), lon=float(c[0])) for c in coords]
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        log.warning("Malformed routing payload (%s: %s)", type(exc).__name__, exc)
        return None
    if len(out) < 2:
        log.warning("Routing payload has %d coordinates, expected at least 2", len(out))
        return None
    return out


class MapyRoutingProvider(RoutingProvider):
    """
    Mapy.com routing API (``/v1/routing/route``).

    One request per call, start/end plus up to ``max_waypoints - 2`` vias.
    The blocking ``requests`` call runs in a worker thread so the event loop
    only suspends here.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        route_type: Optional[str] = None,
        max_waypoints: Optional[int] = None,
        http: Optional[HTTPClient] = None,
    ):
        super().__init__(max_waypoints=max_waypoints or settings.max_waypoints_per_call)
        self.api_key = api_key if api_key is not None else settings.routing_api_key
        self.base_url = (base_url or settings.routing_base_url).rstrip("/")
        self.route_type = route_type or settings.routing_route_type
        self.http = http or HTTPClient(
            user_agent=settings.routing_user_agent,
            timeout_s=settings.routing_timeout_s,
            tries=1,
        )

        if not self.api_key:
            log.warning("No routing API key configured (TRAIL_EDITOR_ROUTING_API_KEY)")

    def _params(self, waypoints: List[Point]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "apikey": self.api_key,
            "start": _fmt(waypoints[0]),
            "end": _fmt(waypoints[-1]),
            "routeType": self.route_type,
            "format": "geojson",
        }
        vias = waypoints[1:-1]
        if vias:
            params["waypoints"] = [_fmt(p) for p in vias]
        return params

    async def _fetch(self, waypoints: List[Point]) -> Optional[List[Point]]:
        url = f"{self.base_url}/v1/routing/route"
        try:
            data = await asyncio.to_thread(self.http.get_json, url, self._params(waypoints))
        except (RequestException, ValueError) as exc:
            log.warning("Routing request failed (%s: %s)", type(exc).__name__, exc)
            return None
        return _parse_coordinates(data)
