from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from trail_editor.core.models import Point

log = logging.getLogger(__name__)

LoadingListener = Callable[[bool], None]


class RoutingProvider(ABC):
    """
    Compute a road-network polyline through ordered control points.

    Callers pre-limit the input to ``max_waypoints``; the provider never
    subdivides. Failures come back as ``None`` and are never raised past
    ``compute_route``. No automatic retries.
    """

    def __init__(self, max_waypoints: int = 15):
        self.max_waypoints = max_waypoints
        self._in_flight = 0
        self._loading_listeners: List[LoadingListener] = []

    # ---- Loading state (for spinners) ----
    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    def add_loading_listener(self, callback: LoadingListener) -> Callable[[], None]:
        self._loading_listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._loading_listeners:
                self._loading_listeners.remove(callback)

        return unsubscribe

    def _set_in_flight(self, delta: int) -> None:
        was_loading = self.is_loading
        self._in_flight += delta
        if self.is_loading != was_loading:
            for cb in list(self._loading_listeners):
                try:
                    cb(self.is_loading)
                except Exception:
                    log.exception("Loading listener failed")

    # ---- Public API ----
    async def compute_route(self, waypoints: Sequence[Point]) -> Optional[List[Point]]:
        if len(waypoints) < 2:
            log.warning("Routing needs at least 2 waypoints, got %d", len(waypoints))
            return None
        if len(waypoints) > self.max_waypoints:
            log.warning("Routing limited to %d waypoints, got %d", self.max_waypoints, len(waypoints))
            return None

        self._set_in_flight(+1)
        try:
            return await self._fetch(list(waypoints))
        except Exception as exc:
            log.warning("Routing failed (%s: %s)", type(exc).__name__, exc)
            return None
        finally:
            self._set_in_flight(-1)

    @abstractmethod
    async def _fetch(self, waypoints: List[Point]) -> Optional[List[Point]]:
        raise NotImplementedError
