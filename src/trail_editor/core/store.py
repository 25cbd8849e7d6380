"""
Route collection + editing state machine.

    BROWSING  --create_route/activate_route-->  EDITING
    BROWSING  --open_detail-->                  VIEWING_DETAIL
    VIEWING_DETAIL --start_editing_from_detail--> EDITING
    VIEWING_DETAIL --close_detail-->            BROWSING
    EDITING   --save_editing-->                 VIEWING_DETAIL
    EDITING   --cancel_editing-->               VIEWING_DETAIL (existing route)
                                                BROWSING       (brand-new route, deleted)

Invalid segments (< 2 waypoints) are only ever removed at the transitions that
call ``_discard_active_if_invalid`` or strip the route on save/deactivate.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from trail_editor.config import settings
from trail_editor.contracts.results import EditFailure, EditResult
from trail_editor.core.engine import RouteCalculator
from trail_editor.core.models import Route, Segment, SegmentMode

log = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class StoreState(str, Enum):
    BROWSING = "browsing"
    EDITING = "editing"
    VIEWING_DETAIL = "viewing_detail"


class EventBus:
    """Named-event observer list. Listener errors are logged, never propagated."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def subscribe(self, event: str, callback: Listener) -> Callable[[], None]:
        self._listeners[event].append(callback)

        def unsubscribe() -> None:
            try:
                self._listeners[event].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, event: str, payload: Any = None) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(payload)
            except Exception:
                log.exception("Listener for %s failed", event)

    def clear(self) -> None:
        self._listeners.clear()


class RouteStore:
    def __init__(self, calculator: Optional[RouteCalculator] = None):
        self.calculator = calculator
        self.events = EventBus()

        self._routes: List[Route] = []
        self._next_route_id = 1
        self._state = StoreState.BROWSING
        self._active_route_id: Optional[int] = None
        self._active_segment_index: Optional[int] = None
        self._backup: Optional[Route] = None
        self._search_query = ""
        self._clipboard: Optional[Segment] = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def is_editing(self) -> bool:
        return self._state == StoreState.EDITING

    @property
    def is_viewing_detail(self) -> bool:
        return self._state == StoreState.VIEWING_DETAIL

    @property
    def routes(self) -> List[Route]:
        return list(self._routes)

    @property
    def active_route_id(self) -> Optional[int]:
        return self._active_route_id

    @property
    def active_route(self) -> Optional[Route]:
        return self.get_route(self._active_route_id)

    @property
    def active_segment_index(self) -> Optional[int]:
        return self._active_segment_index

    @property
    def active_segment(self) -> Optional[Segment]:
        route = self.active_route
        if route is None:
            return None
        return route.get_segment(self._active_segment_index)

    @property
    def route_backup(self) -> Optional[Route]:
        return self._backup

    def get_route(self, route_id: Optional[int]) -> Optional[Route]:
        if route_id is None:
            return None
        for route in self._routes:
            if route.id == route_id:
                return route
        return None

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    @property
    def search_query(self) -> str:
        return self._search_query

    @search_query.setter
    def search_query(self, value: str) -> None:
        self._search_query = value or ""
        self.events.emit("search:changed", self._search_query)

    def filtered_routes(self) -> List[Route]:
        """Routes whose name, ref or symbol contains the query (case-insensitive)."""
        if not self._search_query:
            return self.routes
        query = self._search_query.lower()
        return [
            r
            for r in self._routes
            if query in (r.name or "").lower() or query in (r.ref or "").lower() or query in (r.symbol or "").lower()
        ]

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------
    def add_route(self, route: Route) -> Route:
        """Add an existing route (import). Keeps its id, or assigns the next one."""
        if not route.id:
            route.id = self._next_route_id
            self._next_route_id += 1
        elif route.id >= self._next_route_id:
            self._next_route_id = route.id + 1
        self._routes.append(route)
        self.events.emit("route:added", route)
        return route

    def set_routes(self, routes: List[Route]) -> None:
        self._reset_active()
        self._routes = list(routes)
        self._next_route_id = max([0] + [r.id or 0 for r in self._routes]) + 1
        for route in self._routes:
            if not route.id:
                route.id = self._next_route_id
                self._next_route_id += 1
        self.events.emit("routes:loaded", self.routes)

    def update_route(self, route_id: int, **updates: Any) -> Optional[Route]:
        """Update route attributes (not segments)."""
        route = self.get_route(route_id)
        if route is None:
            return None
        unknown = set(updates) - set(Route.ATTRIBUTE_NAMES)
        if unknown:
            raise ValueError(f"Unknown route attribute(s): {', '.join(sorted(unknown))}")
        for attr, value in updates.items():
            setattr(route, attr, value)
        self.events.emit("route:updated", route)
        return route

    def delete_route(self, route_id: int) -> bool:
        route = self.get_route(route_id)
        if route is None:
            return False
        self._routes.remove(route)
        if self._active_route_id == route_id:
            self._reset_active()
        self.events.emit("route:deleted", route)
        return True

    def clear_routes(self) -> None:
        self._routes = []
        self._reset_active()
        self.events.emit("routes:cleared")

    def copy_route(self, route_id: int) -> Optional[Route]:
        """
        Add a copy of a stored route under a new id with a " (copy)" name.
        Not available while editing; routes without a valid segment can't be copied.
        """
        if self.is_editing:
            return None
        original = self.get_route(route_id)
        if original is None or not original.has_valid_segments():
            return None

        copy = original.clone()
        copy.id = None
        copy.remove_invalid_segments()
        base = original.name or original.ref or "noname"
        copy.name = f"{base} (copy)"
        return self.add_route(copy)

    # ------------------------------------------------------------------
    # Detail / editing state machine
    # ------------------------------------------------------------------
    def create_route(self) -> Optional[Route]:
        """New route with one empty routing segment, straight into editing."""
        if self._state != StoreState.BROWSING:
            return None
        route = Route(id=self._next_route_id, segments=[Segment(mode=SegmentMode.ROUTING)])
        self._next_route_id += 1
        self._routes.append(route)
        self.events.emit("route:created", route)
        self._enter_editing(route, "route:activated")
        return route

    def open_detail(self, route_id: int) -> bool:
        if self.is_editing:
            return False
        route = self.get_route(route_id)
        if route is None:
            return False
        previous = self._active_route_id
        self._active_route_id = route_id
        self._active_segment_index = None
        self._state = StoreState.VIEWING_DETAIL
        self.events.emit("route:detail_opened", {"route": route, "previous_active_id": previous})
        return True

    def close_detail(self) -> None:
        if not self.is_viewing_detail:
            return
        route = self.active_route
        self._reset_active()
        self.events.emit("route:detail_closed", {"route": route})

    def activate_route(self, route_id: int) -> bool:
        if self.is_editing:
            return False
        route = self.get_route(route_id)
        if route is None:
            return False
        self._enter_editing(route, "route:activated")
        return True

    def start_editing_from_detail(self) -> bool:
        if not self.is_viewing_detail:
            return False
        route = self.active_route
        if route is None:
            return False
        self._enter_editing(route, "route:editing_started")
        return True

    def set_active_segment(self, index: int) -> bool:
        route = self.active_route
        if route is None or not self.is_editing:
            return False
        if not 0 <= index < len(route.segments):
            return False

        removed_at = self._discard_active_if_invalid(route)
        if removed_at is not None and removed_at < index:
            index -= 1
        if not route.segments:
            route.add_segment(SegmentMode.ROUTING)
        index = min(index, len(route.segments) - 1)

        self._active_segment_index = index
        self.events.emit("segment:activated", {"route": route, "segment_index": index})
        return True

    def add_new_segment(self, mode: SegmentMode = SegmentMode.ROUTING) -> Optional[int]:
        route = self.active_route
        if route is None or not self.is_editing:
            return None
        self._discard_active_if_invalid(route)
        index = route.add_segment(mode)
        self._active_segment_index = index
        self.events.emit("segment:created", {"route": route, "segment_index": index})
        return index

    def delete_segment(self, index: int) -> bool:
        route = self.active_route
        if route is None or not self.is_editing:
            return False
        if not route.remove_segment(index):
            return False

        if not route.segments:
            route.add_segment(SegmentMode.ROUTING)
            self._active_segment_index = 0
        elif self._active_segment_index is not None:
            if self._active_segment_index >= len(route.segments):
                self._active_segment_index = len(route.segments) - 1
            elif self._active_segment_index > index:
                self._active_segment_index -= 1

        self.events.emit(
            "segment:deleted",
            {"route": route, "deleted_index": index, "active_index": self._active_segment_index},
        )
        return True

    def save_editing(self) -> bool:
        """Strip invalid segments and go to detail. False (still editing) if nothing valid is left."""
        route = self.active_route
        if route is None or not self.is_editing:
            return False

        route.remove_invalid_segments()
        if not route.has_valid_segments():
            log.info("Route %s needs at least one valid segment to save", route.id)
            route.add_segment(SegmentMode.ROUTING)
            self._active_segment_index = 0
            return False

        self._state = StoreState.VIEWING_DETAIL
        self._active_segment_index = None
        self._backup = None
        self.events.emit("route:saved", {"route": route})
        return True

    def cancel_editing(self) -> None:
        """
        Brand-new route (backup without valid segments): delete it, go to browsing.
        Otherwise restore attributes and segments from the backup, go to detail.
        """
        route = self.active_route
        if route is None or not self.is_editing:
            self.deactivate_route()
            return

        if self._backup is None or not self._backup.has_valid_segments():
            self.delete_route(route.id)
            return

        route.restore_from(self._backup)
        self._state = StoreState.VIEWING_DETAIL
        self._active_segment_index = None
        self._backup = None
        self.events.emit("route:editing_cancelled", {"route": route})

    def deactivate_route(self) -> None:
        """Leave whatever state we are in for browsing, keeping edits as they are."""
        route = self.active_route
        previous = self._active_route_id
        if route is not None:
            route.remove_invalid_segments()
        self._reset_active()
        self.events.emit("route:deactivated", {"route": route, "previous_active_id": previous})

    def has_changes(self) -> bool:
        route = self.active_route
        backup = self._backup
        if route is None or backup is None:
            return False

        for attr in Route.ATTRIBUTE_NAMES:
            if getattr(route, attr) != getattr(backup, attr):
                return True
        if len(route.segments) != len(backup.segments):
            return True

        eps = settings.change_epsilon_deg
        for seg, old in zip(route.segments, backup.segments):
            if seg.mode != old.mode or len(seg.waypoints) != len(old.waypoints):
                return True
            for wp, old_wp in zip(seg.waypoints, old.waypoints):
                if abs(wp.lat - old_wp.lat) > eps or abs(wp.lon - old_wp.lon) > eps:
                    return True
        return False

    # ------------------------------------------------------------------
    # Segment clipboard
    # ------------------------------------------------------------------
    @property
    def clipboard_segment(self) -> Optional[Segment]:
        return self._clipboard

    def copy_segment_to_clipboard(self, index: Optional[int] = None) -> bool:
        """Copy a valid segment of the active route (default: the active segment)."""
        route = self.active_route
        if route is None:
            return False
        segment = route.get_segment(self._active_segment_index if index is None else index)
        if segment is None or not segment.is_valid():
            return False
        self._clipboard = segment.clone()
        self.events.emit("clipboard:changed", self._clipboard)
        return True

    def clear_clipboard(self) -> None:
        self._clipboard = None
        self.events.emit("clipboard:changed", None)

    async def paste_segment(self) -> EditResult:
        """Append the clipboard segment to the route being edited and activate it."""
        if self.calculator is None:
            raise RuntimeError("RouteStore was created without a RouteCalculator")
        route = self.active_route
        if route is None or not self.is_editing:
            return EditResult.fail(EditFailure.NO_SUCH_SEGMENT, "No route is being edited.")
        if self._clipboard is None:
            return EditResult.fail(EditFailure.NO_SUCH_SEGMENT, "The clipboard is empty.")

        self._discard_active_if_invalid(route)
        result = await self.calculator.paste_segment(route, self._clipboard)
        if result.failure == EditFailure.WAYPOINT_LIMIT:
            if not route.segments:
                route.add_segment(SegmentMode.ROUTING)
            self._active_segment_index = min(self._active_segment_index or 0, len(route.segments) - 1)
            return result

        index = len(route.segments) - 1
        self._active_segment_index = index
        self.events.emit("segment:created", {"route": route, "segment_index": index})
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        self.events.clear()
        self._clipboard = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _enter_editing(self, route: Route, event: str) -> None:
        previous = self._active_route_id
        self._active_route_id = route.id
        self._state = StoreState.EDITING
        self._backup = route.clone()
        if not route.segments:
            route.add_segment(SegmentMode.ROUTING)
        self._active_segment_index = 0
        self.events.emit(event, {"route": route, "previous_active_id": previous, "segment_index": 0})

    def _discard_active_if_invalid(self, route: Route) -> Optional[int]:
        """Drop the active segment if it has < 2 waypoints. Returns the removed index."""
        index = self._active_segment_index
        segment = route.get_segment(index)
        if segment is None or segment.is_valid():
            return None
        route.remove_segment(index)
        log.debug("Discarded invalid segment %d of route %s", index, route.id)
        return index

    def _reset_active(self) -> None:
        self._state = StoreState.BROWSING
        self._active_route_id = None
        self._active_segment_index = None
        self._backup = None
