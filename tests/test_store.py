"""Tests for the route store: editing state machine, collection, clipboard, events."""

import pytest

from conftest import pts
from trail_editor.core.models import Point, Route, Segment, SegmentMode
from trail_editor.core.store import EventBus, RouteStore, StoreState


@pytest.fixture
def store(calc):
    s = RouteStore(calculator=calc)
    yield s
    s.close()


def _saved_route(name="A"):
    wps = pts((0, 0), (0, 1), (0, 2))
    return Route(name=name, segments=[Segment(mode=SegmentMode.MANUAL, waypoints=wps, geometry=list(wps))])


class TestCreateAndCancel:
    def test_create_route_enters_editing(self, store):
        route = store.create_route()

        assert store.state == StoreState.EDITING
        assert route.id == 1
        assert store.active_route is route
        assert store.active_segment_index == 0
        assert route.segments[0].mode == SegmentMode.ROUTING
        assert not route.segments[0].waypoints

    def test_create_only_from_browsing(self, store):
        store.create_route()
        assert store.create_route() is None
        assert len(store.routes) == 1

    @pytest.mark.asyncio
    async def test_cancel_new_route_deletes_it(self, store, calc):
        route = store.create_route()
        await calc.add_waypoint(route, 0, 50.0, 14.0)

        store.cancel_editing()

        assert store.state == StoreState.BROWSING
        assert store.routes == []
        assert store.active_route is None

    @pytest.mark.asyncio
    async def test_cancel_restores_saved_route(self, store, calc):
        route = store.add_route(_saved_route("A"))
        original = list(route.segments[0].waypoints)
        assert store.open_detail(route.id)
        assert store.start_editing_from_detail()

        store.update_route(route.id, name="B")
        await calc.add_waypoint(route, 0, 0, 3)
        assert store.has_changes()

        store.cancel_editing()

        assert route.name == "A"
        assert route.segments[0].waypoints == original
        assert store.state == StoreState.VIEWING_DETAIL
        assert store.active_route_id == route.id

    def test_has_changes_ignores_float_noise(self, store):
        route = store.add_route(_saved_route())
        store.activate_route(route.id)

        wp = route.segments[0].waypoints[1]
        route.segments[0].waypoints[1] = Point(lat=wp.lat + 1e-9, lon=wp.lon)

        assert not store.has_changes()

    def test_has_changes_detects_mode_switch(self, store):
        route = store.add_route(_saved_route())
        store.activate_route(route.id)

        route.segments[0].mode = SegmentMode.ROUTING

        assert store.has_changes()


class TestSegmentTransitions:
    @pytest.fixture
    def editing(self, store):
        route = store.add_route(_saved_route())
        store.activate_route(route.id)
        return route

    def test_switching_away_discards_invalid_segment(self, store, editing):
        assert store.add_new_segment(SegmentMode.MANUAL) == 1

        assert store.set_active_segment(0)

        assert len(editing.segments) == 1
        assert store.active_segment_index == 0

    def test_target_index_shifts_after_discard(self, store, editing):
        editing.segments.insert(0, Segment())  # now the active segment

        assert store.set_active_segment(1)

        assert len(editing.segments) == 1
        assert store.active_segment_index == 0
        assert store.active_segment.is_valid()

    def test_add_new_segment_discards_invalid_active(self, store, editing):
        store.add_new_segment()
        index = store.add_new_segment(SegmentMode.MANUAL)

        assert index == 1
        assert [s.mode for s in editing.segments] == [SegmentMode.MANUAL, SegmentMode.MANUAL]

    def test_deleting_last_segment_substitutes_empty_one(self, store, editing):
        assert store.delete_segment(0)

        assert len(editing.segments) == 1
        assert editing.segments[0].mode == SegmentMode.ROUTING
        assert not editing.segments[0].waypoints
        assert store.active_segment_index == 0

    def test_delete_before_active_shifts_index(self, store, editing):
        editing.segments.append(_saved_route().segments[0])
        store.set_active_segment(1)

        store.delete_segment(0)

        assert store.active_segment_index == 0

    def test_out_of_range(self, store, editing):
        assert not store.set_active_segment(5)
        assert not store.delete_segment(-1)


class TestSave:
    def test_save_needs_a_valid_segment(self, store):
        route = store.create_route()

        assert not store.save_editing()
        assert store.state == StoreState.EDITING
        assert len(route.segments) == 1

    def test_save_strips_invalid_segments(self, store):
        route = store.add_route(_saved_route())
        store.activate_route(route.id)
        store.add_new_segment()

        assert store.save_editing()

        assert store.state == StoreState.VIEWING_DETAIL
        assert len(route.segments) == 1
        assert store.route_backup is None
        assert store.active_segment_index is None

    def test_detail_round_trip(self, store):
        route = store.add_route(_saved_route())

        assert store.open_detail(route.id)
        assert store.is_viewing_detail
        store.close_detail()

        assert store.state == StoreState.BROWSING
        assert store.active_route is None

    def test_no_detail_while_editing(self, store):
        store.create_route()
        other = store.add_route(_saved_route())

        assert not store.open_detail(other.id)
        assert not store.activate_route(other.id)


class TestCollection:
    def test_ids_never_reused(self, store):
        store.add_route(Route(id=5, name="imported"))
        created = store.create_route()

        assert created.id == 6

    def test_set_routes_assigns_missing_ids(self, store):
        store.set_routes([Route(id=3), Route(), Route(id=1)])

        assert sorted(r.id for r in store.routes) == [1, 3, 4]

    def test_delete_active_route_resets_state(self, store):
        route = store.add_route(_saved_route())
        store.open_detail(route.id)

        assert store.delete_route(route.id)

        assert store.state == StoreState.BROWSING
        assert store.get_route(route.id) is None

    def test_update_route_rejects_unknown_attribute(self, store):
        route = store.add_route(_saved_route())

        with pytest.raises(ValueError):
            store.update_route(route.id, segments=[])

    def test_copy_route(self, store):
        route = store.add_route(_saved_route("Ridge walk"))

        copy = store.copy_route(route.id)

        assert copy.id != route.id
        assert copy.name == "Ridge walk (copy)"
        assert copy.segments[0].waypoints == route.segments[0].waypoints
        assert copy.segments[0] is not route.segments[0]

    def test_copy_without_valid_segments(self, store):
        route = store.add_route(Route(name="empty"))
        assert store.copy_route(route.id) is None

    def test_search(self, store):
        store.add_route(Route(name="Lake loop"))
        store.add_route(Route(ref="LK-2"))
        store.add_route(Route(name="Forest", symbol="red stripe"))

        store.search_query = "lk"
        assert [r.ref for r in store.filtered_routes()] == ["LK-2"]

        store.search_query = "RED"
        assert [r.name for r in store.filtered_routes()] == ["Forest"]

        store.search_query = ""
        assert len(store.filtered_routes()) == 3


class TestClipboard:
    @pytest.mark.asyncio
    async def test_copy_and_paste_segment(self, store):
        route = store.add_route(_saved_route())
        store.activate_route(route.id)

        assert store.copy_segment_to_clipboard()
        result = await store.paste_segment()

        assert result
        assert len(route.segments) == 2
        assert store.active_segment_index == 1
        assert route.segments[1].geometry == route.segments[1].waypoints

    def test_invalid_segment_not_copied(self, store):
        store.create_route()
        assert not store.copy_segment_to_clipboard()
        assert store.clipboard_segment is None

    @pytest.mark.asyncio
    async def test_paste_with_empty_clipboard(self, store):
        store.add_route(_saved_route())
        store.activate_route(1)

        result = await store.paste_segment()

        assert not result


class TestEvents:
    def test_subscribe_and_unsubscribe(self, store):
        seen = []
        unsubscribe = store.events.subscribe("route:created", seen.append)

        first = store.create_route()
        store.cancel_editing()
        unsubscribe()
        store.create_route()

        assert seen == [first]

    def test_failing_listener_does_not_break_emit(self):
        bus = EventBus()
        seen = []

        def boom(_):
            raise RuntimeError("listener bug")

        bus.subscribe("x", boom)
        bus.subscribe("x", seen.append)
        bus.emit("x", 42)

        assert seen == [42]
