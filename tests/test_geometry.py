import pytest

from conftest import pts
from trail_editor.core.models import Point, Route, Segment, SegmentMode
from trail_editor.geo.geometry import (
    distance,
    find_closest_point_on_polyline,
    find_closest_point_on_segment,
    find_routes_at_point,
    points_equal,
    project_point_on_segment,
)


def _px(p: Point):
    # 100 px per degree, y grows southwards like a screen
    return (p.lon * 100.0, -p.lat * 100.0)


class TestProjection:
    def test_projects_inside(self):
        p = project_point_on_segment(Point(lat=1, lon=5), Point(lat=0, lon=0), Point(lat=0, lon=10))
        assert p == Point(lat=0, lon=5)

    def test_clamps_to_endpoints(self):
        a, b = Point(lat=0, lon=0), Point(lat=0, lon=10)
        assert project_point_on_segment(Point(lat=0, lon=-3), a, b) == a
        assert project_point_on_segment(Point(lat=2, lon=14), a, b) == b

    def test_degenerate_segment(self):
        a = Point(lat=3, lon=3)
        assert project_point_on_segment(Point(lat=0, lon=0), a, a) is a

    def test_distance_and_equality(self):
        assert distance(Point(lat=0, lon=0), Point(lat=3, lon=4)) == pytest.approx(5.0)
        assert points_equal(Point(lat=1, lon=1), Point(lat=1 + 1e-8, lon=1))
        assert not points_equal(Point(lat=1, lon=1), Point(lat=1.001, lon=1))


class TestPolyline:
    def test_closest_edge(self):
        line = pts((0, 0), (0, 10), (10, 10))
        hit = find_closest_point_on_polyline(Point(lat=6, lon=11), line)

        assert hit.segment_index == 1
        assert hit.point == Point(lat=6, lon=10)
        assert hit.distance == pytest.approx(1.0)

    def test_ties_keep_lowest_index(self):
        line = pts((0, 0), (0, 5), (0, 10))
        hit = find_closest_point_on_polyline(Point(lat=1, lon=5), line)

        assert hit.segment_index == 0

    def test_too_short(self):
        assert find_closest_point_on_polyline(Point(lat=0, lon=0), pts((0, 0))) is None
        assert find_closest_point_on_polyline(Point(lat=0, lon=0), []) is None


class TestSegmentHit:
    def test_manual_insert_after_hit_edge(self):
        wps = pts((0, 0), (0, 1), (0, 2))
        seg = Segment(mode=SegmentMode.MANUAL, waypoints=wps, geometry=list(wps))

        hit = find_closest_point_on_segment(Point(lat=0.1, lon=1.5), seg)

        assert hit.geometry_index == 1
        assert hit.insert_index == 2
        assert hit.mode == SegmentMode.MANUAL

    def test_routing_insert_between_two_control_points(self):
        seg = Segment(
            mode=SegmentMode.ROUTING,
            waypoints=pts((0, 0), (0, 10)),
            geometry=pts((0, 0), (0, 5), (0, 10)),
        )

        hit = find_closest_point_on_segment(Point(lat=0.01, lon=5), seg)

        assert hit.insert_index == 1

    @pytest.mark.parametrize("lon, expected", [(8, 1), (12, 2), (1, 1), (19, 2)])
    def test_routing_insert_side_of_nearest_waypoint(self, lon, expected):
        seg = Segment(
            mode=SegmentMode.ROUTING,
            waypoints=pts((0, 0), (0, 10), (0, 20)),
            geometry=pts((0, 0), (0, 5), (0, 10), (0, 15), (0, 20)),
        )

        hit = find_closest_point_on_segment(Point(lat=0.2, lon=lon), seg)

        assert hit.insert_index == expected

    def test_no_geometry(self):
        seg = Segment(mode=SegmentMode.ROUTING, waypoints=pts((0, 0), (0, 10)))
        assert find_closest_point_on_segment(Point(lat=0, lon=5), seg) is None


class TestRoutesAtPoint:
    @pytest.fixture
    def routes(self):
        near = Route(id=1, name="near", segments=[Segment(mode=SegmentMode.MANUAL, geometry=pts((0, 0), (0, 1)))])
        far = Route(id=2, name="far", segments=[Segment(mode=SegmentMode.MANUAL, geometry=pts((0.05, 0), (0.05, 1)))])
        empty = Route(id=3, name="empty")
        return [far, empty, near]

    def test_sorted_by_distance(self, routes):
        hits = find_routes_at_point(Point(lat=0.01, lon=0.5), routes, 5, _px)

        assert [h.route.id for h in hits] == [1, 2]
        assert hits[0].pixel_distance == pytest.approx(1.0)
        assert hits[1].pixel_distance == pytest.approx(4.0)

    def test_tolerance_filters(self, routes):
        hits = find_routes_at_point(Point(lat=0.01, lon=0.5), routes, 2, _px)

        assert [h.route.name for h in hits] == ["near"]
