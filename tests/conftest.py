import pytest

from trail_editor.core.engine import RouteCalculator
from trail_editor.core.models import Point
from trail_editor.providers.mock import MockRoutingProvider


def pts(*pairs):
    """[(lat, lon), ...] -> [Point, ...]"""
    return [Point(lat=lat, lon=lon) for lat, lon in pairs]


@pytest.fixture
def provider():
    return MockRoutingProvider(max_waypoints=15)


@pytest.fixture
def calc(provider):
    return RouteCalculator(provider)


@pytest.fixture
def snap_provider():
    """Routing that lands endpoints 0.001 deg north of the requested points."""
    return MockRoutingProvider(max_waypoints=15, snap_offset_deg=0.001)


@pytest.fixture
def snap_calc(snap_provider):
    return RouteCalculator(snap_provider)
