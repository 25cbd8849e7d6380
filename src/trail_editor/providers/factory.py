from __future__ import annotations

from trail_editor.providers.base import RoutingProvider


def build_provider(provider_str: str) -> RoutingProvider:
    """
    Build a routing provider from a CLI string:
      "mapy"  Mapy.com routing API (needs TRAIL_EDITOR_ROUTING_API_KEY)
      "mock"  offline midpoint densifier
    """
    token = (provider_str or "mapy").strip().lower()

    # Local imports
    if token == "mapy":
        from trail_editor.providers.mapy import MapyRoutingProvider

        return MapyRoutingProvider()
    if token == "mock":
        from trail_editor.config import settings
        from trail_editor.providers.mock import MockRoutingProvider

        return MockRoutingProvider(max_waypoints=settings.max_waypoints_per_call)

    raise ValueError(f"Unknown provider: '{provider_str}' (supported: mapy, mock)")
