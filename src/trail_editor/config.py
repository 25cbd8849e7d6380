"""Centralized settings for the trail editor."""
from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "TRAIL_EDITOR_"}

    # Mapy.com routing; with an empty key only the mock provider works
    routing_api_key: str = ""
    routing_base_url: str = "https://api.mapy.com"
    routing_route_type: str = "foot_fast"
    routing_timeout_s: int = 20
    routing_user_agent: str = "TrailEditor/0.1.0"

    # Service ceiling, endpoints included
    max_waypoints_per_call: int = 15

    # Route hit-test tolerance
    hover_distance_px: int = 20

    # Coordinates closer than this (degrees) count as unchanged
    change_epsilon_deg: float = 1e-6

    log_level: str = "INFO"


settings = Settings()
