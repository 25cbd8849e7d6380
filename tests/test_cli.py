import json
import sys

import pytest

from trail_editor.cli import main, web_mercator_projector
from trail_editor.core.models import Point
from trail_editor.storage.json_storage import load_routes

DOC = {
    "version": 2,
    "routes": [
        {
            "id": 1,
            "name": "Valley",
            "segments": [
                {"mode": "routing", "waypoints": [{"lat": 50.0, "lon": 14.0}, {"lat": 50.0, "lon": 14.2}], "geometry": []},
                {"mode": "manual", "geometry": [{"lat": 50.0, "lon": 14.21}, {"lat": 50.1, "lon": 14.3}]},
            ],
        }
    ],
}


@pytest.fixture
def route_file(tmp_path):
    path = tmp_path / "routes.json"
    path.write_text(json.dumps(DOC), encoding="utf-8")
    return path


def test_projector_origin():
    project = web_mercator_projector(0)
    x, y = project(Point(lat=0, lon=0))
    assert x == pytest.approx(128.0)
    assert y == pytest.approx(128.0)


def test_recalc_with_mock_provider(route_file, tmp_path, monkeypatch, capsys):
    out = tmp_path / "out.json"
    monkeypatch.setattr(sys, "argv", ["trail-editor", "recalc", str(route_file), "--provider", "mock", "--out", str(out)])

    main()

    (imported,) = load_routes(out)
    routing, manual = imported.route.segments
    assert len(routing.geometry) == 3
    assert manual.geometry[0] == routing.geometry[-1]
    assert "Saved 1 route(s)" in capsys.readouterr().out


def test_find(route_file, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["trail-editor", "find", str(route_file), "50.0001", "14.21", "--zoom", "14"])

    main()

    assert "Valley" in capsys.readouterr().out


def test_missing_file_exits(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["trail-editor", "show", str(tmp_path / "missing.json")])

    with pytest.raises(SystemExit):
        main()
