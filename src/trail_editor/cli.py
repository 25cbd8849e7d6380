from __future__ import annotations

import argparse
import asyncio
import logging
import math
from pathlib import Path
from typing import List, Tuple

from rich.console import Console
from rich.table import Table

from trail_editor.config import settings
from trail_editor.core.engine import RouteCalculator
from trail_editor.core.models import Point, Route
from trail_editor.core.store import RouteStore
from trail_editor.geo.geometry import PixelProjector, find_routes_at_point
from trail_editor.providers.factory import build_provider
from trail_editor.storage.adapters import ImportedRoute, StorageError
from trail_editor.storage.json_storage import load_routes, save_routes

log = logging.getLogger(__name__)

TILE_SIZE = 256


def web_mercator_projector(zoom: float) -> PixelProjector:
    """World pixel coordinates of a point at *zoom* (256px tiles)."""
    scale = TILE_SIZE * 2**zoom

    def project(p: Point) -> Tuple[float, float]:
        lat = max(min(p.lat, 85.05112878), -85.05112878)
        x = (p.lon + 180.0) / 360.0 * scale
        s = math.sin(math.radians(lat))
        y = (0.5 - math.log((1 + s) / (1 - s)) / (4 * math.pi)) * scale
        return x, y

    return project


def _load_into_store(path: Path) -> Tuple[RouteStore, List[ImportedRoute]]:
    imported = load_routes(path)
    store = RouteStore()
    store.set_routes([item.route for item in imported])
    return store, imported


def _routes_table(title: str, routes: List[Route]) -> Table:
    table = Table(title=title)
    table.add_column("Id", justify="right")
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Color")
    table.add_column("Segments", justify="right")
    table.add_column("Waypoints", justify="right")
    table.add_column("Geometry pts", justify="right")

    for r in routes:
        modes = ", ".join(seg.mode.value for seg in r.segments)
        table.add_row(
            str(r.id),
            r.title,
            r.route_type.value,
            r.display_color,
            f"{len(r.segments)} ({modes})" if modes else "0",
            str(r.total_waypoint_count),
            str(sum(len(seg.geometry) for seg in r.segments)),
        )
    return table


def cmd_show(args: argparse.Namespace, console: Console) -> None:
    store, _ = _load_into_store(Path(args.file))
    console.print(_routes_table(f"Routes in {args.file}", store.routes))


async def _recalculate(imported: List[ImportedRoute], calc: RouteCalculator) -> List[Tuple[Route, bool]]:
    out = []
    for item in imported:
        if item.needs_rebuild:
            result = await calc.rebuild_route(item.route, item.flat_waypoints)
        else:
            result = await calc.recalculate_route(item.route)
        if not result:
            log.warning("Route %r: %s", item.route.title, result.message)
        out.append((item.route, bool(result)))
    return out


def cmd_recalc(args: argparse.Namespace, console: Console) -> None:
    store, imported = _load_into_store(Path(args.file))
    calc = RouteCalculator(build_provider(args.provider))

    results = asyncio.run(_recalculate(imported, calc))

    table = _routes_table("Recalculated routes", store.routes)
    console.print(table)
    failed = [r.title for r, ok in results if not ok]
    if failed:
        console.print(f"[yellow]Routing failed for: {', '.join(failed)}[/yellow]")

    out = Path(args.out or args.file)
    n = save_routes(out, store.routes)
    console.print(f"Saved {n} route(s): {out.resolve()}")


def cmd_find(args: argparse.Namespace, console: Console) -> None:
    store, _ = _load_into_store(Path(args.file))
    point = Point(lat=args.lat, lon=args.lon)
    hits = find_routes_at_point(point, store.routes, args.tolerance_px, web_mercator_projector(args.zoom))

    if not hits:
        console.print(f"No route within {args.tolerance_px}px of {args.lat:.6f}, {args.lon:.6f}")
        return

    table = Table(title=f"Routes near {args.lat:.6f}, {args.lon:.6f} (zoom {args.zoom})")
    table.add_column("Id", justify="right")
    table.add_column("Title")
    table.add_column("Distance deg", justify="right")
    table.add_column("Distance px", justify="right")
    for hit in hits:
        table.add_row(str(hit.route.id), hit.route.title, f"{hit.distance:.6f}", f"{hit.pixel_distance:.1f}")
    console.print(table)


def main() -> None:
    ap = argparse.ArgumentParser(prog="trail-editor")
    ap.add_argument("--log-level", default=settings.log_level, help="DEBUG, INFO, WARNING, ...")
    sub = ap.add_subparsers(dest="command", required=True)

    p_show = sub.add_parser("show", help="List the routes in a route file")
    p_show.add_argument("file")
    p_show.set_defaults(func=cmd_show)

    p_recalc = sub.add_parser("recalc", help="Recompute all segment geometry and save")
    p_recalc.add_argument("file")
    p_recalc.add_argument("--provider", default="mapy", help="mapy | mock")
    p_recalc.add_argument("--out", default=None, help="Output path (default: overwrite FILE)")
    p_recalc.set_defaults(func=cmd_recalc)

    p_find = sub.add_parser("find", help="Routes near a point")
    p_find.add_argument("file")
    p_find.add_argument("lat", type=float)
    p_find.add_argument("lon", type=float)
    p_find.add_argument("--tolerance-px", type=float, default=settings.hover_distance_px)
    p_find.add_argument("--zoom", type=float, default=14)
    p_find.set_defaults(func=cmd_find)

    args = ap.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s [trail-editor] %(levelname)s %(message)s",
    )

    console = Console()
    try:
        args.func(args, console)
    except StorageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
