from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Union

from trail_editor.core.models import Route
from trail_editor.storage.adapters import ImportedRoute, StorageError, dump_document, parse_document

log = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_routes(path: PathLike) -> List[ImportedRoute]:
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise StorageError(f"Cannot read {p}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise StorageError(f"{p} is not valid JSON: {exc}") from exc

    imported = parse_document(data)
    log.info("Loaded %d route(s) from %s", len(imported), p)
    return imported


def save_routes(path: PathLike, routes: List[Route]) -> int:
    """Write routes to *path*; returns how many were exported."""
    p = Path(path)
    doc = dump_document(routes)
    p.parent.mkdir(parents=True, exist_ok=True)
    try:
        p.write_text(json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Cannot write {p}: {exc}") from exc

    log.info("Saved %d route(s) to %s", len(doc["routes"]), p)
    return len(doc["routes"])
