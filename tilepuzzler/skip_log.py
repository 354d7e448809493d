"""Helpers to append best-effort export events to the ops log."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Sequence

from tilepuzzler.geometry import format_cell_key
from tilepuzzler.settings import Settings, get_settings
from tilepuzzler.stitch import SkippedCell


def append_skip_log(
    *,
    folder: str,
    placements: int,
    skipped: Sequence[SkippedCell],
    settings: Settings | None = None,
) -> None:
    """Append one JSON line describing tiles skipped during an export.

    No-op when every placement was painted.
    """

    if not skipped:
        return

    active = settings or get_settings()
    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "folder": folder,
        "placements": placements,
        "skipped": [
            {"cell": format_cell_key(entry.cell), "file": entry.filename, "reason": entry.reason}
            for entry in skipped
        ],
    }
    log_path = active.logging.skip_log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record))
        handle.write("\n")
