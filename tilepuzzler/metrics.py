"""Prometheus counters for slicing and export activity."""

from __future__ import annotations

from prometheus_client import Counter

PUZZLES_SLICED = Counter(
    "tilepuzzler_puzzles_sliced_total",
    "Puzzles sliced successfully",
)
TILES_WRITTEN = Counter(
    "tilepuzzler_tiles_written_total",
    "Tile files written by the slicer",
)
COMPOSITES_RENDERED = Counter(
    "tilepuzzler_composites_rendered_total",
    "Composite images rendered",
    ["outcome"],
)
TILES_SKIPPED = Counter(
    "tilepuzzler_tiles_skipped_total",
    "Placements skipped because the tile could not be loaded",
)


def record_slice(tile_count: int) -> None:
    PUZZLES_SLICED.inc()
    TILES_WRITTEN.inc(tile_count)


def record_composite(skipped: int) -> None:
    COMPOSITES_RENDERED.labels(outcome="partial" if skipped else "complete").inc()
    if skipped:
        TILES_SKIPPED.inc(skipped)
