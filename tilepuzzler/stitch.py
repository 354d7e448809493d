"""Stitch placed tiles back into a single composite image."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Mapping

from PIL import Image

from tilepuzzler import metrics
from tilepuzzler.errors import InputError
from tilepuzzler.geometry import Cell, canvas_size_for, check_grid_limits, format_cell_key
from tilepuzzler.settings import ExportSettings
from tilepuzzler.store import Store
from tilepuzzler.tiler import encode_png

LOGGER = logging.getLogger(__name__)

TRANSPARENT = (0, 0, 0, 0)


@dataclass(frozen=True, slots=True)
class SkippedCell:
    """A placement that was left blank because its tile could not be used."""

    cell: Cell
    filename: str
    reason: str


@dataclass(slots=True)
class CompositeResult:
    image: Image.Image
    skipped: list[SkippedCell] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.skipped

    def skipped_keys(self) -> list[str]:
        return [format_cell_key(entry.cell) for entry in self.skipped]

    def to_png(self) -> bytes:
        return encode_png(self.image)


def check_canvas_limits(
    placements: Mapping[Cell, str],
    tile_size: int,
    limits: ExportSettings | None,
) -> tuple[int, int]:
    """Return the canvas size for ``placements`` or raise before anything is allocated."""

    if not placements:
        raise InputError("Placement map is empty")
    if tile_size <= 0:
        raise InputError(f"tile_size must be positive, got {tile_size}")
    width, height = canvas_size_for(placements.keys(), tile_size)
    if limits is not None:
        check_grid_limits(height // tile_size, width // tile_size, width, height, limits)
    return width, height


def _load_tile(store: Store, folder: str, filename: str) -> Image.Image:
    data = store.load_tile(folder, filename)
    tile = Image.open(io.BytesIO(data))
    tile.load()
    return tile if tile.mode == "RGBA" else tile.convert("RGBA")


def compose_placements(
    store: Store,
    folder: str,
    placements: Mapping[Cell, str],
    *,
    tile_size: int = 512,
    limits: ExportSettings | None = None,
) -> CompositeResult:
    """Paint every placed tile onto a transparent canvas.

    Cells are painted in sorted ``(row, col)`` order with source-over
    compositing. Tiles that cannot be opened or decoded are skipped and
    reported in :attr:`CompositeResult.skipped`; the rest of the image is
    still produced.
    """

    store.puzzle_dir(folder)
    width, height = check_canvas_limits(placements, tile_size, limits)
    LOGGER.info("Exporting %s: %d placements on a %dx%d canvas", folder, len(placements), width, height)

    canvas = Image.new("RGBA", (width, height), TRANSPARENT)
    skipped: list[SkippedCell] = []
    for cell in sorted(placements):
        filename = placements[cell]
        try:
            tile = _load_tile(store, folder, filename)
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
            LOGGER.warning("Failed to load tile %s for cell %s: %s", filename, format_cell_key(cell), exc)
            skipped.append(SkippedCell(cell=cell, filename=filename, reason=str(exc)))
            continue

        x = cell.col * tile_size
        y = cell.row * tile_size
        visible_w = min(tile.width, width - x)
        visible_h = min(tile.height, height - y)
        if (visible_w, visible_h) != tile.size:
            tile = tile.crop((0, 0, visible_w, visible_h))
        LOGGER.debug("adding %s at %d,%d", filename, x, y)
        canvas.alpha_composite(tile, dest=(x, y))

    metrics.record_composite(len(skipped))
    return CompositeResult(image=canvas, skipped=skipped)
