"""Grid geometry shared by the slicer and the composer."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple

from tilepuzzler.errors import InputError, InvalidColumns
from tilepuzzler.settings import ExportSettings

CELL_KEY_PATTERN = re.compile(r"(0|[1-9][0-9]*),(0|[1-9][0-9]*)")


class Cell(NamedTuple):
    """Grid coordinate used as a mapping key throughout the engine."""

    row: int
    col: int


class TileRect(NamedTuple):
    """Half-open pixel box ``[x0, x1) × [y0, y1)`` in Pillow crop order."""

    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0


def format_cell_key(cell: Cell) -> str:
    return f"{cell.row},{cell.col}"


def parse_cell_key(key: str) -> Cell:
    """Parse a ``"row,col"`` key from the JSON boundary into a :class:`Cell`.

    Only the canonical form written by :func:`format_cell_key` is accepted,
    so two distinct keys can never name the same cell.
    """

    match = CELL_KEY_PATTERN.fullmatch(str(key))
    if match is None:
        raise InputError(f"Invalid cell key {key!r}; expected non-negative 'row,col' without padding")
    return Cell(int(match.group(1)), int(match.group(2)))


def check_grid_limits(rows: int, cols: int, width: int, height: int, limits: ExportSettings) -> None:
    """Raise :class:`InputError` when a grid exceeds the configured bounds."""

    if cols > limits.max_cols:
        raise InvalidColumns(f"{cols} columns exceeds the limit of {limits.max_cols}")
    if rows > limits.max_rows:
        raise InputError(f"Grid {rows}x{cols} exceeds the limit of {limits.max_rows}x{limits.max_cols}")
    if width * height > limits.max_pixels:
        raise InputError(f"Image of {width}x{height} exceeds {limits.max_pixels} pixels")


@dataclass(frozen=True, slots=True)
class GridGeometry:
    """Tiling parameters for an image of ``width × height`` pixels."""

    tile_size: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.tile_size <= 0:
            raise InputError(f"tile_size must be positive, got {self.tile_size}")
        if self.width <= 0 or self.height <= 0:
            raise InputError(f"Degenerate image size {self.width}x{self.height}")

    @property
    def cols(self) -> int:
        return -(-self.width // self.tile_size)

    @property
    def rows(self) -> int:
        return -(-self.height // self.tile_size)

    @property
    def tile_count(self) -> int:
        return self.rows * self.cols

    def contains(self, cell: Cell) -> bool:
        return 0 <= cell.row < self.rows and 0 <= cell.col < self.cols

    def tile_rect(self, cell: Cell) -> TileRect:
        if not self.contains(cell):
            raise InputError(f"Cell {format_cell_key(cell)} is outside a {self.rows}x{self.cols} grid")
        x0 = cell.col * self.tile_size
        y0 = cell.row * self.tile_size
        return TileRect(
            x0=x0,
            y0=y0,
            x1=min(x0 + self.tile_size, self.width),
            y1=min(y0 + self.tile_size, self.height),
        )

    def iter_cells(self) -> Iterator[Cell]:
        """Yield every cell in row-major scan order."""

        for row in range(self.rows):
            for col in range(self.cols):
                yield Cell(row, col)


def target_size(tile_size: int, columns: int, source_width: int, source_height: int) -> tuple[int, int]:
    """Return the aspect-preserving size whose width is exactly ``columns`` tiles."""

    if columns <= 0:
        raise InvalidColumns(f"columns must be a positive integer, got {columns}")
    if tile_size <= 0:
        raise InputError(f"tile_size must be positive, got {tile_size}")
    if source_width <= 0 or source_height <= 0:
        raise InputError(f"Degenerate source size {source_width}x{source_height}")
    width = tile_size * columns
    aspect_ratio = source_width / source_height
    height = max(1, round(width / aspect_ratio))
    return width, height


def grid_for_source(tile_size: int, columns: int, source_width: int, source_height: int) -> GridGeometry:
    width, height = target_size(tile_size, columns, source_width, source_height)
    return GridGeometry(tile_size=tile_size, width=width, height=height)


def canvas_size_for(cells: Iterable[Cell], tile_size: int) -> tuple[int, int]:
    """Bounding canvas ``(width, height)`` covering every cell; ``(0, 0)`` when empty."""

    max_row = max_col = -1
    for cell in cells:
        max_row = max(max_row, cell.row)
        max_col = max(max_col, cell.col)
    if max_row < 0:
        return 0, 0
    return (max_col + 1) * tile_size, (max_row + 1) * tile_size
