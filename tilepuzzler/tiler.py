"""Tile slicing utilities backed by Pillow."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from PIL import Image

from tilepuzzler import metrics
from tilepuzzler.catalog import CatalogService
from tilepuzzler.errors import DecodeError, InputError
from tilepuzzler.geometry import Cell, GridGeometry, TileRect, check_grid_limits, grid_for_source
from tilepuzzler.schemas import CatalogEntry, PuzzleManifest
from tilepuzzler.settings import ExportSettings
from tilepuzzler.store import Store, folder_id_for

LOGGER = logging.getLogger(__name__)

TILE_NAME_TEMPLATE = "image_{index:04d}.png"


@dataclass(slots=True)
class TileSlice:
    """One encoded tile ready to be written to the store."""

    index: int
    cell: Cell
    rect: TileRect
    filename: str
    png_bytes: bytes


@dataclass(slots=True)
class SliceResult:
    folder: str
    geometry: GridGeometry
    manifest: PuzzleManifest
    entry: CatalogEntry
    preview_path: Path


def tile_filename(index: int) -> str:
    return TILE_NAME_TEMPLATE.format(index=index)


def decode_image(data: bytes) -> Image.Image:
    """Decode raw upload bytes, forcing a full load so corrupt files fail here."""

    if not data:
        raise DecodeError("Error decoding image: empty upload")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Error decoding image: {exc}") from exc
    return image


def resize_to_grid(image: Image.Image, geometry: GridGeometry) -> Image.Image:
    """Resample ``image`` to the geometry's canvas with Lanczos filtering."""

    rgba = image if image.mode == "RGBA" else image.convert("RGBA")
    return rgba.resize((geometry.width, geometry.height), Image.Resampling.LANCZOS)


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def encode_preview(image: Image.Image, *, quality: int = 75) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def iter_tile_slices(image: Image.Image, geometry: GridGeometry) -> Iterator[TileSlice]:
    """Crop ``image`` into row-major tiles clipped to its bounds.

    Filenames are numbered by iteration order.
    """

    if image.size != (geometry.width, geometry.height):
        raise InputError(
            f"Image is {image.width}x{image.height}, geometry expects {geometry.width}x{geometry.height}"
        )
    for index, cell in enumerate(geometry.iter_cells()):
        rect = geometry.tile_rect(cell)
        tile = image.crop(rect)
        yield TileSlice(
            index=index,
            cell=cell,
            rect=rect,
            filename=tile_filename(index),
            png_bytes=encode_png(tile),
        )


def slice_puzzle(
    image_bytes: bytes,
    *,
    name: str,
    columns: int,
    store: Store,
    catalog: CatalogService,
    tile_size: int = 512,
    preview_quality: int = 75,
    limits: ExportSettings | None = None,
) -> SliceResult:
    """Slice an uploaded image into a persisted puzzle and register it in the catalog.

    With ``limits`` set, grids whose full solution could not be exported are
    rejected before the image is resized. A failure partway through leaves
    whatever tiles were already written and no manifest; nothing is rolled
    back.
    """

    if not name or not name.strip():
        raise InputError("Puzzle name is required")
    folder = folder_id_for(name)
    store.puzzle_dir(folder)

    source = decode_image(image_bytes)
    geometry = grid_for_source(tile_size, columns, source.width, source.height)
    if limits is not None:
        check_grid_limits(geometry.rows, geometry.cols, geometry.width, geometry.height, limits)
    LOGGER.info(
        "Slicing %r (%dx%d) into %s: %dx%d canvas, %d rows x %d cols",
        name,
        source.width,
        source.height,
        folder,
        geometry.width,
        geometry.height,
        geometry.rows,
        geometry.cols,
    )
    resized = resize_to_grid(source, geometry)

    store.ensure_layout(folder)
    preview_path = store.write_preview(folder, encode_preview(resized, quality=preview_quality))

    pieces: list[str] = []
    solution: dict[Cell, str] = {}
    for tile in iter_tile_slices(resized, geometry):
        store.save_tile(folder, tile.filename, tile.png_bytes)
        pieces.append(tile.filename)
        solution[tile.cell] = tile.filename

    manifest = PuzzleManifest.from_cells(pieces, solution)
    store.write_manifest(folder, manifest)

    entry = CatalogEntry(
        name=name,
        folder=folder,
        rows=geometry.rows,
        cols=geometry.cols,
        tl=solution[Cell(0, 0)],
    )
    catalog.append(entry)
    metrics.record_slice(len(pieces))
    return SliceResult(
        folder=folder,
        geometry=geometry,
        manifest=manifest,
        entry=entry,
        preview_path=preview_path,
    )
