"""Tests for the slicer pipeline."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from PIL import Image

from tilepuzzler.catalog import CatalogService
from tilepuzzler.errors import DecodeError, InputError, InvalidColumns, StorageError
from tilepuzzler.geometry import Cell, GridGeometry
from tilepuzzler.settings import ExportSettings
from tilepuzzler.stitch import compose_placements
from tilepuzzler.store import StorageConfig, Store
from tilepuzzler.tiler import decode_image, iter_tile_slices, resize_to_grid, slice_puzzle, tile_filename


def _pattern_bytes(width: int, height: int, fmt: str = "PNG") -> bytes:
    image = Image.new("RGB", (width, height))
    image.putdata([((x * 7) % 256, (y * 5) % 256, (x + y) % 256) for y in range(height) for x in range(width)])
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def _store_and_catalog(tmp_path: Path) -> tuple[Store, CatalogService]:
    root = tmp_path / "images"
    return Store(StorageConfig(images_root=root)), CatalogService(root / "imageIndex.json")


def test_slice_puzzle_writes_tiles_manifest_preview_and_catalog(tmp_path: Path) -> None:
    store, catalog = _store_and_catalog(tmp_path)

    result = slice_puzzle(
        _pattern_bytes(90, 60),
        name="Sunset Beach",
        columns=3,
        store=store,
        catalog=catalog,
        tile_size=16,
    )

    assert result.folder == "sunset__beach"
    assert (result.geometry.width, result.geometry.height) == (48, 32)
    assert (result.geometry.rows, result.geometry.cols) == (2, 3)

    puzzle_dir = tmp_path / "images" / "sunset__beach"
    assert (puzzle_dir / "index.jpg").is_file()
    with Image.open(puzzle_dir / "index.jpg") as preview:
        assert preview.size == (48, 32)
        assert preview.format == "JPEG"

    expected_files = [tile_filename(index) for index in range(6)]
    assert store.list_tiles("sunset__beach") == expected_files

    manifest = json.loads((puzzle_dir / "manifest.json").read_text())
    assert [piece["file"] for piece in manifest["pieces"]] == expected_files
    assert manifest["solution"]["0,0"] == "image_0000.png"
    assert manifest["solution"]["1,2"] == "image_0005.png"
    assert sorted(manifest["solution"].values()) == expected_files

    catalog_doc = json.loads((tmp_path / "images" / "imageIndex.json").read_text())
    assert catalog_doc == {
        "images": [
            {"name": "Sunset Beach", "folder": "sunset__beach", "rows": 2, "cols": 3, "tl": "image_0000.png"}
        ]
    }


def test_solution_is_bijection_onto_valid_cells(tmp_path: Path) -> None:
    store, catalog = _store_and_catalog(tmp_path)

    result = slice_puzzle(_pattern_bytes(50, 77), name="tall", columns=2, store=store, catalog=catalog, tile_size=20)

    cells = result.manifest.solution_cells()
    geometry = result.geometry
    assert len(cells) == geometry.tile_count == len(result.manifest.pieces)
    assert len(set(cells.values())) == len(cells)
    assert all(geometry.contains(cell) for cell in cells)


def test_bottom_row_tiles_are_clipped(tmp_path: Path) -> None:
    store, catalog = _store_and_catalog(tmp_path)

    result = slice_puzzle(_pattern_bytes(90, 50), name="clip", columns=3, store=store, catalog=catalog, tile_size=20)

    assert (result.geometry.width, result.geometry.height) == (60, 33)
    bottom_file = result.manifest.solution["1,0"]
    with Image.open(store.tile_path("clip", bottom_file)) as tile:
        assert tile.size == (20, 13)
    with Image.open(store.tile_path("clip", result.manifest.solution["0,2"])) as tile:
        assert tile.size == (20, 20)


def test_tile_slices_follow_row_major_numbering() -> None:
    geometry = GridGeometry(tile_size=10, width=25, height=15)
    image = Image.new("RGBA", (25, 15), (255, 0, 0, 255))

    slices = list(iter_tile_slices(image, geometry))

    assert [tile.filename for tile in slices] == [tile_filename(i) for i in range(6)]
    assert [tile.cell for tile in slices][:4] == [Cell(0, 0), Cell(0, 1), Cell(0, 2), Cell(1, 0)]
    assert slices[2].rect.width == 5
    assert slices[5].rect.height == 5


def test_resize_to_grid_returns_rgba_at_target_size() -> None:
    source = decode_image(_pattern_bytes(30, 20, fmt="JPEG"))
    geometry = GridGeometry(tile_size=8, width=24, height=16)

    resized = resize_to_grid(source, geometry)

    assert resized.mode == "RGBA"
    assert resized.size == (24, 16)


def test_corrupt_bytes_raise_decode_error(tmp_path: Path) -> None:
    store, catalog = _store_and_catalog(tmp_path)

    with pytest.raises(DecodeError):
        slice_puzzle(b"definitely not an image", name="bad", columns=2, store=store, catalog=catalog)

    assert not (tmp_path / "images" / "imageIndex.json").exists()


def test_truncated_png_raises_decode_error() -> None:
    data = _pattern_bytes(40, 40)

    with pytest.raises(DecodeError):
        decode_image(data[: len(data) // 2])


def test_non_positive_columns_rejected(tmp_path: Path) -> None:
    store, catalog = _store_and_catalog(tmp_path)

    with pytest.raises(InvalidColumns):
        slice_puzzle(_pattern_bytes(10, 10), name="cols", columns=0, store=store, catalog=catalog)


def test_empty_name_rejected(tmp_path: Path) -> None:
    store, catalog = _store_and_catalog(tmp_path)

    with pytest.raises(InputError):
        slice_puzzle(_pattern_bytes(10, 10), name="  ", columns=1, store=store, catalog=catalog)


def test_storage_failure_surfaces_as_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "images"
    blocker.write_text("not a directory")
    store = Store(StorageConfig(images_root=blocker))
    catalog = CatalogService(tmp_path / "imageIndex.json")

    with pytest.raises(StorageError):
        slice_puzzle(_pattern_bytes(10, 10), name="blocked", columns=1, store=store, catalog=catalog, tile_size=8)


def test_columns_over_export_limit_rejected_before_writing(tmp_path: Path) -> None:
    store, catalog = _store_and_catalog(tmp_path)
    limits = ExportSettings(max_rows=8, max_cols=8, max_pixels=1 << 20)

    with pytest.raises(InvalidColumns):
        slice_puzzle(
            _pattern_bytes(90, 60), name="wide", columns=9, store=store, catalog=catalog, tile_size=16, limits=limits
        )

    assert not store.images_root.exists()


@pytest.mark.parametrize(
    "limits",
    [
        ExportSettings(max_rows=4, max_cols=8, max_pixels=1 << 20),
        ExportSettings(max_rows=64, max_cols=64, max_pixels=500),
    ],
)
def test_rows_or_pixels_over_export_limit_rejected(tmp_path: Path, limits: ExportSettings) -> None:
    store, catalog = _store_and_catalog(tmp_path)

    with pytest.raises(InputError):
        slice_puzzle(
            _pattern_bytes(10, 100), name="tall", columns=1, store=store, catalog=catalog, tile_size=8, limits=limits
        )

    assert not catalog.path.exists()


def test_puzzle_at_the_limit_exports_its_full_solution(tmp_path: Path) -> None:
    store, catalog = _store_and_catalog(tmp_path)
    limits = ExportSettings(max_rows=4, max_cols=4, max_pixels=32 * 32)

    result = slice_puzzle(
        _pattern_bytes(20, 20), name="edge", columns=4, store=store, catalog=catalog, tile_size=8, limits=limits
    )
    composite = compose_placements(
        store, result.folder, result.manifest.solution_cells(), tile_size=8, limits=limits
    )

    assert (result.geometry.rows, result.geometry.cols) == (4, 4)
    assert composite.is_complete
    assert composite.image.size == (32, 32)
