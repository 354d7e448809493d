from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from tilepuzzler.catalog import CatalogService
from tilepuzzler.errors import CatalogError
from tilepuzzler.schemas import CatalogEntry


def _entry(index: int) -> CatalogEntry:
    return CatalogEntry(name=f"Puzzle {index}", folder=f"puzzle_{index}", rows=2, cols=3, tl="image_0000.png")


def test_append_creates_document_when_absent(tmp_path: Path) -> None:
    path = tmp_path / "images" / "imageIndex.json"
    catalog = CatalogService(path)

    catalog.append(_entry(1))

    assert json.loads(path.read_text()) == {
        "images": [{"name": "Puzzle 1", "folder": "puzzle_1", "rows": 2, "cols": 3, "tl": "image_0000.png"}]
    }


def test_append_preserves_existing_entries(tmp_path: Path) -> None:
    path = tmp_path / "imageIndex.json"
    catalog = CatalogService(path)
    catalog.append(_entry(1))

    catalog.append(_entry(2))

    assert [entry.folder for entry in catalog.list_entries()] == ["puzzle_1", "puzzle_2"]
    assert not path.with_name("imageIndex.json.tmp").exists()


def test_empty_document_treated_as_empty_catalog(tmp_path: Path) -> None:
    path = tmp_path / "imageIndex.json"
    path.write_text("")

    CatalogService(path).append(_entry(1))

    assert len(json.loads(path.read_text())["images"]) == 1


@pytest.mark.parametrize("content", ["{not json", '{"images": "nope"}', "[1, 2]"])
def test_malformed_document_raises_catalog_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "imageIndex.json"
    path.write_text(content)
    catalog = CatalogService(path)

    with pytest.raises(CatalogError):
        catalog.append(_entry(1))

    assert path.read_text() == content


def test_concurrent_appends_do_not_lose_entries(tmp_path: Path) -> None:
    catalog = CatalogService(tmp_path / "imageIndex.json")
    barrier = threading.Barrier(8)

    def worker(offset: int) -> None:
        barrier.wait()
        for index in range(5):
            catalog.append(_entry(offset * 10 + index))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    folders = {entry.folder for entry in catalog.list_entries()}
    assert len(folders) == 40
