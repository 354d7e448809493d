"""Filesystem tile store: previews, pieces and manifests per puzzle folder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from tilepuzzler.errors import InputError, StorageError
from tilepuzzler.schemas import PuzzleManifest
from tilepuzzler.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)

PIECES_DIRNAME = "pieces"
PREVIEW_FILENAME = "index.jpg"
MANIFEST_FILENAME = "manifest.json"


def folder_id_for(name: str) -> str:
    """Transliterate a display name into a folder id.

    ``"My Puzzle"`` -> ``"my__puzzle"``, ``"sunsetBeach"`` -> ``"sunset_beach"``.
    Distinct names may map to the same id.
    """

    out: list[str] = []
    for index, char in enumerate(name):
        if char.isupper():
            if index > 0:
                out.append("_")
            out.append(char.lower())
        elif char in (" ", "-"):
            out.append("_")
        else:
            out.append(char)
    return "".join(out)


def _is_safe_component(value: str) -> bool:
    if not value or value in (".", ".."):
        return False
    return not any(sep in value for sep in ("/", "\\", "\x00"))


@dataclass(slots=True)
class StorageConfig:
    images_root: Path


class Store:
    """Reads and writes puzzle artifacts under ``images_root/<folder>``.

    Tiles are keyed purely by filename; there is no integrity check,
    deduplication or cleanup of orphaned files.
    """

    def __init__(self, config: StorageConfig) -> None:
        self.config = config

    @property
    def images_root(self) -> Path:
        return self.config.images_root

    def puzzle_dir(self, folder: str) -> Path:
        if not _is_safe_component(folder):
            raise InputError(f"Invalid puzzle folder {folder!r}")
        return self.images_root / folder

    def pieces_dir(self, folder: str) -> Path:
        return self.puzzle_dir(folder) / PIECES_DIRNAME

    def ensure_layout(self, folder: str) -> Path:
        pieces = self.pieces_dir(folder)
        try:
            pieces.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Error creating puzzle directory {pieces}: {exc}") from exc
        return pieces.parent

    def tile_path(self, folder: str, filename: str) -> Path:
        if not _is_safe_component(filename):
            raise FileNotFoundError(f"Invalid tile filename {filename!r}")
        return self.pieces_dir(folder) / filename

    def save_tile(self, folder: str, filename: str, data: bytes) -> Path:
        target = self.tile_path(folder, filename)
        self._write(target, data)
        return target

    def load_tile(self, folder: str, filename: str) -> bytes:
        """Return raw tile bytes; raises ``FileNotFoundError``/``OSError`` on failure."""

        return self.tile_path(folder, filename).read_bytes()

    def list_tiles(self, folder: str) -> list[str]:
        pieces = self.pieces_dir(folder)
        if not pieces.is_dir():
            return []
        return sorted(path.name for path in pieces.iterdir() if path.is_file())

    def write_preview(self, folder: str, data: bytes) -> Path:
        target = self.puzzle_dir(folder) / PREVIEW_FILENAME
        self._write(target, data)
        return target

    def write_manifest(self, folder: str, manifest: PuzzleManifest) -> Path:
        target = self.puzzle_dir(folder) / MANIFEST_FILENAME
        self._write(target, manifest.model_dump_json(indent=2).encode("utf-8"))
        return target

    def read_manifest(self, folder: str) -> PuzzleManifest:
        path = self.puzzle_dir(folder) / MANIFEST_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"No manifest for puzzle {folder!r}")
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Error reading {path}: {exc}") from exc
        return PuzzleManifest.model_validate_json(raw)

    def _write(self, target: Path, data: bytes) -> None:
        try:
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Error writing {target}: {exc}") from exc
        LOGGER.debug("Wrote %s (%d bytes)", target, len(data))


def build_store(settings: Settings | None = None) -> Store:
    active = settings or get_settings()
    return Store(StorageConfig(images_root=active.storage.images_root))
