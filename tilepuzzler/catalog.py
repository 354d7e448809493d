"""Catalog of uploaded puzzles persisted as a single JSON document."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

from pydantic import ValidationError

from tilepuzzler.errors import CatalogError, StorageError
from tilepuzzler.schemas import CatalogDocument, CatalogEntry
from tilepuzzler.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


class CatalogService:
    """Sole owner of the catalog document.

    Every read-modify-write cycle runs under one lock so concurrent uploads
    never lose each other's entries.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, entry: CatalogEntry) -> CatalogDocument:
        with self._lock:
            document = self._read()
            document.images.append(entry)
            self._write(document)
        LOGGER.info("Catalog now lists %d puzzles (added %s)", len(document.images), entry.folder)
        return document

    def list_entries(self) -> list[CatalogEntry]:
        with self._lock:
            return list(self._read().images)

    def _read(self) -> CatalogDocument:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return CatalogDocument()
        except OSError as exc:
            raise CatalogError(f"Error reading {self.path.name}: {exc}") from exc
        if not raw.strip():
            return CatalogDocument()
        try:
            return CatalogDocument.model_validate(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            raise CatalogError(f"Error parsing {self.path.name}: {exc}") from exc

    def _write(self, document: CatalogDocument) -> None:
        payload = json.dumps(document.model_dump(), indent=2)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StorageError(f"Error writing {self.path.name}: {exc}") from exc


def build_catalog(settings: Settings | None = None) -> CatalogService:
    active = settings or get_settings()
    return CatalogService(active.storage.catalog_path)
