"""Pydantic DTOs for manifests, the catalog and the HTTP endpoints."""

from __future__ import annotations

from typing import Mapping

from pydantic import BaseModel, Field

from tilepuzzler.geometry import Cell, format_cell_key, parse_cell_key


class PieceInfo(BaseModel):
    """Single entry of the manifest piece list."""

    file: str


class PuzzleManifest(BaseModel):
    """manifest.json written next to a puzzle's pieces."""

    pieces: list[PieceInfo] = Field(default_factory=list, description="Tiles in creation order")
    solution: dict[str, str] = Field(
        default_factory=dict,
        description="Canonical 'row,col' -> tile filename mapping",
    )

    @classmethod
    def from_cells(cls, pieces: list[str], solution: Mapping[Cell, str]) -> PuzzleManifest:
        return cls(
            pieces=[PieceInfo(file=name) for name in pieces],
            solution={format_cell_key(cell): name for cell, name in solution.items()},
        )

    def solution_cells(self) -> dict[Cell, str]:
        return {parse_cell_key(key): name for key, name in self.solution.items()}


class CatalogEntry(BaseModel):
    """One puzzle in imageIndex.json."""

    name: str
    folder: str
    rows: int = Field(ge=1)
    cols: int = Field(ge=1)
    tl: str = Field(description="Filename of the tile at row 0, col 0")


class CatalogDocument(BaseModel):
    images: list[CatalogEntry] = Field(default_factory=list)


class ExportRequest(BaseModel):
    """Payload clients submit to render a composite image."""

    folder: str = Field(min_length=1, description="Puzzle folder id")
    placements: dict[str, str] = Field(
        description="'row,col' -> tile filename; may be partial or out of order",
    )

    def placement_cells(self) -> dict[Cell, str]:
        return {parse_cell_key(key): name for key, name in self.placements.items()}


class UploadResponse(BaseModel):
    status: str = "ok"
    folder: str
    rows: int
    cols: int
    pieces: int
