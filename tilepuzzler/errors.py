"""Exception taxonomy shared by the slicer, composer, store and catalog."""

from __future__ import annotations


class PuzzleError(Exception):
    """Base class for every error raised by the tiling engine."""


class InputError(PuzzleError, ValueError):
    """The caller supplied something unusable (client fault)."""


class InvalidColumns(InputError):
    """Requested column count is not a positive integer."""


class DecodeError(InputError):
    """Image bytes could not be decoded."""


class StorageError(PuzzleError):
    """A filesystem read or write inside the images root failed (server fault)."""


class CatalogError(StorageError):
    """The persisted catalog document exists but cannot be parsed."""
