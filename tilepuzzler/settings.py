"""Configuration helpers bound to python-decouple."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from decouple import Config as DecoupleConfig, RepositoryEmpty, RepositoryEnv


def load_config(env_path: str = ".env") -> DecoupleConfig:
    """Return a decouple config object anchored to the repository .env file.

    Environment variables always win; the .env file is optional.
    """

    if Path(env_path).exists():
        return DecoupleConfig(RepositoryEnv(env_path))
    return DecoupleConfig(RepositoryEmpty())


@dataclass(frozen=True, slots=True)
class StorageSettings:
    images_root: Path
    catalog_filename: str

    @property
    def catalog_path(self) -> Path:
        return self.images_root / self.catalog_filename


@dataclass(frozen=True, slots=True)
class TilingSettings:
    tile_size: int
    preview_quality: int
    max_upload_bytes: int


@dataclass(frozen=True, slots=True)
class ExportSettings:
    """Upper bounds applied to caller-supplied placement maps."""

    max_rows: int
    max_cols: int
    max_pixels: int


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    level: str
    skip_log_path: Path


@dataclass(frozen=True, slots=True)
class ServerSettings:
    host: str
    port: int
    open_browser: bool


@dataclass(frozen=True, slots=True)
class Settings:
    storage: StorageSettings
    tiling: TilingSettings
    export: ExportSettings
    logging: LoggingSettings
    server: ServerSettings


def build_settings(env_path: str = ".env") -> Settings:
    config = load_config(env_path)
    return Settings(
        storage=StorageSettings(
            images_root=Path(config("IMAGES_ROOT", default="images")),
            catalog_filename=config("CATALOG_FILENAME", default="imageIndex.json"),
        ),
        tiling=TilingSettings(
            tile_size=config("TILE_SIZE", default=512, cast=int),
            preview_quality=config("PREVIEW_JPEG_QUALITY", default=75, cast=int),
            max_upload_bytes=config("MAX_UPLOAD_BYTES", default=10 << 20, cast=int),
        ),
        export=ExportSettings(
            max_rows=config("EXPORT_MAX_ROWS", default=64, cast=int),
            max_cols=config("EXPORT_MAX_COLS", default=64, cast=int),
            max_pixels=config("EXPORT_MAX_PIXELS", default=1 << 28, cast=int),
        ),
        logging=LoggingSettings(
            level=config("LOG_LEVEL", default="INFO").upper(),
            skip_log_path=Path(config("SKIP_LOG_PATH", default="ops/skipped_tiles.jsonl")),
        ),
        server=ServerSettings(
            host=config("HOST", default="127.0.0.1"),
            port=config("PORT", default=8080, cast=int),
            open_browser=config("OPEN_BROWSER", default=True, cast=bool),
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""

    return build_settings()
