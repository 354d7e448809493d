"""Entry point for the FastAPI application."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import FileResponse, HTMLResponse, Response
from fastapi.staticfiles import StaticFiles
from prometheus_client import make_asgi_app

from tilepuzzler.catalog import CatalogService, build_catalog
from tilepuzzler.errors import InputError, StorageError
from tilepuzzler.schemas import CatalogEntry, ExportRequest, UploadResponse
from tilepuzzler.settings import Settings, get_settings
from tilepuzzler.skip_log import append_skip_log
from tilepuzzler.stitch import compose_placements
from tilepuzzler.store import Store, build_store
from tilepuzzler.tiler import slice_puzzle

WEB_ROOT = Path(__file__).resolve().parent / "web"
EXTERNAL_INDEX = Path("tilepuzzler.html")

LOGGER = logging.getLogger(__name__)


def configure_logging(settings: Settings | None = None) -> None:
    active = settings or get_settings()
    logging.basicConfig(
        level=active.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Settings | None = None,
    *,
    store: Store | None = None,
    catalog: CatalogService | None = None,
) -> FastAPI:
    active = settings or get_settings()
    images_root = active.storage.images_root

    @asynccontextmanager
    async def _lifespan(_: FastAPI):
        images_root.mkdir(parents=True, exist_ok=True)
        LOGGER.info("Serving puzzles from %s", images_root.resolve())
        yield

    app = FastAPI(title="TilePuzzler", lifespan=_lifespan)
    app.state.settings = active
    app.state.store = store or build_store(active)
    app.state.catalog = catalog or build_catalog(active)

    app.add_api_route("/", index, methods=["GET"], response_class=HTMLResponse)
    app.add_api_route("/health", healthcheck, methods=["GET"], tags=["health"])
    app.add_api_route("/uploadPuzzle", upload_puzzle, methods=["POST"], response_model=UploadResponse)
    app.add_api_route("/exportPuzzle", export_puzzle, methods=["POST"])
    app.add_api_route("/api/puzzles", list_puzzles, methods=["GET"], response_model=list[CatalogEntry])
    app.mount("/images", StaticFiles(directory=images_root, check_dir=False), name="images")
    app.mount("/metrics", make_asgi_app())
    return app


async def index():
    """Serve the puzzle UI, preferring an external tilepuzzler.html for easy customization."""

    if EXTERNAL_INDEX.is_file():
        LOGGER.debug("Serving external %s", EXTERNAL_INDEX)
        return FileResponse(EXTERNAL_INDEX, media_type="text/html")
    return HTMLResponse((WEB_ROOT / "index.html").read_text(encoding="utf-8"))


async def healthcheck() -> dict[str, str]:
    """Return a simple status useful for smoke tests."""

    return {"status": "ok"}


async def upload_puzzle(
    request: Request,
    name: str | None = Form(None),
    columns: str | None = Form(None),
    image: UploadFile | None = File(None),
) -> UploadResponse:
    """Slice an uploaded image into a new puzzle."""

    settings: Settings = request.app.state.settings
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Puzzle name is required")
    try:
        column_count = int(columns or "")
    except ValueError:
        column_count = 0
    if column_count <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid number of columns")
    if image is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Error retrieving the file: missing image")

    data = await image.read(settings.tiling.max_upload_bytes + 1)
    if len(data) > settings.tiling.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Image exceeds the {settings.tiling.max_upload_bytes} byte upload limit",
        )

    try:
        result = await asyncio.to_thread(
            slice_puzzle,
            data,
            name=name,
            columns=column_count,
            store=request.app.state.store,
            catalog=request.app.state.catalog,
            tile_size=settings.tiling.tile_size,
            preview_quality=settings.tiling.preview_quality,
            limits=settings.export,
        )
    except InputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorageError as exc:
        LOGGER.error("Upload of %r failed: %s", name, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    return UploadResponse(
        folder=result.folder,
        rows=result.geometry.rows,
        cols=result.geometry.cols,
        pieces=len(result.manifest.pieces),
    )


async def export_puzzle(request: Request, payload: ExportRequest) -> Response:
    """Render a placement map into a downloadable PNG."""

    settings: Settings = request.app.state.settings
    try:
        placements = payload.placement_cells()
        result = await asyncio.to_thread(
            compose_placements,
            request.app.state.store,
            payload.folder,
            placements,
            tile_size=settings.tiling.tile_size,
            limits=settings.export,
        )
    except InputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    png = await asyncio.to_thread(result.to_png)
    if not result.is_complete:
        try:
            append_skip_log(
                folder=payload.folder,
                placements=len(placements),
                skipped=result.skipped,
                settings=settings,
            )
        except OSError as exc:
            LOGGER.warning("Could not append skip log for %s: %s", payload.folder, exc)

    LOGGER.info("returning completed image for %s (%d skipped)", payload.folder, len(result.skipped))
    headers = {
        "Content-Disposition": 'attachment; filename="puzzle.png"',
        "X-Skipped-Cells": ";".join(result.skipped_keys()),
    }
    return Response(content=png, media_type="image/png", headers=headers)


async def list_puzzles(request: Request) -> list[CatalogEntry]:
    catalog: CatalogService = request.app.state.catalog
    try:
        return await asyncio.to_thread(catalog.list_entries)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc


app = create_app()
