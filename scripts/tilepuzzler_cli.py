#!/usr/bin/env python3
"""Command-line helpers for running and talking to the TilePuzzler API."""

from __future__ import annotations

import json
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx
import typer
from decouple import Config as DecoupleConfig, RepositoryEnv
from rich.console import Console
from rich.table import Table

console = Console()
cli = typer.Typer(help="Create tile puzzles and export composites through the TilePuzzler API")


@dataclass
class APISettings:
    base_url: str


def _load_env_settings() -> APISettings:
    env_path = Path(".env")
    if env_path.exists():
        config = DecoupleConfig(RepositoryEnv(str(env_path)))
        return APISettings(base_url=config("API_BASE_URL", default="http://localhost:8080"))
    return APISettings(base_url="http://localhost:8080")


def _resolve_settings(override_base: Optional[str]) -> APISettings:
    settings = _load_env_settings()
    if override_base:
        settings.base_url = override_base
    return settings


def _client(settings: APISettings) -> httpx.Client:
    timeout = httpx.Timeout(connect=10.0, read=120.0, write=60.0, pool=10.0)
    return httpx.Client(base_url=settings.base_url, timeout=timeout)


def _detail(response: Any) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict) and "detail" in payload:
        return str(payload["detail"])
    return json.dumps(payload)


def _ensure_ok(response: Any) -> None:
    if response.status_code >= 400:
        console.print(f"[red]Request failed ({response.status_code}): {_detail(response)}[/]")
        raise typer.Exit(code=1)


def _load_placements(path: Path) -> dict[str, str]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict) and isinstance(raw.get("placements"), dict):
        raw = raw["placements"]
    elif isinstance(raw, dict) and isinstance(raw.get("solution"), dict):
        raw = raw["solution"]
    if not isinstance(raw, dict):
        raise typer.BadParameter("Placement file must hold a JSON object of 'row,col': filename", param_hint="--placements")
    return {str(key): str(value) for key, value in raw.items()}


@cli.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to HOST)"),
    port: Optional[int] = typer.Option(None, help="Bind port (defaults to PORT)"),
    open_browser: Optional[bool] = typer.Option(None, "--open/--no-open", help="Open the UI in a browser"),
) -> None:
    """Create the images directory and run the API with uvicorn."""

    import uvicorn

    from tilepuzzler.main import configure_logging
    from tilepuzzler.settings import get_settings

    settings = get_settings()
    configure_logging(settings)
    settings.storage.images_root.mkdir(parents=True, exist_ok=True)

    bind_host = host or settings.server.host
    bind_port = port or settings.server.port
    url = f"http://localhost:{bind_port}"
    console.print(f"[green]Starting TilePuzzler server on {url}[/]")
    should_open = settings.server.open_browser if open_browser is None else open_browser
    if should_open:
        webbrowser.open(url)
    uvicorn.run("tilepuzzler.main:app", host=bind_host, port=bind_port)


@cli.command()
def upload(
    name: str = typer.Argument(..., help="Puzzle display name"),
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source image file"),
    columns: int = typer.Option(4, "--columns", "-c", min=1, help="Number of tile columns"),
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
) -> None:
    """Upload an image and slice it into a new puzzle."""

    settings = _resolve_settings(api_base)
    client = _client(settings)
    response = client.post(
        "/uploadPuzzle",
        data={"name": name, "columns": str(columns)},
        files={"image": (image.name, image.read_bytes())},
    )
    _ensure_ok(response)
    payload = response.json()
    console.print(
        f"[green]Created {payload.get('folder')}[/]: "
        f"{payload.get('rows')} rows x {payload.get('cols')} cols, {payload.get('pieces')} pieces"
    )


@cli.command()
def export(
    folder: str = typer.Argument(..., help="Puzzle folder id"),
    placements: Optional[Path] = typer.Option(
        None,
        "--placements",
        "-p",
        exists=True,
        dir_okay=False,
        help="JSON file of 'row,col': filename placements",
    ),
    solution: bool = typer.Option(False, "--solution", help="Export the puzzle's canonical solution"),
    out: Path = typer.Option(Path("puzzle.png"), "--out", "-o", help="Where to write the PNG"),
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
) -> None:
    """Render a placement map (or the solution) into a PNG."""

    if placements is None and not solution:
        raise typer.BadParameter("Provide --placements FILE or --solution.", param_hint="--placements")

    settings = _resolve_settings(api_base)
    client = _client(settings)
    if placements is not None:
        mapping = _load_placements(placements)
    else:
        manifest_response = client.get(f"/images/{folder}/manifest.json")
        _ensure_ok(manifest_response)
        mapping = dict(manifest_response.json().get("solution", {}))

    response = client.post("/exportPuzzle", json={"folder": folder, "placements": mapping})
    _ensure_ok(response)
    out.write_bytes(response.content)
    console.print(f"[green]Wrote {out}[/] ({len(mapping)} placements)")
    skipped = response.headers.get("X-Skipped-Cells", "")
    if skipped:
        console.print(f"[yellow]Skipped cells: {skipped.replace(';', ', ')}[/]")


@cli.command()
def puzzles(
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
    json_output: bool = typer.Option(False, "--json", help="Print raw JSON instead of a table."),
) -> None:
    """List puzzles recorded in the catalog."""

    settings = _resolve_settings(api_base)
    client = _client(settings)
    response = client.get("/api/puzzles")
    _ensure_ok(response)
    entries = response.json()
    if json_output:
        console.print_json(data=entries)
        return
    if not entries:
        console.print("[dim]No puzzles uploaded yet.[/]")
        return
    table = Table("Name", "Folder", "Rows", "Cols", "Top-left", title="Puzzles")
    for entry in entries:
        table.add_row(
            str(entry.get("name", "")),
            str(entry.get("folder", "")),
            str(entry.get("rows", "")),
            str(entry.get("cols", "")),
            str(entry.get("tl", "")),
        )
    console.print(table)


if __name__ == "__main__":
    cli()
