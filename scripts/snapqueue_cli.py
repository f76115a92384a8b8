#!/usr/bin/env python3
"""Small CLI for driving the snapqueue capture API."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import httpx
import typer
from decouple import Config as DecoupleConfig, RepositoryEnv
from rich.console import Console
from rich.table import Table

console = Console()
cli = typer.Typer(help="Capture, list, preview and delete queued screenshots")

PARTITIONS = ("primary", "secondary")
_PREVIEW_PREFIX = "data:image/png;base64,"


@dataclass
class APISettings:
    base_url: str


def _load_env_settings() -> APISettings:
    env_path = Path(".env")
    if env_path.exists():
        config = DecoupleConfig(RepositoryEnv(str(env_path)))
        return APISettings(base_url=config("API_BASE_URL", default="http://localhost:8000"))
    return APISettings(base_url="http://localhost:8000")


def _resolve_settings(override_base: Optional[str]) -> APISettings:
    settings = _load_env_settings()
    if override_base:
        settings.base_url = override_base
    return settings


def _client(settings: APISettings, http2: bool = True) -> httpx.Client:
    timeout = httpx.Timeout(connect=10.0, read=60.0, write=30.0, pool=10.0)
    return httpx.Client(base_url=settings.base_url, timeout=timeout, http2=http2)


def _extract_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text or None
    if isinstance(payload, dict):
        detail = payload.get("detail")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return json.dumps(detail)
    return None


def _fail(detail: str) -> None:
    console.print(f"[red]{detail}[/]")
    raise typer.Exit(code=1)


def _print_queue(listing: dict[str, Any]) -> None:
    partition = listing.get("partition", "?")
    marker = " (active)" if listing.get("active") else ""
    items: list[dict[str, Any]] = listing.get("items") or []
    title = f"{partition}{marker} · {len(items)}/{listing.get('capacity', '?')}"
    if not items:
        console.print(f"[dim]{title}: queue is empty.[/]")
        return
    table = Table("#", "Path", "Preview", title=title)
    for index, item in enumerate(items, start=1):
        preview = item.get("preview")
        table.add_row(str(index), str(item.get("path", "—")), _preview_size(preview))
    console.print(table)


def _preview_size(preview: Optional[str]) -> str:
    if not preview:
        return "-"
    raw = _decode_preview(preview)
    return f"{len(raw)} bytes"


def _decode_preview(preview: str) -> bytes:
    encoded = preview[len(_PREVIEW_PREFIX):] if preview.startswith(_PREVIEW_PREFIX) else preview
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        console.print(f"[red]Malformed preview payload ({exc}).[/]")
        raise typer.Exit(code=1) from exc


def _normalize_partitions(partition: Optional[str]) -> Iterable[str]:
    if partition is None:
        return PARTITIONS
    name = partition.lower()
    if name not in PARTITIONS:
        raise typer.BadParameter(f"Partition must be one of {', '.join(PARTITIONS)}", param_hint="partition")
    return (name,)


@cli.command()
def capture(
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
    http2: bool = typer.Option(True, "--http2/--no-http2"),
) -> None:
    """Take a screenshot into the active partition."""

    settings = _resolve_settings(api_base)
    client = _client(settings, http2=http2)
    response = client.post("/captures", params={"preview": "false"})
    if response.status_code >= 500:
        _fail(_extract_detail(response) or "Capture failed.")
    response.raise_for_status()
    body = response.json()
    console.print(f"[green]Captured {body.get('path')} into {body.get('partition')}.[/]")


@cli.command()
def queue(
    partition: Optional[str] = typer.Argument(None, help="primary or secondary (defaults to both)"),
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
    previews: bool = typer.Option(False, "--previews/--no-previews", help="Fetch inline previews"),
    json_output: bool = typer.Option(False, "--json/--no-json", help="Emit JSON payload instead of tables."),
) -> None:
    """List queued captures, oldest first."""

    names = _normalize_partitions(partition)
    settings = _resolve_settings(api_base)
    client = _client(settings)
    listings: list[dict[str, Any]] = []
    for name in names:
        response = client.get(f"/queues/{name}", params={"previews": str(previews).lower()})
        response.raise_for_status()
        listings.append(response.json())
    if json_output:
        console.print_json(data=listings)
        return
    for listing in listings:
        _print_queue(listing)


@cli.command("partition")
def partition_command(
    name: Optional[str] = typer.Argument(None, help="Switch the active partition to this name"),
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
) -> None:
    """Show or switch the partition receiving new captures."""

    settings = _resolve_settings(api_base)
    client = _client(settings)
    if name is None:
        response = client.get("/partition")
    else:
        (target,) = _normalize_partitions(name)
        response = client.put("/partition", json={"partition": target})
    response.raise_for_status()
    console.print(f"Active partition: [bold]{response.json().get('partition')}[/]")


@cli.command()
def preview(
    path: str = typer.Argument(..., help="Capture path as reported by `queue`"),
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the decoded PNG to this file"),
) -> None:
    """Fetch a capture's preview; print the data URI or save the image."""

    settings = _resolve_settings(api_base)
    client = _client(settings)
    response = client.get("/preview", params={"path": path})
    if response.status_code == 404:
        _fail(f"Capture {path} not found.")
    response.raise_for_status()
    data_uri = response.json().get("preview", "")
    if out is None:
        console.print(data_uri, soft_wrap=True)
        return
    raw = _decode_preview(data_uri)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(raw)
    console.print(f"[green]Saved preview ({len(raw)} bytes) to {out}[/]")


@cli.command()
def delete(
    path: str = typer.Argument(..., help="Capture path to delete"),
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
) -> None:
    """Delete a capture from disk and from the active partition."""

    settings = _resolve_settings(api_base)
    client = _client(settings)
    response = client.request("DELETE", "/captures", json={"path": path})
    response.raise_for_status()
    body = response.json()
    if not body.get("success"):
        _fail(f"Delete failed: {body.get('error') or 'unknown error'}")
    console.print(f"[green]Deleted {path}.[/]")


@cli.command()
def reset(
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
) -> None:
    """Delete every queued capture in both partitions."""

    settings = _resolve_settings(api_base)
    client = _client(settings)
    response = client.post("/queues/reset")
    response.raise_for_status()
    console.print("[green]Both queues cleared.[/]")


if __name__ == "__main__":
    cli()
