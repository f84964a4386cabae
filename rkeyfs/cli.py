from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from rkeyfs.auth import missing_token_hint, resolve_access_token
from rkeyfs.config import (
    DEFAULT_SERVICE_URL,
    RkeyFsConfig,
    default_token,
    load_config,
    normalize_account_id,
    normalize_service_url,
    save_config,
)
from rkeyfs.errors import RkeyFsError
from rkeyfs.models import DEFAULT_COLLECTION, DirectoryEntry, Entry, FileEntry
from rkeyfs.rkeys import decode_key, encode_path, split_path
from rkeyfs.store import RecordKeyStore
from rkeyfs.vfs import VirtualFileSystem
from rkeyfs.xrpc import XrpcRecordStore


app = typer.Typer(help="rkeyfs CLI: browse a flat record store as a file system")
console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _build_store(config: RkeyFsConfig) -> RecordKeyStore:
    return XrpcRecordStore(
        config.service_url,
        access_token=resolve_access_token(config.access_token),
        collection=config.collection,
    )


def _require_token(config: RkeyFsConfig) -> None:
    if not resolve_access_token(config.access_token):
        raise RuntimeError(missing_token_hint())


@asynccontextmanager
async def _open_vfs(config: RkeyFsConfig) -> AsyncIterator[VirtualFileSystem]:
    store = _build_store(config)
    try:
        yield VirtualFileSystem(store, config.account_id, list_limit=config.list_limit)
    finally:
        aclose = getattr(store, "aclose", None)
        if aclose is not None:
            await aclose()


def _format_time(entry: Entry) -> str:
    if isinstance(entry, FileEntry) and entry.modified_at is not None:
        return entry.modified_at.strftime("%Y-%m-%d %H:%M:%S")
    return ""


def _entry_type(entry: Entry) -> str:
    if isinstance(entry, DirectoryEntry):
        return "dir (implicit)" if entry.implicit else "dir"
    return "file"


def _render_entries(title: str, entries: list[Entry]) -> None:
    table = Table(title=title)
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    table.add_column("Key", style="dim")

    for entry in entries:
        size = str(entry.size) if isinstance(entry, FileEntry) else ""
        table.add_row(_entry_type(entry), entry.name, size, _format_time(entry), entry.key)

    console.print(table)


async def _run_command(label: str, body) -> int:
    try:
        return await body()
    except KeyboardInterrupt:
        console.print(f"[yellow]{label} interrupted.[/yellow]")
        return 130
    except (FileNotFoundError, RkeyFsError, RuntimeError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    except Exception as exc:
        console.print(f"[red]{label} failed:[/red] {exc}")
        return 1


@app.command()
def init(
    account_id: str,
    service: str = typer.Option(DEFAULT_SERVICE_URL, "--service", help="Record store service URL."),
    collection: str = typer.Option(DEFAULT_COLLECTION, "--collection", help="Record collection to use."),
) -> None:
    """Write an rkeyfs config in the current directory."""
    config = RkeyFsConfig(
        account_id=normalize_account_id(account_id),
        service_url=normalize_service_url(service),
        access_token=default_token(),
        collection=collection,
    )
    path = save_config(config)
    console.print(f"[green]Initialized rkeyfs[/green] for {config.account_id}")
    console.print(f"Config: {path}")
    if config.account_id != account_id.strip():
        console.print(f"Account normalized: {account_id} -> {config.account_id}")
    if not config.access_token:
        console.print(
            "[yellow]No access token found in environment. `access_token` was initialized as empty.[/yellow]"
        )


async def _ls_async(path: str) -> int:
    async def body() -> int:
        config = load_config()
        async with _open_vfs(config) as vfs:
            directory = await vfs.directory_for(path)
            entries = await vfs.list_entries(directory)
        if not entries:
            console.print("[green]Directory is empty.[/green]")
            return 0
        _render_entries(f"/{directory.path}" if not directory.is_root else "/", entries)
        return 0

    return await _run_command("Listing", body)


@app.command()
def ls(path: str = typer.Argument("", help="Directory path. Defaults to the root.")) -> None:
    """List a directory."""
    raise typer.Exit(code=asyncio.run(_ls_async(path)))


async def _stat_async(path: str) -> int:
    async def body() -> int:
        config = load_config()
        async with _open_vfs(config) as vfs:
            entry = await vfs.resolve_path(path)
        if entry is None:
            console.print(f"[red]Not found: {path}[/red]")
            return 1
        _render_entries(path, [entry])
        return 0

    return await _run_command("Stat", body)


@app.command()
def stat(path: str) -> None:
    """Show a single file or directory."""
    raise typer.Exit(code=asyncio.run(_stat_async(path)))


async def _get_async(path: str, destination: str | None, offset: int) -> int:
    async def body() -> int:
        config = load_config()
        async with _open_vfs(config) as vfs:
            entry = await vfs.resolve_path(path)
            if entry is None:
                console.print(f"[red]Not found: {path}[/red]")
                return 1
            data = await vfs.open_read(entry, start_position=offset)

        if destination == "-":
            typer.echo(data, nl=False)
            return 0
        target = Path(destination or entry.name).expanduser().resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        console.print(f"[green]Downloaded[/green] {path} -> {target} ({len(data)} bytes)")
        return 0

    return await _run_command("Download", body)


@app.command()
def get(
    path: str,
    destination: str | None = typer.Argument(
        None,
        help="Local destination. Defaults to the file name; `-` writes to stdout.",
    ),
    offset: int = typer.Option(0, "--offset", min=0, help="Start reading at this byte offset."),
) -> None:
    """Download a file."""
    raise typer.Exit(code=asyncio.run(_get_async(path, destination, offset)))


async def _put_async(source: Path, path: str) -> int:
    async def body() -> int:
        config = load_config()
        _require_token(config)
        if not source.is_file():
            raise FileNotFoundError(f"Local file not found: {source}")
        data = source.read_bytes()
        parent_path, name = split_path(path)
        if not name:
            name = source.name

        async with _open_vfs(config) as vfs:
            directory = await vfs.directory_for(parent_path)
            existing = await vfs.get_entry(directory, name)
            if isinstance(existing, DirectoryEntry):
                raise RuntimeError(f"A directory already exists at {path}")
            if isinstance(existing, FileEntry):
                entry = await vfs.replace_file(existing, data)
                action = "Replaced"
            else:
                entry = await vfs.create_file(directory, name, data)
                action = "Uploaded"

        console.print(f"[green]{action}[/green] {source} -> {entry.path} ({entry.size} bytes)")
        return 0

    return await _run_command("Upload", body)


@app.command()
def put(
    source: Path,
    path: str = typer.Argument("", help="Remote path. Defaults to the local file name at the root."),
) -> None:
    """Upload a local file, replacing the remote one if it exists."""
    raise typer.Exit(code=asyncio.run(_put_async(source, path)))


async def _mkdir_async(path: str) -> int:
    async def body() -> int:
        config = load_config()
        _require_token(config)
        parent_path, name = split_path(path)
        async with _open_vfs(config) as vfs:
            directory = await vfs.directory_for(parent_path)
            if await vfs.get_entry(directory, name) is not None:
                raise RuntimeError(f"Already exists: {path}")
            entry = await vfs.create_directory(directory, name)
        console.print(f"[green]Created directory[/green] {entry.path}")
        return 0

    return await _run_command("Mkdir", body)


@app.command()
def mkdir(path: str) -> None:
    """Create a directory."""
    raise typer.Exit(code=asyncio.run(_mkdir_async(path)))


async def _rm_async(path: str) -> int:
    async def body() -> int:
        config = load_config()
        _require_token(config)
        async with _open_vfs(config) as vfs:
            entry = await vfs.resolve_path(path)
            if entry is None:
                console.print(f"[red]Not found: {path}[/red]")
                return 1
            await vfs.delete(entry)
        console.print(f"[yellow]Deleted[/yellow] {entry.path}")
        return 0

    return await _run_command("Delete", body)


@app.command()
def rm(path: str) -> None:
    """Delete a file or an empty directory."""
    raise typer.Exit(code=asyncio.run(_rm_async(path)))


@app.command()
def encode(path: str) -> None:
    """Print the record key for a file path."""
    try:
        typer.echo(encode_path(path))
    except RkeyFsError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


@app.command()
def decode(key: str) -> None:
    """Print the file path for a record key."""
    try:
        typer.echo(decode_key(key))
    except RkeyFsError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
