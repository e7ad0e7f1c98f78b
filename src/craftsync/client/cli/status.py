"""Status command for CraftSync CLI.

Commands:
- status: Show what a sync would transfer, without transferring anything
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from craftsync.client.cli.config import resolve_target

if TYPE_CHECKING:
    from craftsync.core.types import DiffResult


async def _compute_diff(folder: Path, server: str) -> DiffResult:
    from craftsync.client.api import TransferClient
    from craftsync.core.config import ServerConfig
    from craftsync.core.diff import classify
    from craftsync.core.scanner import scan_tree

    local = await asyncio.to_thread(scan_tree, folder)
    async with TransferClient(ServerConfig(server_url=server)) as client:
        remote = await client.list_files()
    return classify(local, remote)


@click.command()
@click.argument("folder", required=False)
@click.argument("server_url", metavar="SERVER", required=False)
def status(folder: str | None, server_url: str | None) -> None:
    """Show pending uploads, updates and downloads for FOLDER."""
    from craftsync.core.errors import StorageError

    sync_folder, server = resolve_target(folder, server_url)
    if not server:
        click.echo("Error: No server configured. Pass SERVER once to remember it.", err=True)
        sys.exit(1)
    if not sync_folder.is_dir():
        click.echo(f"Error: Sync folder does not exist: {sync_folder}", err=True)
        sys.exit(1)

    try:
        diff = asyncio.run(_compute_diff(sync_folder, server))
    except StorageError as e:
        click.echo(f"Error: Cannot list remote files: {e}", err=True)
        sys.exit(1)

    if diff.is_empty:
        click.echo("Everything is up to date.")
        return

    for title, entries in (
        ("To upload", diff.to_upload),
        ("To update", diff.to_update),
        ("To download", diff.to_download),
    ):
        if not entries:
            continue
        click.echo(f"{title} ({len(entries)}):")
        for path in sorted(entries.paths()):
            click.echo(f"  {path}")
