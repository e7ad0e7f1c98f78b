"""Command-line interface for CraftSync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- sync: Synchronize a folder with the server
- status: Show what a sync would transfer
- server: Run the sync server
"""

from __future__ import annotations

import click

from craftsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_sync_folder,
    load_config,
    save_config,
)
from craftsync.client.cli.server import server
from craftsync.client.cli.status import status
from craftsync.client.cli.sync import sync


@click.group()
@click.version_option(package_name="craftsync")
def cli() -> None:
    """CraftSync - keep a folder in sync with a remote object store."""


cli.add_command(sync)
cli.add_command(status)
cli.add_command(server)

__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "get_sync_folder",
    "load_config",
    "save_config",
]
