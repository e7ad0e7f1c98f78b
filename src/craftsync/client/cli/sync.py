"""Sync command for CraftSync CLI.

Commands:
- sync: Synchronize a folder with the server
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from craftsync.client.cli.config import resolve_target


def setup_cli_logging(verbose: bool) -> None:
    """Send craftsync log records to stderr.

    Args:
        verbose: Show debug messages instead of info and above.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))

    # Replace handlers on craftsync logger so repeated invocations don't stack
    craftsync_logger = logging.getLogger("craftsync")
    craftsync_logger.handlers.clear()
    craftsync_logger.addHandler(handler)
    craftsync_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


@click.command()
@click.argument("folder", required=False)
@click.argument("server_url", metavar="SERVER", required=False)
@click.option("--once", is_flag=True, help="Run a single sync cycle and exit.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def sync(folder: str | None, server_url: str | None, once: bool, verbose: bool) -> None:
    """Synchronize FOLDER with SERVER.

    Both arguments are remembered; when omitted, the stored values are used.
    Without --once, the folder is watched and synced continuously.
    """
    from craftsync.client.sync import SyncSession
    from craftsync.core.config import ServerConfig
    from craftsync.core.errors import SyncError

    setup_cli_logging(verbose)

    sync_folder, server = resolve_target(folder, server_url)
    if not server:
        click.echo("Error: No server configured. Pass SERVER once to remember it.", err=True)
        sys.exit(1)

    if not sync_folder.exists():
        sync_folder.mkdir(parents=True)
        click.echo(f"Created sync folder: {sync_folder}")

    session = SyncSession(sync_folder, ServerConfig(server_url=server))
    click.echo(f"Syncing with {server}...")
    click.echo(f"Sync folder: {sync_folder}\n")

    if once:
        try:
            report = asyncio.run(session.run_once())
        except SyncError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        if report is None:
            click.echo("Everything is up to date.")
            return
        for path in report.uploaded:
            click.echo(f"  ↑ {path}")
        for path in report.updated:
            click.echo(f"  ⟳ {path}")
        for path in report.downloaded:
            click.echo(f"  ↓ {path}")
        if report.has_failures:
            click.echo(click.style("\nErrors:", fg="red"))
            for failure in report.failed:
                click.echo(f"  ✗ {failure.path}: {failure.error}")
            sys.exit(1)
        click.echo(f"\nDone: {report.succeeded} file(s) transferred.")
        return

    click.echo("Watching for changes... (Ctrl+C to stop)\n")
    try:
        asyncio.run(session.run())
    except KeyboardInterrupt:
        click.echo("\nStopped.")
