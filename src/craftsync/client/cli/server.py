"""Server command for CraftSync CLI.

Commands:
- server: Run the CraftSync server
"""

from __future__ import annotations

import os

import click


@click.command()
@click.option("--host", default="0.0.0.0", show_default=True, help="Interface to bind.")
@click.option("--port", default=3000, show_default=True, type=int, help="Port to listen on.")
@click.option(
    "--storage-path",
    type=click.Path(),
    default=None,
    help="Path to local storage (default: CRAFTSYNC_STORAGE_PATH or ./storage).",
)
def server(host: str, port: int, storage_path: str | None) -> None:
    """Run the sync server.

    Storage is selected from the environment: S3 when CRAFTSYNC_S3_BUCKET is
    set, otherwise a local directory.
    """
    import uvicorn

    if storage_path:
        os.environ["CRAFTSYNC_STORAGE_PATH"] = storage_path

    uvicorn.run(
        "craftsync.server.app:app_factory",
        factory=True,
        host=host,
        port=port,
    )
