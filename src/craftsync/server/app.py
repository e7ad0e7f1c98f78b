"""FastAPI application for the CraftSync server.

This module creates and configures the FastAPI application with:
- WebSocket gateway answering the sync protocol on /ws
- REST API for file upload, replacement, deletion, download and listing

Usage:
    uvicorn craftsync.server.app:app_factory --factory --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from craftsync import __version__
from craftsync.server.api.router import router as api_router
from craftsync.server.gateway import router as ws_router
from craftsync.server.storage import ObjectStore, create_storage

logger = logging.getLogger(__name__)


def log_path() -> Path:
    """Get the server log file path from the environment."""
    return Path(os.environ.get("CRAFTSYNC_LOG_PATH", "craftsync-server.log"))


def build_storage_config() -> dict[str, str | None]:
    """Build storage configuration from environment variables."""
    # S3 storage if bucket is configured
    s3_bucket = os.environ.get("CRAFTSYNC_S3_BUCKET")
    if s3_bucket:
        return {
            "type": "s3",
            "bucket": s3_bucket,
            "prefix": os.environ.get("CRAFTSYNC_S3_PREFIX", ""),
            "endpoint_url": os.environ.get("CRAFTSYNC_S3_ENDPOINT"),
            "access_key": os.environ.get("CRAFTSYNC_S3_ACCESS_KEY"),
            "secret_key": os.environ.get("CRAFTSYNC_S3_SECRET_KEY"),
            "region": os.environ.get("CRAFTSYNC_S3_REGION", "us-east-1"),
        }

    # Local storage (default)
    return {
        "type": "local",
        "local_path": os.environ.get("CRAFTSYNC_STORAGE_PATH", "storage"),
    }


def setup_logging(log_file: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_file: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger("craftsync")
    root_logger.setLevel(logging.INFO)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(uvicorn_name).addHandler(file_handler)


def create_app(storage: ObjectStore | None = None) -> FastAPI:
    """Create FastAPI application with the given storage.

    Args:
        storage: Object store holding the synchronized files.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info("=" * 60)
        logger.info("CraftSync Server Starting")
        logger.info("=" * 60)
        if storage:
            logger.info("  Storage:  %s", storage.location)
        else:
            logger.info("  Storage:  None (storage disabled)")
        logger.info("=" * 60)

        yield

        logger.info("CraftSync Server shutting down")

    application = FastAPI(
        title="CraftSync Server",
        description="Fingerprint-based file sync server",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.storage = storage

    application.include_router(api_router)
    application.include_router(ws_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    log_file = log_path()
    setup_logging(log_file)
    logger.info("Logging to %s", log_file.absolute())
    return create_app(storage=create_storage(build_storage_config()))
