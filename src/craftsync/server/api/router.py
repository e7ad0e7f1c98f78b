"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from craftsync.server.api import files, health

router = APIRouter()

router.include_router(health.router)
router.include_router(files.router)
