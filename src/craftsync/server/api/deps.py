"""FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from craftsync.server.storage import ObjectStore


def get_storage(request: Request) -> ObjectStore:
    """Get the object store from app state."""
    storage: ObjectStore | None = request.app.state.storage
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Object storage not configured",
        )
    return storage
