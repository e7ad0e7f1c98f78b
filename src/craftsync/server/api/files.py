"""File API routes.

Request and response bodies are raw file bytes; paths are relative object
paths and may contain slashes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from craftsync.core.errors import ObjectNotFoundError, StorageError
from craftsync.core.types import normalize_path
from craftsync.server.api.deps import get_storage
from craftsync.server.schemas import FileEntryResponse
from craftsync.server.storage import ObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/file", tags=["files"])


def _validated(path: str) -> str:
    try:
        return normalize_path(path)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e


def _storage_failure(e: StorageError) -> HTTPException:
    logger.error("Storage failure on %s: %s", e.path, e)
    return HTTPException(
        status_code=e.status_code or status.HTTP_502_BAD_GATEWAY,
        detail=str(e),
    )


@router.get("", response_model=list[FileEntryResponse])
def list_files(storage: ObjectStore = Depends(get_storage)) -> list[FileEntryResponse]:
    """List every stored object."""
    try:
        file_set = storage.list_objects()
    except StorageError as e:
        raise _storage_failure(e) from e
    return [FileEntryResponse.from_entry(entry) for entry in sorted(file_set, key=lambda e: e.path)]


@router.get("/download/{path:path}")
def download_file(
    path: str,
    storage: ObjectStore = Depends(get_storage),
) -> StreamingResponse:
    """Stream an object's content."""
    path = _validated(path)
    try:
        stream = storage.get_object_stream(path)
    except ObjectNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File not found: {path}",
        ) from e
    except StorageError as e:
        raise _storage_failure(e) from e
    return StreamingResponse(stream, media_type="application/octet-stream")


@router.post("/{path:path}")
async def create_file(
    path: str,
    request: Request,
    storage: ObjectStore = Depends(get_storage),
) -> Response:
    """Create a new object; fails if it already exists."""
    path = _validated(path)
    data = await request.body()
    try:
        if await run_in_threadpool(storage.exists, path):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"File already exists: {path}",
            )
        await run_in_threadpool(storage.put_object, path, data)
    except StorageError as e:
        raise _storage_failure(e) from e
    logger.info("Created %s (%d bytes)", path, len(data))
    return Response(status_code=status.HTTP_201_CREATED)


@router.put("/{path:path}")
async def replace_file(
    path: str,
    request: Request,
    storage: ObjectStore = Depends(get_storage),
) -> Response:
    """Replace the content of an existing object."""
    path = _validated(path)
    data = await request.body()
    try:
        if not await run_in_threadpool(storage.exists, path):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"File not found: {path}",
            )
        await run_in_threadpool(storage.put_object, path, data)
    except StorageError as e:
        raise _storage_failure(e) from e
    logger.info("Replaced %s (%d bytes)", path, len(data))
    return Response(status_code=status.HTTP_200_OK)


@router.delete("/{path:path}")
def delete_file(
    path: str,
    storage: ObjectStore = Depends(get_storage),
) -> Response:
    """Delete an object."""
    path = _validated(path)
    try:
        deleted = storage.delete_object(path)
    except StorageError as e:
        raise _storage_failure(e) from e
    if deleted:
        logger.info("Deleted %s", path)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"File not found: {path}",
    )
