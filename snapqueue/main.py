"""Entry point for the FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, status

from snapqueue.capture_queue import CaptureError, CaptureQueueManager, Partition, build_queue_manager
from snapqueue.schemas import (
    CaptureResponse,
    DeleteArtifactRequest,
    DeleteArtifactResponse,
    PartitionSelection,
    PreviewResponse,
    QueueEntry,
    QueueListing,
)
from snapqueue.settings import settings

LOGGER = logging.getLogger(__name__)
_LOG_HANDLER_NAME = "snapqueue-console"


def _configure_logging() -> None:
    level = logging.getLevelName(settings.logging.level)
    if not isinstance(level, int):
        LOGGER.warning("Unknown LOG_LEVEL %s; falling back to INFO", settings.logging.level)
        level = logging.INFO
    package_logger = logging.getLogger("snapqueue")
    package_logger.setLevel(level)
    if not any(handler.get_name() == _LOG_HANDLER_NAME for handler in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_LOG_HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        package_logger.addHandler(handler)


def _hide_host_surface() -> None:
    LOGGER.debug("Headless host: nothing to hide before capture")


def _show_host_surface() -> None:
    LOGGER.debug("Headless host: nothing to restore after capture")


@asynccontextmanager
async def _lifespan(_: FastAPI):
    _configure_logging()
    yield
    manager = QUEUE_MANAGER
    manager.clear_all()
    await manager.wait_for_cleanup()
    LOGGER.info("Capture queues cleared on shutdown")


app = FastAPI(title="Snapqueue", lifespan=_lifespan)

QUEUE_MANAGER: CaptureQueueManager = build_queue_manager(settings)


def _partition_containing(manager: CaptureQueueManager, path: str) -> Partition | None:
    """Return the partition whose directory holds ``path``, if any."""

    candidate = Path(path).resolve()
    for partition in Partition:
        if candidate.is_relative_to(manager.directory_for(partition).resolve()):
            return partition
    return None


async def _preview_or_none(manager: CaptureQueueManager, path: str) -> str | None:
    try:
        return await manager.get_preview(path)
    except OSError as exc:
        LOGGER.warning("Preview unavailable for %s: %s", path, exc)
        return None


@app.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    """Return a simple status useful for smoke tests."""

    return {"status": "ok"}


@app.get("/partition", response_model=PartitionSelection)
async def get_partition() -> PartitionSelection:
    return PartitionSelection(partition=QUEUE_MANAGER.get_active_partition())


@app.put("/partition", response_model=PartitionSelection)
async def set_partition(payload: PartitionSelection) -> PartitionSelection:
    QUEUE_MANAGER.set_active_partition(payload.partition)
    return PartitionSelection(partition=QUEUE_MANAGER.get_active_partition())


@app.get("/queues/{partition}", response_model=QueueListing)
async def list_queue(partition: Partition, previews: bool = False) -> QueueListing:
    """List a partition oldest-first, optionally inlining previews."""

    manager = QUEUE_MANAGER
    entries: list[QueueEntry] = []
    for path in manager.list_partition(partition):
        preview = await _preview_or_none(manager, path) if previews else None
        entries.append(QueueEntry(path=path, preview=preview))
    return QueueListing(
        partition=partition,
        capacity=manager.capacity,
        active=manager.get_active_partition() == partition,
        items=entries,
    )


@app.post("/captures", response_model=CaptureResponse, status_code=status.HTTP_201_CREATED)
async def create_capture(preview: bool = True) -> CaptureResponse:
    manager = QUEUE_MANAGER
    try:
        path = await manager.capture_and_enqueue(_hide_host_surface, _show_host_surface)
    except CaptureError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    partition = _partition_containing(manager, path) or manager.get_active_partition()
    encoded = await _preview_or_none(manager, path) if preview else None
    return CaptureResponse(path=path, partition=partition, preview=encoded)


@app.delete("/captures", response_model=DeleteArtifactResponse)
async def delete_capture(payload: DeleteArtifactRequest) -> DeleteArtifactResponse:
    if _partition_containing(QUEUE_MANAGER, payload.path) is None:
        LOGGER.warning("Refusing to delete %s outside the capture directories", payload.path)
        return DeleteArtifactResponse(success=False, error="Path is outside the capture directories")
    result = await QUEUE_MANAGER.delete_artifact(payload.path)
    return DeleteArtifactResponse(success=result["success"], error=result.get("error"))


@app.get("/preview", response_model=PreviewResponse)
async def preview_capture(path: str) -> PreviewResponse:
    if _partition_containing(QUEUE_MANAGER, path) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Capture not found")
    try:
        encoded = await QUEUE_MANAGER.get_preview(path)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Capture not found") from exc
    except OSError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return PreviewResponse(path=path, preview=encoded)


@app.post("/queues/reset")
async def reset_queues() -> dict[str, bool]:
    manager = QUEUE_MANAGER
    manager.clear_all()
    await manager.wait_for_cleanup()
    return {"cleared": True}
