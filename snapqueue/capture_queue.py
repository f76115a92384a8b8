"""Bounded, partitioned capture queue backed by image files on disk."""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Callable, Deque, Dict, Mapping, Set, TypedDict
from uuid import uuid4

from snapqueue.capture import CaptureProvider, MssCaptureProvider
from snapqueue.settings import Settings, get_settings
from snapqueue.store import build_storage_config

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 5
DEFAULT_SETTLE_SECONDS = 0.1
IMAGE_EXTENSION = ".png"
PREVIEW_PREFIX = "data:image/png;base64,"

VisibilityCallback = Callable[[], None]


class Partition(str, Enum):
    """Logical queues a capture can land in."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class CaptureQueueError(Exception):
    """Base class for capture queue failures."""


class CaptureError(CaptureQueueError):
    """Raised when a capture could not be produced or persisted."""


class ArtifactNotFoundError(CaptureQueueError, FileNotFoundError):
    """Raised when a preview is requested for a file that does not exist."""


class DeleteResult(TypedDict, total=False):
    """Outcome of an explicit artifact deletion."""

    success: bool
    error: str


def _write_artifact(path: Path, data: bytes) -> None:
    with path.open("wb") as handle:
        handle.write(data)


def _read_artifact(path: Path) -> bytes:
    return path.read_bytes()


def _remove_artifact(path: str) -> None:
    os.unlink(path)


class CaptureQueueManager:
    """Two capacity-bounded FIFO queues of capture files.

    New captures go to the active partition. When a partition grows past its
    capacity the oldest entry is dropped from the queue and its file deleted.
    """

    def __init__(
        self,
        *,
        directories: Mapping[Partition, Path | str],
        provider: CaptureProvider,
        capacity: int = DEFAULT_CAPACITY,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        active_partition: Partition | str = Partition.PRIMARY,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        missing = [partition.value for partition in Partition if partition not in directories]
        if missing:
            raise ValueError(f"Missing storage directory for partition(s): {', '.join(missing)}")
        self._directories: Dict[Partition, Path] = {
            partition: Path(directories[partition]) for partition in Partition
        }
        self._queues: Dict[Partition, Deque[str]] = {partition: deque() for partition in Partition}
        self._provider = provider
        self._capacity = capacity
        self._settle_seconds = max(0.0, settle_seconds)
        self._active = Partition(active_partition)
        self._pending_removals: Set[asyncio.Task[bool]] = set()

    @property
    def capacity(self) -> int:
        return self._capacity

    def directory_for(self, partition: Partition | str) -> Path:
        return self._directories[Partition(partition)]

    def get_active_partition(self) -> Partition:
        return self._active

    def set_active_partition(self, name: Partition | str) -> None:
        self._active = Partition(name)

    def list_partition(self, name: Partition | str) -> list[str]:
        """Return the partition's paths, oldest first, as a detached copy."""

        return list(self._queues[Partition(name)])

    def clear_all(self) -> None:
        """Drop every tracked capture and dispatch best-effort file deletions.

        Both queues are emptied before this returns. Deletions run as background
        tasks when an event loop is running and inline otherwise; failures are
        logged and never raised. Use ``wait_for_cleanup`` to await stragglers.
        """

        for partition in Partition:
            for path in self._queues[partition]:
                self._dispatch_removal(path, partition)
            self._queues[partition] = deque()

    async def wait_for_cleanup(self) -> None:
        """Await deletions dispatched by ``clear_all`` that are still running."""

        if self._pending_removals:
            await asyncio.gather(*list(self._pending_removals))

    async def capture_and_enqueue(self, hide: VisibilityCallback, show: VisibilityCallback) -> str:
        """Hide the host surface, capture, store and enqueue a new artifact.

        ``show`` runs on every exit path. Any failure while capturing or
        writing surfaces as ``CaptureError`` and leaves the queues untouched.
        """

        LOGGER.debug("Capture requested; active partition=%s", self._active.value)
        try:
            LOGGER.debug("Hiding host surface before capture")
            hide()
            await asyncio.sleep(self._settle_seconds)

            partition = self._active
            target = self._directories[partition] / f"{uuid4().hex}{IMAGE_EXTENSION}"
            LOGGER.debug("Capturing into %s (partition=%s)", target, partition.value)

            image_bytes = await self._provider.capture()
            if not image_bytes:
                raise CaptureError("capture provider returned no data")
            LOGGER.debug("Provider returned %d bytes", len(image_bytes))

            await self._persist(target, image_bytes)

            queue = self._queues[partition]
            queue.append(str(target))
            LOGGER.info(
                "Queued capture %s in %s (%d/%d)", target, partition.value, len(queue), self._capacity
            )
            if len(queue) > self._capacity:
                await self._evict_oldest(partition)
            return str(target)
        except Exception as exc:
            LOGGER.error("Capture failed: %s", exc)
            raise CaptureError(f"Failed to take screenshot: {exc}") from exc
        finally:
            LOGGER.debug("Restoring host surface after capture")
            show()

    async def get_preview(self, path: str) -> str:
        """Return ``path`` as a base64 PNG data URI."""

        try:
            data = await asyncio.to_thread(_read_artifact, Path(path))
        except FileNotFoundError as exc:
            LOGGER.error("Preview source missing: %s", path)
            raise ArtifactNotFoundError(exc.errno, exc.strerror, path) from exc
        except OSError:
            LOGGER.exception("Error reading image %s", path)
            raise
        return PREVIEW_PREFIX + base64.b64encode(data).decode("ascii")

    async def delete_artifact(self, path: str) -> DeleteResult:
        """Delete ``path`` and forget it in the active partition.

        Only the active partition's queue is updated, even when ``path`` was
        captured into the other one. Failures come back as a result value.
        """

        try:
            await asyncio.to_thread(_remove_artifact, path)
        except Exception as exc:  # noqa: BLE001 - reported to the caller
            LOGGER.error("Error deleting file %s: %s", path, exc)
            return DeleteResult(success=False, error=str(exc))

        partition = self._active
        self._queues[partition] = deque(entry for entry in self._queues[partition] if entry != path)
        LOGGER.info("Deleted capture %s (partition=%s)", path, partition.value)
        return DeleteResult(success=True)

    async def _persist(self, target: Path, data: bytes) -> None:
        try:
            await asyncio.to_thread(_write_artifact, target, data)
        except OSError as exc:
            await asyncio.to_thread(self._discard_file, str(target), "partial write", missing_ok=True)
            raise CaptureError(f"could not write {target}: {exc}") from exc

    async def _evict_oldest(self, partition: Partition) -> None:
        removed = self._queues[partition].popleft()
        LOGGER.info("Evicting oldest capture %s from %s", removed, partition.value)
        await asyncio.to_thread(self._discard_file, removed, "eviction")

    def _dispatch_removal(self, path: str, partition: Partition) -> None:
        reason = f"clear {partition.value}"
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._discard_file(path, reason)
            return
        task = loop.create_task(asyncio.to_thread(self._discard_file, path, reason))
        self._pending_removals.add(task)
        task.add_done_callback(self._pending_removals.discard)

    @staticmethod
    def _discard_file(path: str, reason: str, *, missing_ok: bool = False) -> bool:
        try:
            _remove_artifact(path)
        except FileNotFoundError:
            if missing_ok:
                return True
            LOGGER.warning("Capture file already gone during %s: %s", reason, path)
            return False
        except OSError as exc:
            LOGGER.warning("Error removing capture %s during %s: %s", path, reason, exc)
            return False
        return True


def build_queue_manager(
    settings: Settings | None = None,
    *,
    provider: CaptureProvider | None = None,
) -> CaptureQueueManager:
    """Provision partition directories and wire a manager from settings."""

    cfg = settings or get_settings()
    storage = build_storage_config(cfg)
    directories = storage.ensure_directories()
    return CaptureQueueManager(
        directories={Partition(name): path for name, path in directories.items()},
        provider=provider or MssCaptureProvider(monitor=cfg.capture.monitor),
        capacity=cfg.capture.capacity,
        settle_seconds=cfg.capture.settle_ms / 1000,
        active_partition=cfg.capture.default_partition,
    )
