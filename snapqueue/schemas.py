"""Pydantic DTOs shared across endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from snapqueue.capture_queue import Partition


class PartitionSelection(BaseModel):
    """Which partition receives subsequent captures."""

    partition: Partition = Field(description="Partition name (primary or secondary)")


class QueueEntry(BaseModel):
    """One stored capture, optionally with its inline preview."""

    path: str = Field(description="Filesystem path of the capture")
    preview: str | None = Field(default=None, description="data:image/png;base64 preview when requested")


class QueueListing(BaseModel):
    """Ordered contents of a partition, oldest first."""

    partition: Partition
    capacity: int = Field(ge=1)
    active: bool = Field(description="Whether this partition receives the next capture")
    items: list[QueueEntry] = Field(default_factory=list)


class CaptureResponse(BaseModel):
    """Result of a successful capture."""

    path: str
    partition: Partition
    preview: str | None = None


class DeleteArtifactRequest(BaseModel):
    path: str = Field(description="Filesystem path of the capture to delete")

    @field_validator("path")
    @classmethod
    def _require_path(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Provide a capture path to delete")
        return value


class DeleteArtifactResponse(BaseModel):
    success: bool
    error: str | None = Field(default=None, description="Failure reason when success is false")


class PreviewResponse(BaseModel):
    path: str
    preview: str
