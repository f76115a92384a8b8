"""Filesystem layout for capture partitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from snapqueue.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


def storage_root() -> Path:
    """Return the root directory where capture artifacts should live."""

    return Path(".cache") / "captures"


@dataclass(slots=True)
class StorageConfig:
    """Where each partition keeps its capture files."""

    root: Path = field(default_factory=storage_root)
    primary_dirname: str = "screenshots"
    secondary_dirname: str = "extra_screenshots"

    def directory_for(self, partition: str) -> Path:
        name = str(getattr(partition, "value", partition))
        if name == "primary":
            return self.root / self.primary_dirname
        if name == "secondary":
            return self.root / self.secondary_dirname
        raise KeyError(f"Unknown partition '{name}'")

    def ensure_directories(self) -> dict[str, Path]:
        """Create both partition directories if absent and return them by name."""

        directories: dict[str, Path] = {}
        for name in ("primary", "secondary"):
            target = self.directory_for(name)
            if not target.exists():
                LOGGER.info("Creating %s capture directory at %s", name, target)
            target.mkdir(parents=True, exist_ok=True)
            directories[name] = target
        return directories


def build_storage_config(settings: Settings | None = None) -> StorageConfig:
    cfg = settings or get_settings()
    return StorageConfig(
        root=cfg.storage.root,
        primary_dirname=cfg.storage.primary_dirname,
        secondary_dirname=cfg.storage.secondary_dirname,
    )
