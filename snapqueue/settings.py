"""Configuration helpers bound to python-decouple."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from decouple import Config as DecoupleConfig, RepositoryEmpty, RepositoryEnv

PARTITION_NAMES = ("primary", "secondary")


def load_config(env_path: str = ".env") -> DecoupleConfig:
    """Return a decouple config object anchored to the repository .env file.

    Environment variables always win; the .env file is optional.
    """

    if Path(env_path).exists():
        return DecoupleConfig(RepositoryEnv(env_path))
    return DecoupleConfig(RepositoryEmpty())


@dataclass(slots=True)
class StorageSettings:
    root: Path
    primary_dirname: str
    secondary_dirname: str


@dataclass(slots=True)
class CaptureSettings:
    capacity: int
    settle_ms: int
    monitor: int
    default_partition: str


@dataclass(slots=True)
class LoggingSettings:
    level: str


@dataclass(slots=True)
class Settings:
    storage: StorageSettings
    capture: CaptureSettings
    logging: LoggingSettings


def _partition_name(value: str) -> str:
    name = value.strip().lower()
    if name not in PARTITION_NAMES:
        raise ValueError(f"DEFAULT_PARTITION must be one of {', '.join(PARTITION_NAMES)}; got '{value}'")
    return name


def load_settings(env_path: str = ".env") -> Settings:
    """Build a fresh ``Settings`` object from the environment and ``env_path``."""

    config = load_config(env_path)
    storage = StorageSettings(
        root=Path(config("STORAGE_ROOT", default=".cache/captures")),
        primary_dirname=config("PRIMARY_DIRNAME", default="screenshots"),
        secondary_dirname=config("SECONDARY_DIRNAME", default="extra_screenshots"),
    )
    capture = CaptureSettings(
        capacity=config("CAPTURE_QUEUE_CAPACITY", default=5, cast=int),
        settle_ms=config("CAPTURE_SETTLE_MS", default=100, cast=int),
        monitor=config("CAPTURE_MONITOR", default=1, cast=int),
        default_partition=config("DEFAULT_PARTITION", default="primary", cast=_partition_name),
    )
    if capture.capacity < 1:
        raise ValueError("CAPTURE_QUEUE_CAPACITY must be at least 1")
    if capture.settle_ms < 0:
        raise ValueError("CAPTURE_SETTLE_MS cannot be negative")
    logging_settings = LoggingSettings(level=config("LOG_LEVEL", default="INFO").upper())
    return Settings(storage=storage, capture=capture, logging=logging_settings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


settings = get_settings()
