"""Screen capture providers feeding the capture queue."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import mss
import mss.tools

LOGGER = logging.getLogger(__name__)


class CaptureProvider(Protocol):
    """Anything that can produce raw image bytes on demand."""

    async def capture(self) -> bytes | None:
        ...


class MssCaptureProvider:
    """Grab a full monitor with ``mss`` and encode it as PNG.

    Monitor ``0`` is the virtual screen spanning every display; ``1`` is the
    primary monitor.
    """

    def __init__(self, *, monitor: int = 1, compression_level: int = 6) -> None:
        self.monitor = monitor
        self.compression_level = compression_level

    async def capture(self) -> bytes | None:
        return await asyncio.to_thread(self._grab_png)

    def _grab_png(self) -> bytes | None:
        with mss.mss() as sct:
            if self.monitor >= len(sct.monitors):
                raise ValueError(
                    f"Monitor {self.monitor} not available; found {len(sct.monitors) - 1} display(s)"
                )
            shot = sct.grab(sct.monitors[self.monitor])
            LOGGER.debug("Grabbed monitor %s at %sx%s", self.monitor, shot.width, shot.height)
            return mss.tools.to_png(shot.rgb, shot.size, level=self.compression_level)
