"""Error types raised by the frame geometry, fitting and asset modules."""

from __future__ import annotations

from typing import Any


class DeviceFrameError(Exception):
    pass


class DecodeError(DeviceFrameError, ValueError):
    """Bytes could not be decoded as an image."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class GeometryNotFound(DeviceFrameError, ValueError):
    """No transparent screen region could be located in a frame."""

    def __init__(self, message: str, *, frame: str | None = None) -> None:
        super().__init__(message)
        self.frame = frame


class InvalidGeometry(DeviceFrameError, ValueError):
    """A screen rectangle is degenerate or falls outside its frame image."""

    def __init__(
        self,
        message: str,
        *,
        rect: Any = None,
        frame_size: tuple[int, int] | None = None,
        frame: str | None = None,
    ) -> None:
        super().__init__(message)
        self.rect = rect
        self.frame_size = frame_size
        self.frame = frame


class AssetUnavailable(DeviceFrameError, RuntimeError):
    """A source image or frame asset could not be retrieved."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source
