#!/usr/bin/env python3
"""Screen-rectangle geometry for device frame images.

A frame is an RGBA bezel image whose screen area is transparent. The screen
rectangle is located by flood filling outward from the image center through
every pixel that is not fully opaque and taking the bounding box of the
visited region. Rectangles use exclusive ``right``/``bottom`` edges, so
``width == right - left`` and ``height == bottom - top``.
"""

from __future__ import annotations

import io
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from PIL import Image, UnidentifiedImageError

from frame_errors import AssetUnavailable, DecodeError, GeometryNotFound, InvalidGeometry

OPAQUE = 255
RECT_FIELDS = ("top", "left", "bottom", "right", "width", "height")


@dataclass(frozen=True)
class Rect:
    top: int
    left: int
    bottom: int
    right: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def box(self) -> tuple[int, int, int, int]:
        return (self.left, self.top, self.right, self.bottom)

    def to_dict(self) -> Dict[str, int]:
        return {
            "top": self.top,
            "left": self.left,
            "bottom": self.bottom,
            "right": self.right,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Rect":
        rect = cls(
            top=int(payload["top"]),
            left=int(payload["left"]),
            bottom=int(payload["bottom"]),
            right=int(payload["right"]),
        )
        for key in ("width", "height"):
            if key in payload and int(payload[key]) != getattr(rect, key):
                raise InvalidGeometry(
                    f"Stored {key}={payload[key]} disagrees with edges {rect.box}",
                    rect=rect,
                )
        return rect


def validate_rect(rect: Rect, frame_size: tuple[int, int], *, frame: str | None = None) -> Rect:
    frame_w, frame_h = frame_size
    if rect.width <= 0 or rect.height <= 0:
        raise InvalidGeometry(
            f"Screen rectangle {rect.box} has non-positive size {rect.width}x{rect.height}",
            rect=rect,
            frame_size=frame_size,
            frame=frame,
        )
    if rect.left < 0 or rect.top < 0 or rect.right > frame_w or rect.bottom > frame_h:
        raise InvalidGeometry(
            f"Screen rectangle {rect.box} exceeds frame bounds {frame_w}x{frame_h}",
            rect=rect,
            frame_size=frame_size,
            frame=frame,
        )
    return rect


def extract_screen_rect(image: Image.Image, *, frame: str | None = None) -> Rect:
    rgba = image if image.mode == "RGBA" else image.convert("RGBA")
    width, height = rgba.size
    if width == 0 or height == 0:
        raise GeometryNotFound("Frame image is empty.", frame=frame)

    alpha = rgba.getchannel("A").tobytes()
    cx, cy = width // 2, height // 2
    start = cy * width + cx
    if alpha[start] == OPAQUE:
        raise GeometryNotFound(
            "Frame center is opaque; cannot infer screen aperture.",
            frame=frame,
        )

    seen = bytearray(width * height)
    seen[start] = 1
    queue = deque([(cx, cy)])
    min_x = max_x = cx
    min_y = max_y = cy

    while queue:
        x, y = queue.popleft()
        if x < min_x:
            min_x = x
        elif x > max_x:
            max_x = x
        if y < min_y:
            min_y = y
        elif y > max_y:
            max_y = y

        for nx, ny in ((x + 1, y), (x - 1, y), (x, y + 1), (x, y - 1)):
            if not (0 <= nx < width and 0 <= ny < height):
                continue
            index = ny * width + nx
            if seen[index] or alpha[index] == OPAQUE:
                continue
            seen[index] = 1
            queue.append((nx, ny))

    return Rect(top=min_y, left=min_x, bottom=max_y + 1, right=max_x + 1)


def decode_image(data: bytes, *, source: str | None = None) -> Image.Image:
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return image.convert("RGBA")
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        label = source or "<bytes>"
        raise DecodeError(f"Could not decode image {label}: {exc}", source=source) from exc


def open_image(path: Path) -> Image.Image:
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise AssetUnavailable(f"Could not read image {path}: {exc}", source=str(path)) from exc
    return decode_image(data, source=str(path))


def encode_image(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()
