#!/usr/bin/env python3
"""Fit a source image into a frame's screen rectangle and composite the two.

When the screen rectangle is larger than the source image the frame is
scaled down to the source's resolution instead of upscaling the source.
Otherwise the source is cover-resized straight into the native rectangle.
Every step returns a new image; inputs are never modified.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from PIL import Image

from frame_errors import InvalidGeometry
from frame_geometry import Rect, decode_image, validate_rect

if TYPE_CHECKING:
    from frame_catalog import FrameRecord

RESAMPLE = Image.Resampling.LANCZOS


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _ceil(value: float) -> int:
    # Drop float noise so exact products like 712.0000000001 stay at 712.
    return int(math.ceil(round(value, 6)))


@dataclass(frozen=True)
class FitPlan:
    frame_size: tuple[int, int]
    screen_size: tuple[int, int]
    offset: tuple[int, int]
    scale: float
    frame_scaled: bool


def cover(image: Image.Image, target_size: tuple[int, int]) -> Image.Image:
    target_w, target_h = target_size
    if target_w <= 0 or target_h <= 0:
        raise InvalidGeometry(f"Cover target must be positive, got {target_w}x{target_h}")
    src_w, src_h = image.size
    if src_w <= 0 or src_h <= 0:
        raise InvalidGeometry(f"Cannot cover-resize an empty {src_w}x{src_h} image")

    scale = max(target_w / src_w, target_h / src_h)
    scaled_w = max(target_w, round_half_up(src_w * scale))
    scaled_h = max(target_h, round_half_up(src_h * scale))
    if (scaled_w, scaled_h) == (src_w, src_h):
        resized = image
    else:
        resized = image.resize((scaled_w, scaled_h), RESAMPLE)

    left = (scaled_w - target_w) // 2
    top = (scaled_h - target_h) // 2
    return resized.crop((left, top, left + target_w, top + target_h))


def plan_fit(
    rect: Rect,
    frame_size: tuple[int, int],
    source_size: tuple[int, int],
    *,
    frame: str | None = None,
) -> FitPlan:
    validate_rect(rect, frame_size, frame=frame)
    frame_w, frame_h = frame_size
    source_w, source_h = source_size
    if source_w <= 0 or source_h <= 0:
        raise InvalidGeometry(f"Source image has no pixels ({source_w}x{source_h})", frame=frame)

    if max(rect.width, rect.height) <= max(source_w, source_h):
        return FitPlan(
            frame_size=(frame_w, frame_h),
            screen_size=(rect.width, rect.height),
            offset=(rect.left, rect.top),
            scale=1.0,
            frame_scaled=False,
        )

    # Tall screens are matched on width, wide (or square) ones on height; the
    # other frame dimension follows from the frame's aspect ratio.
    if rect.height > rect.width:
        scale = source_w / rect.width
        new_w = max(1, _ceil(frame_w * scale))
        new_h = max(1, round_half_up(frame_h * new_w / frame_w))
    else:
        scale = source_h / rect.height
        new_h = max(1, _ceil(frame_h * scale))
        new_w = max(1, round_half_up(frame_w * new_h / frame_h))

    screen_w = max(1, _ceil(rect.width * new_w / frame_w))
    screen_h = max(1, _ceil(rect.height * new_h / frame_h))
    left = round_half_up(new_w * (rect.left / frame_w))
    top = round_half_up(new_h * (rect.top / frame_h))

    return FitPlan(
        frame_size=(new_w, new_h),
        screen_size=(screen_w, screen_h),
        offset=(left, top),
        scale=scale,
        frame_scaled=True,
    )


def composite_rect(
    rect: Rect,
    frame_image: Image.Image,
    source_image: Image.Image,
    *,
    frame: str | None = None,
) -> Image.Image:
    frame_layer = frame_image if frame_image.mode == "RGBA" else frame_image.convert("RGBA")
    source_layer = source_image if source_image.mode == "RGBA" else source_image.convert("RGBA")

    plan = plan_fit(rect, frame_layer.size, source_layer.size, frame=frame)
    if plan.frame_scaled:
        frame_layer = frame_layer.resize(plan.frame_size, RESAMPLE)
    screen = cover(source_layer, plan.screen_size)

    # Source goes down first so the bezel hides any overflow past the screen.
    canvas = Image.new("RGBA", plan.frame_size, (0, 0, 0, 0))
    canvas.paste(screen, plan.offset)
    return Image.alpha_composite(canvas, frame_layer)


def composite(record: "FrameRecord", frame_image: Image.Image, source_image: Image.Image) -> Image.Image:
    return composite_rect(record.frame, frame_image, source_image, frame=record.rel_path)


def composite_bytes(
    record: "FrameRecord",
    frame_data: bytes,
    source_data: bytes,
    *,
    source: str | None = None,
) -> Image.Image:
    frame_image = decode_image(frame_data, source=record.rel_path)
    source_image = decode_image(source_data, source=source)
    return composite(record, frame_image, source_image)
