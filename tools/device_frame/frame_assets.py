#!/usr/bin/env python3
"""Resolve source images and frame assets into bytes for the compositor."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Tuple
from urllib import error as urllib_error
from urllib import request as urllib_request
from urllib.parse import quote, urlparse

from PIL import Image

from frame_catalog import FrameRecord
from frame_config import (
    DOWNLOAD_CHUNK_SIZE,
    FRAME_CACHE_DIR,
    FRAMES_URL,
    HTTP_TIMEOUT_SECONDS,
    USER_AGENT,
)
from frame_errors import AssetUnavailable
from frame_fit import round_half_up
from frame_geometry import decode_image, encode_image

URL_SCHEMES = ("http://", "https://")
URL_LABEL = "Frame"

# capture(url, (width, height), delay_seconds) -> encoded image bytes
PageCapture = Callable[[str, Tuple[int, int], float], bytes]


@dataclass(frozen=True)
class SourceAsset:
    label: str
    data: bytes
    origin: str


def is_url(text: str) -> bool:
    return text.strip().lower().startswith(URL_SCHEMES)


def _open_url(url: str, *, user_agent: str, timeout: float):
    req = urllib_request.Request(url, headers={"User-Agent": user_agent})
    return urllib_request.urlopen(req, timeout=timeout)  # noqa: S310


def fetch_url(
    url: str,
    *,
    timeout: float = HTTP_TIMEOUT_SECONDS,
    user_agent: str = USER_AGENT,
) -> tuple[bytes, str]:
    try:
        with _open_url(url, user_agent=user_agent, timeout=timeout) as resp:
            return resp.read(), resp.headers.get_content_type()
    except (urllib_error.URLError, OSError, ValueError) as exc:
        raise AssetUnavailable(f"Could not fetch {url}: {exc}", source=url) from exc


def _url_label(url: str) -> str:
    stem = Path(urlparse(url).path).stem
    return stem or URL_LABEL


def screenshot_viewport(record: FrameRecord) -> tuple[int, int]:
    ratio = record.effective_pixel_ratio
    width = max(1, math.floor(record.frame.width / ratio))
    height = max(1, math.floor(record.frame.height / ratio))
    return width, height


def fit_screenshot(image: Image.Image, viewport: tuple[int, int]) -> Image.Image:
    """Scale a page capture to the viewport width and keep the top of the page."""
    width, height = viewport
    scaled_h = max(1, round_half_up(image.height * width / image.width))
    if (width, scaled_h) != image.size:
        image = image.resize((width, scaled_h), Image.Resampling.LANCZOS)
    return image.crop((0, 0, width, height))


def resolve_source(
    source: str,
    *,
    record: FrameRecord | None = None,
    capture: PageCapture | None = None,
    delay: float = 0.0,
    timeout: float = HTTP_TIMEOUT_SECONDS,
) -> SourceAsset:
    """Turn a file path, image URL or webpage URL into encoded image bytes.

    Webpages need a ``capture`` callable and the target frame ``record`` so the
    page can be rendered at the device's CSS viewport size.
    """
    if not is_url(source):
        path = Path(source)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise AssetUnavailable(f"Could not read {source}: {exc}", source=source) from exc
        return SourceAsset(label=path.stem, data=data, origin=source)

    data, content_type = fetch_url(source, timeout=timeout)
    if content_type.startswith("image/"):
        return SourceAsset(label=_url_label(source), data=data, origin=source)

    if capture is None:
        raise AssetUnavailable(
            f"{source} is a webpage ({content_type}) and no page capture is configured",
            source=source,
        )
    if record is None:
        raise AssetUnavailable(f"Capturing {source} needs a target frame", source=source)

    viewport = screenshot_viewport(record)
    page = decode_image(capture(source, viewport, delay), source=source)
    shot = fit_screenshot(page, viewport)
    return SourceAsset(label=URL_LABEL, data=encode_image(shot), origin=source)


class DownloadListener:
    """Receives download events; override the hooks you need."""

    def on_progress(self, record: FrameRecord, fraction: float) -> None:
        pass

    def on_complete(self, record: FrameRecord, path: Path) -> None:
        pass

    def on_error(self, record: FrameRecord, exc: Exception) -> None:
        pass


class FrameStore:
    """Frame images cached on disk under their catalog ``relPath``."""

    def __init__(
        self,
        root: Path = FRAME_CACHE_DIR,
        *,
        base_url: str = FRAMES_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        user_agent: str = USER_AGENT,
    ) -> None:
        self.root = Path(root)
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.user_agent = user_agent

    def path_for(self, record: FrameRecord) -> Path:
        return self.root / record.rel_path

    def url_for(self, record: FrameRecord) -> str:
        return self.base_url + quote(record.rel_path)

    def is_cached(self, record: FrameRecord) -> bool:
        path = self.path_for(record)
        return path.is_file() and path.stat().st_size > 0

    def missing(self, records: Iterable[FrameRecord]) -> List[FrameRecord]:
        return [record for record in records if not self.is_cached(record)]

    def load(self, record: FrameRecord) -> bytes:
        if not self.is_cached(record):
            raise AssetUnavailable(
                f"Frame {record.rel_path} is not cached under {self.root}",
                source=record.rel_path,
            )
        return self.path_for(record).read_bytes()

    def open(self, record: FrameRecord) -> Image.Image:
        return decode_image(self.load(record), source=record.rel_path)

    def download(self, record: FrameRecord, listener: DownloadListener | None = None) -> Path:
        listener = listener or DownloadListener()
        path = self.path_for(record)
        if path.exists() and path.stat().st_size == 0:
            path.unlink()
        path.parent.mkdir(parents=True, exist_ok=True)
        partial = path.with_name(path.name + ".part")
        url = self.url_for(record)

        try:
            received = self._stream(url, partial, record, listener)
        except (urllib_error.URLError, OSError, ValueError) as exc:
            partial.unlink(missing_ok=True)
            error = AssetUnavailable(f"Could not download frame {record.rel_path}: {exc}", source=url)
            listener.on_error(record, error)
            raise error from exc
        if received == 0:
            partial.unlink(missing_ok=True)
            error = AssetUnavailable(f"Empty response for frame {record.rel_path}", source=url)
            listener.on_error(record, error)
            raise error
        partial.replace(path)

        listener.on_progress(record, 1.0)
        listener.on_complete(record, path)
        return path

    def _stream(self, url: str, target: Path, record: FrameRecord, listener: DownloadListener) -> int:
        with _open_url(url, user_agent=self.user_agent, timeout=self.timeout) as resp, target.open("wb") as handle:
            total = int(resp.headers.get("Content-Length") or 0)
            received = 0
            while True:
                chunk = resp.read(DOWNLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                handle.write(chunk)
                received += len(chunk)
                if total:
                    listener.on_progress(record, min(1.0, received / total))
        return received

    def ensure(self, records: Iterable[FrameRecord], listener: DownloadListener | None = None) -> List[Path]:
        paths = []
        for record in records:
            if self.is_cached(record):
                paths.append(self.path_for(record))
            else:
                paths.append(self.download(record, listener))
        return paths
