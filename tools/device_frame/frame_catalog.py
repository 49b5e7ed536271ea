#!/usr/bin/env python3
"""Frame catalog records and the batch builder that produces them."""

from __future__ import annotations

import json
from concurrent.futures import Executor, ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Tuple

from frame_config import DEFAULT_PIXEL_RATIO, FRAME_SUFFIX, SHADOW_SUFFIX
from frame_errors import DeviceFrameError
from frame_geometry import Rect, extract_screen_rect, open_image, validate_rect


@dataclass(frozen=True)
class FrameRecord:
    rel_path: str
    category: str
    device: str
    name: str
    frame: Rect
    pixel_ratio: float | None = None
    shadow: bool = False
    tags: Tuple[str, ...] = ()

    @property
    def display_name(self) -> str:
        return f"{self.name}{SHADOW_SUFFIX}" if self.shadow else self.name

    @property
    def effective_pixel_ratio(self) -> float:
        return self.pixel_ratio or DEFAULT_PIXEL_RATIO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relPath": self.rel_path,
            "category": self.category,
            "device": self.device,
            "frame": self.frame.to_dict(),
            "name": self.name,
            "pixelRatio": self.pixel_ratio,
            "shadow": self.shadow,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FrameRecord":
        pixel_ratio = payload.get("pixelRatio")
        return cls(
            rel_path=str(payload["relPath"]),
            category=str(payload.get("category") or ""),
            device=str(payload.get("device") or ""),
            name=str(payload["name"]),
            frame=Rect.from_dict(payload["frame"]),
            pixel_ratio=float(pixel_ratio) if pixel_ratio is not None else None,
            shadow=bool(payload.get("shadow", False)),
            tags=tuple(str(tag) for tag in payload.get("tags") or ()),
        )


@dataclass(frozen=True)
class CatalogFailure:
    rel_path: str
    error_type: str
    message: str


@dataclass
class CatalogBuildResult:
    records: List[FrameRecord] = field(default_factory=list)
    failures: List[CatalogFailure] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.failures

    @property
    def catalog(self) -> "FrameCatalog":
        return FrameCatalog(self.records)


class FrameCatalog:
    def __init__(self, records: Iterable[FrameRecord]) -> None:
        self._records: Tuple[FrameRecord, ...] = tuple(records)
        self._by_path = {record.rel_path: record for record in self._records}

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[FrameRecord]:
        return iter(self._records)

    @property
    def records(self) -> Tuple[FrameRecord, ...]:
        return self._records

    def devices(self) -> List[str]:
        return sorted({record.device for record in self._records if record.device})

    def get(self, rel_path: str) -> FrameRecord:
        return self._by_path[rel_path]

    def find(self, query: str) -> List[FrameRecord]:
        if query in self._by_path:
            return [self._by_path[query]]
        terms = query.lower().split()
        if not terms:
            return []
        matches = []
        for record in self._records:
            haystack = " ".join(
                [record.category.lower(), record.device.lower(), record.name.lower(), *record.tags]
            )
            if all(term in haystack for term in terms):
                matches.append(record)
        return matches

    def to_list(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self._records]

    def dumps(self) -> str:
        return json.dumps(self.to_list(), indent=4) + "\n"

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.dumps(), encoding="utf-8")

    @classmethod
    def loads(cls, text: str) -> "FrameCatalog":
        payload = json.loads(text)
        if not isinstance(payload, list):
            raise ValueError("Frame catalog must be a JSON array of frame records")
        return cls(FrameRecord.from_dict(item) for item in payload)

    @classmethod
    def load(cls, path: Path) -> "FrameCatalog":
        return cls.loads(path.read_text(encoding="utf-8"))


def load_pixel_ratios(path: Path) -> Dict[str, float]:
    """Read a device -> pixel ratio table.

    Accepts either a plain ``{"Device": 2.0}`` object or a list of
    ``{"name": "Device", "pixelRatio": 2.0}`` entries.
    """
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        return {str(name): float(ratio) for name, ratio in payload.items()}
    table: Dict[str, float] = {}
    for entry in payload:
        ratio = entry.get("pixelRatio")
        if ratio:
            table[str(entry["name"])] = float(ratio)
    return table


def list_frame_files(root: Path, *, limit: int = 0) -> List[Path]:
    files = sorted(
        (path for path in root.rglob("*") if path.is_file() and path.suffix.lower() == FRAME_SUFFIX),
        key=lambda path: path.relative_to(root).as_posix(),
    )
    if limit > 0:
        return files[:limit]
    return files


def _tags_for(name: str) -> Tuple[str, ...]:
    tags: List[str] = []
    for word in name.split():
        tag = word.lower()
        if tag not in tags:
            tags.append(tag)
    return tuple(tags)


def describe_frame(path: Path, root: Path, pixel_ratios: Mapping[str, float] | None = None) -> FrameRecord:
    rel_path = path.relative_to(root).as_posix()
    parts = rel_path.split("/")
    category = parts[0] if len(parts) > 1 else ""
    device = parts[1] if len(parts) > 2 else ""
    name = Path(rel_path).stem

    image = open_image(path)
    rect = validate_rect(extract_screen_rect(image, frame=rel_path), image.size, frame=rel_path)

    return FrameRecord(
        rel_path=rel_path,
        category=category,
        device=device,
        name=name,
        frame=rect,
        pixel_ratio=(pixel_ratios or {}).get(device),
        shadow="shadow" in rel_path.lower(),
        tags=_tags_for(name),
    )


def _failure(path: Path, root: Path, exc: Exception) -> CatalogFailure:
    return CatalogFailure(
        rel_path=path.relative_to(root).as_posix(),
        error_type=type(exc).__name__,
        message=str(exc),
    )


def _collect(executor: Executor, files: List[Path], root: Path, ratios: Mapping[str, float]) -> CatalogBuildResult:
    result = CatalogBuildResult()
    futures = {executor.submit(describe_frame, path, root, ratios): path for path in files}
    for future in as_completed(futures):
        try:
            result.records.append(future.result())
        except Exception as exc:  # noqa: BLE001
            # A crashed worker (BrokenProcessPool) fails only the frames it was holding.
            result.failures.append(_failure(futures[future], root, exc))
    return result


def build_catalog(
    root: Path,
    pixel_ratios: Mapping[str, float] | None = None,
    *,
    workers: int = 1,
    limit: int = 0,
    executor: Executor | None = None,
) -> CatalogBuildResult:
    """Extract screen geometry for every frame PNG under ``root``.

    Frames are expected at ``category/device/name.png``. A frame that fails to
    decode or has no transparent screen is recorded in ``failures`` and the
    rest of the batch continues. Output is sorted by relative path no matter
    how work was scheduled.
    """
    ratios = dict(pixel_ratios or {})
    files = list_frame_files(root, limit=limit)

    if executor is not None:
        result = _collect(executor, files, root, ratios)
    elif workers > 1:
        with ProcessPoolExecutor(max_workers=workers) as pool:
            result = _collect(pool, files, root, ratios)
    else:
        result = CatalogBuildResult()
        for path in files:
            try:
                result.records.append(describe_frame(path, root, ratios))
            except DeviceFrameError as exc:
                result.failures.append(_failure(path, root, exc))

    result.records.sort(key=lambda record: record.rel_path)
    result.failures.sort(key=lambda failure: failure.rel_path)
    return result
