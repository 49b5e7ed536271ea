#!/usr/bin/env python3
"""Frame screenshots and photos in device bezels.

Examples:
  dframe cat.png --frame "iphone 6s gold"
  dframe cat.png dog.png "shots/*.jpeg" --frame pixel --frame ipad -o out/
  dframe https://example.com/logo.png --frame "galaxy s8" --download
"""

from __future__ import annotations

import argparse
import glob
import sys
from pathlib import Path
from typing import Dict, List, Set

from PIL import Image

from frame_assets import DownloadListener, FrameStore, SourceAsset, is_url, resolve_source
from frame_catalog import FrameCatalog, FrameRecord
from frame_config import CATALOG_PATH, FRAME_CACHE_DIR, FRAMES_URL
from frame_errors import AssetUnavailable, DeviceFrameError
from frame_fit import composite
from frame_geometry import decode_image, encode_image


class ProgressPrinter(DownloadListener):
    def on_progress(self, record: FrameRecord, fraction: float) -> None:
        print(f"\r  downloading {record.rel_path} {fraction:.0%}", end="", flush=True)

    def on_complete(self, record: FrameRecord, path: Path) -> None:
        print(f"\n  cached {path}")

    def on_error(self, record: FrameRecord, exc: Exception) -> None:
        print(f"\n  download failed for {record.rel_path}: {exc}", file=sys.stderr)


def expand_inputs(inputs: List[str]) -> tuple[list[str], list[str]]:
    sources: list[str] = []
    unmatched: list[str] = []
    for raw in inputs:
        if is_url(raw):
            sources.append(raw)
            continue
        matches = sorted(glob.glob(raw))
        if matches:
            sources.extend(matches)
        else:
            unmatched.append(raw)
    return sorted(dict.fromkeys(sources)), unmatched


def choose_frames(catalog: FrameCatalog, queries: List[str]) -> tuple[list[FrameRecord], list[str]]:
    chosen: Dict[str, FrameRecord] = {}
    unmatched: list[str] = []
    for query in queries:
        matches = catalog.find(query)
        if not matches:
            unmatched.append(query)
        for record in matches:
            chosen[record.rel_path] = record
    return [chosen[key] for key in sorted(chosen)], unmatched


def output_path(out_dir: Path, asset: SourceAsset, record: FrameRecord, taken: Set[Path]) -> Path:
    """Pick the output file for a pair; later sources with the same label get -2, -3, ..."""
    stem = f"{asset.label}-{record.display_name}"
    path = out_dir / f"{stem}.png"
    suffix = 2
    while path in taken:
        path = out_dir / f"{stem}-{suffix}.png"
        suffix += 1
    taken.add(path)
    return path


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Put images inside device frames",
        epilog=__doc__.split("\n\n", 1)[1],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("inputs", nargs="*", help="Image files, globs or image URLs")
    parser.add_argument("--frame", "-f", action="append", default=[], help="Frame search terms (repeatable)")
    parser.add_argument("--output", "-o", type=Path, default=Path("."), help="Output directory")
    parser.add_argument("--catalog", type=Path, default=CATALOG_PATH, help="frames.json catalog")
    parser.add_argument("--frames-dir", type=Path, default=FRAME_CACHE_DIR, help="Frame image cache directory")
    parser.add_argument("--frames-url", default=FRAMES_URL, help="Base URL for frame downloads")
    parser.add_argument("--download", action="store_true", help="Download frames missing from the cache")
    parser.add_argument("--list-devices", action="store_true", help="List devices in the catalog and exit")
    args = parser.parse_args(argv)

    if not args.catalog.exists():
        print(f"Frame catalog not found: {args.catalog} (build one with dframe-parse)", file=sys.stderr)
        return 1
    catalog = FrameCatalog.load(args.catalog)

    if args.list_devices:
        for device in catalog.devices():
            print(device)
        return 0

    sources, unmatched_inputs = expand_inputs(args.inputs)
    for raw in unmatched_inputs:
        print(f"No files matched {raw}", file=sys.stderr)
    if not sources:
        print("No image files or urls specified", file=sys.stderr)
        return 1
    if not args.frame:
        print("Choose at least one frame with --frame (see --list-devices)", file=sys.stderr)
        return 1

    frames, unmatched_queries = choose_frames(catalog, args.frame)
    for query in unmatched_queries:
        print(f"No frame matches '{query}'", file=sys.stderr)
    if not frames:
        return 1

    store = FrameStore(args.frames_dir, base_url=args.frames_url)
    failures = len(unmatched_inputs) + len(unmatched_queries)
    available: list[FrameRecord] = []
    listener = ProgressPrinter()
    for record in frames:
        if store.is_cached(record):
            available.append(record)
        elif not args.download:
            print(f"Frame {record.rel_path} is not cached; rerun with --download", file=sys.stderr)
            failures += 1
        else:
            try:
                store.download(record, listener)
                available.append(record)
            except AssetUnavailable:
                failures += 1

    args.output.mkdir(parents=True, exist_ok=True)
    frame_images: Dict[str, Image.Image] = {}
    taken: Set[Path] = set()

    for source in sources:
        try:
            asset = resolve_source(source)
            source_image = decode_image(asset.data, source=source)
        except DeviceFrameError as exc:
            print(f"FAILED {source}: {exc}", file=sys.stderr)
            failures += 1
            continue

        for record in available:
            out_path = output_path(args.output, asset, record, taken)
            try:
                if record.rel_path not in frame_images:
                    frame_images[record.rel_path] = store.open(record)
                result = composite(record, frame_images[record.rel_path], source_image)
                out_path.write_bytes(encode_image(result))
            except (DeviceFrameError, OSError) as exc:
                print(f"FAILED {source} in {record.display_name}: {exc}", file=sys.stderr)
                failures += 1
                continue
            print(f"WROTE: {out_path}")

    return 0 if failures == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
