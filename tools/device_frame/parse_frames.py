#!/usr/bin/env python3
"""Extract screen rectangles from a tree of frame PNGs and build frames.json."""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

from frame_catalog import build_catalog, load_pixel_ratios
from frame_config import CATALOG_PATH, PIXEL_RATIOS_PATH


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Build the device frame catalog from frame images")
    parser.add_argument("--frames-dir", type=Path, required=True, help="Root laid out as category/device/name.png")
    parser.add_argument("--pixel-ratios", type=Path, default=PIXEL_RATIOS_PATH, help="Device pixel ratio table (JSON)")
    parser.add_argument("--write", "-w", action="store_true", help="Write the catalog to --out")
    parser.add_argument("--out", "-o", type=Path, default=CATALOG_PATH)
    parser.add_argument("--count", "-c", type=int, default=0, help="Only process the first N frames")
    parser.add_argument(
        "--parallel",
        "-p",
        type=int,
        nargs="?",
        const=0,
        default=1,
        help="Worker processes (no value: one per CPU)",
    )
    args = parser.parse_args(argv)

    if not args.frames_dir.is_dir():
        print(f"Frames dir not found: {args.frames_dir}", file=sys.stderr)
        return 1

    pixel_ratios = load_pixel_ratios(args.pixel_ratios) if args.pixel_ratios.exists() else {}
    workers = args.parallel if args.parallel > 0 else (os.cpu_count() or 1)

    start = time.monotonic()
    result = build_catalog(args.frames_dir, pixel_ratios, workers=workers, limit=args.count)
    took = time.monotonic() - start

    for record in result.records:
        shadow = "Shadow" if record.shadow else "No Shadow"
        print(" | ".join([record.category, record.device, record.name, shadow]))

    print("CATALOG BUILD COMPLETE")
    print(f"Processed {len(result.records) + len(result.failures)} frames with {workers} workers in {took:.1f}s")
    print(f"Frames: {len(result.records)} | Failures: {len(result.failures)}")

    if result.failures:
        print("FAILED FRAMES", file=sys.stderr)
        for failure in result.failures:
            print(f"  - {failure.rel_path}: {failure.error_type}: {failure.message}", file=sys.stderr)

    if args.write:
        result.catalog.save(args.out)
        print(f"WROTE CATALOG: {args.out}")

    return 0 if result.is_complete else 1


if __name__ == "__main__":
    raise SystemExit(main())
