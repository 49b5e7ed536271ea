#!/usr/bin/env python3

from __future__ import annotations

import json
import random
import sys
import tempfile
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from pathlib import Path
from unittest import mock

from PIL import Image

TOOL_DIR = Path(__file__).resolve().parents[1]
if str(TOOL_DIR) not in sys.path:
    sys.path.insert(0, str(TOOL_DIR))

import frame_catalog
from frame_catalog import FrameCatalog, FrameRecord, build_catalog, list_frame_files, load_pixel_ratios
from frame_config import PIXEL_RATIOS_PATH
from frame_geometry import Rect

FRAMES = {
    "Phones/Apple iPhone 6s/Apple iPhone 6s Gold.png": ((60, 120), (8, 20, 52, 100)),
    "Phones/Apple iPhone 6s/Apple iPhone 6s Gold Shadow.png": ((70, 130), (13, 25, 57, 105)),
    "Phones/Google Pixel/Google Pixel Very Black.png": ((50, 100), (5, 12, 45, 88)),
    "Tablets/Apple iPad Pro/Apple iPad Pro Silver.png": ((120, 90), (10, 10, 110, 80)),
}


def write_frame(root: Path, rel_path: str, size: tuple[int, int], box: tuple[int, int, int, int]) -> None:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = Image.new("RGBA", size, (25, 25, 25, 255))
    frame.paste((0, 0, 0, 0), box)
    frame.save(path, format="PNG")


class CatalogBuildTests(unittest.TestCase):
    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.root = Path(self._temp.name) / "frames"
        for rel_path, (size, box) in FRAMES.items():
            write_frame(self.root, rel_path, size, box)
        (self.root / "README.txt").write_text("not a frame\n", encoding="utf-8")
        self.ratios = {"Apple iPhone 6s": 2.0, "Apple iPad Pro": 2.0}

    def tearDown(self) -> None:
        self._temp.cleanup()

    def test_records_are_sorted_and_described(self) -> None:
        result = build_catalog(self.root, self.ratios)

        self.assertTrue(result.is_complete)
        self.assertEqual([record.rel_path for record in result.records], sorted(FRAMES))

        gold = result.catalog.get("Phones/Apple iPhone 6s/Apple iPhone 6s Gold.png")
        self.assertEqual(gold.category, "Phones")
        self.assertEqual(gold.device, "Apple iPhone 6s")
        self.assertEqual(gold.name, "Apple iPhone 6s Gold")
        self.assertEqual(gold.frame, Rect(top=20, left=8, bottom=100, right=52))
        self.assertEqual(gold.pixel_ratio, 2.0)
        self.assertFalse(gold.shadow)
        self.assertEqual(gold.tags, ("apple", "iphone", "6s", "gold"))

        pixel = result.catalog.get("Phones/Google Pixel/Google Pixel Very Black.png")
        self.assertIsNone(pixel.pixel_ratio)
        self.assertEqual(pixel.effective_pixel_ratio, 1.0)

        shadow = result.catalog.get("Phones/Apple iPhone 6s/Apple iPhone 6s Gold Shadow.png")
        self.assertTrue(shadow.shadow)
        self.assertEqual(shadow.name, "Apple iPhone 6s Gold Shadow")
        self.assertEqual(shadow.display_name, "Apple iPhone 6s Gold Shadow [shadow]")

    def test_bad_frames_are_reported_and_skipped(self) -> None:
        broken = self.root / "Phones" / "Broken Phone" / "Broken Phone.png"
        broken.parent.mkdir(parents=True)
        broken.write_bytes(b"not really a png")
        write_frame(self.root, "Phones/Solid Phone/Solid Phone.png", (40, 40), (0, 0, 4, 4))

        result = build_catalog(self.root, self.ratios)

        self.assertFalse(result.is_complete)
        self.assertEqual(len(result.records), len(FRAMES))
        self.assertEqual(
            [(failure.rel_path, failure.error_type) for failure in result.failures],
            [
                ("Phones/Broken Phone/Broken Phone.png", "DecodeError"),
                ("Phones/Solid Phone/Solid Phone.png", "GeometryNotFound"),
            ],
        )

    def test_limit_takes_first_sorted_frames(self) -> None:
        result = build_catalog(self.root, limit=2)
        self.assertEqual([record.rel_path for record in result.records], sorted(FRAMES)[:2])
        self.assertEqual(len(list_frame_files(self.root)), len(FRAMES))

    def test_output_is_independent_of_completion_order(self) -> None:
        expected = build_catalog(self.root, self.ratios).catalog.dumps()
        original = frame_catalog.describe_frame

        for seed in (1, 2, 3):
            rng = random.Random(seed)
            delays = {rel_path: rng.uniform(0.0, 0.05) for rel_path in FRAMES}

            def slow_describe(path: Path, root: Path, ratios):
                time.sleep(delays[path.relative_to(root).as_posix()])
                return original(path, root, ratios)

            with self.subTest(seed=seed):
                with mock.patch.object(frame_catalog, "describe_frame", side_effect=slow_describe):
                    with ThreadPoolExecutor(max_workers=4) as pool:
                        result = build_catalog(self.root, self.ratios, executor=pool)
                self.assertEqual(result.catalog.dumps(), expected)

    def test_crashed_worker_fails_only_its_frame(self) -> None:
        original = frame_catalog.describe_frame
        crashed = "Phones/Google Pixel/Google Pixel Very Black.png"

        def flaky_describe(path: Path, root: Path, ratios):
            if path.relative_to(root).as_posix() == crashed:
                raise BrokenProcessPool("worker died")
            return original(path, root, ratios)

        with mock.patch.object(frame_catalog, "describe_frame", side_effect=flaky_describe):
            with ThreadPoolExecutor(max_workers=2) as pool:
                result = build_catalog(self.root, self.ratios, executor=pool)

        self.assertFalse(result.is_complete)
        self.assertEqual(
            [(failure.rel_path, failure.error_type) for failure in result.failures],
            [(crashed, "BrokenProcessPool")],
        )
        self.assertEqual(
            [record.rel_path for record in result.records],
            sorted(rel_path for rel_path in FRAMES if rel_path != crashed),
        )

    def test_process_pool_matches_serial_build(self) -> None:
        serial = build_catalog(self.root, self.ratios)
        parallel = build_catalog(self.root, self.ratios, workers=2)
        self.assertEqual(parallel.catalog.dumps(), serial.catalog.dumps())

    def test_catalog_file_round_trip(self) -> None:
        catalog = build_catalog(self.root, self.ratios).catalog
        out_path = Path(self._temp.name) / "data" / "frames.json"
        catalog.save(out_path)

        payload = json.loads(out_path.read_text(encoding="utf-8"))
        self.assertIsInstance(payload, list)
        self.assertEqual(
            list(payload[0]),
            ["relPath", "category", "device", "frame", "name", "pixelRatio", "shadow", "tags"],
        )
        self.assertEqual(payload[0]["relPath"], "Phones/Apple iPhone 6s/Apple iPhone 6s Gold Shadow.png")
        self.assertEqual(
            payload[0]["frame"],
            {"top": 25, "left": 13, "bottom": 105, "right": 57, "width": 44, "height": 80},
        )
        self.assertEqual(FrameCatalog.load(out_path).records, catalog.records)


class CatalogQueryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = FrameCatalog(
            [
                FrameRecord(
                    rel_path=rel_path,
                    category=rel_path.split("/")[0],
                    device=rel_path.split("/")[1],
                    name=Path(rel_path).stem,
                    frame=Rect(top=box[1], left=box[0], bottom=box[3], right=box[2]),
                    shadow="shadow" in rel_path.lower(),
                    tags=tuple(Path(rel_path).stem.lower().split()),
                )
                for rel_path, (_, box) in sorted(FRAMES.items())
            ]
        )

    def test_devices_are_unique_and_sorted(self) -> None:
        self.assertEqual(self.catalog.devices(), ["Apple iPad Pro", "Apple iPhone 6s", "Google Pixel"])

    def test_find(self) -> None:
        names = lambda query: [record.name for record in self.catalog.find(query)]  # noqa: E731
        self.assertEqual(names("iphone gold"), ["Apple iPhone 6s Gold Shadow", "Apple iPhone 6s Gold"])
        self.assertEqual(names("TABLETS"), ["Apple iPad Pro Silver"])
        self.assertEqual(names("pixel black"), ["Google Pixel Very Black"])
        self.assertEqual(names("nokia"), [])
        self.assertEqual(names("   "), [])
        self.assertEqual(
            names("Phones/Apple iPhone 6s/Apple iPhone 6s Gold.png"),
            ["Apple iPhone 6s Gold"],
        )

    def test_get_unknown_path(self) -> None:
        with self.assertRaises(KeyError):
            self.catalog.get("Phones/Nope/Nope.png")

    def test_loads_rejects_non_list(self) -> None:
        with self.assertRaises(ValueError):
            FrameCatalog.loads('{"relPath": "x"}')

    def test_null_pixel_ratio_round_trips(self) -> None:
        loaded = FrameCatalog.loads(self.catalog.dumps())
        self.assertEqual(loaded.records, self.catalog.records)
        self.assertIsNone(loaded.records[0].pixel_ratio)


class PixelRatioTableTests(unittest.TestCase):
    def test_list_and_mapping_forms(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            listed = Path(temp_dir) / "listed.json"
            listed.write_text(
                json.dumps([{"name": "Google Pixel", "pixelRatio": 2.625}, {"name": "Unknown", "pixelRatio": None}]),
                encoding="utf-8",
            )
            mapped = Path(temp_dir) / "mapped.json"
            mapped.write_text(json.dumps({"Google Pixel": 2.625}), encoding="utf-8")

            self.assertEqual(load_pixel_ratios(listed), {"Google Pixel": 2.625})
            self.assertEqual(load_pixel_ratios(mapped), {"Google Pixel": 2.625})

    def test_bundled_table(self) -> None:
        table = load_pixel_ratios(PIXEL_RATIOS_PATH)
        self.assertEqual(table["Apple iPhone 6s"], 2.0)
        self.assertEqual(table["Apple iPhone 6s Plus"], 3.0)


if __name__ == "__main__":
    unittest.main()
