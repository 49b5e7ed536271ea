from __future__ import annotations

import os
import sys
from pathlib import Path

TOOL_DIR = Path(__file__).resolve().parent

CACHE_ROOT = Path(
    os.environ.get("DEVICEFRAME_CACHE") or (Path.home() / ".cache" / "deviceframe")
).expanduser()
FRAME_CACHE_DIR = CACHE_ROOT / "frames"

CATALOG_PATH = Path(os.environ.get("DEVICEFRAME_CATALOG") or (CACHE_ROOT / "frames.json")).expanduser()
PIXEL_RATIOS_PATH = Path(
    os.environ.get("DEVICEFRAME_PIXEL_RATIOS") or (TOOL_DIR / "data" / "pixel_ratios.json")
).expanduser()

FRAMES_URL = os.environ.get(
    "DEVICEFRAME_FRAMES_URL",
    "https://cdn.jsdelivr.net/gh/c0bra/deviceframe-frames@master/",
)


def env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if not 0 < value < float("inf"):
        print(f"Ignoring {name}={raw!r}; using {default}", file=sys.stderr)
        return default
    return value


HTTP_TIMEOUT_SECONDS = env_float("DEVICEFRAME_HTTP_TIMEOUT", 30.0)
DOWNLOAD_CHUNK_SIZE = 64 * 1024
USER_AGENT = "deviceframe/1.0 (+https://github.com/c0bra/deviceframe)"

SHADOW_SUFFIX = " [shadow]"
DEFAULT_PIXEL_RATIO = 1.0
FRAME_SUFFIX = ".png"
