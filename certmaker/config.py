from __future__ import annotations

from pathlib import Path
from typing import List


BASE_DIR = Path(__file__).resolve().parents[1]
OUT_DIR = BASE_DIR / "out"
DB_PATH = OUT_DIR / "certmaker.db"

TEMPLATE_VERSION = "1.0"

# A4 landscape at 96 DPI
DEFAULT_CANVAS_WIDTH = 1123.0
DEFAULT_CANVAS_HEIGHT = 794.0

# 96 DPI raster -> 72 pt/inch PDF space
PX_TO_PT = 0.75

IMAGE_DECODE_TIMEOUT = 5.0

DEFAULT_FONT_SIZE = 16.0
MIN_FONT_SIZE = 6.0
DEFAULT_FONT_FAMILY = "Arial"
DEFAULT_TEXT_COLOR = "#000000"

FONT_DIRS: List[Path] = [
    BASE_DIR / "assets" / "fonts",
    Path("/usr/share/fonts/truetype/dejavu"),
    Path("/usr/share/fonts/truetype/liberation"),
    Path("/usr/share/fonts/dejavu"),
]


def set_out_dir(path: Path) -> None:
    global OUT_DIR, DB_PATH
    OUT_DIR = path
    DB_PATH = OUT_DIR / "certmaker.db"
