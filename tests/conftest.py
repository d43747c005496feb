from __future__ import annotations

import base64
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from certmaker import config
from certmaker.models import reset_engine


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    original = config.OUT_DIR
    path = tmp_path / "out"
    config.set_out_dir(path)
    reset_engine()
    yield path
    config.set_out_dir(original)
    reset_engine()


def png_bytes(color: str = "red", size: tuple[int, int] = (20, 10)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def data_uri(color: str = "red", size: tuple[int, int] = (20, 10)) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(color, size)).decode("ascii")


@pytest.fixture
def make_data_uri():
    return data_uri


@pytest.fixture
def make_png():
    return png_bytes
