"""Shared fixtures for the test suite."""

import io

import pytest
from PIL import Image

from intelliocr import config


def _image_bytes(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    color = (200, 30, 30, 255) if mode == "RGBA" else (200, 30, 30)
    if mode == "L":
        color = 128
    img = Image.new(mode, (width, height), color)
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
def make_image():
    """Factory for in-memory test images."""
    return _image_bytes


@pytest.fixture
def workspace_path(tmp_path, monkeypatch):
    """Point the workspace store at a temporary file."""
    path = tmp_path / "workspace.json"
    monkeypatch.setattr(config, "WORKSPACE_PATH", path)
    return path
