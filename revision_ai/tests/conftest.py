from io import BytesIO

import pytest
from PIL import Image


def make_png(width: int = 64, height: int = 48, mode: str = "RGB", color=(200, 120, 40)) -> bytes:
    buffer = BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def mock_env(monkeypatch):
    monkeypatch.setenv("BACKEND_MODE", "mock")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")


@pytest.fixture
def image_factory():
    return make_png
