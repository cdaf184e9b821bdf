import sys
from io import BytesIO
from pathlib import Path

import pytest

# Ensure the backend package root is on sys.path for direct pytest runs
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from PIL import Image  # noqa: E402

from services.asset_loader import StaticAssetCache, reset_static_cache  # noqa: E402


def encode_image(size, color, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    buf = BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def write_image(path: Path, size, color, fmt: str = "PNG", mode: str = "RGB") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_image(size, color, fmt=fmt, mode=mode))
    return path


LOGO_COLOR = (10, 20, 200)
SPRITE_COLOR = (250, 250, 240, 255)


@pytest.fixture
def static_files(tmp_path):
    logo = write_image(tmp_path / "static" / "logo.png", (520, 200), LOGO_COLOR)
    sprite = write_image(tmp_path / "static" / "sprite.png", (100, 100), SPRITE_COLOR, mode="RGBA")
    return logo, sprite


@pytest.fixture
def static_cache(static_files):
    logo, sprite = static_files
    return StaticAssetCache(logo_path=logo, sprite_path=sprite, sprite_enabled=True)


@pytest.fixture(autouse=True)
def _fresh_static_cache():
    reset_static_cache(None)
    yield
    reset_static_cache(None)
