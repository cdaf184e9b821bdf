import os
from pathlib import Path
from typing import Optional

# Basic settings helper to read environment configuration.

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_ASSETS_DIR = BASE_DIR / "assets" / "visual"

FONT_POLICIES = ("tiered", "fixed")


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(val: str | None, default: int, lo: Optional[int] = None, hi: Optional[int] = None) -> int:
    if val is None or not val.strip():
        return default
    try:
        parsed = int(val)
    except ValueError:
        return default
    if (lo is not None and parsed < lo) or (hi is not None and parsed > hi):
        return default
    return parsed


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    try:
        parsed = float(val)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _as_path(val: str | None) -> Optional[Path]:
    if val is None or not val.strip():
        return None
    return Path(val).expanduser()


class Settings:
    def __init__(self) -> None:
        self.VISUAL_ASSETS_DIR: Path = _as_path(os.getenv("VISUAL_ASSETS_DIR")) or DEFAULT_ASSETS_DIR
        self.VISUAL_LOGO_PATH: Path = _as_path(os.getenv("VISUAL_LOGO_PATH")) or self.VISUAL_ASSETS_DIR / "vodun-days.png"
        self.VISUAL_SPRITE_PATH: Path = _as_path(os.getenv("VISUAL_SPRITE_PATH")) or self.VISUAL_ASSETS_DIR / "cowrie.png"
        self.VISUAL_SPRITE_ENABLED: bool = _as_bool(os.getenv("VISUAL_SPRITE_ENABLED"), True)
        self.VISUAL_FONT_PATH: Optional[Path] = _as_path(os.getenv("VISUAL_FONT_PATH"))
        self.VISUAL_FONT_BOLD_PATH: Optional[Path] = _as_path(os.getenv("VISUAL_FONT_BOLD_PATH"))
        self.VISUAL_PNG_COMPRESS_LEVEL: int = _as_int(os.getenv("VISUAL_PNG_COMPRESS_LEVEL"), 6, lo=0, hi=9)
        policy = (os.getenv("VISUAL_FONT_POLICY") or "tiered").strip().lower()
        self.VISUAL_FONT_POLICY: str = policy if policy in FONT_POLICIES else "tiered"
        self.ASSET_FETCH_TIMEOUT: float = _as_float(os.getenv("ASSET_FETCH_TIMEOUT"), 10.0)
        self.ASSET_USER_AGENT: str = os.getenv("ASSET_USER_AGENT") or "vodun-days-visual/1.0"


settings = Settings()
