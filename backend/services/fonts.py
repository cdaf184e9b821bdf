"""
Font lookup for the visual compositor.

Configured fonts win; otherwise common system sans fonts are tried, and as
a last resort Pillow's bundled scalable default.
"""
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from PIL import ImageFont

from settings import settings

logger = logging.getLogger(__name__)

_REGULAR_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/Library/Fonts/Arial.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
]
_BOLD_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/Library/Fonts/Arial Bold.ttf",
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
]


def _candidates(bold: bool) -> List[str]:
    configured: Optional[Path] = settings.VISUAL_FONT_BOLD_PATH if bold else settings.VISUAL_FONT_PATH
    paths = [str(configured)] if configured else []
    if bold and settings.VISUAL_FONT_PATH and not settings.VISUAL_FONT_BOLD_PATH:
        # a single configured family beats a system bold
        paths.append(str(settings.VISUAL_FONT_PATH))
    return paths + (_BOLD_CANDIDATES if bold else _REGULAR_CANDIDATES)


@lru_cache(maxsize=2)
def resolve_font_path(bold: bool = False) -> Optional[str]:
    for path in _candidates(bold):
        if os.path.exists(path):
            return path
    logger.warning("[fonts] no %s TrueType font found; using Pillow default", "bold" if bold else "regular")
    return None


@lru_cache(maxsize=64)
def load_font(size: int, bold: bool = False) -> ImageFont.FreeTypeFont:
    path = resolve_font_path(bold)
    if path:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            logger.warning("[fonts] failed to open %s; using Pillow default", path)
    return ImageFont.load_default(size)


def clear_font_cache() -> None:
    resolve_font_path.cache_clear()
    load_font.cache_clear()
