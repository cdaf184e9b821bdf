"""Render one campaign visual from the command line.

Usage (from backend/):
    python -m scripts.render_visual --photo me.jpg [--text "Ma culture est ma force"] [--theme green|red] [--out out/]

Handy for checking layout changes without the page. Static assets come from
VISUAL_LOGO_PATH / VISUAL_SPRITE_PATH (see settings.py); backend/.env is read
if present.
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import logging
from pathlib import Path

from dotenv import load_dotenv

# Load backend/.env before importing modules that read settings at import time
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

from domain.errors import VisualError  # noqa: E402
from domain.options import DEFAULT_CUSTOM_TEXT, VisualOptions  # noqa: E402
from services.share_links import download_filename  # noqa: E402
from services.visual_generator import generate_visual  # noqa: E402

logger = logging.getLogger("render_visual")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render a campaign visual from a photo.")
    parser.add_argument("--photo", required=True, help="Photo path, URL or data URI (JPEG or PNG).")
    parser.add_argument("--text", default=DEFAULT_CUSTOM_TEXT, help="Custom slogan (max 60 characters).")
    parser.add_argument("--theme", choices=["green", "red"], default="green")
    parser.add_argument("--out", default=".", help="Output directory.")
    parser.add_argument("--name", default=None, help="Output filename (defaults to a timestamped name).")
    return parser


def main(argv: list[str] | None = None) -> int:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = build_parser().parse_args(argv)

    photo = args.photo
    if not photo.startswith(("http://", "https://", "data:", "file://")):
        photo = str(Path(photo).expanduser().resolve())
    options = VisualOptions(photo=photo, customText=args.text, theme=args.theme)

    try:
        visual = asyncio.run(generate_visual(options))
    except VisualError as exc:
        logger.error("[render_visual] failed: %s", exc)
        return 1

    out_path = visual.save(Path(args.out) / (args.name or download_filename()))
    sha = hashlib.sha256(visual.data).hexdigest()[:12]
    logger.info("[render_visual] theme=%s size=%sx%s output=%s sha=%s", args.theme, visual.width, visual.height, out_path, sha)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
