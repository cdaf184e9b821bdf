"""
Download naming and social share intents for a generated visual.
"""
import time
from typing import Optional
from urllib.parse import quote

DOWNLOAD_PREFIX = "vodun-days"
SHARE_CAPTION = "Mon identité. Ma culture. #VodunDays"
SHARE_PLATFORMS = ("whatsapp", "facebook", "instagram")


def download_filename(now_ms: Optional[int] = None) -> str:
    """Timestamped PNG filename, e.g. vodun-days-1737000000000.png."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{DOWNLOAD_PREFIX}-{now_ms}.png"


def share_url(platform: str, page_url: str, caption: str = SHARE_CAPTION) -> Optional[str]:
    """
    Web share intent for a platform.

    Instagram has no web intent; None means "download and post from the app".
    """
    platform = platform.strip().lower()
    if platform == "whatsapp":
        return f"https://wa.me/?text={quote(caption, safe='')}"
    if platform == "facebook":
        return f"https://www.facebook.com/sharer/sharer.php?u={quote(page_url, safe='')}"
    if platform == "instagram":
        return None
    raise ValueError(f"Unsupported share platform: {platform}")
