"""
Resource loader for the visual compositor.

Fetches and decodes every image a composition needs. All refs are
requested concurrently; the call resolves once every decode finished and
fails as soon as any one of them fails. Nothing is retried here.

The logo and decorative sprite are bundled, read-only assets, so they are
decoded once per process and kept in StaticAssetCache. Only the user photo
is decoded for every request.
"""
import asyncio
import base64
import logging
import threading
import time
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import unquote_to_bytes, urlparse
from urllib.request import url2pathname

import numpy as np
import requests
from PIL import Image, ImageOps

from domain.errors import AssetLoadError
from domain.models import AssetRef, CompositionAssets, DecodedAsset
from settings import settings

logger = logging.getLogger(__name__)


# 16-bit grayscale PNGs decode to these; convert("RGBA") would clamp them
_WIDE_GRAY_MODES = ("I", "I;16", "I;16B", "I;16L", "I;16N")


def _gray_to_8bit(img: Image.Image) -> Image.Image:
    arr = np.clip(np.asarray(img).astype(np.int64), 0, 65535) >> 8
    return Image.fromarray(arr.astype(np.uint8))


def _parse_data_uri(uri: str) -> bytes:
    header, sep, payload = uri.partition(",")
    if not sep:
        raise ValueError("malformed data URI (missing ',')")
    if header.endswith(";base64"):
        return base64.b64decode(payload, validate=True)
    return unquote_to_bytes(payload)


class AssetLoader:
    """Turns AssetRefs into decoded RGBA images."""

    def __init__(self, timeout: Optional[float] = None, user_agent: Optional[str] = None):
        self.timeout = timeout if timeout is not None else settings.ASSET_FETCH_TIMEOUT
        self.headers = {"User-Agent": user_agent or settings.ASSET_USER_AGENT}

    async def load_all(self, refs: Sequence[AssetRef]) -> List[DecodedAsset]:
        """
        Load every ref concurrently and return the decoded assets in ref order.

        Raises AssetLoadError for the first failure observed; loads still in
        flight are cancelled (a worker thread already reading may finish, but
        its result is dropped).
        """
        if not refs:
            return []
        tasks = [asyncio.create_task(asyncio.to_thread(self.load_one, ref)) for ref in refs]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        failed = [t for t in tasks if t in done and t.exception() is not None]
        if failed:
            for task in pending:
                task.cancel()
            raise failed[0].exception()
        return [t.result() for t in tasks]

    def load_one(self, ref: AssetRef) -> DecodedAsset:
        """Fetch and decode a single ref (blocking)."""
        started = time.perf_counter()
        data = self._read_bytes(ref)
        image = self._decode(ref, data)
        logger.debug(
            "[loader] decoded %s size=%sx%s bytes=%s in %.1fms",
            ref.label,
            image.width,
            image.height,
            len(data),
            (time.perf_counter() - started) * 1000,
        )
        return DecodedAsset(ref=ref, image=image)

    def _read_bytes(self, ref: AssetRef) -> bytes:
        source = ref.source
        try:
            if isinstance(source, bytes):
                return source
            if isinstance(source, Path):
                return source.read_bytes()
            if source.startswith("data:"):
                return _parse_data_uri(source)
            if source.startswith(("http://", "https://")):
                resp = requests.get(source, headers=self.headers, timeout=self.timeout)
                resp.raise_for_status()
                return resp.content
            if source.startswith("file://"):
                return Path(url2pathname(urlparse(source).path)).read_bytes()
            return Path(source).read_bytes()
        except (OSError, ValueError, requests.RequestException) as exc:
            logger.warning("[loader] fetch failed for %s: %s", ref.label, exc)
            raise AssetLoadError(ref, exc) from exc

    def _decode(self, ref: AssetRef, data: bytes) -> Image.Image:
        try:
            with Image.open(BytesIO(data)) as img:
                img.load()
                img = ImageOps.exif_transpose(img)
                if img.mode in _WIDE_GRAY_MODES:
                    img = _gray_to_8bit(img)
                return img.convert("RGBA")
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
            # UnidentifiedImageError is an OSError; truncated PNG chunks surface as SyntaxError
            logger.warning("[loader] decode failed for %s: %s", ref.label, exc)
            raise AssetLoadError(ref, exc) from exc


@dataclass
class StaticAssets:
    logo: DecodedAsset
    sprite: Optional[DecodedAsset] = None


class StaticAssetCache:
    """
    Process-wide holder for the decoded logo and sprite.

    Filled by the first composition (in the same fan-out as its photo) or
    by an explicit warm() at startup, then reused read-only.
    """

    def __init__(
        self,
        logo_path: Optional[Path] = None,
        sprite_path: Optional[Path] = None,
        sprite_enabled: Optional[bool] = None,
    ):
        self.logo_path = Path(logo_path or settings.VISUAL_LOGO_PATH)
        self.sprite_enabled = settings.VISUAL_SPRITE_ENABLED if sprite_enabled is None else sprite_enabled
        self.sprite_path = Path(sprite_path or settings.VISUAL_SPRITE_PATH)
        self._assets: Optional[StaticAssets] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._assets is not None

    def refs(self) -> List[AssetRef]:
        refs = [AssetRef.from_path(self.logo_path, label="logo")]
        if self.sprite_enabled:
            refs.append(AssetRef.from_path(self.sprite_path, label="sprite"))
        return refs

    def get(self) -> Optional[StaticAssets]:
        return self._assets

    def store(self, decoded: Sequence[DecodedAsset]) -> StaticAssets:
        logo = decoded[0]
        sprite = decoded[1] if self.sprite_enabled and len(decoded) > 1 else None
        with self._lock:
            if self._assets is None:
                self._assets = StaticAssets(logo=logo, sprite=sprite)
                logger.info(
                    "[loader] cached static assets logo=%s sprite=%s",
                    self.logo_path.name,
                    self.sprite_path.name if sprite else None,
                )
            return self._assets

    async def warm(self, loader: AssetLoader) -> StaticAssets:
        cached = self.get()
        if cached is not None:
            return cached
        return self.store(await loader.load_all(self.refs()))

    def clear(self) -> None:
        with self._lock:
            self._assets = None


_STATIC_CACHE: Optional[StaticAssetCache] = None
_STATIC_CACHE_LOCK = threading.Lock()


def get_static_cache() -> StaticAssetCache:
    global _STATIC_CACHE
    with _STATIC_CACHE_LOCK:
        if _STATIC_CACHE is None:
            _STATIC_CACHE = StaticAssetCache()
        return _STATIC_CACHE


def reset_static_cache(cache: Optional[StaticAssetCache] = None) -> None:
    """Swap the process-wide cache (None rebuilds it from settings on next use)."""
    global _STATIC_CACHE
    with _STATIC_CACHE_LOCK:
        _STATIC_CACHE = cache


async def load_composition_assets(
    photo_ref: AssetRef,
    loader: Optional[AssetLoader] = None,
    cache: Optional[StaticAssetCache] = None,
) -> CompositionAssets:
    """
    Load what one composition needs. On a cold cache the static assets are
    fetched in the same concurrent batch as the photo.
    """
    loader = loader or AssetLoader()
    cache = cache or get_static_cache()
    static = cache.get()
    if static is not None:
        (photo,) = await loader.load_all([photo_ref])
    else:
        static_refs = cache.refs()
        decoded = await loader.load_all([*static_refs, photo_ref])
        static = cache.store(decoded[: len(static_refs)])
        photo = decoded[-1]
    return CompositionAssets(photo=photo, logo=static.logo, sprite=static.sprite)
