"""
Entry point used by the page: options in, encoded visual out.

Loading is the only asynchronous phase. Once every asset is decoded the
compositor runs to completion without yielding, so no other caller can
observe a half-drawn surface. A caller that no longer wants the result
simply cancels the awaiting task while loading is still in flight.
"""
import logging
from typing import Any, Mapping, Optional, Union

from domain.models import EncodedImage
from domain.options import VisualOptions
from services.asset_loader import AssetLoader, StaticAssetCache, load_composition_assets
from services.visual_compositor import compose

logger = logging.getLogger(__name__)


def _coerce_options(options: Union[VisualOptions, Mapping[str, Any]]) -> VisualOptions:
    if isinstance(options, VisualOptions):
        return options
    return VisualOptions.model_validate(dict(options))


async def generate_visual(
    options: Union[VisualOptions, Mapping[str, Any]],
    loader: Optional[AssetLoader] = None,
    cache: Optional[StaticAssetCache] = None,
) -> EncodedImage:
    """
    Build one campaign visual.

    Raises AssetLoadError if any image fails to load (nothing is drawn in
    that case) and RenderError if the surface cannot be allocated.
    """
    opts = _coerce_options(options)
    request = opts.to_request()
    assets = await load_composition_assets(request.photo, loader=loader, cache=cache)
    logger.debug(
        "[visual] assets ready photo=%sx%s sprite=%s",
        assets.photo.width,
        assets.photo.height,
        assets.sprite is not None,
    )
    return compose(request, assets)
