"""
Fixed-size RGBA drawing surface with scoped layers.

Every drawing step gets its own transparent layer from `CanvasSurface.layer()`;
opacity, clip mask and effects apply to that layer only and it is merged onto
the surface when the block exits. No style state survives from one step to
the next.
"""
import contextlib
from dataclasses import dataclass
from io import BytesIO
from typing import Iterator, Optional, Tuple

from PIL import Image, ImageDraw

from domain.errors import RenderError
from domain.models import CANVAS_SIZE

UPSCALE_FACTOR = 4

Color = Tuple[int, ...]
Box = Tuple[int, int, int, int]


def with_alpha(color: Color, alpha: float) -> Tuple[int, int, int, int]:
    """RGB(A) color with its alpha replaced by `alpha` in 0..1."""
    return (color[0], color[1], color[2], int(round(max(0.0, min(1.0, alpha)) * 255)))


def scale_alpha(img: Image.Image, opacity: float) -> Image.Image:
    """Return a copy of an RGBA image with its alpha multiplied by opacity."""
    if opacity >= 1.0:
        return img
    out = img.copy()
    alpha = out.getchannel("A").point(lambda p: int(round(p * max(0.0, opacity))))
    out.putalpha(alpha)
    return out


def circle_mask(diameter: int) -> Image.Image:
    """Anti-aliased filled disc as an L mask of size diameter x diameter."""
    big = diameter * UPSCALE_FACTOR
    mask = Image.new("L", (big, big), 0)
    ImageDraw.Draw(mask).ellipse((0, 0, big - 1, big - 1), fill=255)
    return mask.resize((diameter, diameter), resample=Image.Resampling.LANCZOS)


def ring_mask(outer_radius: int, width: int) -> Image.Image:
    """Anti-aliased ring mask; the band spans outer_radius - width to outer_radius."""
    diameter = outer_radius * 2
    big = diameter * UPSCALE_FACTOR
    mask = Image.new("L", (big, big), 0)
    ImageDraw.Draw(mask).ellipse((0, 0, big - 1, big - 1), outline=255, width=width * UPSCALE_FACTOR)
    return mask.resize((diameter, diameter), resample=Image.Resampling.LANCZOS)


@dataclass
class Layer:
    image: Image.Image
    origin: Tuple[int, int]

    @property
    def draw(self) -> ImageDraw.ImageDraw:
        return ImageDraw.Draw(self.image)

    def local(self, x: float, y: float) -> Tuple[float, float]:
        """Surface coordinates to layer coordinates."""
        return (x - self.origin[0], y - self.origin[1])


class CanvasSurface:
    """A CANVAS_SIZE square surface owned by a single composition."""

    def __init__(self, width: int = CANVAS_SIZE, height: int = CANVAS_SIZE):
        try:
            self._image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        except (MemoryError, ValueError) as exc:
            raise RenderError(f"Could not allocate a {width}x{height} surface", exc) from exc

    @property
    def image(self) -> Image.Image:
        return self._image

    @property
    def size(self) -> Tuple[int, int]:
        return self._image.size

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    def fill(self, color: Color) -> None:
        """Solid fill over the whole surface."""
        rgba = tuple(color) if len(color) == 4 else (*color, 255)
        with self.layer() as layer:
            layer.image.paste(rgba, (0, 0, *self.size))

    def composite(
        self,
        src: Image.Image,
        dest: Tuple[int, int] = (0, 0),
        opacity: float = 1.0,
        mask: Optional[Image.Image] = None,
    ) -> None:
        """Alpha-composite src at dest; parts outside the surface are dropped."""
        if src.mode != "RGBA":
            src = src.convert("RGBA")
        if mask is not None:
            src = src.copy()
            alpha = Image.composite(src.getchannel("A"), Image.new("L", src.size, 0), mask)
            src.putalpha(alpha)
        src = scale_alpha(src, opacity)

        x, y = dest
        left, top = max(0, -x), max(0, -y)
        right = min(src.width, self.width - x)
        bottom = min(src.height, self.height - y)
        if right <= left or bottom <= top:
            return
        if (left, top, right, bottom) != (0, 0, src.width, src.height):
            src = src.crop((left, top, right, bottom))
        self._image.alpha_composite(src, dest=(x + left, y + top))

    @contextlib.contextmanager
    def layer(
        self,
        opacity: float = 1.0,
        mask: Optional[Image.Image] = None,
        box: Optional[Box] = None,
    ) -> Iterator[Layer]:
        """
        Scoped drawing layer.

        box limits the layer to a region (left, top, right, bottom) of the
        surface; mask, when given, must match the layer size and clips it.
        The layer is merged on normal exit and discarded if the block raises.
        """
        if box is None:
            box = (0, 0, self.width, self.height)
        size = (box[2] - box[0], box[3] - box[1])
        try:
            img = Image.new("RGBA", size, (0, 0, 0, 0))
        except (MemoryError, ValueError) as exc:
            raise RenderError(f"Could not allocate a {size[0]}x{size[1]} layer", exc) from exc
        layer = Layer(image=img, origin=(box[0], box[1]))
        yield layer
        self.composite(layer.image, dest=layer.origin, opacity=opacity, mask=mask)

    def encode_png(self, compress_level: int = 6) -> bytes:
        buf = BytesIO()
        try:
            self._image.convert("RGB").save(buf, format="PNG", compress_level=compress_level)
        except (MemoryError, OSError, ValueError) as exc:
            raise RenderError("Could not encode surface as PNG", exc) from exc
        return buf.getvalue()
