"""
Campaign visual compositor.

Paints one 1080x1080 square from a user photo, a theme and a slogan, in a
fixed layer order (later layers cover earlier ones):

    1. background fill          7. top title
    2. radial accent gradient   8. footer logo
    3. decorative motifs        9. footer slogan (fitted, drop shadow)
    4. decorative chains       10. signature
    5. circular photo crop     11. PNG encode
    6. circle border

The draw pass is synchronous and stateless across calls. Each layer is
drawn on its own scoped layer of a fresh CanvasSurface, so opacity, clip
and shadow never carry over into the next layer.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
from PIL import Image, ImageFilter

from domain.errors import RenderError
from domain.models import CANVAS_SIZE, CompositionAssets, CompositionRequest, EncodedImage, ThemeSpec
from services.canvas import CanvasSurface, circle_mask, ring_mask, with_alpha
from services.fonts import load_font
from services.text_layout import MeasureFn, TextBlockLayout, layout_text_block, pillow_measure_for_size
from settings import settings

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)
GOLD = (244, 196, 48)  # #f4c430
SHADOW_COLOR = (0, 0, 0)

# Shared center of the gradient and the photo circle, lifted to free the footer
CENTER_OFFSET_Y = 50
CENTER = (CANVAS_SIZE // 2, CANVAS_SIZE // 2 - CENTER_OFFSET_Y)

GRADIENT_RADIUS = CANVAS_SIZE / 1.5
GRADIENT_ALPHA = 0x40 / 255

MOTIF_BASE_SIZE = 80
MOTIF_OPACITY = 0.3

CHAIN_DASH = (5, 10)
CHAIN_LINE_WIDTH = 2
CHAIN_BEAD_RADIUS = 4
CHAIN_BEAD_SPACING = 20

CIRCLE_RADIUS = 280
BORDER_WIDTH = 12
BORDER_COLOR = GOLD

TITLE_TEXT = "MON IDENTITÉ. MA CULTURE."
TITLE_FONT_SIZE = 55
TITLE_BASELINE_Y = 110

FOOTER_MARGIN = 60
LOGO_WIDTH = 260
LOGO_TEXT_GAP = 40
FOOTER_BASELINE_Y = CANVAS_SIZE - FOOTER_MARGIN - 40

SLOGAN_COLOR = GOLD
SLOGAN_SHADOW_ALPHA = 0.7
SLOGAN_SHADOW_BLUR = 8

SIGNATURE_TEXT = "DESIGNÉ PAR TCB"
SIGNATURE_FONT_SIZE = 16
SIGNATURE_OPACITY = 0.4
SIGNATURE_BASELINE_Y = CANVAS_SIZE - 25


@dataclass(frozen=True)
class MotifPlacement:
    x: float
    y: float
    rotation_deg: float
    scale: float

    @property
    def size(self) -> int:
        return max(1, int(round(MOTIF_BASE_SIZE * self.scale)))


MOTIF_PLACEMENTS: Tuple[MotifPlacement, ...] = (
    MotifPlacement(80, 250, -20, 1.0),
    MotifPlacement(60, 340, 10, 0.8),
    MotifPlacement(100, 430, -30, 0.9),
    MotifPlacement(CANVAS_SIZE - 120, 80, 30, 1.0),
    MotifPlacement(CANVAS_SIZE - 100, 170, -15, 0.85),
    MotifPlacement(CANVAS_SIZE - 150, 900, 20, 0.9),
    MotifPlacement(CANVAS_SIZE - 80, 980, -25, 0.85),
)


@dataclass(frozen=True)
class ChainSpec:
    start: Tuple[float, float]
    end: Tuple[float, float]

    @property
    def length(self) -> float:
        return math.hypot(self.end[0] - self.start[0], self.end[1] - self.start[1])

    @property
    def bead_intervals(self) -> int:
        return int(math.floor(self.length / CHAIN_BEAD_SPACING))

    def point_at(self, t: float) -> Tuple[float, float]:
        return (
            self.start[0] + (self.end[0] - self.start[0]) * t,
            self.start[1] + (self.end[1] - self.start[1]) * t,
        )

    def bead_positions(self) -> List[Tuple[float, float]]:
        """Beads at every interval boundary, both endpoints included."""
        n = self.bead_intervals
        if n == 0:
            return [self.start]
        return [self.point_at(i / n) for i in range(n + 1)]

    def dash_segments(self) -> List[Tuple[Tuple[float, float], Tuple[float, float]]]:
        on, off = CHAIN_DASH
        total = self.length
        if total == 0:
            return []
        segments = []
        pos = 0.0
        while pos < total:
            end = min(pos + on, total)
            segments.append((self.point_at(pos / total), self.point_at(end / total)))
            pos += on + off
        return segments


CHAINS: Tuple[ChainSpec, ...] = (
    ChainSpec((200, 50), (150, 600)),
    ChainSpec((CANVAS_SIZE - 200, 100), (CANVAS_SIZE - 150, 550)),
)


@dataclass(frozen=True)
class CoverFit:
    """
    Placement of the photo inside the circle's bounding square.

    The photo is scaled so its shorter side matches the diameter and the
    longer side overflows, centered, on both ends. offset_x/offset_y are
    relative to the square's top-left and are <= 0.
    """
    source_width: int
    source_height: int
    diameter: int
    draw_width: float
    draw_height: float
    offset_x: float
    offset_y: float

    @classmethod
    def compute(cls, width: int, height: int, diameter: int) -> "CoverFit":
        aspect = width / height
        draw_w = draw_h = float(diameter)
        off_x = off_y = 0.0
        if aspect > 1:
            draw_w = diameter * aspect
            off_x = -(draw_w - diameter) / 2
        else:
            draw_h = diameter / aspect
            off_y = -(draw_h - diameter) / 2
        return cls(width, height, diameter, draw_w, draw_h, off_x, off_y)

    @property
    def aspect(self) -> float:
        return self.source_width / self.source_height

    @property
    def crops_horizontally(self) -> bool:
        return self.draw_width > self.diameter

    def source_box(self, width: int, height: int) -> Tuple[float, float, float, float]:
        """The part of a width x height photo that stays visible, in source pixels."""
        sx = self.draw_width / width
        sy = self.draw_height / height
        left, top = -self.offset_x / sx, -self.offset_y / sy
        return (left, top, left + self.diameter / sx, top + self.diameter / sy)

    def render(self, photo: Image.Image) -> Image.Image:
        """Resample only the visible region of photo into the diameter x diameter square."""
        box = self.source_box(photo.width, photo.height)
        try:
            return photo.resize((self.diameter, self.diameter), resample=Image.Resampling.LANCZOS, box=box)
        except (MemoryError, ValueError) as exc:
            raise RenderError(f"Could not resample a {photo.width}x{photo.height} photo", exc) from exc


@dataclass
class CompositionLayout:
    """Geometry of one composition; independent of theme colors."""
    center: Tuple[int, int]
    circle_radius: int
    cover_fit: CoverFit
    logo_box: Tuple[int, int, int, int]
    text: TextBlockLayout


def compute_layout(
    request: CompositionRequest,
    assets: CompositionAssets,
    measure_for_size: Optional[Callable[[int], MeasureFn]] = None,
    font_policy: Optional[str] = None,
) -> CompositionLayout:
    logo = assets.logo
    logo_height = max(1, int(round(logo.height / logo.width * LOGO_WIDTH)))
    logo_top = FOOTER_BASELINE_Y - logo_height
    text_left = FOOTER_MARGIN + LOGO_WIDTH + LOGO_TEXT_GAP
    text_right = CANVAS_SIZE - FOOTER_MARGIN
    text = layout_text_block(
        request.slogan,
        max_width=text_right - text_left,
        anchor_x=text_right,
        baseline_y=FOOTER_BASELINE_Y,
        measure_for_size=measure_for_size or pillow_measure_for_size(bold=True),
        policy=font_policy or settings.VISUAL_FONT_POLICY,
    )
    return CompositionLayout(
        center=CENTER,
        circle_radius=CIRCLE_RADIUS,
        cover_fit=CoverFit.compute(assets.photo.width, assets.photo.height, CIRCLE_RADIUS * 2),
        logo_box=(FOOTER_MARGIN, logo_top, FOOTER_MARGIN + LOGO_WIDTH, FOOTER_BASELINE_Y),
        text=text,
    )


def radial_gradient(size: Tuple[int, int], center: Tuple[float, float], radius: float, inner, outer, alpha: float) -> Image.Image:
    """RGBA radial gradient; pixels past `radius` keep the outer color."""
    w, h = size
    yy, xx = np.mgrid[0:h, 0:w].astype(np.float32)
    dist = np.hypot(xx + 0.5 - center[0], yy + 0.5 - center[1])
    t = np.clip(dist / radius, 0.0, 1.0)[..., None]
    rgb = np.asarray(inner, dtype=np.float32) * (1.0 - t) + np.asarray(outer, dtype=np.float32) * t
    a = np.full((h, w, 1), int(round(alpha * 255)), dtype=np.uint8)
    arr = np.concatenate([np.rint(rgb).astype(np.uint8), a], axis=2)
    return Image.fromarray(arr)


def _draw_background(surface: CanvasSurface, theme: ThemeSpec) -> None:
    surface.fill(theme.background)
    gradient = radial_gradient(
        surface.size, CENTER, GRADIENT_RADIUS, theme.accent_light, theme.accent_dark, GRADIENT_ALPHA
    )
    surface.composite(gradient)


def _draw_motifs(surface: CanvasSurface, sprite: Image.Image) -> None:
    for placement in MOTIF_PLACEMENTS:
        tile = sprite.resize((placement.size, placement.size), resample=Image.Resampling.LANCZOS)
        # PIL rotates counter-clockwise for positive angles; placements are clockwise
        tile = tile.rotate(-placement.rotation_deg, expand=True, resample=Image.Resampling.BICUBIC)
        dest = (int(round(placement.x - tile.width / 2)), int(round(placement.y - tile.height / 2)))
        surface.composite(tile, dest=dest, opacity=MOTIF_OPACITY)


def _draw_chains(surface: CanvasSurface, color) -> None:
    for chain in CHAINS:
        with surface.layer() as layer:
            draw = layer.draw
            for a, b in chain.dash_segments():
                draw.line([a, b], fill=with_alpha(color, 1.0), width=CHAIN_LINE_WIDTH)
            r = CHAIN_BEAD_RADIUS
            for x, y in chain.bead_positions():
                draw.ellipse((x - r, y - r, x + r, y + r), fill=with_alpha(color, 1.0))


def _draw_photo(surface: CanvasSurface, photo: Image.Image, layout: CompositionLayout) -> None:
    fit = layout.cover_fit
    cx, cy = layout.center
    r = layout.circle_radius
    surface.composite(fit.render(photo), dest=(cx - r, cy - r), mask=circle_mask(fit.diameter))


def _draw_border(surface: CanvasSurface, layout: CompositionLayout) -> None:
    # stroke straddles the circle edge: half inside, half outside
    outer = layout.circle_radius + BORDER_WIDTH // 2
    cx, cy = layout.center
    mask = ring_mask(outer, BORDER_WIDTH)
    ring = Image.new("RGBA", mask.size, with_alpha(BORDER_COLOR, 1.0))
    surface.composite(ring, dest=(cx - outer, cy - outer), mask=mask)


def _draw_title(surface: CanvasSurface) -> None:
    font = load_font(TITLE_FONT_SIZE, bold=True)
    with surface.layer() as layer:
        layer.draw.text((CENTER[0], TITLE_BASELINE_Y), TITLE_TEXT, font=font, fill=with_alpha(WHITE, 1.0), anchor="ms")


def _draw_logo(surface: CanvasSurface, logo: Image.Image, layout: CompositionLayout) -> None:
    left, top, right, bottom = layout.logo_box
    scaled = logo.resize((right - left, bottom - top), resample=Image.Resampling.LANCZOS)
    surface.composite(scaled, dest=(left, top))


def _draw_slogan(surface: CanvasSurface, text: TextBlockLayout) -> None:
    font = load_font(text.font_size, bold=True)
    with surface.layer() as layer:
        draw = layer.draw
        for line, baseline in zip(text.lines, text.baselines):
            draw.text((text.anchor_x, baseline), line, font=font, fill=with_alpha(SLOGAN_COLOR, 1.0), anchor="rs")
        glyphs = layer.image
        # canvas-style shadowBlur is roughly twice the gaussian radius
        blurred = glyphs.getchannel("A").filter(ImageFilter.GaussianBlur(radius=SLOGAN_SHADOW_BLUR / 2))
        shadow = Image.new("RGBA", glyphs.size, with_alpha(SHADOW_COLOR, 1.0))
        shadow.putalpha(blurred.point(lambda p: int(round(p * SLOGAN_SHADOW_ALPHA))))
        layer.image = Image.alpha_composite(shadow, glyphs)


def _draw_signature(surface: CanvasSurface) -> None:
    font = load_font(SIGNATURE_FONT_SIZE, bold=False)
    with surface.layer(opacity=SIGNATURE_OPACITY) as layer:
        layer.draw.text(
            (CENTER[0], SIGNATURE_BASELINE_Y), SIGNATURE_TEXT, font=font, fill=with_alpha(WHITE, 1.0), anchor="ms"
        )


def compose(
    request: CompositionRequest,
    assets: CompositionAssets,
    font_policy: Optional[str] = None,
    compress_level: Optional[int] = None,
) -> EncodedImage:
    """
    Render one visual and return it PNG-encoded.

    Raises RenderError when the surface, a layer or an intermediate image
    cannot be allocated, or when encoding fails.
    The computed CompositionLayout is returned in `meta["layout"]`.
    """
    started = time.perf_counter()
    layout = compute_layout(request, assets, font_policy=font_policy)
    surface = CanvasSurface(CANVAS_SIZE, CANVAS_SIZE)

    try:
        _draw_background(surface, request.theme)
        if assets.sprite is not None:
            _draw_motifs(surface, assets.sprite.image)
        _draw_chains(surface, request.theme.chain_color)
        _draw_photo(surface, assets.photo.image, layout)
        _draw_border(surface, layout)
        _draw_title(surface)
        _draw_logo(surface, assets.logo.image, layout)
        _draw_slogan(surface, layout.text)
        _draw_signature(surface)
    except MemoryError as exc:
        raise RenderError("Out of memory while drawing", exc) from exc

    level = settings.VISUAL_PNG_COMPRESS_LEVEL if compress_level is None else compress_level
    data = surface.encode_png(compress_level=level)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "[visual] composed theme=%s lines=%s font=%s bytes=%s in %.0fms",
        request.theme.name.value,
        layout.text.line_count,
        layout.text.font_size,
        len(data),
        elapsed_ms,
    )
    return EncodedImage(
        data=data,
        width=surface.width,
        height=surface.height,
        meta={"layout": layout, "theme": request.theme.name.value},
    )
