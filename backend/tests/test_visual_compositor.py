import math
from io import BytesIO

import pytest
from PIL import Image

from conftest import LOGO_COLOR, SPRITE_COLOR
from domain.errors import RenderError
from domain.models import (
    CANVAS_SIZE,
    AssetRef,
    CompositionAssets,
    CompositionRequest,
    DecodedAsset,
    ThemeName,
    get_theme,
)
from services import canvas as canvas_mod
from services import visual_compositor as vc

PHOTO_COLOR = (200, 40, 60)


def _asset(size, color, label, mode="RGB"):
    img = Image.new(mode, size, color).convert("RGBA")
    return DecodedAsset(ref=AssetRef.from_bytes(b"", label=label), image=img)


def _assets(photo_size=(900, 600), sprite=True):
    return CompositionAssets(
        photo=_asset(photo_size, PHOTO_COLOR, "photo"),
        logo=_asset((520, 200), LOGO_COLOR, "logo"),
        sprite=_asset((100, 100), SPRITE_COLOR, "sprite", mode="RGBA") if sprite else None,
    )


def _request(theme="green", slogan="Ma culture est ma force"):
    return CompositionRequest(photo=AssetRef.from_bytes(b"", label="photo"), theme=get_theme(theme), slogan=slogan)


def _decode(visual):
    return Image.open(BytesIO(visual.data)).convert("RGB")


def _close(actual, expected, tol=3):
    return all(abs(a - e) <= tol for a, e in zip(actual, expected))


@pytest.mark.parametrize("size", [(900, 600), (3000, 2000), (1200, 400)])
def test_cover_fit_landscape_crops_left_and_right(size):
    fit = vc.CoverFit.compute(*size, diameter=560)
    assert fit.draw_height == pytest.approx(560)
    assert fit.draw_width / fit.draw_height == pytest.approx(size[0] / size[1])
    assert fit.offset_y == 0
    assert fit.offset_x == pytest.approx(-(fit.draw_width - 560) / 2)
    assert fit.crops_horizontally


@pytest.mark.parametrize("size", [(600, 900), (300, 1000), (500, 500)])
def test_cover_fit_portrait_and_square_crop_top_and_bottom(size):
    fit = vc.CoverFit.compute(*size, diameter=560)
    assert fit.draw_width == pytest.approx(560)
    assert fit.draw_width / fit.draw_height == pytest.approx(size[0] / size[1])
    assert fit.offset_x == 0
    assert fit.offset_y <= 0
    assert not fit.crops_horizontally


def test_cover_fit_render_fills_the_square_without_stretching():
    photo = Image.new("RGBA", (900, 600), (0, 0, 0, 255))
    # a white band on the far left must be cropped away for a 3:2 photo
    photo.paste((255, 255, 255, 255), (0, 0, 60, 600))
    fit = vc.CoverFit.compute(900, 600, 560)
    square = fit.render(photo)
    assert square.size == (560, 560)
    assert square.getpixel((0, 280))[:3] == (0, 0, 0)


def test_cover_fit_extreme_aspect_resamples_only_the_visible_strip(monkeypatch):
    photo = Image.new("RGBA", (2, 4000), (*PHOTO_COLOR, 255))
    fit = vc.CoverFit.compute(2, 4000, 560)
    assert fit.draw_height == pytest.approx(1_120_000)
    assert fit.source_box(2, 4000) == pytest.approx((0, 1999, 2, 2001))

    requested = []
    real_resize = Image.Image.resize

    def recording_resize(self, size, *args, **kwargs):
        requested.append(size)
        return real_resize(self, size, *args, **kwargs)

    monkeypatch.setattr(Image.Image, "resize", recording_resize)
    square = fit.render(photo)

    assert requested == [(560, 560)]
    assert square.size == (560, 560)
    assert _close(square.getpixel((280, 280)), PHOTO_COLOR)


def test_compose_extreme_aspect_photo():
    visual = vc.compose(_request(), _assets((2, 4000)))
    img = _decode(visual)
    assert not visual.meta["layout"].cover_fit.crops_horizontally
    assert _close(img.getpixel(vc.CENTER), PHOTO_COLOR)


def test_out_of_memory_while_resampling_raises_render_error(monkeypatch):
    request, assets = _request(), _assets()

    def boom(self, *args, **kwargs):
        raise MemoryError()

    monkeypatch.setattr(Image.Image, "resize", boom)
    with pytest.raises(RenderError):
        vc.compose(request, assets)
    with pytest.raises(RenderError):
        vc.CoverFit.compute(900, 600, 560).render(assets.photo.image)


def test_chain_beads_are_evenly_spaced_with_endpoints():
    chain = vc.CHAINS[0]
    beads = chain.bead_positions()
    n = math.floor(chain.length / 20)
    assert chain.bead_intervals == n
    assert len(beads) == n + 1
    assert beads[0] == pytest.approx(chain.start)
    assert beads[-1] == pytest.approx(chain.end)
    gaps = [math.dist(a, b) for a, b in zip(beads, beads[1:])]
    assert max(gaps) - min(gaps) < 1e-6


def test_chain_dashes_follow_five_on_ten_off():
    chain = vc.ChainSpec((0, 0), (100, 0))
    dashes = chain.dash_segments()
    assert [(round(a[0], 6), round(b[0], 6)) for a, b in dashes] == [(0, 5), (15, 20), (30, 35), (45, 50), (60, 65), (75, 80), (90, 95)]


def test_chain_geometry_is_theme_independent():
    assert vc.CHAINS[0].start == (200, 50)
    assert vc.CHAINS[1].end == (CANVAS_SIZE - 150, 550)
    assert len(vc.MOTIF_PLACEMENTS) == 7


def test_layout_matches_between_themes():
    assets = _assets()
    green = vc.compute_layout(_request("green"), assets)
    red = vc.compute_layout(_request("red"), assets)
    assert green == red


def test_footer_layout_pairs_logo_and_text():
    layout = vc.compute_layout(_request(), _assets())
    left, top, right, bottom = layout.logo_box
    assert (left, right) == (vc.FOOTER_MARGIN, vc.FOOTER_MARGIN + vc.LOGO_WIDTH)
    assert bottom == vc.FOOTER_BASELINE_Y
    assert bottom - top == 100  # 520x200 logo scaled to 260 wide
    text = layout.text
    assert text.baselines[-1] == pytest.approx(vc.FOOTER_BASELINE_Y)
    assert text.anchor_x == CANVAS_SIZE - vc.FOOTER_MARGIN
    assert text.max_width == CANVAS_SIZE - vc.FOOTER_MARGIN * 2 - vc.LOGO_WIDTH - vc.LOGO_TEXT_GAP
    assert text.font_size == 65
    assert 1 <= text.line_count <= 2
    assert not text.overflows()


def test_very_wide_logo_keeps_a_one_pixel_box():
    assets = CompositionAssets(
        photo=_asset((900, 600), PHOTO_COLOR, "photo"),
        logo=_asset((5200, 2), LOGO_COLOR, "logo"),
    )
    layout = vc.compute_layout(_request(), assets)
    left, top, right, bottom = layout.logo_box
    assert bottom - top == 1
    assert _decode(vc.compose(_request(), assets)).size == (CANVAS_SIZE, CANVAS_SIZE)


@pytest.mark.parametrize(
    "slogan",
    [
        "Ma culture est ma force",
        "Vodun",
        "Je suis Vodun, je suis fier de ma culture et de mon pays natal",
        "anticonstitutionnellement",
    ],
)
def test_real_font_lines_fit_the_budget(slogan):
    layout = vc.compute_layout(_request(slogan=slogan), _assets())
    assert not layout.text.overflows()


def test_single_long_word_stays_right_of_the_logo():
    layout = vc.compute_layout(_request(slogan="anticonstitutionnellement"), _assets())
    text = layout.text
    assert len(text.text) == 25
    assert text.font_size == 65
    assert text.line_count >= 2
    assert "".join(text.lines) == "ANTICONSTITUTIONNELLEMENT"
    text_left = vc.FOOTER_MARGIN + vc.LOGO_WIDTH + vc.LOGO_TEXT_GAP
    for width in text.line_widths:
        assert text.anchor_x - width >= text_left


def test_compose_scenario_green_landscape():
    visual = vc.compose(_request("green"), _assets((900, 600)))
    img = _decode(visual)

    assert (visual.width, visual.height) == (CANVAS_SIZE, CANVAS_SIZE)
    assert img.size == (CANVAS_SIZE, CANVAS_SIZE)
    assert visual.mime_type == "image/png"
    layout = visual.meta["layout"]
    assert layout.cover_fit.crops_horizontally
    cx, cy = vc.CENTER
    assert _close(img.getpixel((cx, cy)), PHOTO_COLOR)
    # border straddles the circle edge
    assert _close(img.getpixel((cx, cy - vc.CIRCLE_RADIUS)), vc.BORDER_COLOR, tol=6)
    assert _close(img.getpixel((cx, cy + vc.CIRCLE_RADIUS)), vc.BORDER_COLOR, tol=6)
    # logo sits left on the footer baseline
    assert _close(img.getpixel((vc.FOOTER_MARGIN + 40, vc.FOOTER_BASELINE_Y - 30)), LOGO_COLOR)


def test_compose_theme_only_changes_colors():
    assets = _assets()
    green = vc.compose(_request("green"), assets)
    red = vc.compose(_request("red"), assets)
    assert green.meta["layout"] == red.meta["layout"]

    g, r = _decode(green), _decode(red)
    corner_g, corner_r = g.getpixel((0, 0)), r.getpixel((0, 0))
    assert corner_g != corner_r
    # (0, 0) lies past the gradient radius: background plus the dark stop at 25%
    for theme, pixel in ((get_theme(ThemeName.GREEN), corner_g), (get_theme(ThemeName.RED), corner_r)):
        a = 0x40 / 255
        expected = tuple(round(b * (1 - a) + d * a) for b, d in zip(theme.background, theme.accent_dark))
        assert _close(pixel, expected, tol=2)
    # the photo is not tinted by the theme
    assert _close(g.getpixel(vc.CENTER), PHOTO_COLOR)
    assert _close(r.getpixel(vc.CENTER), PHOTO_COLOR)


def test_compose_is_deterministic():
    assets = _assets()
    first = vc.compose(_request(), assets)
    second = vc.compose(_request(), assets)
    assert first.data == second.data


def test_compose_does_not_mutate_inputs():
    assets = _assets()
    before = (assets.photo.image.tobytes(), assets.logo.image.tobytes())
    vc.compose(_request(), assets)
    assert (assets.photo.image.tobytes(), assets.logo.image.tobytes()) == before


def test_compose_without_sprite():
    visual = vc.compose(_request(), _assets(sprite=False))
    assert _decode(visual).size == (CANVAS_SIZE, CANVAS_SIZE)


def test_motifs_are_faint():
    with_sprite = _decode(vc.compose(_request(), _assets(sprite=True)))
    without = _decode(vc.compose(_request(), _assets(sprite=False)))
    x, y = int(vc.MOTIF_PLACEMENTS[0].x), int(vc.MOTIF_PLACEMENTS[0].y)
    lit, bare = with_sprite.getpixel((x, y)), without.getpixel((x, y))
    assert lit != bare
    # 30% of a near-white sprite over the background
    for c_lit, c_bare, c_sprite in zip(lit, bare, SPRITE_COLOR):
        assert c_lit == pytest.approx(c_bare * 0.7 + c_sprite * 0.3, abs=4)


def test_signature_has_no_shadow():
    img = _decode(vc.compose(_request(), _assets()))
    background = img.getpixel((5, vc.SIGNATURE_BASELINE_Y - 5))
    # nothing darker than the background around the signature
    box = (vc.CENTER[0] - 120, vc.SIGNATURE_BASELINE_Y - 20, vc.CENTER[0] + 120, vc.SIGNATURE_BASELINE_Y + 8)
    region = img.crop(box)
    darkest = min(sum(px) for px in region.getdata())
    assert darkest >= sum(background) - 6


def test_slogan_casts_a_shadow():
    visual = vc.compose(_request(slogan="VODUN"), _assets())
    img = _decode(visual)
    text = visual.meta["layout"].text
    background = img.getpixel((vc.FOOTER_MARGIN + vc.LOGO_WIDTH + 10, int(text.baselines[0]) - 10))
    box = (int(text.anchor_x) - 300, int(text.baselines[0]) - text.font_size - 10, int(text.anchor_x) + 10, int(text.baselines[0]) + 10)
    darkest = min(sum(px) for px in img.crop(box).getdata())
    assert darkest < sum(background) - 20


def test_surface_allocation_failure_raises_render_error(monkeypatch):
    def boom(*args, **kwargs):
        raise MemoryError()

    request, assets = _request(), _assets()
    monkeypatch.setattr(canvas_mod.Image, "new", boom)
    with pytest.raises(RenderError):
        vc.compose(request, assets)


def test_compress_level_changes_size_not_pixels():
    assets = _assets()
    fast = vc.compose(_request(), assets, compress_level=0)
    small = vc.compose(_request(), assets, compress_level=9)
    assert len(fast.data) > len(small.data)
    assert _decode(fast).tobytes() == _decode(small).tobytes()


def test_radial_gradient_stops():
    img = vc.radial_gradient((101, 101), (50.5, 50.5), 50, (255, 0, 0), (0, 0, 255), 0.25)
    assert img.mode == "RGBA"
    center = img.getpixel((50, 50))
    corner = img.getpixel((0, 0))
    assert center[0] > 250 and center[2] < 5
    assert corner[:3] == (0, 0, 255)
    assert center[3] == corner[3] == 64
