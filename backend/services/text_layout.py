"""
Slogan fitting for the footer block.

The slogan is uppercased, given a font size by length tier, greedily
wrapped word by word against a measured-width budget, then placed so the
LAST line's baseline sits on the footer baseline shared with the logo.
Measurement is injected so the layout can be exercised without a font.
"""
from dataclasses import dataclass, field
from typing import Callable, List

from PIL import ImageFont

from domain.models import normalize_slogan
from services.fonts import load_font

MeasureFn = Callable[[str], float]

TIER_BASE_SIZE = 65
TIER_MEDIUM_SIZE = 52
TIER_SMALL_SIZE = 42
TIER_MEDIUM_AFTER = 25  # characters
TIER_SMALL_AFTER = 45
FIXED_FONT_SIZE = 52
LINE_HEIGHT_FACTOR = 1.1


def choose_font_size(slogan: str, policy: str = "tiered") -> int:
    """
    "tiered": 65px, 52px past 25 characters, 42px past 45.
    "fixed": always FIXED_FONT_SIZE.
    """
    if policy == "fixed":
        return FIXED_FONT_SIZE
    if policy != "tiered":
        raise ValueError(f"Unknown font policy: {policy!r}")
    size = TIER_BASE_SIZE
    if len(slogan) > TIER_MEDIUM_AFTER:
        size = TIER_MEDIUM_SIZE
    if len(slogan) > TIER_SMALL_AFTER:
        size = TIER_SMALL_SIZE
    return size


def wrap_lines(text: str, max_width: float, measure: MeasureFn) -> List[str]:
    """
    Greedy measured-width line breaking.

    Words are accumulated while the joined line fits max_width. A word
    wider than the budget on its own is cut at character boundaries into
    pieces that fit (no hyphen is added); its last piece may share a line
    with the following words.
    """
    lines: List[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if measure(candidate) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
        if measure(word) <= max_width:
            current = word
        else:
            *full, current = _break_word(word, max_width, measure)
            lines.extend(full)
    if current:
        lines.append(current)
    return lines


def _break_word(word: str, max_width: float, measure: MeasureFn) -> List[str]:
    # a lone glyph wider than the budget still gets its own piece
    pieces: List[str] = []
    current = ""
    for char in word:
        if current and measure(current + char) > max_width:
            pieces.append(current)
            current = char
        else:
            current += char
    pieces.append(current)
    return pieces


@dataclass
class TextBlockLayout:
    text: str
    lines: List[str]
    font_size: int
    line_height: float
    max_width: float
    anchor_x: float
    baseline_y: float
    baselines: List[float] = field(default_factory=list)
    line_widths: List[float] = field(default_factory=list)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def block_height(self) -> float:
        return self.line_count * self.line_height

    @property
    def top_y(self) -> float:
        """Approximate cap top of the first line."""
        if not self.baselines:
            return self.baseline_y
        return self.baselines[0] - self.font_size

    def overflows(self) -> bool:
        return any(w > self.max_width for w in self.line_widths)


def layout_text_block(
    slogan: str,
    max_width: float,
    anchor_x: float,
    baseline_y: float,
    measure_for_size: Callable[[int], MeasureFn],
    policy: str = "tiered",
    line_height_factor: float = LINE_HEIGHT_FACTOR,
) -> TextBlockLayout:
    """
    Fit a slogan into a right-aligned block ending on baseline_y.

    measure_for_size(size) must return a width function for that font size.
    """
    text = normalize_slogan(slogan)
    size = choose_font_size(text, policy)
    measure = measure_for_size(size)
    lines = wrap_lines(text, max_width, measure)
    line_height = size * line_height_factor
    first = baseline_y - (len(lines) - 1) * line_height
    return TextBlockLayout(
        text=text,
        lines=lines,
        font_size=size,
        line_height=line_height,
        max_width=max_width,
        anchor_x=anchor_x,
        baseline_y=baseline_y,
        baselines=[first + i * line_height for i in range(len(lines))],
        line_widths=[measure(line) for line in lines],
    )


def font_measure(font: ImageFont.FreeTypeFont) -> MeasureFn:
    return lambda text: font.getlength(text)


def pillow_measure_for_size(bold: bool = True) -> Callable[[int], MeasureFn]:
    return lambda size: font_measure(load_font(size, bold=bold))
