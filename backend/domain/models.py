"""
Core domain models for the campaign visual generator.
These are framework-agnostic and shared by the loader and the compositor.
"""
import base64
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from PIL import Image


CANVAS_SIZE = 1080
MAX_SLOGAN_LENGTH = 60
DEFAULT_SLOGAN = "MA CULTURE EST MA FORCE"

RGB = Tuple[int, int, int]


def hex_to_rgb(value: str) -> RGB:
    """Parse a '#rrggbb' color."""
    value = value.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Expected #rrggbb color, got {value!r}")
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))


class ThemeName(str, Enum):
    """Color themes offered by the theme picker."""
    GREEN = "green"
    RED = "red"


@dataclass(frozen=True)
class ThemeSpec:
    """
    A fixed palette. Only the instances in THEMES exist; layout never
    depends on which one is selected.
    """
    name: ThemeName
    background: RGB
    accent_light: RGB
    accent_dark: RGB
    chain_color: RGB


THEMES: Dict[ThemeName, ThemeSpec] = {
    ThemeName.GREEN: ThemeSpec(
        name=ThemeName.GREEN,
        background=hex_to_rgb("#1da78f"),
        accent_light=hex_to_rgb("#2bc9ad"),
        accent_dark=hex_to_rgb("#159078"),
        chain_color=hex_to_rgb("#f4c430"),
    ),
    ThemeName.RED: ThemeSpec(
        name=ThemeName.RED,
        background=hex_to_rgb("#cc1837"),
        accent_light=hex_to_rgb("#e6415e"),
        accent_dark=hex_to_rgb("#a81329"),
        chain_color=hex_to_rgb("#f4c430"),
    ),
}


def normalize_slogan(text: Optional[str]) -> str:
    """Trim, cap at MAX_SLOGAN_LENGTH and uppercase. Blank input gives DEFAULT_SLOGAN."""
    cleaned = (text or "").strip()[:MAX_SLOGAN_LENGTH].strip()
    if not cleaned:
        return DEFAULT_SLOGAN
    return cleaned.upper()


def get_theme(name: Union[str, ThemeName]) -> ThemeSpec:
    """Look up a theme by token; unknown tokens raise ValueError."""
    return THEMES[ThemeName(name)]


@dataclass(frozen=True)
class AssetRef:
    """
    Reference to an image the loader should fetch and decode.

    `source` is raw encoded bytes, a filesystem path, or a URI string
    (file://, http(s)://, data:).
    """
    source: Union[bytes, Path, str]
    label: str = "asset"

    @classmethod
    def from_path(cls, path: Union[str, Path], label: Optional[str] = None) -> "AssetRef":
        path = Path(path)
        return cls(source=path, label=label or path.name)

    @classmethod
    def from_bytes(cls, data: bytes, label: str = "photo") -> "AssetRef":
        return cls(source=bytes(data), label=label)

    @classmethod
    def from_uri(cls, uri: str, label: Optional[str] = None) -> "AssetRef":
        if label is None:
            label = "data-uri" if uri.startswith("data:") else uri
        return cls(source=uri, label=label)

    def __str__(self) -> str:
        return self.label


@dataclass
class DecodedAsset:
    """A decoded RGBA raster plus its natural size."""
    ref: AssetRef
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def aspect(self) -> float:
        return self.width / self.height


@dataclass
class CompositionAssets:
    """Decoded inputs for one composition. The sprite is optional."""
    photo: DecodedAsset
    logo: DecodedAsset
    sprite: Optional[DecodedAsset] = None


@dataclass(frozen=True)
class CompositionRequest:
    """
    Engine-side input. The slogan is normalised on construction
    (trimmed, capped, uppercased, defaulted when blank).
    """
    photo: AssetRef
    theme: ThemeSpec
    slogan: str = DEFAULT_SLOGAN

    def __post_init__(self) -> None:
        object.__setattr__(self, "slogan", normalize_slogan(self.slogan))


@dataclass
class EncodedImage:
    """The finished artifact. Ownership passes to the caller."""
    data: bytes
    width: int
    height: int
    mime_type: str = "image/png"
    meta: Dict[str, object] = field(default_factory=dict)

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path
