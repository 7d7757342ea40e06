from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Shape = Literal["square", "rounded", "circle"]
ExportFormat = Literal["png", "webp"]

SHAPES: tuple[Shape, ...] = ("square", "rounded", "circle")
EXPORT_FORMATS: tuple[ExportFormat, ...] = ("png", "webp")

PADDING_MIN_PX = -20
PADDING_MAX_PX = 40
DEFAULT_PADDING_PX = 10
DEFAULT_BACKGROUND_HEX = "#2d3748"

# Largest bucket first; the first entry is also the preview size.
DENSITY_BUCKETS: dict[str, int] = {
    "mipmap-xxxhdpi": 192,
    "mipmap-xxhdpi": 144,
    "mipmap-xhdpi": 96,
    "mipmap-hdpi": 72,
    "mipmap-mdpi": 48,
}

ICON_VARIANTS: dict[Shape, str] = {
    "square": "ic_launcher_foreground",
    "circle": "ic_launcher_round",
    "rounded": "ic_launcher",
}

PREVIEW_SIZE = max(DENSITY_BUCKETS.values())

CONTENT_TYPES: dict[ExportFormat, str] = {
    "png": "image/png",
    "webp": "image/webp",
}

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def parse_color(value: Any) -> tuple[int, int, int]:
    """
    Normalise a color picker value to an opaque RGB triple.

    Accepts "#rgb", "#rrggbb", "#rrggbbaa" or a 3/4 item sequence of ints.
    Any alpha component is dropped: the background fill is always opaque.
    """
    if isinstance(value, str):
        m = _HEX_RE.match(value.strip())
        if not m:
            raise ValueError(f"Invalid color '{value}' (use #rrggbb)")
        digits = m.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))

    if isinstance(value, (list, tuple)) and len(value) in (3, 4):
        rgb: list[int] = []
        for x in value[:3]:
            if isinstance(x, bool) or not isinstance(x, int):
                raise ValueError("Color components must be integers")
            if not 0 <= x <= 255:
                raise ValueError("Color components must be within 0..255")
            rgb.append(x)
        return (rgb[0], rgb[1], rgb[2])

    raise ValueError("Color must be a hex string or an RGB sequence")


def color_to_hex(rgb: tuple[int, int, int]) -> str:
    return "#{:02x}{:02x}{:02x}".format(*rgb)


def clamp_padding(value: int) -> int:
    return max(PADDING_MIN_PX, min(PADDING_MAX_PX, int(value)))


class RenderConfig(BaseModel):
    """User-driven render settings shared by every preview and export render."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    padding_px: int = DEFAULT_PADDING_PX
    background_color: tuple[int, int, int] = parse_color(DEFAULT_BACKGROUND_HEX)
    transparent: bool = False
    shape: Shape = "square"

    @field_validator("padding_px", mode="before")
    @classmethod
    def validate_padding_px(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("padding_px must be an integer")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError("padding_px must be an integer")
        return clamp_padding(int(value))

    @field_validator("background_color", mode="before")
    @classmethod
    def validate_background_color(cls, value: Any) -> tuple[int, int, int]:
        return parse_color(value)

    @property
    def background_hex(self) -> str:
        return color_to_hex(self.background_color)

    def content_size(self, output_size: int) -> int:
        return output_size - 2 * self.padding_px

    def render_inputs(self) -> tuple[int, tuple[int, int, int], bool]:
        """The fields that change rendered pixels (shape is per icon)."""
        return (self.padding_px, self.background_color, self.transparent)


class IconSpec(BaseModel):
    """One entry of the fixed export table."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    density: str = Field(..., min_length=1)
    output_size: int = Field(..., gt=0)
    shape: Shape
    output_name: str = Field(..., min_length=1)

    def path(self, ext: ExportFormat) -> str:
        return f"{self.density}/{self.output_name}.{ext}"


def build_icon_specs() -> list[IconSpec]:
    return [
        IconSpec(density=density, output_size=size, shape=shape, output_name=name)
        for density, size in DENSITY_BUCKETS.items()
        for shape, name in ICON_VARIANTS.items()
    ]


ICON_SPECS: tuple[IconSpec, ...] = tuple(build_icon_specs())
