from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import numpy as np
from PIL import Image, ImageChops

from .models import IconSpec, RenderConfig, Shape

# Samples per pixel along each axis when rasterising clip edges.
SUPERSAMPLE = 4


@dataclass(frozen=True)
class ClipPath:
    """
    Immutable description of a clip region in surface coordinates.

    (x, y, size) is the inset content square; radius is the corner radius for
    "rounded" and the circle radius for "circle". Coverage is measured at
    sample points, so a pixel entirely outside the geometry always gets 0.
    """

    shape: Shape
    x: float
    y: float
    size: float
    radius: float

    def contains(self, px: np.ndarray, py: np.ndarray) -> np.ndarray:
        if self.shape == "circle":
            cx = self.x + self.size / 2
            cy = self.y + self.size / 2
            return (px - cx) ** 2 + (py - cy) ** 2 <= self.radius**2

        x0, y0 = self.x, self.y
        x1, y1 = self.x + self.size, self.y + self.size
        inside = (px >= x0) & (px <= x1) & (py >= y0) & (py <= y1)
        if self.shape == "square" or self.radius <= 0:
            return inside

        r = self.radius
        dx = np.maximum(np.maximum(x0 + r - px, 0.0), px - (x1 - r))
        dy = np.maximum(np.maximum(y0 + r - py, 0.0), py - (y1 - r))
        return inside & (dx**2 + dy**2 <= r**2)

    def mask(self, size: tuple[int, int]) -> Image.Image:
        w, h = size
        xs = (np.arange(w * SUPERSAMPLE, dtype=np.float64) + 0.5) / SUPERSAMPLE
        ys = (np.arange(h * SUPERSAMPLE, dtype=np.float64) + 0.5) / SUPERSAMPLE
        inside = self.contains(xs[np.newaxis, :], ys[:, np.newaxis])
        coverage = inside.reshape(h, SUPERSAMPLE, w, SUPERSAMPLE).mean(axis=(1, 3))
        return Image.fromarray(np.round(coverage * 255.0).astype(np.uint8))


def clip_for(shape: Shape, output_size: int, padding_px: int) -> ClipPath | None:
    """Clip region for a shape, or None when canvas bounds are the only clip."""
    content = output_size - 2 * padding_px
    if shape == "square":
        return None
    if shape == "rounded":
        return ClipPath(shape="rounded", x=padding_px, y=padding_px, size=content, radius=content / 4)
    if shape == "circle":
        # Centred on the surface; same as the inset square's centre.
        return ClipPath(shape="circle", x=padding_px, y=padding_px, size=content, radius=content / 2)
    raise ValueError(f"Unknown shape: {shape}")


@contextmanager
def clipped(surface: Image.Image, clip: ClipPath | None) -> Iterator[Image.Image]:
    """
    Scope a clip over `surface`.

    Draw onto the yielded layer; on exit it is composited (source-over) onto
    the surface through the clip mask. If the body raises, the layer is
    dropped and the surface is left as it was.
    """
    layer = Image.new("RGBA", surface.size, (0, 0, 0, 0))
    yield layer
    if clip is not None:
        alpha = ImageChops.multiply(layer.getchannel("A"), clip.mask(surface.size))
        layer.putalpha(alpha)
    surface.alpha_composite(layer)


def cover_box(src_w: int, src_h: int, content_size: int, padding_px: int) -> tuple[float, float, float, float]:
    """(x, y, width, height) of the source scaled to cover the content square, centred."""
    scale = max(content_size / src_w, content_size / src_h)
    draw_w = src_w * scale
    draw_h = src_h * scale
    x = padding_px + (content_size - draw_w) / 2
    y = padding_px + (content_size - draw_h) / 2
    return x, y, draw_w, draw_h


def _draw_cover(layer: Image.Image, source: Image.Image, box: tuple[float, float, float, float]) -> None:
    x, y, draw_w, draw_h = box
    if draw_w <= 0 or draw_h <= 0:
        return
    # Only the part of the cover box that lands on the layer is resampled.
    left = int(round(max(x, 0.0)))
    top = int(round(max(y, 0.0)))
    right = int(round(min(x + draw_w, float(layer.width))))
    bottom = int(round(min(y + draw_h, float(layer.height))))
    if right <= left or bottom <= top:
        return
    sx = source.width / draw_w
    sy = source.height / draw_h
    src_box = (
        max(0.0, (left - x) * sx),
        max(0.0, (top - y) * sy),
        min(float(source.width), (right - x) * sx),
        min(float(source.height), (bottom - y) * sy),
    )
    scaled = source.resize((right - left, bottom - top), Image.Resampling.LANCZOS, box=src_box)
    layer.paste(scaled, (left, top))


def render_icon(
    source: Image.Image,
    output_size: int,
    shape: Shape,
    padding_px: int,
    background_color: tuple[int, int, int],
    transparent: bool,
) -> Image.Image:
    if output_size <= 0:
        raise ValueError("output_size must be positive")
    if source.width <= 0 or source.height <= 0:
        raise ValueError("source image has no pixels")

    surface = Image.new("RGBA", (output_size, output_size), (0, 0, 0, 0))
    if not transparent:
        r, g, b = background_color
        surface.paste((r, g, b, 255), (0, 0, output_size, output_size))

    content_size = output_size - 2 * padding_px
    if content_size <= 0:
        return surface

    if source.mode != "RGBA":
        source = source.convert("RGBA")

    clip = clip_for(shape, output_size, padding_px)
    with clipped(surface, clip) as layer:
        _draw_cover(layer, source, cover_box(source.width, source.height, content_size, padding_px))
    return surface


def render_spec(source: Image.Image, config: RenderConfig, spec: IconSpec) -> Image.Image:
    return render_icon(
        source,
        spec.output_size,
        spec.shape,
        config.padding_px,
        config.background_color,
        config.transparent,
    )


def render_with_config(source: Image.Image, config: RenderConfig, output_size: int, shape: Shape | None = None) -> Image.Image:
    return render_icon(
        source,
        output_size,
        shape or config.shape,
        config.padding_px,
        config.background_color,
        config.transparent,
    )
