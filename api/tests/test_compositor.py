from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from conftest import BLUE, RED, center_distance, pixels, solid
from iconkit.icons.compositor import ClipPath, clip_for, clipped, cover_box, render_icon

TOL = 2


def _is_color(arr: np.ndarray, rgb: tuple[int, int, int], tol: int = TOL) -> np.ndarray:
    diff = np.abs(arr[..., :3] - np.array(rgb, dtype=np.int16)).max(axis=-1)
    return (diff <= tol) & (arr[..., 3] == 255)


def test_square_with_zero_padding_is_fully_covered(wide_source):
    out = render_icon(wide_source, 48, "square", 0, BLUE, False)
    assert out.size == (48, 48)
    assert out.mode == "RGBA"
    assert _is_color(pixels(out), RED).all()


def test_square_inset_shows_background_only_outside_footprint(square_source):
    out = render_icon(square_source, 96, "square", 8, BLUE, False)
    arr = pixels(out)
    assert _is_color(arr[8:88, 8:88], RED).all()
    assert _is_color(arr[:8], BLUE, tol=0).all()
    assert _is_color(arr[88:], BLUE, tol=0).all()
    assert _is_color(arr[:, :8], BLUE, tol=0).all()
    assert _is_color(arr[:, 88:], BLUE, tol=0).all()


def test_square_keeps_cover_overflow_on_long_axis():
    # 100x50 into an 80px content square: drawn 160x80, overflowing horizontally.
    out = render_icon(solid(100, 50), 96, "square", 8, BLUE, False)
    arr = pixels(out)
    assert _is_color(arr[8:88, :], RED).all()
    assert _is_color(arr[:8], BLUE, tol=0).all()
    assert _is_color(arr[88:], BLUE, tol=0).all()


def test_cover_box_matches_worked_example():
    x, y, w, h = cover_box(1000, 500, 172, 10)
    assert w == pytest.approx(344)
    assert h == pytest.approx(172)
    assert x == pytest.approx(-76)
    assert y == pytest.approx(10)


def test_circle_end_to_end_transparent(wide_source):
    out = render_icon(wide_source, 192, "circle", 10, BLUE, True)
    arr = pixels(out)
    dist = center_distance(192)
    assert (arr[dist > 87][:, 3] == 0).all()
    assert _is_color(arr[dist < 85], RED).all()


def test_circle_outside_mask_is_background(wide_source):
    out = render_icon(wide_source, 192, "circle", 10, BLUE, False)
    arr = pixels(out)
    dist = center_distance(192)
    assert _is_color(arr[dist > 87], BLUE, tol=0).all()
    assert _is_color(arr[dist < 85], RED).all()


def test_rounded_does_not_leak_past_corners(wide_source):
    size, pad = 192, 16
    content = size - 2 * pad
    r = content / 4
    out = render_icon(wide_source, size, "rounded", pad, BLUE, False)
    arr = pixels(out)

    c = np.arange(size) + 0.5
    px, py = c[np.newaxis, :], c[:, np.newaxis]
    x0, x1 = pad, pad + content
    dx = np.maximum(np.maximum(x0 + r - px, 0.0), px - (x1 - r))
    dy = np.maximum(np.maximum(x0 + r - py, 0.0), py - (x1 - r))
    outside_box = (px < x0 - 1) | (px > x1 + 1) | (py < x0 - 1) | (py > x1 + 1)
    outside = outside_box | (np.sqrt(dx**2 + dy**2) > r + 1)
    inside = (px > x0 + 1) & (px < x1 - 1) & (py > x0 + 1) & (py < x1 - 1) & (np.sqrt(dx**2 + dy**2) < r - 1)

    assert _is_color(arr[outside], BLUE, tol=0).all()
    assert _is_color(arr[inside], RED).all()
    # The corner itself is cut away.
    assert _is_color(arr[pad + 1, pad + 1][np.newaxis], BLUE, tol=0).all()


@pytest.mark.parametrize("shape", ["square", "rounded", "circle"])
def test_negative_padding_overflow_is_clipped_to_canvas(wide_source, shape):
    out = render_icon(wide_source, 192, shape, -20, BLUE, False)
    arr = pixels(out)
    assert out.size == (192, 192)
    assert _is_color(arr[96:97, 96:97], RED).all()
    if shape == "square":
        assert _is_color(arr, RED).all()


def test_negative_padding_circle_still_masks_corners(wide_source):
    # radius 116 < distance of the canvas corners (~135)
    out = render_icon(wide_source, 192, "circle", -20, BLUE, True)
    arr = pixels(out)
    assert arr[0, 0, 3] == 0
    assert arr[191, 191, 3] == 0
    assert arr[96, 0, 3] == 255


@pytest.mark.parametrize("shape", ["square", "rounded", "circle"])
@pytest.mark.parametrize("padding", [24, 30, 40])
def test_padding_beyond_half_draws_nothing(wide_source, shape, padding):
    out = render_icon(wide_source, 48, shape, padding, BLUE, False)
    assert _is_color(pixels(out), BLUE, tol=0).all()

    out = render_icon(wide_source, 48, shape, padding, BLUE, True)
    assert (pixels(out)[..., 3] == 0).all()


def test_transparent_skips_fill_regardless_of_color(square_source):
    for color in [(0, 0, 0), (255, 255, 255), BLUE]:
        out = render_icon(square_source, 96, "square", 10, color, True)
        arr = pixels(out)
        assert (arr[:10, :, 3] == 0).all()
        assert (arr[:, :10, 3] == 0).all()
        assert _is_color(arr[10:86, 10:86], RED).all()


@pytest.mark.parametrize("padding", [0, 8, 20])
def test_content_side_length_tracks_padding(square_source, padding):
    out = render_icon(square_source, 96, "square", padding, BLUE, True)
    assert out.getchannel("A").getbbox() == (padding, padding, 96 - padding, 96 - padding)


@pytest.mark.parametrize("shape", ["rounded", "circle"])
def test_visible_content_shrinks_as_padding_grows(wide_source, shape):
    counts = []
    for padding in [-20, 0, 10, 20, 40]:
        out = render_icon(wide_source, 192, shape, padding, BLUE, True)
        counts.append(int((pixels(out)[..., 3] > 0).sum()))
    assert counts == sorted(counts, reverse=True)
    assert len(set(counts)) == len(counts)


def test_renders_are_independent(wide_source):
    first = render_icon(wide_source, 96, "circle", 10, BLUE, False).tobytes()
    render_icon(wide_source, 96, "rounded", -20, RED, True)
    again = render_icon(wide_source, 96, "circle", 10, BLUE, False).tobytes()
    assert first == again


def test_rgb_source_is_accepted():
    out = render_icon(solid(40, 30, mode="RGB"), 48, "circle", 4, BLUE, False)
    assert _is_color(pixels(out)[24:25, 24:25], RED).all()


def test_extreme_aspect_source_only_resamples_visible_region(monkeypatch):
    requested = []
    original = Image.Image.resize

    def spy(self, size, *args, **kwargs):
        requested.append(tuple(size))
        return original(self, size, *args, **kwargs)

    monkeypatch.setattr(Image.Image, "resize", spy)
    out = render_icon(solid(20000, 1), 192, "circle", 10, BLUE, False)

    assert requested
    assert all(w <= 192 and h <= 192 for w, h in requested)
    arr = pixels(out)
    assert _is_color(arr[96:97, 96:97], RED).all()
    assert _is_color(arr[:1, :1], BLUE, tol=0).all()


def test_clipped_discards_layer_when_drawing_fails():
    surface = Image.new("RGBA", (32, 32), (*BLUE, 255))
    before = surface.tobytes()
    with pytest.raises(RuntimeError):
        with clipped(surface, clip_for("circle", 32, 0)) as layer:
            layer.paste((*RED, 255), (0, 0, 32, 32))
            raise RuntimeError("boom")
    assert surface.tobytes() == before


def test_clip_mask_is_empty_outside_and_full_inside():
    clip = ClipPath(shape="circle", x=0, y=0, size=20, radius=10)
    mask = np.asarray(clip.mask((20, 20)))
    assert mask[10, 10] == 255
    assert mask[0, 0] == 0
    assert 0 < mask[0, 10] <= 255


def test_square_has_no_explicit_clip():
    assert clip_for("square", 96, 8) is None
    rounded = clip_for("rounded", 96, 8)
    assert rounded is not None and rounded.radius == pytest.approx(20)
    circle = clip_for("circle", 96, 8)
    assert circle is not None and circle.radius == pytest.approx(40)
