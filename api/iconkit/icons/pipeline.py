from __future__ import annotations

import io
import logging
import os
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from .compositor import render_spec
from .models import CONTENT_TYPES, EXPORT_FORMATS, ICON_SPECS, ExportFormat, IconSpec, RenderConfig

logger = logging.getLogger(__name__)

ACCEPTED_SOURCE_FORMATS = ("PNG", "JPEG", "WEBP", "ICO")


class ImageDecodeError(ValueError):
    """Uploaded bytes are not an image we can use."""


@dataclass(frozen=True)
class IconConfig:
    max_upload_bytes: int
    max_source_pixels: int
    webp_quality: int
    webp_lossless: bool


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer") from e


def get_icon_config() -> IconConfig:
    lossless = os.environ.get("ICON_WEBP_LOSSLESS", "").strip().lower()
    return IconConfig(
        max_upload_bytes=max(_env_int("ICON_MAX_UPLOAD_BYTES", 20 * 1024 * 1024), 1),
        max_source_pixels=max(_env_int("ICON_MAX_SOURCE_PIXELS", 40_000_000), 1),
        webp_quality=max(1, min(100, _env_int("ICON_WEBP_QUALITY", 90))),
        webp_lossless=lossless in {"1", "true", "yes", "on"},
    )


@dataclass(frozen=True)
class SourceInfo:
    width: int
    height: int
    format: str


def decode_source_image(data: bytes, *, cfg: IconConfig | None = None) -> tuple[Image.Image, SourceInfo]:
    """
    Decode uploaded bytes into an RGBA image with EXIF orientation applied.

    Raises ImageDecodeError for empty, unreadable, unsupported or oversized input.
    """
    cfg = cfg or get_icon_config()
    if not data:
        raise ImageDecodeError("Empty upload")

    try:
        img = Image.open(io.BytesIO(data), formats=ACCEPTED_SOURCE_FORMATS)
        fmt = str(img.format or "")
        if img.width * img.height > cfg.max_source_pixels:
            raise ImageDecodeError(
                f"Image is too large ({img.width}x{img.height}); limit is {cfg.max_source_pixels} pixels"
            )
        img.load()
        img = ImageOps.exif_transpose(img)
        rgba = img.convert("RGBA")
    except ImageDecodeError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Unsupported or unreadable image: {e}") from e
    except (OSError, ValueError, SyntaxError) as e:
        raise ImageDecodeError(f"Image could not be decoded: {e}") from e

    if rgba.width <= 0 or rgba.height <= 0:
        raise ImageDecodeError("Image has no pixels")
    return rgba, SourceInfo(width=rgba.width, height=rgba.height, format=fmt)


def encode_icon(image: Image.Image, fmt: ExportFormat, *, cfg: IconConfig | None = None) -> bytes:
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")
    buf = io.BytesIO()
    if fmt == "png":
        image.save(buf, format="PNG", optimize=True)
    else:
        cfg = cfg or get_icon_config()
        image.save(buf, format="WEBP", quality=cfg.webp_quality, lossless=cfg.webp_lossless)
    return buf.getvalue()


@dataclass(frozen=True)
class ExportedIcon:
    spec: IconSpec
    path: str
    content_type: str
    body: bytes


@dataclass(frozen=True)
class ExportFailure:
    path: str
    error: str


@dataclass
class ExportResult:
    format: ExportFormat
    files: list[ExportedIcon] = field(default_factory=list)
    failures: list[ExportFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> dict[str, object]:
        return {
            "ok": self.ok,
            "format": self.format,
            "files": [f.path for f in self.files],
            "failures": [{"path": f.path, "error": f.error} for f in self.failures],
        }


def export_icon_set(
    source: Image.Image,
    config: RenderConfig,
    fmt: ExportFormat,
    *,
    specs: tuple[IconSpec, ...] = ICON_SPECS,
    cfg: IconConfig | None = None,
) -> ExportResult:
    """
    Render and encode every icon in `specs` with one shared config.

    Each icon is fully encoded before the next render starts. A failing icon is
    recorded and skipped; the rest are still attempted.
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")
    cfg = cfg or get_icon_config()
    result = ExportResult(format=fmt)
    for spec in specs:
        path = spec.path(fmt)
        try:
            body = encode_icon(render_spec(source, config, spec), fmt, cfg=cfg)
        except Exception as e:  # noqa: BLE001
            logger.warning("icon export failed for %s: %s", path, e)
            result.failures.append(ExportFailure(path=path, error=str(e) or type(e).__name__))
            continue
        result.files.append(ExportedIcon(spec=spec, path=path, content_type=CONTENT_TYPES[fmt], body=body))
    return result


def export_archive(result: ExportResult) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for f in result.files:
            zf.writestr(f.path, f.body)
    return buf.getvalue()


def write_export_tree(result: ExportResult, out_dir: Path) -> list[Path]:
    """Write each exported file under out_dir; failed writes are added to result.failures."""
    written: list[Path] = []
    for f in result.files:
        dst = out_dir / f.path
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            dst.write_bytes(f.body)
        except OSError as e:
            logger.warning("icon write failed for %s: %s", dst, e)
            result.failures.append(ExportFailure(path=f.path, error=str(e)))
            continue
        written.append(dst)
    return written
