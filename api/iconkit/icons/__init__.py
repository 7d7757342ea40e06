"""Launcher icon compositing, export table and editing session."""

from .compositor import ClipPath, clipped, render_icon, render_spec, render_with_config
from .models import DENSITY_BUCKETS, ICON_SPECS, ICON_VARIANTS, PREVIEW_SIZE, IconSpec, RenderConfig
from .pipeline import (
    ExportResult,
    ImageDecodeError,
    decode_source_image,
    encode_icon,
    export_archive,
    export_icon_set,
    get_icon_config,
    write_export_tree,
)
from .session import ExportInProgressError, IconSession, NoSourceImageError

__all__ = [
    "ClipPath",
    "clipped",
    "render_icon",
    "render_spec",
    "render_with_config",
    "DENSITY_BUCKETS",
    "ICON_SPECS",
    "ICON_VARIANTS",
    "PREVIEW_SIZE",
    "IconSpec",
    "RenderConfig",
    "ExportResult",
    "ImageDecodeError",
    "decode_source_image",
    "encode_icon",
    "export_archive",
    "export_icon_set",
    "get_icon_config",
    "write_export_tree",
    "ExportInProgressError",
    "IconSession",
    "NoSourceImageError",
]
