from __future__ import annotations

import io
import threading
from typing import Any

from PIL import Image

from .compositor import render_with_config
from .models import EXPORT_FORMATS, PREVIEW_SIZE, SHAPES, ExportFormat, RenderConfig, Shape
from .pipeline import ExportResult, IconConfig, SourceInfo, decode_source_image, export_icon_set, get_icon_config


class NoSourceImageError(RuntimeError):
    """An operation needs an uploaded image and there is none."""


class ExportInProgressError(RuntimeError):
    """An export was requested while another one is still running."""


class IconSession:
    """
    State of one icon editing session: source image, render config, export
    format and the three live previews.

    Every setter that changes a render input re-renders the previews before it
    returns. A lock serialises renders; exports are additionally refused while
    one is in flight.
    """

    def __init__(self, *, cfg: IconConfig | None = None) -> None:
        self._cfg = cfg or get_icon_config()
        self._lock = threading.RLock()
        self._source: Image.Image | None = None
        self._source_info: SourceInfo | None = None
        self._config = RenderConfig()
        self._export_format: ExportFormat = "png"
        self._previews: dict[Shape, Image.Image] = {}
        self._export_in_flight = False

    @property
    def has_source(self) -> bool:
        return self._source is not None

    @property
    def source_info(self) -> SourceInfo | None:
        return self._source_info

    @property
    def config(self) -> RenderConfig:
        return self._config

    @property
    def export_format(self) -> ExportFormat:
        return self._export_format

    @property
    def export_in_flight(self) -> bool:
        return self._export_in_flight

    def load_image(self, data: bytes) -> SourceInfo:
        with self._lock:
            try:
                image, info = decode_source_image(data, cfg=self._cfg)
            except Exception:
                self._clear_source()
                raise
            self._source = image
            self._source_info = info
            self._refresh_previews()
            return info

    def clear_image(self) -> None:
        with self._lock:
            self._clear_source()

    def update_config(self, **changes: Any) -> RenderConfig:
        """Apply a partial config change; previews re-render only if a render input changed."""
        with self._lock:
            merged = {**self._config.model_dump(), **changes}
            new = RenderConfig.model_validate(merged)
            old = self._config
            self._config = new
            if new.render_inputs() != old.render_inputs():
                self._refresh_previews()
            return new

    def set_export_format(self, fmt: ExportFormat) -> None:
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")
        with self._lock:
            self._export_format = fmt

    def preview(self, shape: Shape) -> Image.Image:
        with self._lock:
            if self._source is None:
                raise NoSourceImageError("No image selected")
            if shape not in SHAPES:
                raise ValueError(f"Unknown shape: {shape}")
            return self._previews[shape]

    def preview_png(self, shape: Shape) -> bytes:
        buf = io.BytesIO()
        self.preview(shape).save(buf, format="PNG")
        return buf.getvalue()

    def render(self, output_size: int, shape: Shape | None = None) -> Image.Image:
        with self._lock:
            if self._source is None:
                raise NoSourceImageError("No image selected")
            return render_with_config(self._source, self._config, output_size, shape)

    def export(self, fmt: ExportFormat | None = None) -> ExportResult:
        with self._lock:
            if self._source is None:
                raise NoSourceImageError("No image selected to export.")
            if self._export_in_flight:
                raise ExportInProgressError("An export is already running")
            self._export_in_flight = True
            source = self._source
            config = self._config
            fmt = fmt or self._export_format
        try:
            return export_icon_set(source, config, fmt, cfg=self._cfg)
        finally:
            with self._lock:
                self._export_in_flight = False

    def _clear_source(self) -> None:
        self._source = None
        self._source_info = None
        self._previews = {}

    def _refresh_previews(self) -> None:
        if self._source is None:
            self._previews = {}
            return
        self._previews = {
            shape: render_with_config(self._source, self._config, PREVIEW_SIZE, shape) for shape in SHAPES
        }
