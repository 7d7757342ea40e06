#!/usr/bin/env python3
from __future__ import annotations

import argparse
from pathlib import Path

from iconkit.icons.models import EXPORT_FORMATS, PADDING_MAX_PX, PADDING_MIN_PX, RenderConfig
from iconkit.icons.pipeline import ImageDecodeError, decode_source_image, export_icon_set, write_export_tree


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Generate Android launcher icons (mipmap-*/ic_launcher*) from one image.")
    ap.add_argument("src", type=Path, help="Source image (PNG/JPEG/WebP/ICO)")
    ap.add_argument("--out-dir", type=Path, default=Path("res"), help="Output res/ directory (default: ./res)")
    ap.add_argument(
        "--padding",
        type=int,
        default=10,
        help=f"Padding in px at every size; negative zooms in (clamped to {PADDING_MIN_PX}..{PADDING_MAX_PX}).",
    )
    ap.add_argument("--background", default="#2d3748", help="Background color as #rrggbb (default: #2d3748)")
    ap.add_argument("--transparent", action="store_true", help="Skip the background fill.")
    ap.add_argument("--format", choices=EXPORT_FORMATS, default="png", help="Export format (default: png)")
    args = ap.parse_args(argv)

    if not args.src.exists():
        print(f"Source not found: {args.src}")
        return 1

    try:
        config = RenderConfig(padding_px=args.padding, background_color=args.background, transparent=args.transparent)
    except ValueError as e:
        print(f"Invalid settings: {e}")
        return 2

    try:
        source, info = decode_source_image(args.src.read_bytes())
    except ImageDecodeError as e:
        print(f"Image failed to load: {e}")
        return 1

    result = export_icon_set(source, config, args.format)
    written = write_export_tree(result, args.out_dir)

    print(f"Source {args.src} ({info.width}x{info.height}), padding={config.padding_px}px")
    for p in written:
        print(f"wrote: {p}")
    for f in result.failures:
        print(f"failed: {f.path}: {f.error}")
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
