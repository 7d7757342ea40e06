from __future__ import annotations

import io
import os
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ConfigDict

from iconkit.icons.models import (
    ICON_SPECS,
    PADDING_MAX_PX,
    PADDING_MIN_PX,
    PREVIEW_SIZE,
    SHAPES,
    ExportFormat,
    Shape,
)
from iconkit.icons.pipeline import ExportResult, ImageDecodeError, export_archive, get_icon_config
from iconkit.icons.s3 import publish_export
from iconkit.icons.session import ExportInProgressError, IconSession, NoSourceImageError

app = FastAPI(title="Launcher Icon Studio", docs_url="/docs", redoc_url=None)

MAX_RENDER_SIZE = 1024

_SESSION = IconSession()


def get_session() -> IconSession:
    return _SESSION


def _auth_disabled() -> bool:
    mode = os.environ.get("AUTH_MODE", "").strip().lower()
    if mode in {"0", "false", "no", "off", "disabled"}:
        return True
    v = os.environ.get("AUTH_DISABLED", "").strip().lower()
    return v in {"1", "true", "yes", "on"}


def _require_api_key(x_api_key: str | None) -> None:
    if _auth_disabled():
        return
    expected = os.environ.get("ICONKIT_API_KEY", "").strip()
    if not expected:
        raise HTTPException(status_code=500, detail="ICONKIT_API_KEY is not set")
    if not x_api_key or x_api_key.strip() != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


def _require_shape(shape: str) -> Shape:
    if shape not in SHAPES:
        raise HTTPException(status_code=400, detail=f"Invalid shape (use {', '.join(SHAPES)})")
    return shape  # type: ignore[return-value]


def _state_payload(session: IconSession) -> dict[str, Any]:
    cfg = session.config
    info = session.source_info
    return {
        "ok": True,
        "has_source": session.has_source,
        "source": {"width": info.width, "height": info.height, "format": info.format} if info else None,
        "config": {
            "padding_px": cfg.padding_px,
            "background_color": cfg.background_hex,
            "transparent": cfg.transparent,
            "shape": cfg.shape,
        },
        "export_format": session.export_format,
        "export_in_flight": session.export_in_flight,
        "preview_size": PREVIEW_SIZE,
        "icons": [
            {"path": spec.path(session.export_format), "size": spec.output_size, "shape": spec.shape}
            for spec in ICON_SPECS
        ],
    }


def _png_response(png_bytes: bytes) -> Response:
    return Response(content=png_bytes, media_type="image/png", headers={"Cache-Control": "no-store"})


_UI_CSS = """
:root {
  color-scheme: light;
  --primary: #2d3748;
  --accent: #4c51bf;
  --text: #1a202c;
  --muted: rgba(26, 32, 44, 0.6);
  --bg: #f5f6f7;
  --surface: #ffffff;
  --band: #f7f7f8;
  --border: #e2e8f0;
  --tint: rgba(76, 81, 191, 0.12);
  --radius: 16px;
}

* { box-sizing: border-box; }
body {
  margin: 0;
  font-family: Roboto, system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", "Helvetica Neue", Arial, sans-serif;
  color: var(--text);
  background: var(--bg);
  line-height: 1.6;
}
.muted { color: var(--muted); font-size: 13px; }
.container { margin: 0 auto; padding: 0 24px; }
.topbar { background: var(--surface); border-bottom: 1px solid var(--border); }
.topbar-inner { display: flex; align-items: center; justify-content: space-between; padding: 14px 0; }
.brand { display: flex; align-items: center; gap: 10px; font-weight: 650; }
.brand-dot { width: 10px; height: 10px; border-radius: 999px; background: var(--accent); box-shadow: 0 0 0 4px var(--tint); }
main { padding: 22px 0 40px; }
.card { background: var(--surface); border: 1px solid var(--border); border-radius: var(--radius); padding: 16px; }
.card + .card { margin-top: 16px; }
h1 { margin: 0; font-size: 20px; }
h2 { margin: 0 0 8px; font-size: 14px; }
.btnrow { display: flex; gap: 10px; flex-wrap: wrap; margin-top: 12px; }
.btn { border-radius: 999px; padding: 10px 16px; font-size: 14px; border: 1px solid var(--border); background: var(--surface); color: var(--primary); cursor: pointer; }
.btn.primary { background: var(--accent); border-color: var(--accent); color: #fff; }
.btn:disabled { opacity: 0.6; cursor: not-allowed; }
label { display: block; font-size: 12px; color: var(--muted); margin-bottom: 6px; }
.previews { display: grid; grid-template-columns: repeat(3, 1fr); gap: 16px; }
.preview { text-align: center; }
.preview img { width: 100%; max-width: 192px; aspect-ratio: 1; border-radius: 12px; border: 1px solid var(--border);
  background: repeating-conic-gradient(#e2e8f0 0% 25%, #fff 0% 50%) 50% / 16px 16px; }
.controls { display: grid; grid-template-columns: repeat(auto-fit, minmax(220px, 1fr)); gap: 16px; margin-top: 16px; }
.inline { display: inline-flex; align-items: center; gap: 6px; margin-right: 12px; font-size: 14px; color: var(--text); }
.statusbox { margin-top: 12px; padding: 12px; border-radius: 14px; border: 1px solid var(--border); background: var(--band); font-size: 12px; white-space: pre-wrap; }
""".strip()


def _ui_shell(*, title: str, body_html: str, max_width_px: int = 960, extra_script: str = "") -> str:
    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{title}</title>
    <style>{_UI_CSS}</style>
  </head>
  <body>
    <header class="topbar">
      <div class="container" style="max-width:{max_width_px}px;">
        <div class="topbar-inner">
          <div class="brand"><span class="brand-dot"></span><span>Launcher Icon Studio</span></div>
          <a class="muted" href="/docs">API docs</a>
        </div>
      </div>
    </header>
    <main>
      <div class="container" style="max-width:{max_width_px}px;">
        {body_html}
      </div>
    </main>
    {extra_script}
  </body>
</html>"""


@app.get("/", response_class=HTMLResponse)
def home(session: IconSession = Depends(get_session)) -> str:
    cfg = session.config
    fmt = session.export_format
    transparent_attr = "checked" if cfg.transparent else ""
    color_attr = "disabled" if cfg.transparent else ""
    png_attr = "checked" if fmt == "png" else ""
    webp_attr = "checked" if fmt == "webp" else ""
    body_html = f"""
      <div class="card">
        <h1>Android Icon Generator</h1>
        <p class="muted">Upload an image, adjust the padding and background color, and export a complete set of Android launcher icons.</p>
        <div class="btnrow">
          <input id="file" type="file" accept="image/png,image/jpeg,image/webp,image/x-icon" hidden />
          <button id="upload" class="btn primary" type="button">Upload Image</button>
        </div>
        <div id="status" class="statusbox">No image selected.</div>
      </div>

      <div class="card">
        <div class="previews">
          <div class="preview"><h2>Square (ic_launcher_foreground)</h2><img id="preview-square" alt="" /></div>
          <div class="preview"><h2>Rounded (ic_launcher)</h2><img id="preview-rounded" alt="" /></div>
          <div class="preview"><h2>Circle (ic_launcher_round)</h2><img id="preview-circle" alt="" /></div>
        </div>

        <div class="controls">
          <div>
            <label for="padding">Padding / Zoom: <strong id="padding-value">{cfg.padding_px}px</strong></label>
            <input id="padding" type="range" min="{PADDING_MIN_PX}" max="{PADDING_MAX_PX}" step="1" value="{cfg.padding_px}" style="width:100%;" />
          </div>
          <div>
            <label>Background</label>
            <span class="inline"><input id="transparent" type="checkbox" {transparent_attr} /> Transparent</span>
            <input id="color" type="color" value="{cfg.background_hex}" {color_attr} />
          </div>
          <div>
            <label>Export format</label>
            <span class="inline"><input type="radio" name="format" value="png" {png_attr} /> PNG</span>
            <span class="inline"><input type="radio" name="format" value="webp" {webp_attr} /> WebP</span>
          </div>
        </div>

        <div class="btnrow">
          <button id="export" class="btn primary" type="button" disabled>Export All Icons</button>
        </div>
      </div>
    """.strip()

    script = f"""
    <script>
      const statusEl = document.getElementById('status');
      const fileEl = document.getElementById('file');
      const uploadBtn = document.getElementById('upload');
      const exportBtn = document.getElementById('export');
      const paddingEl = document.getElementById('padding');
      const paddingValueEl = document.getElementById('padding-value');
      const colorEl = document.getElementById('color');
      const transparentEl = document.getElementById('transparent');
      const shapes = {list(SHAPES)!r};
      let hasSource = false;
      let version = 0;

      function refreshPreviews() {{
        version += 1;
        for (const shape of shapes) {{
          const img = document.getElementById('preview-' + shape);
          if (hasSource) img.src = `/icons/preview/${{shape}}.png?v=${{version}}`;
          else img.removeAttribute('src');
        }}
        exportBtn.disabled = !hasSource;
      }}

      async function call(url, opts) {{
        const res = await fetch(url, opts);
        if (!res.ok) {{
          const body = await res.json().catch(() => ({{}}));
          throw new Error(body.detail || `HTTP ${{res.status}}`);
        }}
        return res;
      }}

      // One PUT in flight at a time; patches queued meanwhile are merged so the last value wins.
      let queuedPatch = null;
      let configFlush = null;

      async function flushConfig() {{
        while (queuedPatch) {{
          const patch = queuedPatch;
          queuedPatch = null;
          try {{
            await call('/icons/config', {{ method: 'PUT', headers: {{ 'Content-Type': 'application/json' }}, body: JSON.stringify(patch) }});
          }} catch (e) {{
            statusEl.textContent = 'Error: ' + String(e?.message || e);
          }}
        }}
        configFlush = null;
        refreshPreviews();
      }}

      function updateConfig(patch) {{
        queuedPatch = Object.assign(queuedPatch || {{}}, patch);
        if (!configFlush) configFlush = flushConfig();
        return configFlush;
      }}

      uploadBtn.addEventListener('click', () => fileEl.click());
      fileEl.addEventListener('change', async () => {{
        const file = fileEl.files[0];
        if (!file) return;
        uploadBtn.disabled = true;
        uploadBtn.textContent = 'Processing...';
        try {{
          const res = await call('/icons/source', {{ method: 'POST', headers: {{ 'Content-Type': file.type || 'application/octet-stream' }}, body: file }});
          const body = await res.json();
          hasSource = true;
          statusEl.textContent = `Selected: ${{file.name}} (${{body.source.width}}x${{body.source.height}})`;
        }} catch (e) {{
          hasSource = false;
          statusEl.textContent = 'Image failed to load: ' + String(e?.message || e);
        }} finally {{
          uploadBtn.disabled = false;
          uploadBtn.textContent = 'Upload Image';
          fileEl.value = '';
          refreshPreviews();
        }}
      }});

      paddingEl.addEventListener('input', () => {{
        paddingValueEl.textContent = paddingEl.value + 'px';
        updateConfig({{ padding_px: parseInt(paddingEl.value, 10) }});
      }});
      colorEl.addEventListener('input', () => updateConfig({{ background_color: colorEl.value }}));
      transparentEl.addEventListener('change', () => {{
        colorEl.disabled = transparentEl.checked;
        updateConfig({{ transparent: transparentEl.checked }});
      }});
      for (const radio of document.querySelectorAll('input[name="format"]')) {{
        radio.addEventListener('change', () => updateConfig({{ export_format: radio.value }}));
      }}

      exportBtn.addEventListener('click', async () => {{
        const fmt = document.querySelector('input[name="format"]:checked').value;
        exportBtn.disabled = true;
        exportBtn.textContent = 'Downloading...';
        try {{
          if (configFlush) await configFlush;
          const res = await call(`/icons/export?format=${{fmt}}`, {{ method: 'POST' }});
          const failures = Number(res.headers.get('X-Icon-Export-Failures') || 0);
          const blob = await res.blob();
          const a = document.createElement('a');
          a.href = URL.createObjectURL(blob);
          a.download = `launcher-icons-${{fmt}}.zip`;
          a.click();
          URL.revokeObjectURL(a.href);
          statusEl.textContent = failures ? `Exported with ${{failures}} failed file(s).` : 'Exported all icons.';
        }} catch (e) {{
          statusEl.textContent = 'Export failed: ' + String(e?.message || e);
        }} finally {{
          exportBtn.disabled = !hasSource;
          exportBtn.textContent = 'Export All Icons';
        }}
      }});

      fetch('/icons/state').then((r) => r.json()).then((s) => {{
        hasSource = Boolean(s.has_source);
        if (hasSource) statusEl.textContent = `Selected image (${{s.source.width}}x${{s.source.height}})`;
        refreshPreviews();
      }});
    </script>
    """.strip()

    return _ui_shell(title="Launcher Icon Studio", body_html=body_html, extra_script=script)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


@app.get("/icons/state")
def icons_state(session: IconSession = Depends(get_session)) -> dict[str, Any]:
    return _state_payload(session)


@app.post("/icons/source")
async def icons_upload_source(request: Request, session: IconSession = Depends(get_session)) -> dict[str, Any]:
    limit = get_icon_config().max_upload_bytes
    declared = (request.headers.get("content-length") or "").strip()
    if declared.isdigit() and int(declared) > limit:
        raise HTTPException(status_code=413, detail=f"Upload exceeds {limit} bytes")

    data = await request.body()
    if len(data) > limit:
        raise HTTPException(status_code=413, detail=f"Upload exceeds {limit} bytes")

    try:
        await run_in_threadpool(session.load_image, data)
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Image failed to load: {e}") from e

    return _state_payload(session)


@app.delete("/icons/source")
def icons_clear_source(session: IconSession = Depends(get_session)) -> dict[str, Any]:
    session.clear_image()
    return _state_payload(session)


class IconConfigIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    padding_px: int | None = None
    background_color: str | list[int] | None = None
    transparent: bool | None = None
    shape: Shape | None = None
    export_format: ExportFormat | None = None


@app.put("/icons/config")
def icons_update_config(payload: IconConfigIn, session: IconSession = Depends(get_session)) -> dict[str, Any]:
    changes = payload.model_dump(exclude_none=True)
    fmt = changes.pop("export_format", None)
    if changes:
        try:
            session.update_config(**changes)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
    if fmt:
        session.set_export_format(fmt)
    return _state_payload(session)


@app.get("/icons/preview/{shape}.png")
def icons_preview(shape: str, session: IconSession = Depends(get_session)) -> Response:
    shape_ok = _require_shape(shape)
    try:
        return _png_response(session.preview_png(shape_ok))
    except NoSourceImageError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.get("/icons/render.png")
def icons_render(
    size: int = Query(PREVIEW_SIZE, ge=1, le=MAX_RENDER_SIZE),
    shape: str | None = Query(None),
    session: IconSession = Depends(get_session),
) -> Response:
    shape_ok = _require_shape(shape) if shape else None
    try:
        image = session.render(size, shape_ok)
    except NoSourceImageError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return _png_response(buf.getvalue())


def _run_export(session: IconSession, fmt: ExportFormat | None) -> ExportResult:
    try:
        result = session.export(fmt)
    except NoSourceImageError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ExportInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    if not result.files:
        raise HTTPException(status_code=500, detail={"message": "Export failed for every icon", **result.summary()})
    return result


@app.post("/icons/export")
def icons_export(
    fmt: ExportFormat | None = Query(None, alias="format"),
    session: IconSession = Depends(get_session),
) -> Response:
    result = _run_export(session, fmt)
    return Response(
        content=export_archive(result),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="launcher-icons-{result.format}.zip"',
            "X-Icon-Export-Failures": str(len(result.failures)),
        },
    )


@app.post("/icons/export/s3")
def icons_export_s3(
    fmt: ExportFormat | None = Query(None, alias="format"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    session: IconSession = Depends(get_session),
) -> dict[str, Any]:
    _require_api_key(x_api_key)
    result = _run_export(session, fmt)
    try:
        published = publish_export(result)
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    return {
        "ok": not published.failures,
        "export_id": published.export_id,
        "s3_bucket": published.bucket,
        "format": result.format,
        "files": [{"path": path, "s3_key": key, "view_url": published.urls.get(path, "")} for path, key in published.keys.items()],
        "failures": [{"path": f.path, "error": f.error} for f in published.failures],
    }

