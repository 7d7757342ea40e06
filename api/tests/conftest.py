from __future__ import annotations

import io

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from iconkit.icons.session import IconSession
from iconkit.main import app, get_session

RED = (220, 30, 40)
BLUE = (20, 40, 200)


def solid(width: int, height: int, color: tuple[int, int, int] = RED, mode: str = "RGBA") -> Image.Image:
    fill = (*color, 255) if mode == "RGBA" else color
    return Image.new(mode, (width, height), fill)


def encoded(image: Image.Image, fmt: str = "PNG", **kwargs) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def pixels(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("RGBA"), dtype=np.int16)


def center_distance(size: int) -> np.ndarray:
    """Distance of every pixel centre from the surface centre."""
    c = np.arange(size) + 0.5 - size / 2
    return np.sqrt(c[np.newaxis, :] ** 2 + c[:, np.newaxis] ** 2)


@pytest.fixture()
def wide_source() -> Image.Image:
    return solid(1000, 500)


@pytest.fixture()
def square_source() -> Image.Image:
    return solid(64, 64)


@pytest.fixture()
def session() -> IconSession:
    return IconSession()


@pytest.fixture()
def client(session: IconSession):
    app.dependency_overrides[get_session] = lambda: session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
