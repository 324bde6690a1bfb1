"""Test configuration and fixtures."""

from __future__ import annotations

import base64
import io
import os
from typing import Any, Callable, Dict
from unittest.mock import MagicMock

import pytest
from PIL import Image

from ingest import LocalFile


def _encode(img: Image.Image, fmt: str, **kwargs: Any) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """A small red PNG."""
    return _encode(Image.new("RGB", (64, 48), color="red"), "PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A small blue JPEG."""
    return _encode(Image.new("RGB", (64, 48), color="blue"), "JPEG")


@pytest.fixture
def large_jpeg_bytes() -> bytes:
    """A noisy JPEG of roughly 2 MB, under the upload limit."""
    img = Image.frombytes("RGB", (1024, 1024), os.urandom(1024 * 1024 * 3))
    data = _encode(img, "JPEG", quality=100)
    assert 1_000_000 < len(data) < 5 * 1024 * 1024
    return data


@pytest.fixture
def png_file(png_bytes: bytes) -> LocalFile:
    return LocalFile(name="sample.png", type="image/png", data=png_bytes)


@pytest.fixture
def gemini_reply() -> Callable[..., Dict[str, Any]]:
    """Build a generateContent reply envelope from a list of parts."""

    def build(parts: Any, **extra: Any) -> Dict[str, Any]:
        envelope: Dict[str, Any] = {"candidates": [{"content": {"role": "model", "parts": parts}}]}
        envelope.update(extra)
        return envelope

    return build


@pytest.fixture
def png_part(png_bytes: bytes) -> Dict[str, Any]:
    return {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(png_bytes).decode("ascii")}}


@pytest.fixture
def http_session() -> Callable[..., MagicMock]:
    """Return a factory for a mocked requests.Session whose post() replies once."""

    def build(payload: Any = None, status_code: int = 200, text: str = "") -> MagicMock:
        resp = MagicMock()
        resp.status_code = status_code
        resp.text = text
        if isinstance(payload, Exception):
            resp.json.side_effect = payload
        else:
            resp.json.return_value = payload
        session = MagicMock()
        session.post.return_value = resp
        return session

    return build
