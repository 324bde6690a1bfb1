#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Pillow helpers, data URI encoding and download serialization."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import time
from typing import Optional, Tuple

from PIL import Image

from settings import PRODUCT_SLUG

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/png"


# =============================================================================
# Pillow helpers
# =============================================================================

def image_to_bytes_png(img: Image.Image) -> bytes:
    """Encode PIL Image to PNG bytes."""
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def bytes_to_image_safe(data: bytes) -> Image.Image:
    """Decode bytes into a PIL Image with safety defaults."""
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def reencode_png(data: bytes) -> bytes:
    """Decode any Pillow-readable image and return it as PNG bytes."""
    img = bytes_to_image_safe(data)
    if img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
        img = img.convert("RGBA")
    return image_to_bytes_png(img)


def image_dimensions(data: bytes) -> Optional[Tuple[int, int]]:
    """Return (width, height), or None when Pillow cannot read the bytes."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (OSError, ValueError):
        return None


# =============================================================================
# Data URIs
# =============================================================================

def to_data_uri(base64_payload: str, mime_type: Optional[str] = None) -> str:
    return f"data:{mime_type or DEFAULT_IMAGE_MIME};base64,{base64_payload}"


def parse_data_uri(uri: str) -> Tuple[str, bytes]:
    """Split a base64 data URI into (mime_type, raw bytes).

    Raises ValueError when the string is not a base64 data URI.
    """
    if not uri.startswith("data:"):
        raise ValueError("Not a data URI")
    header, sep, payload = uri[5:].partition(",")
    if not sep or not header.endswith(";base64"):
        raise ValueError("Data URI is not base64 encoded")
    mime_type = header[: -len(";base64")] or DEFAULT_IMAGE_MIME
    try:
        raw = base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return mime_type, raw


# =============================================================================
# Download
# =============================================================================

def download_filename(now: Optional[float] = None, product: str = PRODUCT_SLUG) -> str:
    """File name for a downloaded result, stamped with epoch milliseconds."""
    stamp = int((time.time() if now is None else now) * 1000)
    return f"{product}-cleaned-{stamp}.png"


def download_bytes(data_uri: str) -> bytes:
    """Serialize a processed image data URI to PNG bytes for saving."""
    mime_type, raw = parse_data_uri(data_uri)
    if mime_type == DEFAULT_IMAGE_MIME:
        return raw
    try:
        return reencode_png(raw)
    except (OSError, ValueError):
        logger.warning("Could not convert %s result to PNG; saving original bytes", mime_type)
        return raw
