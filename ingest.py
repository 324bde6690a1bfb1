#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
File ingest: validate an uploaded image and encode it for the edit call.

An ingested image carries a preview reference. References handed out by a
PreviewStore stay live until released, so callers must release the previous
one when a new image supersedes it.
"""

from __future__ import annotations

import base64
import enum
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from imaging import parse_data_uri, to_data_uri
from settings import MAX_UPLOAD_BYTES

logger = logging.getLogger(__name__)

PREVIEW_SCHEME = "preview://"


class ValidationReason(str, enum.Enum):
    NOT_AN_IMAGE = "not_an_image"
    TOO_LARGE = "too_large"


_VALIDATION_MESSAGES = {
    ValidationReason.NOT_AN_IMAGE: "Please upload a valid image file (PNG, JPEG, WEBP).",
    ValidationReason.TOO_LARGE: "File size too large. Please upload an image under 5MB.",
}


class ValidationError(ValueError):
    """Raised when an upload is rejected before any remote call."""

    def __init__(self, reason: ValidationReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or _VALIDATION_MESSAGES[reason])


@dataclass(frozen=True)
class LocalFile:
    """In-memory file with the same surface as Streamlit's UploadedFile."""

    name: str
    type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    def getvalue(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class IngestedImage:
    file: Any = field(repr=False)
    name: str
    size: int
    preview_ref: str
    base64_payload: str = field(repr=False)
    mime_type: str


class PreviewStore:
    """Owns the raw bytes behind preview references until they are released."""

    def __init__(self) -> None:
        self._items: Dict[str, bytes] = {}
        self._ids = itertools.count(1)

    def allocate(self, data: bytes) -> str:
        ref = f"{PREVIEW_SCHEME}{next(self._ids)}"
        self._items[ref] = data
        return ref

    def resolve(self, ref: str) -> Optional[bytes]:
        """Return the bytes behind a preview reference or data URI, if any."""
        if ref.startswith("data:"):
            return parse_data_uri(ref)[1]
        return self._items.get(ref)

    def release(self, ref: Optional[str]) -> bool:
        if not ref or ref not in self._items:
            return False
        del self._items[ref]
        logger.debug("Released preview %s", ref)
        return True

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, ref: object) -> bool:
        return ref in self._items


def _read_payload(file: Any) -> bytes:
    if hasattr(file, "getvalue"):
        return file.getvalue()
    data = file.read()
    if hasattr(file, "seek"):
        file.seek(0)
    return data


def ingest(file: Any, previews: Optional[PreviewStore] = None) -> IngestedImage:
    """Validate and encode a user-selected image.

    Args:
        file: object exposing ``type`` (declared MIME type), ``name`` and
            ``getvalue()`` or ``read()``; ``size`` is used when present
        previews: store that owns the preview reference; without one the
            preview is a self-contained data URI

    Raises:
        ValidationError: the declared type is not an image or the file
            exceeds MAX_UPLOAD_BYTES
    """
    mime_type = (getattr(file, "type", None) or "").strip().lower()
    name = getattr(file, "name", None) or "upload"
    if not mime_type.startswith("image/"):
        raise ValidationError(ValidationReason.NOT_AN_IMAGE)

    declared_size = getattr(file, "size", None)
    if declared_size is not None and declared_size > MAX_UPLOAD_BYTES:
        raise ValidationError(ValidationReason.TOO_LARGE)

    data = _read_payload(file)
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationError(ValidationReason.TOO_LARGE)

    payload = base64.b64encode(data).decode("ascii")
    preview_ref = previews.allocate(data) if previews is not None else to_data_uri(payload, mime_type)
    logger.info("Ingested %s (%s, %d bytes)", name, mime_type, len(data))
    return IngestedImage(
        file=file,
        name=name,
        size=len(data),
        preview_ref=preview_ref,
        base64_payload=payload,
        mime_type=mime_type,
    )
