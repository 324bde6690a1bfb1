#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration and constants for ClearView AI.

API key lookup order:
  1) st.secrets["GEMINI_API_KEY"] (Streamlit Cloud Secrets)
  2) environment variable GEMINI_API_KEY
  3) environment variable API_KEY
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import streamlit as st

APP_TITLE = "ClearView AI"
PRODUCT_SLUG = "clearview"

MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5 MiB
UPLOAD_TYPES = ["png", "jpg", "jpeg", "webp"]

DEFAULT_MODEL = "gemini-2.5-flash-image"
MODEL_OPTIONS = [
    "gemini-2.5-flash-image",
    "gemini-2.0-flash-preview-image-generation",
]
GENERATE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

DEFAULT_TIMEOUT = 60.0  # seconds

PRIVACY_NOTE = (
    "Images are sent to Google Gemini for processing and are not stored by this app. "
    "Do not upload sensitive content."
)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _secret_api_key() -> Optional[str]:
    try:
        # Streamlit Cloud secrets (or local .streamlit/secrets.toml)
        return st.secrets.get("GEMINI_API_KEY")  # type: ignore[attr-defined]
    except Exception:
        # st.secrets raises when no secrets file exists
        return None


def read_env_api_key() -> Optional[str]:
    """Return the Gemini API key, or None when none is configured."""
    return _secret_api_key() or os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")


def api_key_source() -> str:
    """Return a human-readable source of the API key for UI display."""
    if _secret_api_key():
        return "Secrets"
    if os.environ.get("GEMINI_API_KEY"):
        return "Env (GEMINI_API_KEY)"
    if os.environ.get("API_KEY"):
        return "Env (API_KEY)"
    return "None"


def request_timeout() -> float:
    """Seconds to wait for the edit call; CLEARVIEW_TIMEOUT overrides the default."""
    raw = os.environ.get("CLEARVIEW_TIMEOUT")
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring invalid CLEARVIEW_TIMEOUT=%r", raw)
        return DEFAULT_TIMEOUT
    return value if value > 0 else DEFAULT_TIMEOUT


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once; CLEARVIEW_LOG_LEVEL sets the level."""
    name = (level or os.environ.get("CLEARVIEW_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
