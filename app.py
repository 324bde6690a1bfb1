#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ClearView AI: Watermark Remover (Streamlit app)

Features
- Upload an image (drag-and-drop or browse); it is sent to Gemini straight away
- Before/after toggle on the result, Download as PNG
- Try again re-sends the same upload; Start over clears everything
- Mock mode echoes the upload back so the flow works without an API key
- Nothing is written to disk

Run
  pip install -e .
  # macOS/Linux
  export GEMINI_API_KEY="..."
  streamlit run app.py
"""

from __future__ import annotations

import datetime
import logging
import textwrap
from typing import Any, Tuple

import streamlit as st

from edit_client import REMOVAL_INSTRUCTION, GeminiEditClient, MockEditClient
from imaging import download_bytes, download_filename, image_dimensions, parse_data_uri
from result_state import ResultStatus
from session import SessionController
from settings import (
    APP_TITLE,
    MODEL_OPTIONS,
    PRIVACY_NOTE,
    UPLOAD_TYPES,
    api_key_source,
    configure_logging,
    read_env_api_key,
)

logger = logging.getLogger(__name__)

st.set_page_config(
    page_title=f"{APP_TITLE} · Watermark Remover",
    layout="wide",
)

FEATURES = [
    ("Lightning Fast", "Powered by Gemini 2.5 Flash Image, get results in seconds rather than minutes."),
    ("AI Reconstruction", "Doesn't just blur; it intelligently reconstructs the background behind the text."),
    ("Private & Secure", "Your images are processed securely and aren't stored on our servers."),
]

# =============================================================================
# Session
# =============================================================================

def get_controller() -> SessionController:
    """Return this browser session's controller, creating it on first run."""
    if "controller" not in st.session_state:
        st.session_state["controller"] = SessionController(client=MockEditClient())
        st.session_state["uploader_key"] = 0
    return st.session_state["controller"]


def build_client(use_real: bool, model: str) -> Any:
    if not use_real:
        return MockEditClient()
    return GeminiEditClient(api_key=read_env_api_key(), model=model)


def ensure_client(controller: SessionController, use_real: bool, model: str) -> None:
    """Swap the controller's client only when the sidebar settings change."""
    config = (use_real, model)
    if st.session_state.get("client_config") == config:
        return
    close = getattr(controller.client, "close", None)
    if callable(close):
        close()
    controller.client = build_client(use_real, model)
    st.session_state["client_config"] = config
    logger.info("Edit client set to %s", "gemini:" + model if use_real else "mock")


def on_retry() -> None:
    get_controller().retry()


def on_reset() -> None:
    get_controller().reset()
    # a fresh key drops the previous upload from the widget
    st.session_state["uploader_key"] += 1

# =============================================================================
# UI Helpers
# =============================================================================

def show_header() -> None:
    st.title(APP_TITLE)
    st.caption(PRIVACY_NOTE)


def show_footer() -> None:
    st.divider()
    st.caption(f"© {datetime.date.today().year} {APP_TITLE}. Powered by Google Gemini.")


def sidebar_controls() -> Tuple[bool, str]:
    """Render settings.

    Returns:
        use_real (bool): True if real Gemini should be used
        model (str): Gemini model name
    """
    st.sidebar.markdown("### Settings")

    api_key_present = bool(read_env_api_key())
    use_real = st.sidebar.toggle(
        "Use real Gemini",
        value=api_key_present,
        help="Enable to call Gemini if an API key is set in env or Streamlit Secrets.",
        disabled=not api_key_present,
    )
    if not use_real:
        st.sidebar.info("Mock mode: the upload is echoed back without watermark removal.")

    model = st.sidebar.selectbox(
        "Gemini model",
        options=MODEL_OPTIONS,
        index=0,
        help="Model used for real calls. Must support image output.",
    )
    st.sidebar.caption(f"API key source: {api_key_source()}")

    with st.sidebar.expander("Instruction sent to the model", expanded=False):
        st.code(REMOVAL_INSTRUCTION, language=None)

    with st.sidebar.expander("README / How to run", expanded=False):
        st.markdown(
            textwrap.dedent(
                """
                Run locally:
                - pip install -e .
                - Set API key:
                  - macOS/Linux: export GEMINI_API_KEY="..."
                  - Windows PowerShell: setx GEMINI_API_KEY "..."
                - streamlit run app.py

                Optional environment:
                - CLEARVIEW_TIMEOUT: seconds to wait for Gemini (default 60)
                - CLEARVIEW_LOG_LEVEL: DEBUG, INFO, WARNING...

                Streamlit Cloud:
                - In the app's Settings → Secrets, add GEMINI_API_KEY = your_key
                """
            )
        )

    return use_real, model

# =============================================================================
# Main App Views
# =============================================================================

def view_idle(controller: SessionController) -> None:
    st.markdown("## Remove Watermarks *Magically*")
    st.write(
        "Upload any image with watermarks, logos, or text overlays. Our AI will reconstruct "
        "the background to give you a clean, professional image in seconds."
    )

    uploaded = st.file_uploader(
        "Upload an image (drag and drop or click to browse)",
        type=UPLOAD_TYPES,
        key=f"uploader_{st.session_state['uploader_key']}",
        help="PNG, JPG or WEBP, up to 5MB.",
    )
    if uploaded is not None and controller.select_file(uploaded) is not None:
        st.rerun()

    if controller.upload_error:
        st.error(controller.upload_error)

    cols = st.columns(len(FEATURES))
    for col, (title, body) in zip(cols, FEATURES):
        with col:
            st.markdown(f"**{title}**")
            st.caption(body)


def show_original(controller: SessionController, caption: str = "Original") -> None:
    image = controller.current_image
    data = controller.previews.resolve(controller.state.original_preview_ref)
    if image is None or data is None:
        return
    st.image(data, caption=caption, use_container_width=True)
    dims = image_dimensions(data)
    details = f"{image.name} · {image.mime_type} · {image.size / 1024:.0f} KB"
    if dims:
        details += f" · {dims[0]}×{dims[1]}"
    st.caption(details)


def view_result(controller: SessionController) -> None:
    state = controller.state

    left, right = st.columns([1, 5])
    with left:
        st.button("✕ Start over", on_click=on_reset, help="Start Over")
    with right:
        st.subheader("Result")

    if state.status is ResultStatus.PROCESSING:
        show_original(controller, caption="Removing watermarks...")
        if controller.has_pending:
            with st.spinner("Removing watermarks..."):
                controller.run_pending()
            st.rerun()
        return

    if state.status is ResultStatus.ERROR:
        st.error(f"Processing Failed\n\n{state.error_message}")
        c1, c2 = st.columns(2)
        with c1:
            st.button("Try again", on_click=on_retry, type="primary")
        with c2:
            st.button("Upload different image", on_click=on_reset)
        show_original(controller)
        return

    # success
    tab = st.radio("View", ["Result", "Original"], horizontal=True, key="result_tab")
    if tab == "Original":
        show_original(controller)
    else:
        _, raw = parse_data_uri(state.processed_image)
        st.image(raw, caption="Cleaned", use_container_width=True)

    c1, c2 = st.columns(2)
    with c1:
        # the name is stamped at render time; download_button fixes it before the click
        st.download_button(
            "Download Result",
            data=download_bytes(state.processed_image),
            file_name=download_filename(),
            mime="image/png",
            type="primary",
        )
    with c2:
        st.button("Try again", on_click=on_retry)

# =============================================================================
# App Entry
# =============================================================================

def main() -> None:
    configure_logging()
    controller = get_controller()

    show_header()
    use_real, model = sidebar_controls()
    ensure_client(controller, use_real, model)

    if controller.state.status is ResultStatus.IDLE:
        view_idle(controller)
    else:
        view_result(controller)

    show_footer()


if __name__ == "__main__":
    main()
