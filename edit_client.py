#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Remote edit client for the Gemini Generative Language API.

One call per edit attempt: the encoded image plus a fixed instruction go out
in a single generateContent request, and the first inline image in the reply
comes back as a data URI. Retrying is the caller's business.
"""

from __future__ import annotations

import base64
import enum
import logging
from typing import Any, Dict, List, Optional

import requests

from imaging import reencode_png, to_data_uri
from settings import DEFAULT_MODEL, GENERATE_URL, read_env_api_key, request_timeout

logger = logging.getLogger(__name__)

REMOVAL_INSTRUCTION = (
    "Remove any watermarks, logos, or text overlays from this image. "
    "Fill in the background naturally where the watermark was removed. "
    "Return ONLY the cleaned image."
)

# finishReason / blockReason values that mean the model refused on policy grounds
SAFETY_REASONS = frozenset({"SAFETY", "IMAGE_SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"})


class EditErrorKind(str, enum.Enum):
    EMPTY_RESPONSE = "empty_response"
    NO_IMAGE_RETURNED = "no_image_returned"
    TRANSPORT = "transport"


class EditError(RuntimeError):
    """Raised when an edit call yields no usable image."""

    def __init__(
        self,
        kind: EditErrorKind,
        message: str,
        *,
        safety_blocked: bool = False,
        block_reason: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.safety_blocked = safety_blocked
        self.block_reason = block_reason
        self.status_code = status_code


# =============================================================================
# Response envelope
# =============================================================================

def _block_reason(envelope: Dict[str, Any]) -> Optional[str]:
    """Return the structured refusal reason in an envelope, if any."""
    feedback = envelope.get("promptFeedback") or envelope.get("prompt_feedback") or {}
    reason = feedback.get("blockReason") or feedback.get("block_reason")
    if reason:
        return str(reason)
    for candidate in envelope.get("candidates") or []:
        finish = candidate.get("finishReason") or candidate.get("finish_reason")
        if finish and str(finish) in SAFETY_REASONS:
            return str(finish)
    return None


def _content_parts(envelope: Dict[str, Any]) -> List[Dict[str, Any]]:
    candidates = envelope.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return content.get("parts") or []


def _inline_image(part: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    inline = part.get("inlineData") or part.get("inline_data")
    if isinstance(inline, dict) and inline.get("data"):
        return inline
    return None


def extract_image_data_uri(envelope: Dict[str, Any]) -> str:
    """Return the first inline image in a generateContent reply as a data URI.

    Raises:
        EditError: EMPTY_RESPONSE when there are no content parts,
            NO_IMAGE_RETURNED when none of the parts carries image data
    """
    reason = _block_reason(envelope)
    parts = _content_parts(envelope)
    if not parts:
        message = "No content returned from the model."
        if reason:
            message = f"{message} Candidate was blocked due to safety ({reason})."
        raise EditError(
            EditErrorKind.EMPTY_RESPONSE, message,
            safety_blocked=reason is not None, block_reason=reason,
        )

    for part in parts:
        inline = _inline_image(part)
        if inline is not None:
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return to_data_uri(inline["data"], mime_type)

    raise EditError(
        EditErrorKind.NO_IMAGE_RETURNED,
        "The model did not return an image. It might have refused the request due to safety filters.",
        safety_blocked=reason is not None,
        block_reason=reason,
    )


def _error_detail(resp: requests.Response) -> str:
    try:
        return resp.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return resp.text[:512]


# =============================================================================
# Clients
# =============================================================================

class GeminiEditClient:
    """Sends one generateContent request per edit attempt."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        instruction: str = REMOVAL_INSTRUCTION,
    ):
        self.api_key = api_key if api_key is not None else read_env_api_key()
        self.model = model
        self.timeout = timeout if timeout is not None else request_timeout()
        self.session = session or requests.Session()
        self.instruction = instruction

    def close(self) -> None:
        self.session.close()

    def build_payload(self, base64_payload: str, mime_type: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"inline_data": {"mime_type": mime_type, "data": base64_payload}},
                        {"text": self.instruction},
                    ],
                }
            ],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    def remove_watermark(self, base64_payload: str, mime_type: str) -> str:
        """Return the cleaned image as a data URI.

        Raises:
            EditError: see extract_image_data_uri; TRANSPORT for network,
                auth and service failures
        """
        if not self.api_key:
            raise EditError(
                EditErrorKind.TRANSPORT,
                "GEMINI_API_KEY not found. Set the environment variable or enable Mock mode.",
            )

        url = GENERATE_URL.format(model=self.model)
        logger.info("Requesting watermark removal from %s", self.model)
        try:
            resp = self.session.post(
                url,
                headers={"Content-Type": "application/json"},
                params={"key": self.api_key},
                json=self.build_payload(base64_payload, mime_type),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Gemini request failed: %s", exc)
            raise EditError(EditErrorKind.TRANSPORT, f"Gemini request failed: {exc}") from exc

        if resp.status_code != 200:
            detail = _error_detail(resp)
            logger.error("Gemini API error %s: %s", resp.status_code, detail)
            raise EditError(
                EditErrorKind.TRANSPORT,
                f"Gemini API error {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )

        try:
            envelope = resp.json()
        except ValueError as exc:
            raise EditError(EditErrorKind.TRANSPORT, "Gemini returned a malformed response.") from exc

        try:
            return extract_image_data_uri(envelope)
        except EditError as exc:
            logger.warning("Gemini returned no image (%s): %s", exc.kind.value, exc.message)
            raise


class MockEditClient:
    """Echoes the upload back as PNG without calling the API."""

    model = "mock"

    def __init__(self) -> None:
        self.calls = 0

    def remove_watermark(self, base64_payload: str, mime_type: str) -> str:
        self.calls += 1
        raw = base64.b64decode(base64_payload)
        try:
            png = reencode_png(raw)
        except (OSError, ValueError) as exc:
            raise EditError(EditErrorKind.NO_IMAGE_RETURNED, f"Mock mode could not decode the upload: {exc}") from exc
        return to_data_uri(base64.b64encode(png).decode("ascii"), "image/png")
