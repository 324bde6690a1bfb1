#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Session controller: the single owner of result state for one browser session."""

from __future__ import annotations

import logging
from typing import Any, Optional

from edit_client import EditError
from ingest import IngestedImage, PreviewStore, ValidationError, ingest
from result_state import ResultState, ResultStateMachine, ResultStatus

logger = logging.getLogger(__name__)

SAFETY_MARKER = "Candidate was blocked due to safety"
SAFETY_MESSAGE = (
    "The AI could not process this image due to safety guidelines. "
    "Please try a different image."
)
UNEXPECTED_MESSAGE = "An unexpected error occurred."
READ_FAILED_MESSAGE = "Failed to process image. Please try again."


def classify_error(error: BaseException) -> str:
    """Map an edit failure to the message shown in the error panel."""
    if isinstance(error, EditError):
        if error.safety_blocked or SAFETY_MARKER in error.message:
            return SAFETY_MESSAGE
        return error.message
    return UNEXPECTED_MESSAGE


class SessionController:
    """Serializes ingest, edit and reset events onto one state machine.

    ``client`` is anything with ``remove_watermark(base64_payload, mime_type)``
    returning a data URI; it may be swapped between edit calls.
    """

    def __init__(self, client: Any, previews: Optional[PreviewStore] = None):
        self.client = client
        self.previews = previews if previews is not None else PreviewStore()
        self.machine = ResultStateMachine()
        self.current_image: Optional[IngestedImage] = None
        self.upload_error: Optional[str] = None
        self._pending: Optional[int] = None

    @property
    def state(self) -> ResultState:
        return self.machine.state

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def _replace_image(self, image: Optional[IngestedImage]) -> None:
        if self.current_image is not None:
            self.previews.release(self.current_image.preview_ref)
        self.current_image = image

    def select_file(self, file: Any) -> Optional[int]:
        """Ingest ``file`` and queue an edit call; returns the request token.

        Returns None when the upload is rejected (see ``upload_error``) or the
        session is not idle.
        """
        if self.machine.status is not ResultStatus.IDLE:
            logger.debug("Ignoring file selection while %s", self.machine.status.value)
            return None
        self.upload_error = None
        try:
            image = ingest(file, self.previews)
        except ValidationError as exc:
            logger.info("Rejected upload %s: %s", getattr(file, "name", "?"), exc.reason.value)
            self.upload_error = str(exc)
            return None
        except Exception:
            logger.exception("Failed to read upload %s", getattr(file, "name", "?"))
            self.upload_error = READ_FAILED_MESSAGE
            return None

        self._replace_image(image)
        token = self.machine.select_image(image.preview_ref)
        self._pending = token
        return token

    def retry(self) -> Optional[int]:
        if self.current_image is None:
            return None
        token = self.machine.retry()
        if token is not None:
            self._pending = token
        return token

    def reset(self) -> None:
        self._replace_image(None)
        self._pending = None
        self.upload_error = None
        self.machine.reset()

    def run_edit(self, token: int, image: IngestedImage) -> bool:
        """Perform one edit call for ``token``; False when the reply was stale."""
        try:
            data_uri = self.client.remove_watermark(image.base64_payload, image.mime_type)
        except EditError as exc:
            logger.warning("Edit failed for %s (%s): %s", image.name, exc.kind.value, exc.message)
            return self.machine.fail(token, classify_error(exc))
        except Exception as exc:
            logger.exception("Unexpected error while editing %s", image.name)
            return self.machine.fail(token, classify_error(exc))
        logger.info("Edit succeeded for %s", image.name)
        return self.machine.succeed(token, data_uri)

    def run_pending(self) -> ResultState:
        """Run the queued edit call, if any, and return the resulting state."""
        token, self._pending = self._pending, None
        if token is not None and self.current_image is not None:
            self.run_edit(token, self.current_image)
        return self.state

    def process(self, file: Any) -> ResultState:
        """Select ``file`` and run its edit call in one step."""
        self.select_file(file)
        return self.run_pending()
