"""Tests for session module."""

from __future__ import annotations

import base64
import re
from typing import Any, Callable, Dict
from unittest.mock import MagicMock

import pytest

from edit_client import EditError, EditErrorKind, GeminiEditClient, MockEditClient
from imaging import download_bytes, download_filename, parse_data_uri
from ingest import LocalFile
from result_state import ResultStatus
from session import (
    READ_FAILED_MESSAGE,
    SAFETY_MESSAGE,
    UNEXPECTED_MESSAGE,
    SessionController,
    classify_error,
)

URI = "data:image/png;base64,QUJD"


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.remove_watermark.return_value = URI
    return mock


@pytest.fixture
def controller(client: MagicMock) -> SessionController:
    return SessionController(client=client)


class TestClassifyError:
    """Error panel messages."""

    def test_structured_safety_flag(self) -> None:
        err = EditError(EditErrorKind.NO_IMAGE_RETURNED, "nothing", safety_blocked=True)
        assert classify_error(err) == SAFETY_MESSAGE

    def test_safety_substring_fallback(self) -> None:
        err = EditError(EditErrorKind.TRANSPORT, "[400] Candidate was blocked due to safety reasons")
        assert classify_error(err) == SAFETY_MESSAGE

    def test_transport_message_passes_through(self) -> None:
        err = EditError(EditErrorKind.TRANSPORT, "Gemini API error 403: PERMISSION_DENIED")
        assert classify_error(err) == "Gemini API error 403: PERMISSION_DENIED"

    def test_unexpected_exception(self) -> None:
        assert classify_error(KeyError("x")) == UNEXPECTED_MESSAGE


class TestSelectFile:
    """Ingest through the controller."""

    def test_select_moves_to_processing(self, controller: SessionController, png_file: LocalFile) -> None:
        token = controller.select_file(png_file)
        assert token is not None
        assert controller.state.status is ResultStatus.PROCESSING
        assert controller.state.processed_image is None
        assert controller.has_pending
        assert controller.current_image is not None

    def test_invalid_upload_never_calls_client(self, controller: SessionController, client: MagicMock) -> None:
        token = controller.select_file(LocalFile(name="a.txt", type="text/plain", data=b"x"))
        controller.run_pending()

        assert token is None
        assert controller.upload_error is not None
        assert controller.state.status is ResultStatus.IDLE
        client.remove_watermark.assert_not_called()

    def test_select_ignored_when_not_idle(self, controller: SessionController, png_file: LocalFile) -> None:
        controller.process(png_file)
        assert controller.select_file(png_file) is None
        assert controller.state.status is ResultStatus.SUCCESS

    def test_valid_upload_clears_previous_upload_error(
        self, controller: SessionController, png_file: LocalFile
    ) -> None:
        controller.select_file(LocalFile(name="a.txt", type="text/plain", data=b"x"))
        controller.select_file(png_file)
        assert controller.upload_error is None


class TestEditFlow:
    """Edit calls and their resolution."""

    def test_success(self, controller: SessionController, client: MagicMock, png_file: LocalFile) -> None:
        state = controller.process(png_file)

        assert state.status is ResultStatus.SUCCESS
        assert state.processed_image == URI
        image = controller.current_image
        client.remove_watermark.assert_called_once_with(image.base64_payload, "image/png")

    def test_edit_error(self, controller: SessionController, client: MagicMock, png_file: LocalFile) -> None:
        client.remove_watermark.side_effect = EditError(EditErrorKind.TRANSPORT, "timed out")
        state = controller.process(png_file)

        assert state.status is ResultStatus.ERROR
        assert state.error_message == "timed out"

    def test_unexpected_error_is_recoverable(
        self, controller: SessionController, client: MagicMock, png_file: LocalFile
    ) -> None:
        client.remove_watermark.side_effect = [RuntimeError("bug"), URI]
        state = controller.process(png_file)
        assert state.status is ResultStatus.ERROR
        assert state.error_message == UNEXPECTED_MESSAGE

        controller.retry()
        state = controller.run_pending()
        assert state.status is ResultStatus.SUCCESS

    def test_run_pending_without_work(self, controller: SessionController, client: MagicMock) -> None:
        state = controller.run_pending()
        assert state.status is ResultStatus.IDLE
        client.remove_watermark.assert_not_called()

    def test_run_pending_only_once(self, controller: SessionController, client: MagicMock, png_file: LocalFile) -> None:
        controller.process(png_file)
        controller.run_pending()
        assert client.remove_watermark.call_count == 1

    def test_retry_resends_same_image(
        self, controller: SessionController, client: MagicMock, png_file: LocalFile
    ) -> None:
        controller.process(png_file)
        original = controller.state.original_preview_ref

        assert controller.retry() is not None
        assert controller.state.status is ResultStatus.PROCESSING
        assert controller.state.original_preview_ref == original
        controller.run_pending()

        first, second = client.remove_watermark.call_args_list
        assert first == second

    def test_retry_without_image(self, controller: SessionController) -> None:
        assert controller.retry() is None

    def test_stale_edit_is_ignored(
        self, controller: SessionController, client: MagicMock, png_file: LocalFile
    ) -> None:
        client.remove_watermark.side_effect = EditError(EditErrorKind.TRANSPORT, "first failed")
        stale_token = controller.select_file(png_file)
        controller.run_pending()
        image = controller.current_image

        client.remove_watermark.side_effect = None
        controller.retry()
        assert controller.run_edit(stale_token, image) is False
        assert controller.state.status is ResultStatus.PROCESSING

        controller.run_pending()
        assert controller.state.status is ResultStatus.SUCCESS


class TestPreviewLifecycle:
    """Preview references are released when superseded."""

    def test_reset_releases_preview(self, controller: SessionController, png_file: LocalFile) -> None:
        controller.process(png_file)
        assert len(controller.previews) == 1

        controller.reset()

        assert len(controller.previews) == 0
        assert controller.current_image is None
        assert controller.state.status is ResultStatus.IDLE
        assert controller.state.original_preview_ref == ""
        assert controller.state.processed_image is None

    def test_repeated_uploads_do_not_accumulate(
        self, controller: SessionController, png_file: LocalFile
    ) -> None:
        for _ in range(5):
            controller.process(png_file)
            controller.reset()
            controller.select_file(png_file)
            controller.run_pending()
            controller.reset()
        assert len(controller.previews) == 0

    def test_retry_keeps_preview_alive(self, controller: SessionController, png_file: LocalFile) -> None:
        controller.process(png_file)
        ref = controller.state.original_preview_ref
        controller.retry()
        assert ref in controller.previews


class TestEndToEnd:
    """Upload → edit → download with a mocked Gemini reply."""

    def test_large_jpeg_to_png_download(
        self,
        large_jpeg_bytes: bytes,
        http_session: Callable[..., MagicMock],
        gemini_reply: Callable[..., Dict[str, Any]],
        png_part: Dict[str, Any],
        png_bytes: bytes,
    ) -> None:
        session = http_session(gemini_reply([{"text": "Cleaned."}, png_part]))
        controller = SessionController(client=GeminiEditClient(api_key="k", session=session, timeout=5))

        controller.select_file(LocalFile(name="photo.jpg", type="image/jpeg", data=large_jpeg_bytes))
        assert controller.state.status is ResultStatus.PROCESSING

        state = controller.run_pending()

        assert state.status is ResultStatus.SUCCESS
        assert state.processed_image.startswith("data:image/png;base64,")
        sent = session.post.call_args.kwargs["json"]["contents"][0]["parts"][0]["inline_data"]
        assert base64.b64decode(sent["data"]) == large_jpeg_bytes
        assert sent["mime_type"] == "image/jpeg"

        assert download_bytes(state.processed_image) == png_bytes
        assert re.fullmatch(r"clearview-cleaned-\d+\.png", download_filename())

    def test_mock_mode_round_trip(self, png_file: LocalFile) -> None:
        controller = SessionController(client=MockEditClient())
        state = controller.process(png_file)
        assert state.status is ResultStatus.SUCCESS
        assert parse_data_uri(state.processed_image)[0] == "image/png"


class TestUploadReadFailure:
    """Uploads that cannot be read leave the session idle."""

    def test_read_error_sets_upload_error(self, controller: SessionController, client: MagicMock) -> None:
        class UnreadableFile:
            name = "broken.png"
            type = "image/png"

            def read(self) -> bytes:
                raise OSError("disk read failed")

        token = controller.select_file(UnreadableFile())
        controller.run_pending()

        assert token is None
        assert controller.upload_error == READ_FAILED_MESSAGE
        assert controller.state.status is ResultStatus.IDLE
        assert len(controller.previews) == 0
        client.remove_watermark.assert_not_called()

    def test_next_upload_recovers(self, controller: SessionController, png_file: LocalFile) -> None:
        broken = MagicMock()
        broken.name = "broken.png"
        broken.type = "image/png"
        broken.size = 10
        broken.getvalue.side_effect = OSError("gone")
        controller.select_file(broken)

        state = controller.process(png_file)

        assert controller.upload_error is None
        assert state.status is ResultStatus.SUCCESS
