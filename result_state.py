#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Result state machine: idle -> processing -> success | error.

Transitions:
  idle        --select_image--> processing
  processing  --succeed-------> success
  processing  --fail----------> error
  success     --retry---------> processing
  error       --retry---------> processing
  any         --reset---------> idle

Every move into processing issues a new request token. Only the current
token may resolve the machine; replies carrying an older token are dropped.
Events off these edges are ignored.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


class ResultStatus(str, enum.Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ResultState:
    original_preview_ref: str = ""
    processed_image: Optional[str] = None
    status: ResultStatus = ResultStatus.IDLE
    error_message: Optional[str] = None


IDLE_STATE = ResultState()


class ResultStateMachine:
    def __init__(self) -> None:
        self._state = IDLE_STATE
        self._token = 0

    @property
    def state(self) -> ResultState:
        return self._state

    @property
    def status(self) -> ResultStatus:
        return self._state.status

    @property
    def current_token(self) -> Optional[int]:
        """Token of the outstanding edit call, or None when nothing is in flight."""
        return self._token if self._state.status is ResultStatus.PROCESSING else None

    def _issue_token(self) -> int:
        self._token += 1
        return self._token

    def select_image(self, preview_ref: str) -> Optional[int]:
        if self._state.status is not ResultStatus.IDLE:
            logger.debug("select_image ignored in %s", self._state.status.value)
            return None
        self._state = ResultState(original_preview_ref=preview_ref, status=ResultStatus.PROCESSING)
        return self._issue_token()

    def retry(self) -> Optional[int]:
        if self._state.status not in (ResultStatus.SUCCESS, ResultStatus.ERROR):
            logger.debug("retry ignored in %s", self._state.status.value)
            return None
        self._state = ResultState(
            original_preview_ref=self._state.original_preview_ref,
            status=ResultStatus.PROCESSING,
        )
        return self._issue_token()

    def _accepts(self, token: int) -> bool:
        if self._state.status is not ResultStatus.PROCESSING or token != self._token:
            logger.debug("Dropping stale edit reply (token %s, current %s)", token, self.current_token)
            return False
        return True

    def succeed(self, token: int, processed_image: str) -> bool:
        if not self._accepts(token):
            return False
        self._state = ResultState(
            original_preview_ref=self._state.original_preview_ref,
            processed_image=processed_image,
            status=ResultStatus.SUCCESS,
        )
        return True

    def fail(self, token: int, error_message: str) -> bool:
        if not self._accepts(token):
            return False
        self._state = ResultState(
            original_preview_ref=self._state.original_preview_ref,
            status=ResultStatus.ERROR,
            error_message=error_message,
        )
        return True

    def reset(self) -> None:
        # the counter keeps running so replies issued before the reset stay stale
        self._state = IDLE_STATE
