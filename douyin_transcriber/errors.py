"""Exception types shared by the ASR client, share resolver, and CLI.

WHY: Only input problems abort before a result exists; everything that
happens on the wire is folded into an error-outcome TranscriptionResult.
Callers therefore need a small, typed set of exceptions to tell input
mistakes, collaborator failures, and cancellation apart.

RULES:
- InputError is raised before any network call is made
- ShareParseError and DownloadError belong to the collaborators, not the core
- TranscriptionCancelledError subclasses asyncio.CancelledError so task
  cancellation keeps working; it is never conflated with a poll timeout
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from douyin_transcriber.asr.models import RawExchange


class InputError(ValueError):
    """Raised for a missing/oversized file, a missing credential, or a bad mode."""


class ShareParseError(ValueError):
    """Raised when a share text or share page cannot be turned into a media URL."""


class DownloadError(Exception):
    """Raised when the media download returns a non-200 response.

    RULES:
    - status_code is the final HTTP status after redirects
    """

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"Download failed: HTTP {status_code} for {url}")


class TranscriptionCancelledError(asyncio.CancelledError):
    """Raised when a polling transcription is cancelled.

    WHY: A cancellation may land while a query is already on the wire.
    That response is awaited and attached here instead of being dropped.

    RULES:
    - request_id identifies the abandoned job
    - last_exchange is the in-flight query response, or None if the
      cancellation arrived during the wait between polls
    """

    def __init__(
        self,
        request_id: str,
        last_exchange: RawExchange | None = None,
    ) -> None:
        self.request_id = request_id
        self.last_exchange = last_exchange
        super().__init__(f"Transcription {request_id} was cancelled")
