"""High-level flows: transcribe a local file, or go from share text to text.

WHY: The CLI (and anything embedding this package) needs two entry
points that hide the individual steps: load and validate the file,
resolve credentials and mode, run the ASR client; or resolve a share,
download it, and transcribe it.

HOW: transcribe_file() validates everything that can be validated
locally, freezes a TranscriptionRequest, and runs AsrClient.transcribe().
share_to_text() chains resolve_share(), download_file(), and
transcribe_file().

RULES:
- InputError is raised before any network call for bad local input,
  including before share_to_text() resolves or downloads anything
- transcribe_file() returns error results; it does not raise on wire failures
- share_to_text() raises TranscriptionFailedError when no text comes back
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from douyin_transcriber.asr.client import AsrClient
from douyin_transcriber.asr.models import TranscriptionMode, TranscriptionResult
from douyin_transcriber.asr.payloads import (
    build_request,
    check_credentials,
    load_audio,
    select_mode,
)
from douyin_transcriber.config import (
    DEFAULT_DOWNLOAD_DIR,
    DEFAULT_MODE,
    DEFAULT_MODEL_NAME,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_TIMEOUT_MS,
    DEFAULT_RESOURCE_ID,
    SHARE_MODE,
    SHARE_RESOURCE_ID,
    load_access_key,
    load_app_key,
)
from douyin_transcriber.download import download_file
from douyin_transcriber.share import ShareInfo, resolve_share

logger = logging.getLogger(__name__)


class TranscriptionFailedError(Exception):
    """Raised by share_to_text() when the transcription yields no text.

    RULES:
    - result is the error (or empty) TranscriptionResult
    """

    def __init__(self, message: str, result: TranscriptionResult) -> None:
        self.result = result
        super().__init__(message)


@dataclass(frozen=True)
class ShareTranscript:
    share: ShareInfo
    media_path: Path
    result: TranscriptionResult

    @property
    def text(self) -> str:
        return self.result.result_text


def resolve_credentials(
    mode: str | TranscriptionMode,
    resource_id: str,
    app_key: str | None,
    access_key: str | None,
) -> tuple[TranscriptionMode, str, str]:
    """Pick the concrete mode and fill keys from the environment.

    Raises InputError when the mode is unknown or a key it needs is missing.
    """
    concrete_mode = select_mode(mode, resource_id)
    app_key = app_key or load_app_key()
    access_key = access_key or load_access_key()
    check_credentials(concrete_mode, app_key, access_key)
    return concrete_mode, app_key, access_key


async def transcribe_file(
    input_path: str | Path,
    mode: str | TranscriptionMode = DEFAULT_MODE,
    resource_id: str = DEFAULT_RESOURCE_ID,
    model_name: str = DEFAULT_MODEL_NAME,
    app_key: str | None = None,
    access_key: str | None = None,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS,
    on_status: Callable[[str], None] | None = None,
) -> TranscriptionResult:
    """Validate a local file and credentials, then transcribe it.

    Args:
        input_path: Audio/video file to transcribe.
        mode: "flash", "standard", or "auto".
        resource_id: Vendor resource identifier.
        model_name: Vendor model name.
        app_key: App key; falls back to VOLC_APP_KEY.
        access_key: Access key; falls back to VOLC_ACCESS_KEY.
        poll_interval_ms: Wait between standard-mode queries.
        poll_timeout_ms: Total standard-mode polling budget.
        on_status: Optional callback for status updates.

    Returns:
        The TranscriptionResult, success or error.
    """
    concrete_mode, app_key, access_key = resolve_credentials(
        mode, resource_id, app_key, access_key
    )

    audio = load_audio(input_path)
    request = build_request(
        audio,
        mode=concrete_mode,
        resource_id=resource_id,
        model_name=model_name,
        app_key=app_key,
        access_key=access_key,
        poll_interval_ms=poll_interval_ms,
        poll_timeout_ms=poll_timeout_ms,
    )
    if on_status:
        on_status("Mode: {} (resource {})".format(concrete_mode.value, resource_id))

    async with AsrClient() as client:
        return await client.transcribe(request, on_status=on_status)


async def share_to_text(
    share_text: str,
    output_dir: str | Path = DEFAULT_DOWNLOAD_DIR,
    on_status: Callable[[str], None] | None = None,
    mode: str | TranscriptionMode = SHARE_MODE,
    resource_id: str = SHARE_RESOURCE_ID,
    app_key: str | None = None,
    access_key: str | None = None,
    **asr_options,
) -> ShareTranscript:
    """Resolve a share, download its video, and transcribe it.

    RULES:
    - Defaults to standard mode on the sentence-level resource (app key only)
    - Mode and credentials are checked before the share is resolved
    - The video is saved as <output_dir>/<title>.mp4
    - Remaining asr_options are passed through to transcribe_file()
    - Raises TranscriptionFailedError if the result has no text
    """
    concrete_mode, app_key, access_key = resolve_credentials(
        mode, resource_id, app_key, access_key
    )

    if on_status:
        on_status("Resolving share link...")
    share = await resolve_share(share_text)

    media_path = Path(output_dir) / "{}.mp4".format(share.title)
    if on_status:
        on_status("Downloading {}...".format(media_path.name))

    def _progress(pct: int) -> None:
        if on_status:
            on_status("  Download progress: {}%".format(pct))

    await download_file(share.download_url, media_path, on_progress=_progress)

    result = await transcribe_file(
        media_path,
        mode=concrete_mode,
        resource_id=resource_id,
        app_key=app_key,
        access_key=access_key,
        on_status=on_status,
        **asr_options,
    )
    if not result.result_text:
        logger.warning(
            "No text for share %s: %s at stage %s (HTTP %d)",
            share.video_id,
            result.outcome.value,
            result.stage.value,
            result.http_status,
        )
        raise TranscriptionFailedError("Transcription finished without any text", result)

    return ShareTranscript(share=share, media_path=media_path, result=result)
