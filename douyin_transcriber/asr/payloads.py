"""Mode selection, input validation, and request body construction.

WHY: Which protocol to use and what to send are pure decisions that
should be testable without a network. Keeping them apart from the HTTP
client also means the 100 MB guard and credential checks run before a
single byte leaves the machine.

HOW: select_mode() resolves "auto" from the resource identifier.
load_audio() reads and size-checks the file. build_request() validates
credentials for the chosen mode and freezes a TranscriptionRequest.
build_payload() produces the FlashBody or StandardBody variant.

RULES:
- Explicit "flash"/"standard" always wins over the resource identifier
- "auto" picks standard only for the sentence-level resource identifier
- Files over MAX_AUDIO_BYTES are rejected before they are read
- build_payload() is pure: no I/O, no randomness
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path

from douyin_transcriber.asr.models import (
    AudioProfile,
    FlashBody,
    ProtocolBody,
    RecognitionOptions,
    StandardBody,
    TranscriptionMode,
    TranscriptionRequest,
)
from douyin_transcriber.config import (
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_TIMEOUT_MS,
    MAX_AUDIO_BYTES,
    STANDARD_RESOURCE_ID,
)
from douyin_transcriber.errors import InputError

logger = logging.getLogger(__name__)

AUTO_MODE = "auto"
MODE_CHOICES = (AUTO_MODE, TranscriptionMode.FLASH.value, TranscriptionMode.STANDARD.value)


def select_mode(
    mode: str | TranscriptionMode,
    resource_id: str,
    standard_resource_id: str = STANDARD_RESOURCE_ID,
) -> TranscriptionMode:
    """Resolve the protocol to use.

    RULES:
    - "flash" or "standard" is returned unchanged
    - "auto" returns STANDARD iff resource_id == standard_resource_id
    - Anything else raises InputError
    """
    value = mode.value if isinstance(mode, TranscriptionMode) else str(mode).strip().lower()
    if value == TranscriptionMode.FLASH.value:
        return TranscriptionMode.FLASH
    if value == TranscriptionMode.STANDARD.value:
        return TranscriptionMode.STANDARD
    if value != AUTO_MODE:
        raise InputError(
            "Unknown mode '{}'. Expected one of: {}".format(mode, ", ".join(MODE_CHOICES))
        )
    if resource_id == standard_resource_id:
        return TranscriptionMode.STANDARD
    return TranscriptionMode.FLASH


def load_audio(path: str | Path, max_bytes: int = MAX_AUDIO_BYTES) -> bytes:
    """Read an audio/video file after checking it exists and is small enough."""
    file_path = Path(path)
    if not file_path.is_file():
        raise InputError("File not found: {}".format(file_path))

    size = file_path.stat().st_size
    if size > max_bytes:
        raise InputError(
            "File is {:,} bytes, over the {:,} byte limit. "
            "Compress the audio and try again.".format(size, max_bytes)
        )

    logger.debug("Loaded %s (%d bytes)", file_path, size)
    return file_path.read_bytes()


def encode_audio(audio: bytes) -> str:
    """Base64-encode raw audio for inline transport."""
    return base64.b64encode(audio).decode("ascii")


def check_credentials(mode: TranscriptionMode, app_key: str | None, access_key: str | None) -> None:
    """Raise InputError unless the keys cover what mode authenticates with."""
    if not app_key:
        raise InputError("Missing app key: pass --app-key or set VOLC_APP_KEY.")
    if mode is TranscriptionMode.FLASH and not access_key:
        raise InputError(
            "Missing access key: flash mode needs --access-key or VOLC_ACCESS_KEY."
        )


def build_request(
    audio: bytes,
    mode: TranscriptionMode,
    resource_id: str,
    model_name: str,
    app_key: str,
    access_key: str | None = None,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS,
) -> TranscriptionRequest:
    """Validate credentials and limits, then freeze a TranscriptionRequest.

    WHY: The flash protocol authenticates with two headers while the
    standard protocol needs only the app key. A missing key is an input
    error and must surface before anything is sent.

    RULES:
    - app_key is required for both modes
    - access_key is required only for FLASH
    - audio over MAX_AUDIO_BYTES is rejected
    - poll values must be positive
    """
    check_credentials(mode, app_key, access_key)
    if len(audio) > MAX_AUDIO_BYTES:
        raise InputError(
            "Audio is {:,} bytes, over the {:,} byte limit.".format(len(audio), MAX_AUDIO_BYTES)
        )
    if poll_interval_ms <= 0 or poll_timeout_ms <= 0:
        raise InputError("Poll interval and timeout must be positive milliseconds.")

    return TranscriptionRequest(
        audio=audio,
        mode=mode,
        resource_id=resource_id,
        model_name=model_name,
        app_key=app_key,
        access_key=access_key or "",
        poll_interval_ms=poll_interval_ms,
        poll_timeout_ms=poll_timeout_ms,
    )


def build_payload(
    mode: TranscriptionMode,
    app_key: str,
    audio_b64: str,
    model_name: str,
    profile: AudioProfile | None = None,
    options: RecognitionOptions | None = None,
) -> ProtocolBody:
    """Build the request body variant for a mode.

    RULES:
    - FLASH: the app key doubles as the user id
    - STANDARD: fixed user label, AudioProfile and RecognitionOptions defaults
    """
    if mode is TranscriptionMode.FLASH:
        return FlashBody(uid=str(app_key), audio_data=audio_b64, model_name=model_name)
    return StandardBody(
        audio_data=audio_b64,
        model_name=model_name,
        profile=profile or AudioProfile(),
        options=options or RecognitionOptions(),
    )
