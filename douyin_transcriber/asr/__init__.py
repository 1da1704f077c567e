"""Volcengine bigmodel ASR package: flash and submit/query speech recognition.

WHY: Turning an audio file into text involves choosing a protocol,
building its payload, driving one or many HTTP calls, and normalizing
whatever comes back. This package owns all of that.

HOW: payloads.py selects the mode and builds bodies, client.py runs the
HTTP flows with httpx.AsyncClient, interpreter.py normalizes responses
into TranscriptionResult (models.py).

RULES:
- All recognition HTTP calls go through AsrClient
- Wire failures come back as error-outcome results, not exceptions
"""

from douyin_transcriber.asr.client import AsrClient, classify_query
from douyin_transcriber.asr.models import (
    PollDecision,
    Stage,
    TranscriptionMode,
    TranscriptionRequest,
    TranscriptionResult,
)
from douyin_transcriber.asr.payloads import (
    build_payload,
    build_request,
    check_credentials,
    load_audio,
    select_mode,
)

__all__ = [
    "AsrClient",
    "PollDecision",
    "Stage",
    "TranscriptionMode",
    "TranscriptionRequest",
    "TranscriptionResult",
    "build_payload",
    "build_request",
    "check_credentials",
    "classify_query",
    "load_audio",
    "select_mode",
]
