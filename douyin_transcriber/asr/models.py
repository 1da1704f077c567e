"""Request, payload, exchange, and result dataclasses for the bigmodel ASR API.

WHY: The two recognition protocols share almost nothing on the wire, but
callers should see one request type going in and one result type coming
out. Typed, frozen dataclasses make the shapes explicit and keep values
from being mutated after they are sent or reported.

HOW: TranscriptionRequest is the single input. ProtocolBody is a sum type
of FlashBody and StandardBody, each rendering its own wire dict. Every
HTTP call yields a RawExchange, which the interpreter turns into a
TranscriptionResult.

RULES:
- All dataclasses are frozen
- Header names in RawExchange are lower-cased
- TranscriptionResult.result_text is always a str ("" when absent)
- encode_body() is deterministic: same body in, same bytes out
"""

from __future__ import annotations

import enum
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from douyin_transcriber.config import STANDARD_USER_LABEL


class TranscriptionMode(str, enum.Enum):
    """Concrete recognition protocol."""

    FLASH = "flash"
    STANDARD = "standard"


class Stage(str, enum.Enum):
    """Protocol step that produced an exchange or result."""

    FLASH = "flash"
    SUBMIT = "submit"
    QUERY = "query"


class Outcome(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"


class ErrorKind(str, enum.Enum):
    """Why an error-outcome result failed; NONE on success."""

    NONE = ""
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    TIMEOUT = "timeout"


class PollDecision(str, enum.Enum):
    """Verdict for one query response in the polling loop."""

    CONTINUE = "continue"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class TranscriptionRequest:
    """Everything needed to transcribe one audio file.

    RULES:
    - mode is already resolved (never "auto")
    - access_key may be empty for the standard protocol
    - poll_interval_ms / poll_timeout_ms only matter for the standard protocol
    """

    audio: bytes = field(repr=False)
    mode: TranscriptionMode
    resource_id: str
    model_name: str
    app_key: str = field(repr=False)
    access_key: str = field(default="", repr=False)
    poll_interval_ms: int = 1500
    poll_timeout_ms: int = 120000


# ---------------------------------------------------------------------------
# ProtocolBody variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AudioProfile:
    """Audio descriptor sent with standard-mode submissions."""

    format: str = "mp4"
    codec: str = "raw"
    rate: int = 16000
    bits: int = 16
    channel: int = 1


@dataclass(frozen=True)
class RecognitionOptions:
    """Recognition feature flags sent with standard-mode submissions."""

    enable_itn: bool = True
    enable_punc: bool = False
    enable_ddc: bool = False
    enable_speaker_info: bool = False
    enable_channel_split: bool = False
    show_utterances: bool = False
    vad_segment: bool = False
    sensitive_words_filter: str = ""


@dataclass(frozen=True)
class FlashBody:
    """Body for POST .../recognize/flash."""

    uid: str
    audio_data: str = field(repr=False)
    model_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": {"uid": self.uid},
            "audio": {"data": self.audio_data},
            "request": {"model_name": self.model_name},
        }


@dataclass(frozen=True)
class StandardBody:
    """Body for POST .../submit."""

    audio_data: str = field(repr=False)
    model_name: str
    profile: AudioProfile = field(default_factory=AudioProfile)
    options: RecognitionOptions = field(default_factory=RecognitionOptions)
    uid: str = STANDARD_USER_LABEL

    def to_dict(self) -> dict[str, Any]:
        audio: dict[str, Any] = {"data": self.audio_data}
        audio.update(
            format=self.profile.format,
            codec=self.profile.codec,
            rate=self.profile.rate,
            bits=self.profile.bits,
            channel=self.profile.channel,
        )
        request: dict[str, Any] = {"model_name": self.model_name}
        request.update(
            enable_itn=self.options.enable_itn,
            enable_punc=self.options.enable_punc,
            enable_ddc=self.options.enable_ddc,
            enable_speaker_info=self.options.enable_speaker_info,
            enable_channel_split=self.options.enable_channel_split,
            show_utterances=self.options.show_utterances,
            vad_segment=self.options.vad_segment,
            sensitive_words_filter=self.options.sensitive_words_filter,
        )
        return {"user": {"uid": self.uid}, "audio": audio, "request": request}


ProtocolBody = FlashBody | StandardBody


def encode_body(body: ProtocolBody) -> bytes:
    """Serialize a body to the exact bytes that go on the wire."""
    return json.dumps(body.to_dict(), ensure_ascii=False).encode("utf-8")


# ---------------------------------------------------------------------------
# Exchanges and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawExchange:
    """One HTTP request/response as seen by the interpreter.

    RULES:
    - status_code is 0 when the request never got a response
    - headers keys are lower-cased
    """

    status_code: int
    headers: Mapping[str, str]
    body: str
    stage: Stage

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str:
        return self.headers.get(name.lower(), "")


@dataclass(frozen=True)
class TranscriptionResult:
    """Normalized outcome of a flash call or a submit/query job.

    WHY: This is the only artefact callers see. It must look the same
    whichever protocol produced it, so it carries the mode and stage
    alongside the vendor diagnostics.

    RULES:
    - outcome is SUCCESS iff the final HTTP status was 2xx
    - api_status_code, api_message, log_id are copied verbatim ("" if absent)
    - result holds the parsed body, or {"raw": text} if it was not JSON
    """

    outcome: Outcome
    mode: TranscriptionMode
    stage: Stage
    request_id: str
    http_status: int
    api_status_code: str = ""
    api_message: str = ""
    log_id: str = ""
    result_text: str = ""
    result: dict[str, Any] = field(default_factory=dict)
    error_kind: ErrorKind = ErrorKind.NONE

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Render the result as the JSON document written by --out."""
        return {
            "status": self.outcome.value,
            "mode": self.mode.value,
            "stage": self.stage.value,
            "request_id": self.request_id,
            "http_status": self.http_status,
            "api_status_code": self.api_status_code,
            "api_message": self.api_message,
            "log_id": self.log_id,
            "error_kind": self.error_kind.value,
            "result_text": self.result_text,
            "result": self.result,
        }


def lower_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    """Copy a header mapping with lower-cased names."""
    if not headers:
        return {}
    return {str(k).lower(): str(v) for k, v in headers.items()}
