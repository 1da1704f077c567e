"""Turn raw HTTP exchanges into TranscriptionResult records.

WHY: Flash responses, submit failures, query responses, and synthesized
timeouts all arrive as a status, some headers, and a body that may or
may not be JSON. The rest of the system should never have to look at
those pieces directly.

HOW: parse_body() never raises; unparseable text is wrapped as
{"raw": text}. extract_text() looks in result.text, then
payload_msg.result.text. interpret() copies the vendor headers and
decides the outcome from the HTTP status alone.

RULES:
- Outcome is success iff the HTTP status is 2xx
- Empty body parses to {}
- Extracted text is always a str
"""

from __future__ import annotations

import json
from typing import Any

from douyin_transcriber.asr.models import (
    ErrorKind,
    Outcome,
    RawExchange,
    Stage,
    TranscriptionMode,
    TranscriptionResult,
)

STATUS_CODE_HEADER = "x-api-status-code"
MESSAGE_HEADER = "x-api-message"
LOG_ID_HEADER = "x-tt-logid"

_TEXT_PATHS = (
    ("result", "text"),
    ("payload_msg", "result", "text"),
)


def parse_body(text: str) -> dict[str, Any]:
    """Parse a response body, falling back to {"raw": text}."""
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {"raw": text}
    if not isinstance(parsed, dict):
        return {"raw": text}
    return parsed


def extract_text(body: Any) -> str:
    """Return the first non-empty transcript text found in a parsed body."""
    for path in _TEXT_PATHS:
        node = body
        for key in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(key)
        if isinstance(node, str) and node:
            return node
    return ""


def exchange_text(exchange: RawExchange) -> str:
    """Shortcut used by the polling loop's completion check."""
    return extract_text(parse_body(exchange.body))


def interpret(
    exchange: RawExchange,
    mode: TranscriptionMode,
    request_id: str,
    error_kind: ErrorKind = ErrorKind.NONE,
) -> TranscriptionResult:
    """Normalize one exchange into a TranscriptionResult.

    RULES:
    - error_kind defaults to PROTOCOL for any non-2xx exchange
    - error_kind is forced to NONE on success
    """
    body = parse_body(exchange.body)
    outcome = Outcome.SUCCESS if exchange.ok else Outcome.ERROR
    if outcome is Outcome.SUCCESS:
        error_kind = ErrorKind.NONE
    elif error_kind is ErrorKind.NONE:
        error_kind = ErrorKind.PROTOCOL

    return TranscriptionResult(
        outcome=outcome,
        mode=mode,
        stage=Stage(exchange.stage),
        request_id=request_id,
        http_status=exchange.status_code,
        api_status_code=exchange.header(STATUS_CODE_HEADER),
        api_message=exchange.header(MESSAGE_HEADER),
        log_id=exchange.header(LOG_ID_HEADER),
        result_text=extract_text(body),
        result=body,
        error_kind=error_kind,
    )
