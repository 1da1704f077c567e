"""Async HTTP client for the Volcengine bigmodel speech-recognition API.

WHY: The service exposes two incompatible protocols. Flash answers a
single POST with the transcript. Standard takes a job submission and
then has to be queried until the job reports completion, with the
completion signal arriving as a header code, as body text, or both.
This module hides both flows behind one transcribe() call that always
returns a TranscriptionResult.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. AsrClient is an async
context manager: enter it to open a connection pool, exit to close it.
Each protocol step is a separate method:
recognize_flash, or submit → poll_until_complete (→ query ...).
The polling exit policy lives in classify_query(), a pure function.

RULES:
- Always use the async context manager (async with AsrClient() as client:)
- Every HTTP call goes through _exchange(); network failures become a
  RawExchange with status 0 and are never retried
- The first query is sent only after one poll interval has elapsed
- No query is sent once elapsed time exceeds the poll timeout; the result
  is then a synthesized HTTP 408 exchange
- A query already on the wire when the task is cancelled is awaited and
  attached to TranscriptionCancelledError
- Status callback (on_status) is optional; when provided, called with status strings
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Awaitable, Callable

import httpx

from douyin_transcriber.asr.interpreter import (
    STATUS_CODE_HEADER,
    exchange_text,
    interpret,
)
from douyin_transcriber.asr.models import (
    AudioProfile,
    ErrorKind,
    FlashBody,
    PollDecision,
    ProtocolBody,
    RawExchange,
    RecognitionOptions,
    Stage,
    StandardBody,
    TranscriptionMode,
    TranscriptionRequest,
    TranscriptionResult,
    encode_body,
    lower_headers,
)
from douyin_transcriber.asr.payloads import build_payload, encode_audio
from douyin_transcriber.config import (
    DEFAULT_ENDPOINTS,
    DEFAULT_VENDOR_CODES,
    AsrEndpoints,
    VendorCodes,
)
from douyin_transcriber.errors import TranscriptionCancelledError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TRANSPORT_FAILURE_STATUS = 0
POLL_TIMEOUT_STATUS = 408

_SEQUENCE = "-1"
_EMPTY_QUERY_BODY = b"{}"


def classify_query(
    exchange: RawExchange,
    codes: VendorCodes = DEFAULT_VENDOR_CODES,
) -> PollDecision:
    """Decide whether a query response ends the polling loop.

    WHY: The vendor may report completion with the complete code, or
    deliver text without any code at all. Completion detection is
    tolerant first and strict on errors second.

    HOW: Checks the rules below in order and returns the first match.

    RULES:
    - status code == complete code → DONE (whatever the HTTP status)
    - 2xx with non-empty transcript text → DONE
    - 2xx with the in-progress code, a "{}" body, or no text yet → CONTINUE
    - non-2xx → FAILED
    - anything else → CONTINUE
    """
    code = exchange.header(STATUS_CODE_HEADER)
    if code == codes.complete:
        return PollDecision.DONE

    has_text = exchange.ok and bool(exchange_text(exchange))
    if has_text:
        return PollDecision.DONE

    pending = (
        code == codes.in_progress
        or exchange.body.strip() == "{}"
        or not has_text
    )
    if exchange.ok and pending:
        return PollDecision.CONTINUE

    if not exchange.ok:
        return PollDecision.FAILED

    return PollDecision.CONTINUE


def _failure_kind(exchange: RawExchange) -> ErrorKind:
    if exchange.ok:
        return ErrorKind.NONE
    if exchange.status_code == TRANSPORT_FAILURE_STATUS:
        return ErrorKind.TRANSPORT
    return ErrorKind.PROTOCOL


def _timeout_exchange(timeout_ms: int, attempts: int) -> RawExchange:
    body = {
        "error": "Polling timed out after {} ms without a final result".format(timeout_ms),
        "query_attempts": attempts,
    }
    return RawExchange(
        status_code=POLL_TIMEOUT_STATUS,
        headers={},
        body=json.dumps(body, ensure_ascii=False),
        stage=Stage.QUERY,
    )


class AsrClient:
    """Async client for the flash and standard recognition protocols.

    WHY: Callers want a transcript, not a protocol. The client picks the
    invoker for the request's mode, builds the body, drives the HTTP
    calls, and hands back one normalized TranscriptionResult.

    HOW: Wraps httpx.AsyncClient. Endpoints and vendor codes are explicit
    constructor arguments so tests can point the client at a
    httpx.MockTransport. The poll wait uses an injectable sleep and clock.

    RULES:
    - Use as: async with AsrClient() as client: ...
    - endpoints defaults to DEFAULT_ENDPOINTS from config
    - codes defaults to DEFAULT_VENDOR_CODES from config
    - sleep/clock default to asyncio.sleep / time.monotonic
    """

    def __init__(
        self,
        endpoints: AsrEndpoints | None = None,
        codes: VendorCodes | None = None,
        audio_profile: AudioProfile | None = None,
        recognition_options: RecognitionOptions | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: httpx.Timeout | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._endpoints = endpoints or DEFAULT_ENDPOINTS
        self._codes = codes or DEFAULT_VENDOR_CODES
        self._audio_profile = audio_profile
        self._recognition_options = recognition_options
        self._transport = transport
        self._timeout = timeout or httpx.Timeout(300.0, connect=30.0)
        self._sleep = sleep
        self._clock = clock
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> AsrClient:
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "AsrClient must be used as an async context manager: "
                "async with AsrClient() as client: ..."
            )
        return self._client

    # ------------------------------------------------------------------
    # Transport adapter
    # ------------------------------------------------------------------

    async def _exchange(
        self,
        url: str,
        headers: dict[str, str],
        content: bytes,
        stage: Stage,
    ) -> RawExchange:
        """POST once and capture status, headers, and body text.

        RULES:
        - httpx.HTTPError is caught and returned as status 0 with an
          {"error": ...} body; nothing is retried
        """
        client = self._ensure_client()
        try:
            resp = await client.post(url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            logger.warning("%s request to %s failed: %s", stage.value, url, exc)
            body = {"error": str(exc) or exc.__class__.__name__, "type": exc.__class__.__name__}
            return RawExchange(
                status_code=TRANSPORT_FAILURE_STATUS,
                headers={},
                body=json.dumps(body, ensure_ascii=False),
                stage=stage,
            )

        exchange = RawExchange(
            status_code=resp.status_code,
            headers=lower_headers(resp.headers),
            body=resp.text,
            stage=stage,
        )
        logger.debug(
            "%s -> HTTP %d, code=%s, logid=%s",
            stage.value,
            exchange.status_code,
            exchange.header(STATUS_CODE_HEADER) or "-",
            exchange.header("x-tt-logid") or "-",
        )
        return exchange

    # ------------------------------------------------------------------
    # Flash protocol
    # ------------------------------------------------------------------

    async def recognize_flash(
        self,
        request: TranscriptionRequest,
        body: FlashBody,
        request_id: str,
    ) -> RawExchange:
        """Send the single flash recognition request.

        RULES:
        - Dual-key auth: X-Api-App-Key and X-Api-Access-Key
        - X-Api-Sequence is always -1
        """
        headers = {
            "Content-Type": "application/json",
            "X-Api-App-Key": str(request.app_key),
            "X-Api-Access-Key": str(request.access_key),
            "X-Api-Resource-Id": str(request.resource_id),
            "X-Api-Request-Id": request_id,
            "X-Api-Sequence": _SEQUENCE,
        }
        return await self._exchange(
            self._endpoints.flash, headers, encode_body(body), Stage.FLASH
        )

    # ------------------------------------------------------------------
    # Standard protocol
    # ------------------------------------------------------------------

    async def submit(
        self,
        request: TranscriptionRequest,
        body: StandardBody,
        request_id: str,
    ) -> RawExchange:
        """Submit a standard recognition job.

        RULES:
        - Single-key auth via x-api-key
        - X-Api-Sequence is always -1
        """
        headers = {
            "Content-Type": "application/json",
            "x-api-key": str(request.app_key),
            "X-Api-Resource-Id": str(request.resource_id),
            "X-Api-Request-Id": request_id,
            "X-Api-Sequence": _SEQUENCE,
        }
        return await self._exchange(
            self._endpoints.submit, headers, encode_body(body), Stage.SUBMIT
        )

    async def query(self, request: TranscriptionRequest, request_id: str) -> RawExchange:
        """Ask for the state of a submitted job. No sequence header."""
        headers = {
            "Content-Type": "application/json",
            "x-api-key": str(request.app_key),
            "X-Api-Resource-Id": str(request.resource_id),
            "X-Api-Request-Id": request_id,
        }
        return await self._exchange(
            self._endpoints.query, headers, _EMPTY_QUERY_BODY, Stage.QUERY
        )

    async def _query_shielded(
        self,
        request: TranscriptionRequest,
        request_id: str,
    ) -> RawExchange:
        task = asyncio.ensure_future(self.query(request, request_id))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.info("Cancelled while query for %s was in flight; awaiting it", request_id)
            while not task.done():
                try:
                    await asyncio.shield(task)
                except asyncio.CancelledError:
                    logger.debug("Repeated cancel while draining query for %s", request_id)
            raise TranscriptionCancelledError(request_id, task.result()) from None

    async def poll_until_complete(
        self,
        request: TranscriptionRequest,
        request_id: str,
        on_status: Callable[[str], None] | None = None,
    ) -> tuple[RawExchange, ErrorKind]:
        """Query a submitted job until it finishes, fails, or times out.

        WHY: Standard-mode jobs take a while. The loop must stop on a
        clear completion or failure, but never run past the caller's
        budget.

        HOW: Sleeps one interval, checks the budget, queries, and lets
        classify_query() decide. The budget is measured from the first
        call, which is made right after a successful submission.

        RULES:
        - Returns (exchange, ErrorKind.NONE) on DONE; a DONE exchange with
          a non-2xx status is still reported as an error by the interpreter
        - Returns (exchange, PROTOCOL or TRANSPORT) on FAILED
        - Returns (synthesized 408 exchange, TIMEOUT) when the budget runs out
        - Raises TranscriptionCancelledError if cancelled

        Args:
            request: The submitted TranscriptionRequest.
            request_id: Request id used for the submission.
            on_status: Optional callback for status updates.

        Returns:
            Tuple of the terminal RawExchange and its ErrorKind.
        """
        interval_s = request.poll_interval_ms / 1000.0
        timeout_s = request.poll_timeout_ms / 1000.0
        start = self._clock()
        attempts = 0

        while self._clock() - start < timeout_s:
            try:
                await self._sleep(interval_s)
            except asyncio.CancelledError:
                logger.info("Cancelled while waiting to query %s", request_id)
                raise TranscriptionCancelledError(request_id) from None

            elapsed = self._clock() - start
            if elapsed > timeout_s:
                break

            attempts += 1
            exchange = await self._query_shielded(request, request_id)
            decision = classify_query(exchange, self._codes)
            logger.debug(
                "Query %d for %s after %.1fs: HTTP %d -> %s",
                attempts,
                request_id,
                elapsed,
                exchange.status_code,
                decision.value,
            )

            if decision is PollDecision.DONE:
                if on_status:
                    on_status("Transcription complete.")
                return exchange, ErrorKind.NONE

            if decision is PollDecision.FAILED:
                if on_status:
                    on_status("Query failed: HTTP {}".format(exchange.status_code))
                return exchange, _failure_kind(exchange)

            if on_status:
                on_status("Transcribing... (elapsed: {:.0f}s)".format(elapsed))

        logger.warning(
            "Polling for %s timed out after %d ms (%d queries)",
            request_id,
            request.poll_timeout_ms,
            attempts,
        )
        if on_status:
            on_status("Transcription timed out.")
        return _timeout_exchange(request.poll_timeout_ms, attempts), ErrorKind.TIMEOUT

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def build_body(self, request: TranscriptionRequest) -> ProtocolBody:
        """Build the one ProtocolBody for a request."""
        return build_payload(
            request.mode,
            request.app_key,
            encode_audio(request.audio),
            request.model_name,
            profile=self._audio_profile,
            options=self._recognition_options,
        )

    async def transcribe(
        self,
        request: TranscriptionRequest,
        on_status: Callable[[str], None] | None = None,
    ) -> TranscriptionResult:
        """Run the request's protocol end to end and normalize the outcome.

        WHY: This is the single entry point callers use. Whatever goes
        wrong on the wire comes back as an error-outcome result, never as
        an exception.

        HOW: Generates a fresh request id, builds the body once, then
        either makes the flash call or submits and polls. The terminal
        exchange goes through interpret().

        RULES:
        - Exactly one body is built per request
        - A failed submission is terminal; no query is sent
        - Only cancellation escapes as an exception
        """
        request_id = str(uuid.uuid4())
        body = self.build_body(request)
        logger.info(
            "Transcribing %d bytes, mode=%s, resource=%s, request_id=%s",
            len(request.audio),
            request.mode.value,
            request.resource_id,
            request_id,
        )

        if request.mode is TranscriptionMode.FLASH:
            if on_status:
                on_status("Sending flash recognition request...")
            exchange = await self.recognize_flash(request, body, request_id)
            kind = _failure_kind(exchange)
        else:
            if on_status:
                on_status("Submitting transcription job...")
            exchange = await self.submit(request, body, request_id)
            if exchange.ok:
                if on_status:
                    on_status("Job submitted, polling for result...")
                exchange, kind = await self.poll_until_complete(request, request_id, on_status)
            else:
                logger.warning("Submission rejected: HTTP %d", exchange.status_code)
                kind = _failure_kind(exchange)

        result = interpret(exchange, request.mode, request_id, kind)
        logger.info(
            "Request %s finished: %s at stage %s (HTTP %d)",
            request_id,
            result.outcome.value,
            result.stage.value,
            result.http_status,
        )
        return result
