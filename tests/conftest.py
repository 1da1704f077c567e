"""Shared test fixtures for the douyin_transcriber test suite.

WHY: The ASR client, pipeline, and CLI tests all need the same fake
endpoints, a controllable clock, and a scripted HTTP backend. Keeping them
here avoids drift between test modules.

HOW: FakeClock replaces time.monotonic and asyncio.sleep: sleeping just
advances the clock. ScriptedBackend is a handler for httpx.MockTransport
that serves queued responses per endpoint and records every request with
the fake time it was sent at.

RULES:
- No test touches the network (all HTTP goes through httpx.MockTransport)
- Credentials come from fixtures, never from the environment
- Fake endpoints live under https://asr.test/api
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from douyin_transcriber.asr.client import AsrClient
from douyin_transcriber.asr.models import TranscriptionMode, TranscriptionRequest
from douyin_transcriber.config import AsrEndpoints

TEST_ENDPOINTS = AsrEndpoints.from_base_url("https://asr.test/api")

COMPLETE = "20000000"
IN_PROGRESS = "20000001"

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Exception]


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedBackend:
    """Serves queued responses for the flash, submit, and query endpoints.

    The last queued response for an endpoint is repeated once the queue is
    down to one entry, so "always returns X" is a single-item script.
    """

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.clock = clock
        self.scripts: Dict[str, List[Responder]] = {"flash": [], "submit": [], "query": []}
        self.calls: List[Tuple[str, float, httpx.Request]] = []

    def on(self, endpoint: str, *responses: Responder) -> ScriptedBackend:
        self.scripts[endpoint].extend(responses)
        return self

    def calls_to(self, endpoint: str) -> List[Tuple[float, httpx.Request]]:
        return [(t, req) for name, t, req in self.calls if name == endpoint]

    def _endpoint(self, request: httpx.Request) -> str:
        url = str(request.url)
        if url == TEST_ENDPOINTS.flash:
            return "flash"
        if url == TEST_ENDPOINTS.submit:
            return "submit"
        if url == TEST_ENDPOINTS.query:
            return "query"
        raise AssertionError("Unexpected URL: {}".format(url))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        name = self._endpoint(request)
        self.calls.append((name, self.clock() if self.clock else 0.0, request))
        script = self.scripts[name]
        if not script:
            raise AssertionError("No scripted response for {}".format(name))
        responder = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(responder, Exception):
            raise responder
        if callable(responder) and not isinstance(responder, httpx.Response):
            return responder(request)
        return responder


def vendor_response(
    status: int = 200,
    body: Any = None,
    code: Optional[str] = None,
    message: Optional[str] = None,
    logid: Optional[str] = None,
    text: Optional[str] = None,
) -> httpx.Response:
    """Build a response shaped like the vendor's (headers + JSON body)."""
    headers: Dict[str, str] = {}
    if code is not None:
        headers["X-Api-Status-Code"] = code
    if message is not None:
        headers["X-Api-Message"] = message
    if logid is not None:
        headers["X-Tt-Logid"] = logid
    if text is None:
        text = json.dumps(body if body is not None else {})
    return httpx.Response(status, headers=headers, text=text)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock) -> ScriptedBackend:
    return ScriptedBackend(clock)


@pytest.fixture
def make_client(clock):
    """Factory for an AsrClient wired to a handler and the fake clock."""

    def _make(handler, **kwargs) -> AsrClient:
        return AsrClient(
            endpoints=TEST_ENDPOINTS,
            transport=httpx.MockTransport(handler),
            sleep=clock.sleep,
            clock=clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_request():
    """Factory for TranscriptionRequest with test credentials."""

    def _make(mode: TranscriptionMode = TranscriptionMode.FLASH, **overrides) -> TranscriptionRequest:
        values: Dict[str, Any] = dict(
            audio=b"fake audio bytes",
            mode=mode,
            resource_id="volc.bigasr.auc_turbo"
            if mode is TranscriptionMode.FLASH
            else "volc.seedasr.auc",
            model_name="bigmodel",
            app_key="app-123",
            access_key="access-456",
            poll_interval_ms=1000,
            poll_timeout_ms=3000,
        )
        values.update(overrides)
        return TranscriptionRequest(**values)

    return _make
