"""Configuration defaults, Volcengine endpoints, and .env loading.

WHY: Credentials, endpoint URLs, resource identifiers, and polling budgets
all need to be overridable without touching code. Keeping them in one
module makes them easy to find and lets tests substitute fake endpoints.

HOW: python-dotenv loads the .env file on import. Defaults are plain
module-level constants read once from the environment. Endpoint URLs and
vendor status codes are exposed as frozen dataclasses so the ASR client
receives them as explicit values instead of reading module state.

RULES:
- Credentials are never hardcoded; load_app_key()/load_access_key() raise
  InputError with a clear message when a required key is missing
- The access key is only required for the flash protocol
- Poll interval and timeout are expressed in milliseconds
- MAX_AUDIO_BYTES is 100 MB; larger inputs are rejected before any request
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from douyin_transcriber.errors import InputError

load_dotenv()

# ---------------------------------------------------------------------------
# Volcengine bigmodel ASR endpoints
# ---------------------------------------------------------------------------

VOLC_ASR_BASE_URL = os.getenv(
    "VOLC_ASR_BASE_URL", "https://openspeech.bytedance.com/api/v3/auc/bigmodel"
)


@dataclass(frozen=True)
class AsrEndpoints:
    """Absolute URLs for the three recognition calls."""

    flash: str
    submit: str
    query: str

    @classmethod
    def from_base_url(cls, base_url: str) -> AsrEndpoints:
        base = base_url.rstrip("/")
        return cls(
            flash=f"{base}/recognize/flash",
            submit=f"{base}/submit",
            query=f"{base}/query",
        )


DEFAULT_ENDPOINTS = AsrEndpoints.from_base_url(VOLC_ASR_BASE_URL)


@dataclass(frozen=True)
class VendorCodes:
    """Opaque vendor status codes read from the x-api-status-code header."""

    complete: str = "20000000"
    in_progress: str = "20000001"


DEFAULT_VENDOR_CODES = VendorCodes()

# ---------------------------------------------------------------------------
# Resource identifiers and request defaults
# ---------------------------------------------------------------------------

TURBO_RESOURCE_ID = "volc.bigasr.auc_turbo"
"""Flash (turbo) recognition tier."""

STANDARD_RESOURCE_ID = "volc.seedasr.auc"
"""Sentence-level recognition tier; only reachable through submit/query."""

DEFAULT_RESOURCE_ID = os.getenv("VOLC_RESOURCE_ID", TURBO_RESOURCE_ID)
DEFAULT_MODEL_NAME = os.getenv("VOLC_ASR_MODEL_NAME", "bigmodel")
DEFAULT_MODE = os.getenv("VOLC_ASR_MODE", "auto")
DEFAULT_POLL_INTERVAL_MS = int(os.getenv("VOLC_ASR_POLL_INTERVAL_MS", "1500"))
DEFAULT_POLL_TIMEOUT_MS = int(os.getenv("VOLC_ASR_POLL_TIMEOUT_MS", "120000"))

SHARE_RESOURCE_ID = os.getenv("VOLC_RESOURCE_ID", STANDARD_RESOURCE_ID)
SHARE_MODE = os.getenv("VOLC_ASR_MODE", "standard")
"""Share-to-text defaults: sentence-level standard mode, app key only."""

STANDARD_USER_LABEL = "douyin_transcriber"
"""Fixed user id sent with standard-mode submissions."""

MAX_AUDIO_BYTES = 100 * 1024 * 1024

# ---------------------------------------------------------------------------
# Douyin share page access
# ---------------------------------------------------------------------------

MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) EdgiOS/121.0.2277.107 "
    "Version/17.0 Mobile/15E148 Safari/604.1"
)
DOUYIN_REFERER = "https://www.douyin.com/"
SHARE_PAGE_URL = "https://www.iesdouyin.com/share/video/{video_id}"
DEFAULT_DOWNLOAD_DIR = os.getenv("DOUYIN_DOWNLOAD_DIR", "./downloads")


def load_app_key() -> str:
    """Load the Volcengine app key from the environment.

    WHY: Both protocols authenticate with the app key, so a missing key
    must stop the pipeline before any request is made.

    HOW: Reads VOLC_APP_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises InputError if the key is missing or blank
    """
    key = os.getenv("VOLC_APP_KEY", "").strip()
    if not key:
        raise InputError(
            "Volcengine app key not configured. "
            "Pass --app-key or add VOLC_APP_KEY to the .env file."
        )
    return key


def load_access_key() -> str:
    """Load the Volcengine access key, or an empty string if unset."""
    return os.getenv("VOLC_ACCESS_KEY", "").strip()
